from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import BaseModel, Field

from aoiviewer.config import settings
from aoiviewer.services.cache import BoundedTTLCache, make_cache_key
from aoiviewer.services.metrics import metrics

logger = logging.getLogger(__name__)

_MISS = object()


class WMSUpstreamError(Exception):
    """The WMS server could not produce a usable GetFeatureInfo response."""


class FeatureInfoQuery(BaseModel):
    x: int = Field(..., ge=0, description="Pixel column of the click")
    y: int = Field(..., ge=0, description="Pixel row of the click")
    bbox: str = Field(..., description="Map extent as minx,miny,maxx,maxy")
    width: int = Field(..., ge=1, description="Map width in pixels")
    height: int = Field(..., ge=1, description="Map height in pixels")
    layers: str = Field(..., description="Comma-separated WMS layer names")

    def cache_key(self) -> str:
        return make_cache_key(
            self.layers, self.x, self.y, self.bbox, self.width, self.height
        )


def build_params(query: FeatureInfoQuery) -> dict[str, str]:
    return {
        "service": "WMS",
        "version": settings.wms_version,
        "request": "GetFeatureInfo",
        "layers": query.layers,
        "query_layers": query.layers,
        "info_format": "application/json",
        "feature_count": str(settings.wms_feature_count),
        "x": str(query.x),
        "y": str(query.y),
        "bbox": query.bbox,
        "width": str(query.width),
        "height": str(query.height),
        "srs": settings.wms_srs,
    }


async def fetch_feature_info(query: FeatureInfoQuery) -> Any:
    """Call the WMS server and return its decoded JSON body."""
    try:
        async with httpx.AsyncClient(timeout=settings.wms_timeout) as client:
            resp = await client.get(settings.wms_url, params=build_params(query))
            resp.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise WMSUpstreamError(
            f"WMS request failed: {exc.response.status_code} {exc.response.reason_phrase}"
        ) from exc
    except httpx.HTTPError as exc:
        raise WMSUpstreamError(f"WMS request failed: {exc}") from exc

    try:
        return resp.json()
    except ValueError as exc:
        raise WMSUpstreamError("WMS response was not valid JSON") from exc


async def get_feature_info(query: FeatureInfoQuery, cache: BoundedTTLCache) -> Any:
    """Return feature info for *query*, serving repeats from *cache*.

    Only successful upstream responses are cached; a failure propagates
    and leaves the cache untouched.
    """
    key = query.cache_key()
    cached = cache.get(key, _MISS)
    if cached is not _MISS:
        return cached

    try:
        data = await fetch_feature_info(query)
    except WMSUpstreamError:
        metrics.inc_wms(False)
        raise

    metrics.inc_wms(True)
    cache.put(key, data)
    return data
