"""GET /wms/feature-info: cached WMS GetFeatureInfo proxy."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from aoiviewer.api.dependencies import get_feature_cache
from aoiviewer.api.schemas import ErrorResponse
from aoiviewer.services.cache import BoundedTTLCache
from aoiviewer.services.wms import FeatureInfoQuery, get_feature_info

router = APIRouter(prefix="/wms", tags=["wms"])


@router.get(
    "/feature-info",
    summary="Query map features at a pixel",
    description=(
        "Proxy a WMS `GetFeatureInfo` request for the clicked pixel. "
        "Identical requests are answered from an in-memory cache for "
        "a few minutes; only successful upstream responses are cached."
    ),
    responses={
        422: {"model": ErrorResponse, "description": "Validation error"},
        502: {"model": ErrorResponse, "description": "WMS server failure"},
    },
)
async def feature_info(
    x: int = Query(..., ge=0, description="Pixel column of the click"),
    y: int = Query(..., ge=0, description="Pixel row of the click"),
    bbox: str = Query(..., description="Map extent as minx,miny,maxx,maxy"),
    width: int = Query(..., ge=1, description="Map width in pixels"),
    height: int = Query(..., ge=1, description="Map height in pixels"),
    layers: str = Query(..., description="Comma-separated WMS layer names"),
    cache: BoundedTTLCache = Depends(get_feature_cache),
):
    """Return the WMS feature JSON for the clicked pixel."""
    query = FeatureInfoQuery(
        x=x, y=y, bbox=bbox, width=width, height=height, layers=layers
    )
    return await get_feature_info(query, cache)
