"""POST /aoi and GET /aoi: create and list Areas of Interest."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from aoiviewer.api.auth import require_user
from aoiviewer.api.dependencies import get_db
from aoiviewer.api.schemas import (
    AoiResponse,
    ErrorResponse,
    FeatureIn,
    GeometryWrapperIn,
    aoi_create_adapter,
)
from aoiviewer.config import settings
from aoiviewer.services.aoi_store import create_aoi, list_aois, parse_bbox
from aoiviewer.services.geometry import Geometry, OutOfBoundsError, normalize
from aoiviewer.services.metrics import metrics

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/aoi", tags=["aoi"])

_AUTH_RESPONSES = {
    401: {"model": ErrorResponse, "description": "Missing API key"},
    403: {"model": ErrorResponse, "description": "Invalid API key"},
}


def _text(value: Any) -> str:
    return str(value) if value else ""


def extract_aoi_fields(body: Any, payload: dict[str, Any]) -> tuple[Geometry, str, str]:
    """Pull geometry, name and description out of any accepted body shape.

    *payload* is the raw request JSON. For every shape, ``properties.name``
    and ``properties.description`` take precedence over top-level
    ``name``/``description``.
    """
    if isinstance(body, (FeatureIn, GeometryWrapperIn)):
        geometry = body.geometry
    else:
        geometry = body

    props = payload.get("properties")
    if not isinstance(props, dict):
        props = {}
    name = props.get("name") or payload.get("name")
    description = props.get("description") or payload.get("description")
    return geometry, _text(name), _text(description)


@router.post(
    "",
    status_code=201,
    summary="Create an AOI",
    description=(
        "Store a user-drawn Area of Interest. The body may be a GeoJSON "
        "Feature, a bare Point/Polygon/MultiPolygon geometry, or an object "
        "with `geometry`, `name`, `description` and `properties`.\n\n"
        "Rings are closed, simplified (Douglas-Peucker) and bounds-checked "
        "before storage."
    ),
    response_model=AoiResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid GeoJSON or coordinates out of bounds"},
        **_AUTH_RESPONSES,
    },
)
async def post_aoi(
    payload: Any = Body(...),
    session: AsyncSession = Depends(get_db),
    user_id: str = Depends(require_user),
):
    """Validate, normalize and persist an AOI for the calling user."""
    try:
        body = aoi_create_adapter.validate_python(payload)
    except ValidationError as exc:
        metrics.inc_aoi(False)
        raise HTTPException(
            status_code=400,
            detail={
                "message": "Invalid GeoJSON",
                "errors": exc.errors(include_url=False, include_context=False),
            },
        )

    geometry, name, description = extract_aoi_fields(body, payload)

    try:
        normalized = normalize(geometry, settings.simplify_tolerance)
    except OutOfBoundsError:
        metrics.inc_aoi(False)
        raise HTTPException(status_code=400, detail="Coordinates out of bounds")

    aoi = await create_aoi(
        session,
        user_id=user_id,
        name=name,
        description=description,
        geometry=normalized,
    )
    metrics.inc_aoi(True)
    return aoi


@router.get(
    "",
    summary="List AOIs",
    description=(
        "Return the caller's AOIs together with the public sample AOIs, "
        "newest first. With `bbox`, only AOIs intersecting the box are "
        "returned."
    ),
    response_model=list[AoiResponse],
    responses={
        400: {"model": ErrorResponse, "description": "Invalid bbox parameter"},
        **_AUTH_RESPONSES,
    },
)
async def get_aois(
    bbox: str | None = Query(
        None, description="Filter box as minLng,minLat,maxLng,maxLat"
    ),
    session: AsyncSession = Depends(get_db),
    user_id: str = Depends(require_user),
):
    """List AOIs visible to the calling user."""
    parsed = None
    if bbox:
        try:
            parsed = parse_bbox(bbox)
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid bbox parameter")

    return await list_aois(session, user_id=user_id, bbox=parsed)
