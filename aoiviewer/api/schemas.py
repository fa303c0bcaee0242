"""Pydantic request/response models for the HTTP API."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from aoiviewer.services.geometry import Geometry


# ---------------------------------------------------------------------------
# Shared
# ---------------------------------------------------------------------------


class ErrorResponse(BaseModel):
    """Structured error returned by all non-2xx responses."""

    error: bool = Field(True, description="Always true for error responses")
    status_code: int = Field(..., description="HTTP status code")
    detail: Any = Field(..., description="Error message or validation details")


# ---------------------------------------------------------------------------
# /health
# ---------------------------------------------------------------------------


class CacheHealth(BaseModel):
    """Feature-info cache status."""

    size: int = Field(..., description="Current number of cached entries")
    max_size: int = Field(..., description="Maximum cache capacity")
    ttl_seconds: float = Field(..., description="Entry time-to-live")
    hit_rate: float = Field(..., description="Cache hit rate (0.0-1.0)")


class HealthResponse(BaseModel):
    """Health-check result indicating API and database status."""

    status: str = Field(..., description="Overall status: 'ok' or 'degraded'")
    database: str = Field(
        ..., description="Database connectivity: 'connected' or 'unreachable'"
    )
    detail: str | None = Field(
        None, description="Error detail when database is unreachable"
    )
    cache: CacheHealth | None = Field(None, description="Feature-info cache health")
    uptime_seconds: float | None = Field(
        None, description="Seconds since the process started"
    )


# ---------------------------------------------------------------------------
# /aoi
# ---------------------------------------------------------------------------


class FeatureIn(BaseModel):
    """A GeoJSON Feature wrapping the AOI geometry."""

    type: Literal["Feature"]
    geometry: Geometry
    properties: dict[str, Any] | None = None


class GeometryWrapperIn(BaseModel):
    """``{geometry, name?, description?, properties?}`` as sent by the map UI."""

    geometry: Geometry
    name: str | None = None
    description: str | None = None
    properties: dict[str, Any] | None = None


# Tried in order: Feature, bare geometry, wrapper object.
AoiCreateBody = Annotated[
    Union[FeatureIn, Geometry, GeometryWrapperIn],
    Field(union_mode="left_to_right"),
]

aoi_create_adapter: TypeAdapter[AoiCreateBody] = TypeAdapter(AoiCreateBody)


class AoiResponse(BaseModel):
    """A stored Area of Interest."""

    id: int = Field(..., description="AOI identifier")
    user_id: str = Field(..., description="Owner, or 'public' for sample AOIs")
    name: str = Field("", description="Display name")
    description: str = Field("", description="Free-text description")
    geometry: dict[str, Any] = Field(
        ..., description="Normalized GeoJSON Point, Polygon or MultiPolygon"
    )
    created_at: datetime | None = None
    updated_at: datetime | None = None
