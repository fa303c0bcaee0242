from __future__ import annotations

import json
import logging
import math

from geoalchemy2.functions import (
    ST_AsGeoJSON,
    ST_GeomFromGeoJSON,
    ST_Intersects,
    ST_MakeEnvelope,
    ST_SetSRID,
)
from sqlalchemy import func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from aoiviewer.db.models import Aoi
from aoiviewer.services.geometry import Geometry, parse_geometry

logger = logging.getLogger(__name__)

PUBLIC_USER_ID = "public"

BBox = tuple[float, float, float, float]

SAMPLE_AOIS = [
    {
        "name": "Sample AOI - Downtown",
        "description": "Demo polygon near city center",
        "geometry": {
            "type": "Polygon",
            "coordinates": [
                [
                    [91.2805, 23.8352],
                    [91.288, 23.8352],
                    [91.288, 23.8408],
                    [91.2805, 23.8408],
                    [91.2805, 23.8352],
                ]
            ],
        },
    },
    {
        "name": "Sample AOI - Park Marker",
        "description": "Demo point for a park",
        "geometry": {"type": "Point", "coordinates": [91.295, 23.84]},
    },
]


def parse_bbox(raw: str) -> BBox:
    """Parse ``minLng,minLat,maxLng,maxLat`` into four finite floats."""
    parts = raw.split(",")
    if len(parts) != 4:
        raise ValueError(f"Expected 4 comma-separated numbers, got {len(parts)}")
    values = tuple(float(p) for p in parts)
    if not all(math.isfinite(v) for v in values):
        raise ValueError("Bounding box values must be finite")
    return values  # type: ignore[return-value]


def _serialize(row, geometry: dict) -> dict:
    return {
        "id": row.id,
        "user_id": row.user_id,
        "name": row.name,
        "description": row.description,
        "geometry": geometry,
        "created_at": row.created_at,
        "updated_at": row.updated_at,
    }


async def create_aoi(
    session: AsyncSession,
    *,
    user_id: str,
    name: str,
    description: str,
    geometry: Geometry,
) -> dict:
    """Insert an already-normalized geometry and return the stored AOI."""
    stmt = (
        insert(Aoi)
        .values(
            user_id=user_id,
            name=name,
            description=description,
            geom=ST_SetSRID(ST_GeomFromGeoJSON(geometry.model_dump_json()), 4326),
        )
        .returning(Aoi.id, Aoi.user_id, Aoi.name, Aoi.description, Aoi.created_at, Aoi.updated_at)
    )
    result = await session.execute(stmt)
    row = result.one()
    await session.commit()

    logger.info("Created AOI id=%s type=%s for %s", row.id, geometry.type, user_id)
    return _serialize(row, geometry.model_dump(mode="json"))


async def list_aois(
    session: AsyncSession,
    *,
    user_id: str,
    bbox: BBox | None = None,
) -> list[dict]:
    """Return the user's AOIs plus public samples, newest first.

    With *bbox*, only AOIs whose geometry intersects the envelope are returned.
    """
    stmt = (
        select(
            Aoi.id,
            Aoi.user_id,
            Aoi.name,
            Aoi.description,
            ST_AsGeoJSON(Aoi.geom).label("geojson"),
            Aoi.created_at,
            Aoi.updated_at,
        )
        .where(Aoi.user_id.in_([user_id, PUBLIC_USER_ID]))
        .order_by(Aoi.created_at.desc())
    )
    if bbox is not None:
        min_lng, min_lat, max_lng, max_lat = bbox
        stmt = stmt.where(
            ST_Intersects(Aoi.geom, ST_MakeEnvelope(min_lng, min_lat, max_lng, max_lat, 4326))
        )

    result = await session.execute(stmt)
    return [_serialize(row, json.loads(row.geojson)) for row in result.all()]


async def seed_public_aois(session: AsyncSession) -> int:
    """Insert the sample AOIs if no public AOIs exist yet."""
    stmt = select(func.count()).select_from(Aoi).where(Aoi.user_id == PUBLIC_USER_ID)
    result = await session.execute(stmt)
    if result.scalar_one() > 0:
        return 0

    for sample in SAMPLE_AOIS:
        await create_aoi(
            session,
            user_id=PUBLIC_USER_ID,
            name=sample["name"],
            description=sample["description"],
            geometry=parse_geometry(sample["geometry"]),
        )
    logger.info("Seeded %d public sample AOIs", len(SAMPLE_AOIS))
    return len(SAMPLE_AOIS)
