"""Tests for POST /aoi and GET /aoi."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest

from aoiviewer.api.dependencies import get_db
from aoiviewer.api.main import app
from aoiviewer.api.routes.aoi import extract_aoi_fields
from aoiviewer.api.schemas import aoi_create_adapter
from aoiviewer.services.metrics import metrics

SQUARE = [[0, 0], [1, 0], [1, 1], [0, 1], [0, 0]]
NOW = datetime(2026, 10, 1, tzinfo=timezone.utc)


@pytest.fixture
def mock_session():
    session = AsyncMock()
    app.dependency_overrides[get_db] = lambda: session
    return session


def _stored(user_id="anonymous", name="", description="", geometry=None, **kw):
    """Fake create_aoi that echoes its input like the real store does."""
    return {
        "id": 1,
        "user_id": user_id,
        "name": name,
        "description": description,
        "geometry": geometry.model_dump(mode="json"),
        "created_at": NOW,
        "updated_at": NOW,
    }


async def _fake_create(session, **kwargs):
    return _stored(**kwargs)


# ---------------------------------------------------------------------------
# Body shapes
# ---------------------------------------------------------------------------


def _extract(payload):
    return extract_aoi_fields(aoi_create_adapter.validate_python(payload), payload)


class TestExtractAoiFields:
    def test_feature_properties(self):
        geometry, name, description = _extract(
            {
                "type": "Feature",
                "geometry": {"type": "Polygon", "coordinates": [SQUARE]},
                "properties": {"name": "Field A", "description": "north plot"},
            }
        )
        assert geometry.type == "Polygon"
        assert (name, description) == ("Field A", "north plot")

    def test_feature_falls_back_to_top_level(self):
        _, name, description = _extract(
            {
                "type": "Feature",
                "geometry": {"type": "Polygon", "coordinates": [SQUARE]},
                "properties": {"description": "from-props"},
                "name": "Top",
            }
        )
        assert (name, description) == ("Top", "from-props")

    def test_bare_geometry(self):
        geometry, name, description = _extract({"type": "Point", "coordinates": [1, 2]})
        assert geometry.type == "Point"
        assert (name, description) == ("", "")

    def test_bare_geometry_with_top_level_name(self):
        geometry, name, description = _extract(
            {"type": "Polygon", "coordinates": [SQUARE], "name": "Bare", "description": "d"}
        )
        assert geometry.type == "Polygon"
        assert (name, description) == ("Bare", "d")

    def test_wrapper_prefers_properties(self):
        _, name, description = _extract(
            {
                "geometry": {"type": "Polygon", "coordinates": [SQUARE]},
                "name": "top-level",
                "description": "kept",
                "properties": {"name": "from-props"},
            }
        )
        assert name == "from-props"
        assert description == "kept"

    def test_non_mapping_properties_ignored(self):
        _, name, _ = _extract(
            {"type": "Point", "coordinates": [1, 2], "properties": "x", "name": "n"}
        )
        assert name == "n"


# ---------------------------------------------------------------------------
# POST /aoi
# ---------------------------------------------------------------------------


async def test_create_polygon(client, mock_session):
    with patch("aoiviewer.api.routes.aoi.create_aoi", side_effect=_fake_create) as mock_create:
        resp = await client.post(
            "/aoi",
            json={"geometry": {"type": "Polygon", "coordinates": [SQUARE[:-1]]}, "name": "Plot"},
        )

    assert resp.status_code == 201
    body = resp.json()
    assert body["name"] == "Plot"
    ring = body["geometry"]["coordinates"][0]
    assert ring[0] == ring[-1] == [0.0, 0.0]
    assert mock_create.call_args.kwargs["user_id"] == "anonymous"
    assert metrics.aoi_created == 1


async def test_create_simplifies_dense_ring(client, mock_session):
    n = 1000
    ring = [
        [10 + 2e-4 * math.cos(2 * math.pi * i / (n - 1)), 20 + 2e-4 * math.sin(2 * math.pi * i / (n - 1))]
        for i in range(n - 1)
    ]
    with patch("aoiviewer.api.routes.aoi.create_aoi", side_effect=_fake_create):
        resp = await client.post(
            "/aoi", json={"type": "Feature", "geometry": {"type": "Polygon", "coordinates": [ring]}}
        )

    assert resp.status_code == 201
    stored = resp.json()["geometry"]["coordinates"][0]
    assert 4 <= len(stored) <= 8
    assert stored[0] == stored[-1]


async def test_create_feature_uses_top_level_name(client, mock_session):
    with patch("aoiviewer.api.routes.aoi.create_aoi", side_effect=_fake_create) as mock_create:
        resp = await client.post(
            "/aoi",
            json={"type": "Feature", "geometry": {"type": "Point", "coordinates": [1, 2]}, "name": "Top"},
        )

    assert resp.status_code == 201
    assert resp.json()["name"] == "Top"
    assert mock_create.call_args.kwargs["name"] == "Top"


async def test_create_point(client, mock_session):
    with patch("aoiviewer.api.routes.aoi.create_aoi", side_effect=_fake_create):
        resp = await client.post("/aoi", json={"type": "Point", "coordinates": [91.295, 23.84]})
    assert resp.status_code == 201
    assert resp.json()["geometry"] == {"type": "Point", "coordinates": [91.295, 23.84]}


async def test_out_of_bounds_rejected(client, mock_session):
    with patch("aoiviewer.api.routes.aoi.create_aoi", new_callable=AsyncMock) as mock_create:
        resp = await client.post(
            "/aoi",
            json={"type": "Polygon", "coordinates": [[[0, 0], [200, 10], [1, 1], [0, 1], [0, 0]]]},
        )

    assert resp.status_code == 400
    assert resp.json()["detail"] == "Coordinates out of bounds"
    mock_create.assert_not_awaited()
    assert metrics.aoi_rejected == 1


@pytest.mark.parametrize(
    "payload",
    [
        {"type": "LineString", "coordinates": [[0, 0], [1, 1]]},
        {"type": "Polygon", "coordinates": [[[0, 0], [1, 1], [0, 0]]]},
        {"geometry": {"type": "Point", "coordinates": ["a", "b"]}},
        {"name": "no geometry"},
        [1, 2, 3],
    ],
)
async def test_invalid_geojson_rejected(client, mock_session, payload):
    with patch("aoiviewer.api.routes.aoi.create_aoi", new_callable=AsyncMock) as mock_create:
        resp = await client.post("/aoi", json=payload)

    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] is True
    assert body["detail"]["message"] == "Invalid GeoJSON"
    mock_create.assert_not_awaited()


async def test_create_requires_key_when_auth_enabled(client, mock_session):
    with patch("aoiviewer.config.settings.auth_enabled", True), \
         patch("aoiviewer.config.settings.api_keys", "valid-key"):
        resp = await client.post("/aoi", json={"type": "Point", "coordinates": [0, 0]})
    assert resp.status_code == 401


# ---------------------------------------------------------------------------
# GET /aoi
# ---------------------------------------------------------------------------


async def test_list_aois(client, mock_session):
    items = [_stored(geometry=aoi_create_adapter.validate_python({"type": "Point", "coordinates": [1, 2]}))]
    with patch("aoiviewer.api.routes.aoi.list_aois", new_callable=AsyncMock, return_value=items) as mock_list:
        resp = await client.get("/aoi")

    assert resp.status_code == 200
    assert resp.json()[0]["geometry"]["type"] == "Point"
    assert mock_list.call_args.kwargs == {"user_id": "anonymous", "bbox": None}


async def test_list_aois_with_bbox(client, mock_session):
    with patch("aoiviewer.api.routes.aoi.list_aois", new_callable=AsyncMock, return_value=[]) as mock_list:
        resp = await client.get("/aoi", params={"bbox": "91.2,23.8,91.3,23.9"})

    assert resp.status_code == 200
    assert mock_list.call_args.kwargs["bbox"] == (91.2, 23.8, 91.3, 23.9)


@pytest.mark.parametrize("bbox", ["1,2,3", "a,b,c,d", "1,2,3,4,5", "nan,0,1,1"])
async def test_list_aois_invalid_bbox(client, mock_session, bbox):
    with patch("aoiviewer.api.routes.aoi.list_aois", new_callable=AsyncMock) as mock_list:
        resp = await client.get("/aoi", params={"bbox": bbox})

    assert resp.status_code == 400
    assert resp.json()["detail"] == "Invalid bbox parameter"
    mock_list.assert_not_awaited()
