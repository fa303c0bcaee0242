import pytest
from httpx import ASGITransport, AsyncClient

from aoiviewer.api.main import app
from aoiviewer.services.metrics import metrics


@pytest.fixture
async def client():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture(autouse=True)
def _reset_state():
    """Give every test an empty feature cache, fresh metrics and no overrides."""
    app.state.feature_cache.clear()
    metrics.reset()
    yield
    app.state.feature_cache.clear()
    app.dependency_overrides.clear()
