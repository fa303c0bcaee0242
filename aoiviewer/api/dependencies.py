from __future__ import annotations

from collections.abc import AsyncIterator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from aoiviewer.db.session import async_session
from aoiviewer.services.cache import BoundedTTLCache


async def get_db() -> AsyncIterator[AsyncSession]:
    async with async_session() as session:
        yield session


def get_feature_cache(request: Request) -> BoundedTTLCache:
    """Return the feature-info cache owned by the running application."""
    return request.app.state.feature_cache
