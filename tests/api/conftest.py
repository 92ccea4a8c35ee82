"""API-specific test fixtures.

Requests go through httpx's ASGITransport in the pytest-asyncio loop, so
route handlers share the engine that the root ``engine`` fixture installs
as the global session factory. The application lifespan is not run.
"""

import pytest
from httpx import ASGITransport, AsyncClient

from buildtrack.core.auth import create_access_token


@pytest.fixture
async def client(engine):
    """In-process client for a fresh application instance."""
    from buildtrack.main import create_app

    app = create_app(lifespan_handler=None)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def auth_headers():
    """Bearer headers for a principal's user."""

    def _headers(principal) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(principal.user_id)}"}

    return _headers


@pytest.fixture
def project_url(world):
    return f"/api/projects/{world.project_id}"
