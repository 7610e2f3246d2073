import pytest
from httpx import ASGITransport, AsyncClient

from backend.database import init_db
from backend.main import app


@pytest.mark.asyncio
async def test_health_check() -> None:
    await init_db()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
