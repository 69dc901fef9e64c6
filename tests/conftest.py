import json
from typing import Any, Dict, List, Optional

import httpx
import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from prestasync.config.database import Base, build_session_factory
from prestasync.clients.prestashop_client import PrestaShopClient
from prestasync.models.database import Site, SITE_CONNECTED, SYNC_IDLE
import prestasync.models.database  # noqa: F401

class FakeStore:
    """In-memory PrestaSynch module answering by ``action`` query parameter"""

    def __init__(self):
        self.responses: Dict[str, httpx.Response] = {}
        self.errors: Dict[str, Exception] = {}
        self.requests: List[httpx.Request] = []

    def reply(self, action: str, payload: Any = None, status_code: int = 200,
              text: Optional[str] = None, headers: Optional[Dict[str, str]] = None):
        if text is None:
            text = json.dumps(payload)
        self.responses[action] = httpx.Response(status_code, text=text, headers=headers)

    def fail(self, action: str, error: Exception):
        self.errors[action] = error

    def calls(self, action: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.params.get("action") == action]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        action = request.url.params.get("action")
        if action in self.errors:
            raise self.errors[action]
        if action not in self.responses:
            return httpx.Response(404, text="unknown action")
        response = self.responses[action]
        return httpx.Response(response.status_code, content=response.content, headers=response.headers)

    def client_factory(self, site: Site) -> PrestaShopClient:
        return PrestaShopClient(site, transport=httpx.MockTransport(self.handler))

@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()

@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)

@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session

@pytest.fixture
async def site(db) -> Site:
    site = Site(
        user_id=1,
        name="Demo store",
        url="https://shop.example.com/",
        api_key="secret-key",
        status=SITE_CONNECTED,
        sync_state=SYNC_IDLE,
    )
    db.add(site)
    await db.commit()
    return site

@pytest.fixture
def store() -> FakeStore:
    return FakeStore()
