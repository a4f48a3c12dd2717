import os
import tempfile

# Settings are read at import time, so point them at a scratch database first
_db_dir = tempfile.mkdtemp(prefix="clinictoken-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_db_dir}/test.db"
os.environ["ALLOCATION_RETRY_BACKOFF_SECONDS"] = "0"
os.environ.pop("REDIS_URL", None)

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from app.db.session import async_session, reset_db
from app.main import app
from app.schemas.doctor import DoctorCreate
from app.services.change_feed import ChangeFeed, get_change_feed
from app.services.doctor_service import DoctorService


@pytest_asyncio.fixture
async def db():
    await reset_db()
    yield


@pytest_asyncio.fixture
async def session(db):
    async with async_session() as session:
        yield session


@pytest.fixture
def feed():
    return ChangeFeed()


@pytest_asyncio.fixture
async def client(db, feed):
    app.dependency_overrides[get_change_feed] = lambda: feed
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def doctor(session, feed):
    service = DoctorService(session, feed)
    return await service.add_doctor(DoctorCreate(name="Dr. A", specialization="Cardiologist"))


@pytest_asyncio.fixture
async def other_doctor(session, feed):
    service = DoctorService(session, feed)
    return await service.add_doctor(DoctorCreate(name="Dr. B", specialization="Dermatologist"))
