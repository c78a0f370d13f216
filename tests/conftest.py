import os
import tempfile

# Settings are read once at import time
_ROOT = tempfile.mkdtemp(prefix="bikefine-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_ROOT}/default.db")
os.environ.setdefault("UPLOAD_ROOT", _ROOT)
os.environ["PASSWORD_HASH_ITERATIONS"] = "1000"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SECRET_KEY"] = "test-secret"

import httpx
import pytest

from bikefine.core.config import Settings
from bikefine.core.constants import AdminDepartment, AdminRole, full_permissions
from bikefine.core.database import Database
from bikefine.main import create_app
from bikefine.services import admin_service, user_service

ADMIN_EMAIL = "admin@bikeviolation.gov"
ADMIN_PASSWORD = "admin12345"


@pytest.fixture
async def database(tmp_path):
    database = Database(f"sqlite+aiosqlite:///{tmp_path}/test.db", name="bike_violation_test")
    await database.create_all()
    yield database
    await database.dispose()


@pytest.fixture
async def db(database):
    async with database.session() as session:
        yield session


@pytest.fixture
def app(database, tmp_path):
    return create_app(database, Settings(UPLOAD_ROOT=str(tmp_path / "public")))


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest.fixture
async def admin(db):
    return await admin_service.create_admin(db, {
        "email": ADMIN_EMAIL,
        "password": ADMIN_PASSWORD,
        "firstName": "System",
        "lastName": "Administrator",
        "role": AdminRole.SUPER_ADMIN,
        "department": AdminDepartment.MANAGEMENT,
        "permissions": full_permissions(),
    })


@pytest.fixture
async def admin_token(client, admin):
    response = await client.post("/api/admin/auth", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert response.status_code == 200
    return response.json()["data"]["session"]["token"]


@pytest.fixture
def admin_headers(admin_token):
    return {"Authorization": f"Bearer {admin_token}"}


@pytest.fixture
async def rider(db):
    return await user_service.create_user(db, {
        "name": "Ama Mensah",
        "email": "ama@example.com",
        "password": "secret123",
        "numberPlate": "abc123",
    })


@pytest.fixture
async def signed_in_rider(client, rider):
    """The rider, with an auth_token cookie on the test client"""
    response = await client.post("/api/auth/login", json={"email": "ama@example.com", "password": "secret123"})
    assert response.status_code == 200
    return rider
