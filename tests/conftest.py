# tests/conftest.py
import os
import shutil
import tempfile

# Settings are read once, so the environment must be in place before importing drive
_TMP_DIR = tempfile.mkdtemp(prefix="drive-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP_DIR, 'test.db')}"
os.environ["UPLOAD_DIR"] = os.path.join(_TMP_DIR, "uploads")
os.environ["SESSION_SECRET"] = "test-secret"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["MAINTENANCE_INTERVAL_MINUTES"] = "0"
os.environ["STORAGE_BACKEND"] = "local"

import pytest
from fastapi.testclient import TestClient

from drive.core.config import get_settings
from drive.core.storage import get_storage
from drive.main import app
from drive.models.database import Base, SessionLocal, engine

PASSWORD = "s3cret-pass"


@pytest.fixture(autouse=True)
def clean_state():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    shutil.rmtree(get_settings().upload_dir, ignore_errors=True)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def storage():
    return get_storage()


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_client():
    """Factory for extra clients, each with its own cookie jar."""
    clients = []

    def _make():
        c = TestClient(app)
        c.__enter__()
        clients.append(c)
        return c

    yield _make
    for c in clients:
        c.__exit__(None, None, None)


def signup(client, username, password=PASSWORD, email=None):
    data = {"username": username, "password": password}
    if email is not None:
        data["email"] = email
    return client.post("/signup", data=data, follow_redirects=False)


def login(client, username, password=PASSWORD):
    return client.post("/login", data={"username": username, "password": password}, follow_redirects=False)


def signup_and_login(client, username, password=PASSWORD):
    signup(client, username, password)
    response = login(client, username, password)
    assert response.status_code == 303
    return response
