import os
import tempfile
import uuid
from pathlib import Path

import pytest

# Point the app at a throwaway SQLite file before `pulihhati` is imported.
_TMP_DIR = Path(tempfile.mkdtemp(prefix="pulihhati-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP_DIR / 'test.db'}"
os.environ["ENV"] = "dev"
os.environ["CHATBOT_API_URL"] = ""
os.environ["CLOUDINARY_CLOUD_NAME"] = ""
os.environ["CLOUDINARY_API_KEY"] = ""
os.environ["CLOUDINARY_API_SECRET"] = ""

from fastapi.testclient import TestClient  # noqa: E402
from sqlmodel import Session  # noqa: E402

from pulihhati import models  # noqa: E402
from pulihhati.database import engine  # noqa: E402
from pulihhati.main import app  # noqa: E402


@pytest.fixture(scope="session")
def client():
    return TestClient(app)


def _register(client, name="Tester", password="secret123"):
    email = f"{name.lower().replace(' ', '')}-{uuid.uuid4().hex[:8]}@pulihhati.com"
    r = client.post("/api/auth/register", json={"name": name, "email": email, "password": password})
    assert r.status_code == 201, r.text
    body = r.json()
    return {
        "token": body["token"],
        "user": body["user"],
        "email": email,
        "password": password,
        "headers": {"Authorization": f"Bearer {body['token']}"},
    }


@pytest.fixture
def make_user(client):
    """Factory registering a fresh user; returns token, user dict and auth headers."""
    def _make(name="Tester"):
        return _register(client, name=name)
    return _make


@pytest.fixture
def make_admin(client):
    def _make(name="Admin"):
        account = _register(client, name=name)
        with Session(engine) as session:
            user = session.get(models.User, account["user"]["id"])
            user.role = "admin"
            session.add(user)
            session.commit()
        account["user"]["role"] = "admin"
        return account
    return _make
