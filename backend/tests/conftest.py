import io
import os
import tempfile
import uuid
from pathlib import Path

import pytest

# Point the app at a throwaway database and media folder before it is imported.
_TMP = Path(tempfile.mkdtemp(prefix="datingapp-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP / 'test_app.db'}"
os.environ["PHOTO_STORAGE_DIR"] = str(_TMP / "media")
os.environ["SEED_ON_STARTUP"] = "false"
os.environ["ENV"] = "dev"
os.environ.pop("CLOUDINARY_CLOUD_NAME", None)

from PIL import Image  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import Session, SQLModel, create_engine  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from datingapp import models  # noqa: E402
from datingapp.database import engine  # noqa: E402
from datingapp.main import app  # noqa: E402
from datingapp.repositories import DEFAULT_ROLES, UnitOfWork  # noqa: E402


@pytest.fixture(scope="session")
def client():
    return TestClient(app)


@pytest.fixture
def register_user(client):
    """Factory registering a fresh member through the API.

    Returns a dict with `username`, `id`, `token` and ready-made auth
    `headers`. Extra roles are granted straight in the database.
    """
    def _register(prefix="user", gender="female", date_of_birth="1995-05-05", roles=(), **extra):
        username = f"{prefix}{uuid.uuid4().hex[:8]}"
        body = {
            "username": username,
            "password": "Pa$$w0rd",
            "knownAs": prefix.title(),
            "gender": gender,
            "dateOfBirth": date_of_birth,
            "city": "Testville",
            "country": "Testland",
        }
        body.update(extra)
        r = client.post("/api/account/register", json=body)
        assert r.status_code == 200, r.text
        token = r.json()["token"]
        with Session(engine) as session:
            uow = UnitOfWork(session)
            user = uow.user_repo.get_by_username(username)
            if roles:
                assert uow.role_repo.add_to_roles(user, roles)
                uow.complete()
            user_id = user.id
        return {
            "username": username,
            "id": user_id,
            "token": token,
            "headers": {"Authorization": f"Bearer {token}"},
        }

    return _register


@pytest.fixture
def png_bytes():
    def _make(size=(64, 48), color="white") -> bytes:
        img = Image.new("RGB", size, color)
        bio = io.BytesIO()
        img.save(bio, format="PNG")
        return bio.getvalue()

    return _make


@pytest.fixture
def db_session():
    """An isolated in-memory database with the standard roles."""
    mem_engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    SQLModel.metadata.create_all(mem_engine)
    with Session(mem_engine) as session:
        for name in DEFAULT_ROLES:
            session.add(models.AppRole(name=name))
        session.commit()
        yield session
