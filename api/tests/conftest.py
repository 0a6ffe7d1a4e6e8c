import os
from datetime import datetime, timezone
from io import BytesIO
from typing import Dict, List

import pytest
from fastapi.testclient import TestClient
from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas
from sqlmodel import SQLModel, Session, create_engine

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("ADMIN_ACCESS_TOKEN", "admin-test-token")

from equityboard.main import app  # noqa: E402
from equityboard import db as db_module  # noqa: E402
from equityboard.db import get_session  # noqa: E402
from equityboard import storage as storage_module  # noqa: E402
from equityboard.errors import BlobNotFound, StorageError  # noqa: E402
from equityboard.models import Company, CompanyMember, MemberStatus, Profile  # noqa: E402
from equityboard.utils import make_token  # noqa: E402

SIGNATURE_PNG_B64 = "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mP8/5+hHgAHggJ/Pf8icQAAAABJRU5ErkJggg=="
SIGNATURE_DATA_URL = f"data:image/png;base64,{SIGNATURE_PNG_B64}"
ADMIN_HEADERS = {"X-Access-Token": os.environ["ADMIN_ACCESS_TOKEN"]}


def make_pdf(text: str = "Board Resolution", pages: int = 1) -> bytes:
    buf = BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    for n in range(pages):
        c.setFont("Helvetica", 14)
        c.drawString(72, 720, f"{text} page {n + 1}")
        c.showPage()
    c.save()
    return buf.getvalue()


def auth_headers(user_id: int) -> Dict[str, str]:
    return {"X-Access-Token": make_token({"user_id": user_id})}


class FakeStorage:
    """In-memory blob store with switches for failure injection."""

    def __init__(self):
        self.blobs: Dict[str, bytes] = {}
        self.fail_get = False
        self.fail_put = False
        self.fail_delete_keys: List[str] = []
        self.puts: List[str] = []

    def put_bytes(self, key: str, data: bytes, content_type: str = "application/octet-stream"):
        if self.fail_put:
            raise StorageError(f"upload failed: {key}", {"key": key})
        self.puts.append(key)
        self.blobs[key] = bytes(data)

    def get_bytes(self, key: str) -> bytes:
        if self.fail_get:
            raise StorageError(f"download failed: {key}", {"key": key})
        if key not in self.blobs:
            raise BlobNotFound(key)
        return self.blobs[key]

    def delete_object(self, key: str):
        if key in self.fail_delete_keys:
            raise StorageError(f"delete failed: {key}", {"key": key, "reason": "unreachable"})
        self.blobs.pop(key, None)

    def signed_url(self, key: str, ttl_seconds: int) -> str:
        return f"https://blobs.test/{key}?ttl={ttl_seconds}"


@pytest.fixture(scope="session")
def test_engine(tmp_path_factory):
    db_path = tmp_path_factory.mktemp("data") / "test.db"
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )
    return engine


@pytest.fixture
def setup_db(test_engine):
    SQLModel.metadata.drop_all(test_engine)
    SQLModel.metadata.create_all(test_engine)
    yield
    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture
def mock_storage(monkeypatch) -> FakeStorage:
    fake = FakeStorage()
    monkeypatch.setattr(storage_module, "put_bytes", fake.put_bytes)
    monkeypatch.setattr(storage_module, "get_bytes", fake.get_bytes)
    monkeypatch.setattr(storage_module, "delete_object", fake.delete_object)
    monkeypatch.setattr(storage_module, "signed_url", fake.signed_url)
    return fake


@pytest.fixture
def session(test_engine, setup_db):
    with Session(test_engine) as s:
        yield s


@pytest.fixture
def client(test_engine, setup_db, mock_storage):
    db_module.engine = test_engine

    def override_session():
        with Session(test_engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def board(test_engine, setup_db):
    """A company owned by Olivia with two active board members, Alice and Bob, and an outsider."""
    with Session(test_engine) as s:
        owner = Profile(email="olivia@example.com", full_name="Olivia Owner")
        alice = Profile(email="alice@example.com", full_name="Alice Director")
        bob = Profile(email="bob@example.com", full_name="Bob Director")
        outsider = Profile(email="mallory@example.com", full_name="Mallory Outsider")
        s.add_all([owner, alice, bob, outsider])
        s.commit()
        for p in (owner, alice, bob, outsider):
            s.refresh(p)
        company = Company(name="Acme Robotics", owner_id=owner.id)
        s.add(company)
        s.commit()
        s.refresh(company)
        s.add(CompanyMember(company_id=company.id, user_id=owner.id, role="owner", accepted_at=datetime.now(timezone.utc)))
        for member in (alice, bob):
            s.add(CompanyMember(
                company_id=company.id,
                user_id=member.id,
                role="board_member",
                status=MemberStatus.ACTIVE,
                invited_by=owner.id,
            ))
        s.commit()
        return {
            "company_id": company.id,
            "owner": owner.id,
            "alice": alice.id,
            "bob": bob.id,
            "outsider": outsider.id,
        }
