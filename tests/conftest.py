"""
Shared pytest fixtures for the PlanFinder test suite.

Repository and API fixtures run against a throwaway SQLite file and a
temporary storage directory; no external services are used.
"""

import os
import sys

import fitz
import pytest

# ---------------------------------------------------------------------------
# Ensure the project root is on the import path before any planfinder imports.
# ---------------------------------------------------------------------------
_ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _ROOT_DIR not in sys.path:
    sys.path.insert(0, _ROOT_DIR)


def make_pdf(pages: int = 1, text: str = "1階平面図") -> bytes:
    """Build a small PDF in memory."""
    doc = fitz.open()
    for _ in range(pages):
        page = doc.new_page(width=595, height=842)
        page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture
def pdf_bytes():
    return make_pdf()


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite:///{tmp_path / 'plans.db'}"


@pytest.fixture
def db(database_url):
    from planfinder.indexing.database import DatabaseManager
    manager = DatabaseManager(database_url)
    yield manager
    manager.close()


@pytest.fixture
def store(tmp_path):
    from planfinder.indexing.file_store import FileStore
    return FileStore(str(tmp_path / "storage"))


@pytest.fixture
def client(tmp_path, database_url, monkeypatch):
    """TestClient with the app wired to temporary storage."""
    from fastapi.testclient import TestClient
    from planfinder.api.main import app

    monkeypatch.setenv("DATABASE_URL", database_url)
    monkeypatch.setenv("PLANFINDER_STORAGE_DIR", str(tmp_path / "storage"))
    monkeypatch.setenv("PLANFINDER_CONFIG", str(tmp_path / "missing.yaml"))
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)

    with TestClient(app) as test_client:
        yield test_client


ADMIN = {"X-Company-Id": "acme", "X-User-Role": "admin", "X-User-Id": "u-1"}
VIEWER = {"X-Company-Id": "acme", "X-User-Role": "viewer"}
OTHER_COMPANY = {"X-Company-Id": "globex", "X-User-Role": "admin"}
