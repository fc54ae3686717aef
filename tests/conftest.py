"""
Pytest configuration and shared fixtures.
"""

import os
import re
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
from bson import ObjectId

# Required settings must exist before books_api.config is imported.
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("JWT_CLIENTID", "test-client")
os.environ.setdefault("MONGODB_URL", "mongodb://localhost:27017")

from fastapi.testclient import TestClient  # noqa: E402

from books_api.auth import TokenAuthenticator  # noqa: E402
from books_api.config import config  # noqa: E402
from books_api.database import BookRepository  # noqa: E402
from books_api.main import app  # noqa: E402


def _matches(doc, query):
    """Evaluate the subset of MongoDB query syntax the repository emits."""
    for key, condition in query.items():
        if key == "$and":
            if not all(_matches(doc, sub) for sub in condition):
                return False
        elif key == "$or":
            if not any(_matches(doc, sub) for sub in condition):
                return False
        elif isinstance(condition, dict) and "$in" in condition:
            if doc.get(key) not in condition["$in"]:
                return False
        elif isinstance(condition, dict) and "$regex" in condition:
            value = doc.get(key)
            flags = re.IGNORECASE if "i" in condition.get("$options", "") else 0
            if not isinstance(value, str) or not re.search(condition["$regex"], value, flags):
                return False
        elif doc.get(key) != condition:
            return False
    return True


class FakeCursor:
    """In-memory stand-in for a motor cursor."""

    def __init__(self, docs):
        self.docs = docs
        self._skip = 0
        self._limit = 0

    def sort(self, keys):
        for field, direction in reversed(keys):
            self.docs.sort(key=lambda d: d.get(field), reverse=direction < 0)
        return self

    def skip(self, count):
        self._skip = count
        return self

    def limit(self, count):
        self._limit = count
        return self

    async def to_list(self, length=None):
        docs = self.docs[self._skip:]
        if self._limit:
            docs = docs[:self._limit]
        return [dict(d) for d in docs]


class FakeCollection:
    """In-memory stand-in for a motor collection."""

    def __init__(self):
        self.docs = []

    async def insert_one(self, doc):
        doc.setdefault("_id", ObjectId())
        self.docs.append(dict(doc))
        return SimpleNamespace(inserted_id=doc["_id"])

    async def find_one(self, query):
        for doc in self.docs:
            if _matches(doc, query):
                return dict(doc)
        return None

    def find(self, query):
        return FakeCursor([d for d in self.docs if _matches(d, query)])

    async def count_documents(self, query):
        return len([d for d in self.docs if _matches(d, query)])

    async def find_one_and_update(self, query, update, return_document=None):
        for doc in self.docs:
            if _matches(doc, query):
                doc.update(update["$set"])
                return dict(doc)
        return None

    async def find_one_and_delete(self, query):
        for doc in self.docs:
            if _matches(doc, query):
                self.docs.remove(doc)
                return dict(doc)
        return None


@pytest.fixture
def authenticator():
    """Authenticator using the test configuration."""
    return TokenAuthenticator.from_config(config)


@pytest.fixture
def auth_headers(authenticator):
    """Authorization headers carrying a valid token."""
    token = authenticator.issue_token(config.jwt_client_id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client():
    """Create test client."""
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def mock_db_service():
    """Mocked repository patched in as the app's database service."""
    mock = AsyncMock(spec=BookRepository)
    with patch('books_api.main.db_service', mock):
        yield mock


@pytest.fixture
def fake_collection():
    return FakeCollection()


@pytest.fixture
def repository(fake_collection):
    """Repository backed by the in-memory collection."""
    return BookRepository(fake_collection)


@pytest.fixture
def live_db_service(repository):
    """Patch the in-memory repository in as the app's database service."""
    with patch('books_api.main.db_service', repository):
        yield repository


@pytest.fixture
def sample_book_doc():
    """A stored book document."""
    created = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    return {
        "_id": ObjectId("665f1c2e8b3e4a1d2c3b4a59"),
        "title": "Dune",
        "author": "Frank Herbert",
        "genre": "SciFi",
        "publishedYear": 1965,
        "ownerId": "u1",
        "isAvailable": True,
        "createdAt": created,
        "updatedAt": created + timedelta(minutes=5),
    }
