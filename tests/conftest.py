from __future__ import annotations

import re
import sys
from pathlib import Path

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient
from pymongo.errors import DuplicateKeyError
from pymongo.results import DeleteResult, InsertOneResult, UpdateResult

# Make the top-level modules importable when running from a checkout
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from database import get_db
from main import app


_MISSING = object()


def _matches(doc: dict, query: dict) -> bool:
    for field, cond in query.items():
        value = doc.get(field, _MISSING)
        if isinstance(cond, dict) and "$regex" in cond:
            flags = re.IGNORECASE if "i" in cond.get("$options", "") else 0
            if not isinstance(value, str) or not re.search(cond["$regex"], value, flags):
                return False
        elif cond is None:
            if value is not _MISSING and value is not None:
                return False
        elif value != cond:
            return False
    return True


class FakeCursor:
    def __init__(self, docs):
        self._docs = docs
        self._sort = None
        self._skip = 0
        self._limit = 0

    def sort(self, key, direction=1):
        self._sort = list(key) if isinstance(key, list) else [(key, direction)]
        return self

    def skip(self, n):
        if n < 0:
            raise ValueError("skip must be >= 0")
        self._skip = n
        return self

    def limit(self, n):
        self._limit = n
        return self

    async def to_list(self, length=None):
        docs = list(self._docs)
        # Stable sorts from the last key to the first; missing values sort
        # first, as in MongoDB
        for key, direction in reversed(self._sort or []):
            docs.sort(
                key=lambda d: (key in d, d.get(key, "")),
                reverse=direction < 0,
            )
        docs = docs[self._skip:]
        if self._limit:
            docs = docs[: self._limit]
        return [dict(d) for d in docs]


class FakeCollection:
    """In-memory stand-in for the async collection methods the API calls."""

    def __init__(self, unique_key: str | None = None):
        self.docs: list[dict] = []
        self.unique_key = unique_key
        self.find_one_calls = 0

    def find(self, query=None):
        return FakeCursor([d for d in self.docs if _matches(d, query or {})])

    async def find_one(self, query):
        self.find_one_calls += 1
        for d in self.docs:
            if _matches(d, query):
                return dict(d)
        return None

    async def count_documents(self, query):
        return sum(1 for d in self.docs if _matches(d, query))

    async def insert_one(self, doc):
        key = self.unique_key
        if key and isinstance(doc.get(key), str):
            if any(d.get(key) == doc[key] for d in self.docs):
                raise DuplicateKeyError("E11000 duplicate key error")
        doc.setdefault("_id", ObjectId())
        self.docs.append(dict(doc))
        return InsertOneResult(doc["_id"], True)

    async def update_one(self, query, update):
        for d in self.docs:
            if _matches(d, query):
                changes = update["$set"]
                modified = any(d.get(k, _MISSING) != v for k, v in changes.items())
                d.update(changes)
                return UpdateResult({"n": 1, "nModified": int(modified)}, True)
        return UpdateResult({"n": 0, "nModified": 0}, True)

    async def delete_one(self, query):
        for i, d in enumerate(self.docs):
            if _matches(d, query):
                del self.docs[i]
                return DeleteResult({"n": 1}, True)
        return DeleteResult({"n": 0}, True)


class FakeDatabase:
    def __init__(self):
        self.collections = {
            "users": FakeCollection("email"),
            "shops": FakeCollection("mobile"),
        }

    def __getitem__(self, name):
        return self.collections.setdefault(name, FakeCollection())

    async def list_collection_names(self):
        return sorted(self.collections)


@pytest.fixture
def db():
    return FakeDatabase()


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
