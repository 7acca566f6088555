import os

os.environ.setdefault("JWT_SECRET", "test-secret")

import copy
import itertools

import pytest
from bson import ObjectId
from jose import jwt
from pymongo.errors import DuplicateKeyError

class FakeInsertResult:
    def __init__(self, inserted_id):
        self.inserted_id = inserted_id

class FakeUpdateResult:
    def __init__(self, matched_count, modified_count, upserted_id=None):
        self.matched_count = matched_count
        self.modified_count = modified_count
        self.upserted_id = upserted_id

class FakeCursor:
    def __init__(self, docs):
        self.docs = docs

    async def to_list(self, length=None):
        return self.docs if length is None else self.docs[:length]

def _matches(doc, query):
    return all(doc.get(key) == value for key, value in query.items())

class FakeCollection:
    """In-memory stand-in for the parts of a motor collection the services use."""

    def __init__(self):
        self.docs = []
        self.unique_fields = set()

    async def create_index(self, keys, unique=False, **kwargs):
        if unique and isinstance(keys, str):
            self.unique_fields.add(keys)
        return keys if isinstance(keys, str) else "_".join(k for k, _ in keys)

    async def insert_one(self, doc):
        for field in self.unique_fields:
            if any(existing.get(field) == doc.get(field) for existing in self.docs):
                raise DuplicateKeyError(f"E11000 duplicate key error: {field}")
        stored = copy.deepcopy(doc)
        stored.setdefault("_id", ObjectId())
        self.docs.append(stored)
        return FakeInsertResult(stored["_id"])

    async def find_one(self, query):
        for doc in self.docs:
            if _matches(doc, query):
                return copy.deepcopy(doc)
        return None

    def find(self, query=None):
        return FakeCursor([copy.deepcopy(doc) for doc in self.docs if _matches(doc, query or {})])

    async def update_one(self, query, update, upsert=False):
        for doc in self.docs:
            if _matches(doc, query):
                doc.update(copy.deepcopy(update.get("$set", {})))
                return FakeUpdateResult(1, 1)
        if upsert:
            doc = dict(query)
            doc.update(copy.deepcopy(update.get("$set", {})))
            result = await self.insert_one(doc)
            return FakeUpdateResult(0, 0, result.inserted_id)
        return FakeUpdateResult(0, 0)

class FakeDatabase:
    def __init__(self):
        self.collections = {}

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)
        return self.collections.setdefault(name, FakeCollection())

    def __getitem__(self, name):
        return getattr(self, name)

@pytest.fixture
def fake_db():
    db = FakeDatabase()
    db.qr_codes.unique_fields.add("slug")
    return db

@pytest.fixture
def asset_dir(tmp_path, monkeypatch):
    """Route generated assets into a temporary directory."""
    from shared.config import settings
    directory = tmp_path / "qr-assets"
    monkeypatch.setattr(settings, "ASSET_DIR", str(directory))
    return directory

_user_ids = itertools.count(1)

def make_token(user_id=None, roles=None, email="buyer@example.com"):
    from shared.config import settings
    payload = {
        "sub": str(user_id or next(_user_ids)),
        "email": email,
        "roles": roles or []
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)

@pytest.fixture
def token_factory():
    return make_token
