"""
Pytest configuration for the workflow engine tests.

Every test gets a fresh in-memory MongoDB (mongomock) with the production
indexes applied, so the unique constraints behave as they do in the store.
"""
from unittest import mock
from uuid import uuid4

import mongomock
import pytest

import courses
import database
import identity


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def db():
    store = mongomock.MongoClient()[f"learnify_test_{uuid4().hex[:8]}"]
    database.ensure_indexes(store)
    return store


@pytest.fixture
def make_user(db):
    def _make(name="Student", email=None, uid=None):
        uid = uid or f"uid-{uuid4().hex[:10]}"
        email = email or f"{uid}@learnify.io"
        identity.register_user(db, uid, name, email)
        return uid, email

    return _make


@pytest.fixture
def make_class(db):
    def _make(title="Intro to Python", instructor_email="teacher@learnify.io", **extra):
        fields = {"title": title, "instructor_email": instructor_email, "price": 49.0, **extra}
        return courses.submit_class_offering(db, fields)

    return _make


@pytest.fixture
def class_doc(db):
    def _load(class_id):
        return db[database.CLASSES].find_one({"_id": database.oid(class_id)})

    return _load


class _StaleReads:
    """Database view whose reads on one collection see nothing."""

    def __init__(self, db, collection):
        self._db = db
        self._collection = collection

    def __getitem__(self, name):
        coll = self._db[name]
        if name != self._collection:
            return coll
        stale = mock.Mock(wraps=coll)
        stale.find_one.return_value = None
        return stale


@pytest.fixture
def stale_reads(db):
    """Stand-in for a racer whose reads on `collection` ran before a write landed."""
    def _view(collection):
        return _StaleReads(db, collection)

    return _view
