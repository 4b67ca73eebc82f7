"""
Shared fixtures: an in-memory store (mongomock) behind a client factory that
counts how many clients were opened and closed.
"""

from contextlib import contextmanager
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import mongomock
import pymongo
import pytest
from pymongo.errors import ServerSelectionTimeoutError

from query_harness.connection_manager import ConnectionManager
from query_harness.models import ConnectionTarget

DB_NAME = "plp_bookstore"
COLLECTION_NAME = "books"


BOOKS: List[Dict[str, Any]] = [
    {"title": "To Kill a Mockingbird", "author": "Harper Lee", "genre": "Fiction",
     "published_year": 1960, "price": 12.99, "in_stock": True},
    {"title": "1984", "author": "George Orwell", "genre": "Dystopian",
     "published_year": 1949, "price": 10.99, "in_stock": True},
    {"title": "The Great Gatsby", "author": "F. Scott Fitzgerald", "genre": "Fiction",
     "published_year": 1925, "price": 9.99, "in_stock": True},
    {"title": "Animal Farm", "author": "George Orwell", "genre": "Political Satire",
     "published_year": 1945, "price": 8.50, "in_stock": False},
    {"title": "Moby Dick", "author": "Herman Melville", "genre": "Adventure",
     "published_year": 1851, "price": 12.50, "in_stock": False},
    {"title": "The Midnight Library", "author": "Matt Haig", "genre": "Fiction",
     "published_year": 2020, "price": 14.99, "in_stock": True},
    {"title": "Project Hail Mary", "author": "Andy Weir", "genre": "Science Fiction",
     "published_year": 2021, "price": 16.99, "in_stock": False},
]


class FakeClient:
    """Stands in for ``MongoClient``: data lives in a shared mongomock backend."""

    def __init__(self, backend: mongomock.MongoClient):
        self._backend = backend
        self.close_calls = 0

    def __getitem__(self, name: str):
        return self._backend[name]

    def server_info(self) -> Dict[str, Any]:
        return {"version": "7.0.0", "ok": 1.0}

    def close(self) -> None:
        self.close_calls += 1


class FakeClientFactory:
    """Callable with ``MongoClient``'s signature; can be told to refuse connections."""

    def __init__(self, backend: mongomock.MongoClient):
        self.backend = backend
        self.clients: List[FakeClient] = []
        self.fail_from: Optional[int] = None  # 1-based attempt that starts failing

    def __call__(self, uri: str, **kwargs: Any):
        attempt = len(self.clients) + 1
        if self.fail_from is not None and attempt >= self.fail_from:
            refused = MagicMock()
            refused.server_info.side_effect = ServerSelectionTimeoutError("No servers found")
            self.clients.append(refused)
            return refused
        client = FakeClient(self.backend)
        self.clients.append(client)
        return client

    @property
    def open_clients(self) -> int:
        return sum(1 for c in self.clients if isinstance(c, FakeClient) and c.close_calls == 0)


@pytest.fixture
def backend():
    return mongomock.MongoClient()


@pytest.fixture
def books(backend):
    """The demo bookstore collection, seeded."""
    coll = backend[DB_NAME][COLLECTION_NAME]
    coll.insert_many([dict(b) for b in BOOKS])
    return coll


@pytest.fixture
def client_factory(backend):
    return FakeClientFactory(backend)


@pytest.fixture
def manager(client_factory):
    return ConnectionManager(client_factory=client_factory)


@pytest.fixture
def target():
    return ConnectionTarget(
        mongo_uri="mongodb://localhost:27017",
        database_name=DB_NAME,
        collection_name=COLLECTION_NAME,
    )


@pytest.fixture
def mock_handle(target):
    """A handle whose client is a MagicMock, for driver failure paths."""
    client = MagicMock()
    client.server_info.return_value = {"ok": 1.0}
    mgr = ConnectionManager(client_factory=lambda uri, **kw: client)
    handle = mgr.acquire(target)
    yield handle
    handle.release()


@pytest.fixture
def deadlines(monkeypatch):
    """Seconds passed to every ``pymongo.timeout()`` block entered during the test."""
    entered: List[float] = []

    @contextmanager
    def recording(seconds):
        entered.append(seconds)
        yield

    monkeypatch.setattr(pymongo, "timeout", recording)
    return entered
