"""
Connection manager: acquire and release handles to a single collection.

One ``acquire`` is one connection attempt — no retries. Every handle must be
released exactly once; ``session()`` guarantees that on every exit path.
"""

import threading
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional, Set

from pymongo import MongoClient
from pymongo.errors import (
    ConfigurationError,
    ConnectionFailure,
    OperationFailure,
    ServerSelectionTimeoutError,
)

from .config import SERVER_SELECTION_TIMEOUT_MS
from .errors import StoreConnectionError
from .logger import logger
from .models import ConnectionTarget

ClientFactory = Callable[..., Any]


class Handle:
    """An open reference to one collection, owned by whoever acquired it."""

    def __init__(self, target: ConnectionTarget, client: Any, manager: "ConnectionManager"):
        self.target = target
        self.client = client
        self.database = client[target.database_name]
        self.collection = self.database[target.collection_name]
        self._manager = manager
        self._released = False
        self._lock = threading.Lock()

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        """Close the underlying client. Later calls are no-ops."""
        with self._lock:
            if self._released:
                logger.debug("[CONNECT] Handle for %s already released", self.target.describe())
                return
            self._released = True
        try:
            self.client.close()
        finally:
            self._manager._forget(self)
            logger.debug("[CONNECT] Released handle for %s", self.target.describe())

    def __enter__(self) -> "Handle":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    def __repr__(self) -> str:
        state = "released" if self._released else "open"
        return f"<Handle {self.target.describe()} {state}>"


class ConnectionManager:
    """Hands out ``Handle`` objects and tracks which are still open.

    ``client_factory`` defaults to ``pymongo.MongoClient``; any callable with
    the same ``(uri, **kwargs)`` signature works (tests pass
    ``mongomock.MongoClient``).
    """

    def __init__(
        self,
        client_factory: Optional[ClientFactory] = None,
        server_selection_timeout_ms: int = SERVER_SELECTION_TIMEOUT_MS,
    ):
        self._client_factory = client_factory or MongoClient
        self._server_selection_timeout_ms = server_selection_timeout_ms
        self._open: Set[Handle] = set()
        self._lock = threading.Lock()

    @property
    def open_handles(self) -> int:
        with self._lock:
            return len(self._open)

    def acquire(self, target: ConnectionTarget) -> Handle:
        """Create a client, test it, and return a handle to the target collection.

        Raises ``StoreConnectionError`` if the server cannot be reached or the
        credentials are rejected.
        """
        client = None
        try:
            client = self._client_factory(
                target.mongo_uri,
                serverSelectionTimeoutMS=self._server_selection_timeout_ms,
            )
            client.server_info()  # force connection test
        except ServerSelectionTimeoutError as e:
            self._close_quietly(client)
            raise StoreConnectionError(
                "Connection timed out. Check your MongoDB URI and network.", e
            ) from e
        except OperationFailure as e:
            self._close_quietly(client)
            raise StoreConnectionError(f"MongoDB rejected the connection: {e}", e) from e
        except (ConnectionFailure, ConfigurationError) as e:
            self._close_quietly(client)
            raise StoreConnectionError(f"Failed to connect to MongoDB: {e}", e) from e

        handle = Handle(target, client, self)
        with self._lock:
            self._open.add(handle)
        logger.info("[CONNECT] Connected to %s", target.describe())
        return handle

    def release(self, handle: Handle) -> None:
        handle.release()

    @contextmanager
    def session(self, target: ConnectionTarget) -> Iterator[Handle]:
        """Scoped acquisition: the handle is released however the block exits."""
        handle = self.acquire(target)
        try:
            yield handle
        finally:
            handle.release()

    def release_all(self) -> int:
        """Release every outstanding handle; returns how many were open."""
        with self._lock:
            outstanding = list(self._open)
        for handle in outstanding:
            try:
                handle.release()
            except Exception as e:
                logger.warning("[CONNECT] Error while releasing %r: %s", handle, e)
        if outstanding:
            logger.info("[CONNECT] Released %d outstanding handle(s)", len(outstanding))
        return len(outstanding)

    def _forget(self, handle: Handle) -> None:
        with self._lock:
            self._open.discard(handle)

    @staticmethod
    def _close_quietly(client: Any) -> None:
        if client is None:
            return
        try:
            client.close()
        except Exception as e:
            logger.debug("[CONNECT] Ignoring close error after failed connect: %s", e)
