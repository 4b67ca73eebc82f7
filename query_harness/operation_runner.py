"""
Operation runner: executes one labelled ``Operation`` against a ``Handle``
with an optional time bound, and turns the outcome into an ``OperationResult``.

The runner never retries. Provider rejections and timeouts are captured into
the result (``success=False``); nothing but programming errors escapes
``execute``.
"""

import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, Generator, Iterator, List, Optional

import pymongo
from bson import ObjectId
from bson.errors import InvalidDocument
from pymongo.errors import ExecutionTimeout, NetworkTimeout, PyMongoError

from .config import OPERATION_TIMEOUT_MS
from .connection_manager import Handle
from .errors import OperationError, OperationTimeout
from .index_utils import describe_indexes, find_equivalent_index
from .logger import logger
from .models import Operation, OperationKind, OperationResult

# Errors the driver raises when the store (or the driver on its behalf)
# rejects a request.
_REJECTIONS = (PyMongoError, InvalidDocument, TypeError, ValueError)


# ---------------------- HELPERS ----------------------

def _stringify_ids(docs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Convert ObjectId ``_id`` values to strings so results are JSON-serialisable."""
    for doc in docs:
        if isinstance(doc.get("_id"), ObjectId):
            doc["_id"] = str(doc["_id"])
    return docs


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 3)


def _winning_stage(plan: Dict[str, Any]) -> Optional[str]:
    """Render the winning plan's stage chain, e.g. ``FETCH > IXSCAN``."""
    planner = plan.get("queryPlanner", {})
    node = planner.get("winningPlan", {})
    # Slot-based engine nests the classic tree under ``queryPlan``.
    node = node.get("queryPlan", node)
    stages = []
    while node:
        if "stage" in node:
            stages.append(node["stage"])
        node = node.get("inputStage")
    return " > ".join(stages) or None


@contextmanager
def _bounded(timeout_ms: Optional[int]) -> Iterator[None]:
    """Client-side deadline for every driver call made inside the block."""
    if not timeout_ms:
        yield
        return
    with pymongo.timeout(timeout_ms / 1000.0):
        yield


# ---------------------- RUNNER ----------------------

class OperationRunner:
    """Executes operations; one instance can be shared by many handles."""

    def __init__(self, default_timeout_ms: Optional[int] = OPERATION_TIMEOUT_MS):
        self.default_timeout_ms = default_timeout_ms
        self._handlers: Dict[OperationKind, Callable[[Handle, Operation, Optional[int]], Dict[str, Any]]] = {
            OperationKind.QUERY: self._run_query,
            OperationKind.UPDATE: self._run_update,
            OperationKind.DELETE: self._run_delete,
            OperationKind.AGGREGATE: self._run_aggregate,
            OperationKind.INDEX: self._run_index,
            OperationKind.EXPLAIN: self._run_explain,
        }

    def _timeout(self, timeout_ms: Optional[int]) -> Optional[int]:
        return timeout_ms if timeout_ms is not None else self.default_timeout_ms

    # ---- public API ----

    def execute(
        self,
        handle: Handle,
        op: Operation,
        timeout_ms: Optional[int] = None,
    ) -> OperationResult:
        """Run ``op`` once and return its result; failures are recorded, not raised."""
        started = time.perf_counter()
        try:
            fields = self.run(handle, op, timeout_ms)
        except OperationTimeout as e:
            elapsed = _elapsed_ms(started)
            logger.warning("[RUN] %s (%s) timed out after %.1f ms: %s", op.label, op.kind.value, elapsed, e.cause)
            return OperationResult.failure(op, e, elapsed, timed_out=True)
        except OperationError as e:
            elapsed = _elapsed_ms(started)
            logger.warning("[RUN] %s (%s) failed after %.1f ms: %s", op.label, op.kind.value, elapsed, e.cause)
            return OperationResult.failure(op, e, elapsed)

        elapsed = _elapsed_ms(started)
        logger.info("[RUN] %s (%s) ok in %.1f ms", op.label, op.kind.value, elapsed)
        return OperationResult(
            label=op.label,
            kind=op.kind,
            success=True,
            elapsed_ms=elapsed,
            **fields,
        )

    def run(
        self,
        handle: Handle,
        op: Operation,
        timeout_ms: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Run ``op`` and return the raw result fields.

        Raises ``OperationTimeout`` when the bound is exceeded and
        ``OperationError`` for any other rejection.
        """
        timeout_ms = self._timeout(timeout_ms)
        handler = self._handlers[op.kind]
        try:
            with _bounded(timeout_ms):
                return handler(handle, op, timeout_ms)
        except (ExecutionTimeout, NetworkTimeout) as e:
            raise OperationTimeout(op.label, e) from e
        except _REJECTIONS as e:
            if getattr(e, "timeout", False):
                raise OperationTimeout(op.label, e) from e
            raise OperationError(op.label, e) from e

    def stream(
        self,
        handle: Handle,
        op: Operation,
        timeout_ms: Optional[int] = None,
    ) -> Generator[Dict[str, Any], None, None]:
        """Yield documents one by one without loading the entire cursor.

        Only ``query`` and ``aggregate`` operations can be streamed. The
        generator is single-pass; iterate a fresh one to re-run the operation.
        The time bound covers the whole iteration, not each document.
        """
        if op.kind not in (OperationKind.QUERY, OperationKind.AGGREGATE):
            raise ValueError(f"Operation '{op.label}': cannot stream a {op.kind.value} operation")

        timeout_ms = self._timeout(timeout_ms)
        try:
            with _bounded(timeout_ms):
                if op.kind == OperationKind.QUERY:
                    cursor = self._find_cursor(handle, op, timeout_ms)
                else:
                    cursor = handle.collection.aggregate(list(op.pipeline), **self._agg_kwargs(timeout_ms))
                for doc in cursor:
                    if isinstance(doc.get("_id"), ObjectId):
                        doc["_id"] = str(doc["_id"])
                    yield doc
        except (ExecutionTimeout, NetworkTimeout) as e:
            raise OperationTimeout(op.label, e) from e
        except _REJECTIONS as e:
            if getattr(e, "timeout", False):
                raise OperationTimeout(op.label, e) from e
            raise OperationError(op.label, e) from e

    # ---- per-kind handlers ----

    @staticmethod
    def _agg_kwargs(timeout_ms: Optional[int]) -> Dict[str, Any]:
        return {"maxTimeMS": timeout_ms} if timeout_ms else {}

    @staticmethod
    def _find_cursor(handle: Handle, op: Operation, timeout_ms: Optional[int]):
        cursor = handle.collection.find(op.filter, op.projection)
        if op.sort:
            cursor = cursor.sort(list(op.sort))
        if op.skip:
            cursor = cursor.skip(op.skip)
        if op.limit:
            cursor = cursor.limit(op.limit)
        if timeout_ms:
            cursor = cursor.max_time_ms(timeout_ms)
        return cursor

    def _run_query(self, handle: Handle, op: Operation, timeout_ms: Optional[int]) -> Dict[str, Any]:
        docs = _stringify_ids(list(self._find_cursor(handle, op, timeout_ms)))
        return {"documents": docs, "count": len(docs)}

    def _run_update(self, handle: Handle, op: Operation, timeout_ms: Optional[int]) -> Dict[str, Any]:
        # zero matches is a valid outcome, reported as count 0
        res = handle.collection.update_one(op.filter, op.update)
        return {
            "count": res.modified_count,
            "stats": {"matched_count": res.matched_count, "modified_count": res.modified_count},
        }

    def _run_delete(self, handle: Handle, op: Operation, timeout_ms: Optional[int]) -> Dict[str, Any]:
        res = handle.collection.delete_one(op.filter)
        return {"count": res.deleted_count, "stats": {"deleted_count": res.deleted_count}}

    def _run_aggregate(self, handle: Handle, op: Operation, timeout_ms: Optional[int]) -> Dict[str, Any]:
        docs = list(handle.collection.aggregate(list(op.pipeline), **self._agg_kwargs(timeout_ms)))
        docs = _stringify_ids(docs)
        return {"documents": docs, "count": len(docs)}

    def _run_index(self, handle: Handle, op: Operation, timeout_ms: Optional[int]) -> Dict[str, Any]:
        keys = list(op.index_keys)
        existing = find_equivalent_index(describe_indexes(handle.collection), keys)
        if existing is not None:
            logger.info("[RUN] %s: index %s already exists", op.label, existing)
            return {"stats": {"index_name": existing, "created": False, "already_exists": True}}

        name = handle.collection.create_index(keys, **op.index_options)
        return {"stats": {"index_name": name, "created": True, "already_exists": False}}

    def _run_explain(self, handle: Handle, op: Operation, timeout_ms: Optional[int]) -> Dict[str, Any]:
        command = {
            "explain": {"find": handle.collection.name, "filter": op.filter},
            "verbosity": op.verbosity,
        }
        plan = handle.database.command(command)
        execution = plan.get("executionStats", {})
        return {
            "stats": {
                "docs_examined": execution.get("totalDocsExamined"),
                "keys_examined": execution.get("totalKeysExamined"),
                "execution_time_ms": execution.get("executionTimeMillis"),
                "returned": execution.get("nReturned"),
                "winning_stage": _winning_stage(plan),
            }
        }
