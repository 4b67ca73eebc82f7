"""
Value types passed between the connection manager, the runner and the sinks.

All three are frozen pydantic models: a ``ConnectionTarget`` is built once at
process start, an ``Operation`` is built by the caller and never changed, and
an ``OperationResult`` is produced exactly once per execution.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from . import config

# ---------------------- CONSTANTS ----------------------

MAX_PAGE_SIZE = 100
DEFAULT_EXPLAIN_VERBOSITY = "executionStats"

SortSpec = List[Tuple[str, int]]
"""Ordered ``(field, direction)`` pairs, direction is 1 or -1."""

IndexSpec = List[Tuple[str, Union[int, str]]]
"""Like ``SortSpec``, but a key may also name a special index type (``"text"``)."""

INDEX_TYPES = frozenset({"text", "2dsphere", "2d", "hashed"})


def _check_directions(pairs: IndexSpec, what: str, allowed_types=frozenset()) -> None:
    for field, direction in pairs:
        if isinstance(direction, str):
            if direction not in allowed_types:
                raise ValueError(f"{what} type for '{field}' must be one of {sorted(allowed_types)}, got '{direction}'")
        elif direction not in (1, -1):
            raise ValueError(f"{what} direction for '{field}' must be 1 or -1, got {direction}")


# ---------------------- TARGET ----------------------


class ConnectionTarget(BaseModel):
    """Where to connect: URI, database name and collection name."""

    model_config = ConfigDict(frozen=True)

    mongo_uri: str = Field(min_length=1)
    database_name: str = Field(min_length=1)
    collection_name: str = Field(min_length=1)

    @classmethod
    def from_env(cls) -> "ConnectionTarget":
        """Build the target from ``MONGO_URI`` / ``DATABASE_NAME`` / ``COLLECTION_NAME``."""
        return cls(
            mongo_uri=config.MONGO_URI,
            database_name=config.DATABASE_NAME,
            collection_name=config.COLLECTION_NAME,
        )

    def describe(self) -> str:
        return f"{self.database_name}.{self.collection_name}"


# ---------------------- OPERATION ----------------------


class OperationKind(str, Enum):
    QUERY = "query"
    UPDATE = "update"
    DELETE = "delete"
    AGGREGATE = "aggregate"
    INDEX = "index"
    EXPLAIN = "explain"


class Operation(BaseModel):
    """A labelled unit of work.

    Which payload fields matter depends on ``kind``:

    - ``query``     — ``filter``, plus optional ``projection``, ``sort``, ``skip``, ``limit``
    - ``update``    — ``filter`` and ``update`` (an update document such as ``{"$set": ...}``)
    - ``delete``    — ``filter``
    - ``aggregate`` — ``pipeline`` (ordered stages)
    - ``index``     — ``index_keys`` and optional ``index_options`` (``name``, ``unique`` …)
    - ``explain``   — ``filter`` and ``verbosity``
    """

    model_config = ConfigDict(frozen=True)

    label: str = Field(min_length=1)
    kind: OperationKind
    filter: Dict[str, Any] = Field(default_factory=dict)
    update: Optional[Dict[str, Any]] = None
    pipeline: List[Dict[str, Any]] = Field(default_factory=list)
    index_keys: IndexSpec = Field(default_factory=list)
    index_options: Dict[str, Any] = Field(default_factory=dict)
    projection: Optional[Dict[str, Any]] = None
    sort: SortSpec = Field(default_factory=list)
    skip: int = Field(default=0, ge=0)
    limit: int = Field(default=0, ge=0)
    verbosity: str = DEFAULT_EXPLAIN_VERBOSITY

    @model_validator(mode="after")
    def _check_payload(self) -> "Operation":
        if self.kind == OperationKind.UPDATE and not self.update:
            raise ValueError(f"Operation '{self.label}': update kind requires an update document")
        if self.kind == OperationKind.AGGREGATE and not self.pipeline:
            raise ValueError(f"Operation '{self.label}': aggregate kind requires pipeline stages")
        if self.kind == OperationKind.INDEX and not self.index_keys:
            raise ValueError(f"Operation '{self.label}': index kind requires index_keys")
        _check_directions(self.sort, "sort")
        _check_directions(self.index_keys, "index", INDEX_TYPES)
        return self

    # ---- convenience constructors ----

    @classmethod
    def query(
        cls,
        label: str,
        filter: Optional[Dict[str, Any]] = None,
        *,
        projection: Optional[Dict[str, Any]] = None,
        sort: Optional[SortSpec] = None,
        skip: int = 0,
        limit: int = 0,
    ) -> "Operation":
        return cls(
            label=label,
            kind=OperationKind.QUERY,
            filter=filter or {},
            projection=projection,
            sort=sort or [],
            skip=skip,
            limit=limit,
        )

    @classmethod
    def paginate(
        cls,
        label: str,
        page: int,
        per_page: int,
        filter: Optional[Dict[str, Any]] = None,
        *,
        sort: Optional[SortSpec] = None,
        projection: Optional[Dict[str, Any]] = None,
    ) -> "Operation":
        """Query for one 1-based page; ``per_page`` is capped at ``MAX_PAGE_SIZE``."""
        page = max(1, page)
        per_page = min(max(1, per_page), MAX_PAGE_SIZE)
        return cls.query(
            label,
            filter,
            projection=projection,
            sort=sort,
            skip=(page - 1) * per_page,
            limit=per_page,
        )

    @classmethod
    def update_one(cls, label: str, filter: Dict[str, Any], update: Dict[str, Any]) -> "Operation":
        return cls(label=label, kind=OperationKind.UPDATE, filter=filter, update=update)

    @classmethod
    def delete_one(cls, label: str, filter: Dict[str, Any]) -> "Operation":
        return cls(label=label, kind=OperationKind.DELETE, filter=filter)

    @classmethod
    def aggregate(cls, label: str, pipeline: List[Dict[str, Any]]) -> "Operation":
        return cls(label=label, kind=OperationKind.AGGREGATE, pipeline=pipeline)

    @classmethod
    def index(cls, label: str, keys: IndexSpec, **options: Any) -> "Operation":
        return cls(label=label, kind=OperationKind.INDEX, index_keys=keys, index_options=options)

    @classmethod
    def explain(
        cls,
        label: str,
        filter: Dict[str, Any],
        verbosity: str = DEFAULT_EXPLAIN_VERBOSITY,
    ) -> "Operation":
        return cls(label=label, kind=OperationKind.EXPLAIN, filter=filter, verbosity=verbosity)


# ---------------------- RESULT ----------------------


class OperationResult(BaseModel):
    """Outcome of exactly one ``Operation`` execution.

    ``documents`` is filled for query / aggregate, ``count`` for update /
    delete (modified / deleted), ``stats`` for index / explain.
    """

    model_config = ConfigDict(frozen=True)

    label: str
    kind: OperationKind
    success: bool
    documents: List[Dict[str, Any]] = Field(default_factory=list)
    count: Optional[int] = None
    stats: Dict[str, Any] = Field(default_factory=dict)
    elapsed_ms: float = 0.0
    error: Optional[str] = None
    error_type: Optional[str] = None
    timed_out: bool = False

    @classmethod
    def failure(
        cls,
        op: Operation,
        exc: BaseException,
        elapsed_ms: float,
        timed_out: bool = False,
    ) -> "OperationResult":
        return cls(
            label=op.label,
            kind=op.kind,
            success=False,
            elapsed_ms=elapsed_ms,
            error=str(exc),
            error_type=type(exc).__name__,
            timed_out=timed_out,
        )
