"""
FastAPI service exposing the harness over HTTP.

Endpoints:
- ``POST /run``          — run a caller-supplied list of operations
- ``POST /run-demo``     — run bookstore demo sections
- ``POST /get-indexes``  — describe the target collection's indexes
- ``GET  /health``
"""

from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from pymongo.errors import PyMongoError

from . import __version__
from .bookstore import SECTIONS, run_demo
from .connection_manager import ConnectionManager
from .errors import StoreConnectionError
from .harness import OperationHarness
from .index_utils import describe_indexes, get_indexed_fields
from .logger import logger
from .models import ConnectionTarget, Operation
from .report_sink import CollectingSink, LogSink, result_to_dict

app = FastAPI(title="MongoDB Query Harness", version=__version__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_manager = ConnectionManager()


def get_connection_manager() -> ConnectionManager:
    return _manager


# ---------------------- REQUEST MODELS ----------------------


class TargetRequest(BaseModel):
    mongo_uri: str
    database_name: str
    collection_name: str

    def to_target(self) -> ConnectionTarget:
        return ConnectionTarget(
            mongo_uri=self.mongo_uri,
            database_name=self.database_name,
            collection_name=self.collection_name,
        )


class RunRequest(TargetRequest):
    operations: List[Operation] = Field(min_length=1)
    timeout_ms: Optional[int] = Field(default=None, ge=1)
    concurrent: bool = False
    max_workers: Optional[int] = Field(default=None, ge=1)


class DemoRequest(TargetRequest):
    sections: Optional[List[str]] = None
    timeout_ms: Optional[int] = Field(default=None, ge=1)


# ---------------------- ENDPOINTS ----------------------


@app.post("/run")
def run_operations(request: RunRequest, manager: ConnectionManager = Depends(get_connection_manager)):
    collector = CollectingSink()
    harness = OperationHarness(manager, sinks=[collector, LogSink()])
    try:
        summary = harness.run(
            request.to_target(),
            request.operations,
            timeout_ms=request.timeout_ms,
            concurrent=request.concurrent,
            max_workers=request.max_workers,
        )
    except StoreConnectionError as e:
        logger.error("run error: %s", e)
        raise HTTPException(status_code=400, detail=str(e))

    return {
        "succeeded": summary.succeeded,
        "failed": summary.failed,
        "results": collector.as_dicts(),
    }


@app.post("/run-demo")
def run_demo_sections(request: DemoRequest, manager: ConnectionManager = Depends(get_connection_manager)):
    unknown = [s for s in request.sections or [] if s not in SECTIONS]
    if unknown:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown section(s): {', '.join(unknown)}. Choose from {', '.join(SECTIONS)}",
        )

    harness = OperationHarness(manager, sinks=[LogSink()])
    try:
        summaries = run_demo(harness, request.to_target(), request.sections, timeout_ms=request.timeout_ms)
    except StoreConnectionError as e:
        logger.error("run-demo error: %s", e)
        raise HTTPException(status_code=400, detail=str(e))

    response: Dict[str, Any] = {}
    for key, summary in summaries.items():
        response[key] = {
            "title": SECTIONS[key][0],
            "succeeded": summary.succeeded,
            "failed": summary.failed,
            "results": [result_to_dict(r) for r in summary.results],
        }
    return {"sections": response}


@app.post("/get-indexes")
def get_indexes(request: TargetRequest, manager: ConnectionManager = Depends(get_connection_manager)):
    """Return index information for a collection."""
    try:
        with manager.session(request.to_target()) as handle:
            indexes = describe_indexes(handle.collection)
    except StoreConnectionError as e:
        logger.error("get-indexes error: %s", e)
        raise HTTPException(status_code=400, detail=str(e))
    except PyMongoError as e:
        logger.error("get-indexes error: %s", e)
        raise HTTPException(status_code=500, detail=f"Index inspection failed: {e}")

    return {
        "indexes": indexes,
        "indexed_fields": sorted(get_indexed_fields(indexes)),
    }


@app.get("/health")
def health_check():
    return {"status": "ok", "version": __version__}
