"""
Command-line entry point: run the bookstore demo against a MongoDB collection.

Usage:
    query-harness [--uri URI] [--database DB] [--collection NAME]
                  [--section crud|advanced|aggregation|indexes ...]
                  [--timeout-ms N] [--concurrent] [--workers N]
                  [--jsonl PATH] [--no-colour] [--log-level LEVEL]

Exit status is 1 when the store could not be reached, 0 otherwise (failed
operations are reported but do not change the exit status).
"""

import argparse
import sys
from typing import List, Optional

from pydantic import ValidationError

from . import config
from .bookstore import SECTIONS, run_demo
from .connection_manager import ConnectionManager
from .errors import StoreConnectionError
from .harness import OperationHarness
from .logger import logger, set_level
from .models import ConnectionTarget
from .report_sink import ConsoleSink, JsonLinesSink, ReportSink

EXIT_OK = 0
EXIT_CONNECTION_ERROR = 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="query-harness",
        description="Run the bookstore CRUD / query / aggregation / index demo.",
    )
    parser.add_argument("--uri", default=config.MONGO_URI, help="MongoDB connection URI")
    parser.add_argument("--database", default=config.DATABASE_NAME)
    parser.add_argument("--collection", default=config.COLLECTION_NAME)
    parser.add_argument(
        "--section",
        action="append",
        choices=list(SECTIONS),
        help="Section to run (repeatable, default: all)",
    )
    parser.add_argument("--timeout-ms", type=int, default=config.OPERATION_TIMEOUT_MS)
    parser.add_argument("--concurrent", action="store_true", help="Run each section's operations in parallel")
    parser.add_argument("--workers", type=int, default=config.MAX_WORKERS)
    parser.add_argument("--jsonl", metavar="PATH", help="Also append results to a JSON-lines file")
    parser.add_argument("--no-colour", action="store_true")
    parser.add_argument("--log-level", default=config.LOG_LEVEL)
    return parser


def main(argv: Optional[List[str]] = None, manager: Optional[ConnectionManager] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    set_level(args.log_level)

    try:
        target = ConnectionTarget(
            mongo_uri=args.uri,
            database_name=args.database,
            collection_name=args.collection,
        )
    except ValidationError as e:
        fields = ", ".join(str(err["loc"][0]) for err in e.errors() if err["loc"])
        parser.error(f"invalid connection target ({fields}): values must be non-empty strings")

    console = ConsoleSink(use_colour=not args.no_colour and sys.stdout.isatty())
    sinks: List[ReportSink] = [console]
    if args.jsonl:
        sinks.append(JsonLinesSink(args.jsonl))

    harness = OperationHarness(manager or ConnectionManager(), sinks=sinks)
    try:
        run_demo(
            harness,
            target,
            sections=args.section,
            console=console,
            timeout_ms=args.timeout_ms,
            concurrent=args.concurrent,
            max_workers=args.workers,
        )
    except StoreConnectionError as e:
        logger.error("Run aborted: %s", e)
        print(f"Connection error: {e}", file=sys.stderr)
        return EXIT_CONNECTION_ERROR
    finally:
        harness.sink.close()
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
