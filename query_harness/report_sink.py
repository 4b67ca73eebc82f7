"""
Report sinks: terminal step of a run, receiving one ``OperationResult`` at a time.

``publish`` never raises — a sink that fails to render logs the failure as a
``ReportSinkError`` and the run carries on.
"""

import json
import sys
import threading
from typing import IO, Any, Dict, List, Optional

from .errors import ReportSinkError
from .logger import logger
from .models import OperationKind, OperationResult

MAX_CONSOLE_DOCS = 50


# ---------------------- SERIALISATION ----------------------

def _sanitise_value(obj: Any) -> Any:
    """Recursively convert non-JSON-safe types to safe representations."""
    if isinstance(obj, dict):
        return {k: _sanitise_value(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_sanitise_value(item) for item in obj]
    if isinstance(obj, bytes):
        try:
            return obj.decode("utf-8")
        except (UnicodeDecodeError, ValueError):
            return f"[binary {len(obj)} bytes]"
    if isinstance(obj, (int, float, str, bool, type(None))):
        return obj
    # datetime, ObjectId, Decimal128, etc.
    return str(obj)


def result_to_dict(result: OperationResult) -> Dict[str, Any]:
    """JSON-safe dict form of a result."""
    data = result.model_dump()
    data["kind"] = result.kind.value
    return _sanitise_value(data)


# ---------------------- BASE ----------------------

class ReportSink:
    """Base sink. Subclasses implement ``render``."""

    name = "sink"

    def publish(self, result: OperationResult) -> None:
        try:
            self.render(result)
        except Exception as e:
            err = ReportSinkError(self.name, e)
            logger.warning("[SINK] %s", err)

    def render(self, result: OperationResult) -> None:
        raise NotImplementedError

    def close(self) -> None:
        """Release anything the sink holds open. Default: nothing."""


# ---------------------- CONSOLE ----------------------

def colour(text: str, code: int, enabled: bool = True) -> str:
    """ANSI colour wrapper."""
    return f"\033[{code}m{text}\033[0m" if enabled else text


class ConsoleSink(ReportSink):
    """Numbered, human-readable output — one block per operation."""

    name = "console"

    def __init__(self, stream: Optional[IO[str]] = None, use_colour: bool = True):
        self.stream = stream or sys.stdout
        self.use_colour = use_colour
        self._counter = 0

    def heading(self, title: str) -> None:
        """Print a section banner and restart numbering."""
        self._counter = 0
        self._write(f"\n{colour(f'=== {title} ===', 1, self.use_colour)}")

    def _write(self, line: str) -> None:
        self.stream.write(line + "\n")

    def render(self, result: OperationResult) -> None:
        self._counter += 1
        mark = colour("ok", 32, self.use_colour) if result.success else colour("FAILED", 31, self.use_colour)
        self._write(f"\n{self._counter}. {result.label} [{mark}, {result.elapsed_ms:.1f} ms]")

        if not result.success:
            kind = "timeout" if result.timed_out else result.error_type
            self._write(colour(f"   {kind}: {result.error}", 31, self.use_colour))
            return

        if result.kind == OperationKind.UPDATE:
            self._write(f"   Updated {result.count} document(s)")
        elif result.kind == OperationKind.DELETE:
            self._write(f"   Deleted {result.count} document(s)")
        elif result.kind == OperationKind.INDEX:
            if result.stats.get("already_exists"):
                self._write(f"   Index {result.stats.get('index_name')} already exists")
            else:
                self._write(f"   Index {result.stats.get('index_name')} created")
        elif result.kind == OperationKind.EXPLAIN:
            self._write(f"   Documents examined: {result.stats.get('docs_examined')}")
            self._write(f"   Execution time (ms): {result.stats.get('execution_time_ms')}")
            if result.stats.get("winning_stage"):
                self._write(f"   Plan: {result.stats['winning_stage']}")
        else:
            docs = _sanitise_value(result.documents)
            for doc in docs[:MAX_CONSOLE_DOCS]:
                self._write(f"   {json.dumps(doc, ensure_ascii=False)}")
            if len(docs) > MAX_CONSOLE_DOCS:
                self._write(f"   … {len(docs) - MAX_CONSOLE_DOCS} more")
            if not docs:
                self._write("   (no documents)")


# ---------------------- LOG ----------------------

class LogSink(ReportSink):
    name = "log"

    def render(self, result: OperationResult) -> None:
        if result.success:
            logger.info(
                "[SINK] %s (%s): count=%s stats=%s elapsed=%.1fms",
                result.label, result.kind.value, result.count, result.stats, result.elapsed_ms,
            )
        else:
            logger.error(
                "[SINK] %s (%s) failed: %s", result.label, result.kind.value, result.error,
            )


# ---------------------- FILE ----------------------

class JsonLinesSink(ReportSink):
    """Appends one JSON object per result to ``path`` (newline-delimited JSON)."""

    name = "jsonl"

    def __init__(self, path: str):
        self.path = path
        self._fh: Optional[IO[str]] = None
        self._lock = threading.Lock()

    def render(self, result: OperationResult) -> None:
        line = json.dumps(result_to_dict(result), ensure_ascii=False)
        with self._lock:
            if self._fh is None:
                self._fh = open(self.path, "a", encoding="utf-8")
            self._fh.write(line + "\n")
            self._fh.flush()

    def close(self) -> None:
        with self._lock:
            if self._fh is not None:
                self._fh.close()
                self._fh = None


# ---------------------- IN-MEMORY / FAN-OUT ----------------------

class CollectingSink(ReportSink):
    """Keeps every published result in memory, in publish order."""

    name = "collect"

    def __init__(self):
        self.results: List[OperationResult] = []

    def render(self, result: OperationResult) -> None:
        self.results.append(result)

    def as_dicts(self) -> List[Dict[str, Any]]:
        return [result_to_dict(r) for r in self.results]


class MultiSink(ReportSink):
    """Publishes each result to several sinks; one failing sink does not stop the others."""

    name = "multi"

    def __init__(self, *sinks: ReportSink):
        self.sinks = list(sinks)

    def render(self, result: OperationResult) -> None:
        for sink in self.sinks:
            sink.publish(result)

    def close(self) -> None:
        for sink in self.sinks:
            sink.close()
