"""Connect → run labelled MongoDB operations → report → disconnect."""

from .connection_manager import ConnectionManager, Handle
from .errors import (
    HarnessError,
    OperationError,
    OperationTimeout,
    ReportSinkError,
    StoreConnectionError,
)
from .harness import OperationHarness, RunSummary
from .models import ConnectionTarget, Operation, OperationKind, OperationResult
from .operation_runner import OperationRunner
from .report_sink import (
    CollectingSink,
    ConsoleSink,
    JsonLinesSink,
    LogSink,
    MultiSink,
    ReportSink,
)

__version__ = "2.0.0"
