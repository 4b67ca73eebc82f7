"""
Error taxonomy for a harness run.

    StoreConnectionError  — target unreachable or credentials rejected; aborts the run
    OperationError        — the store rejected one operation; recorded, run continues
    OperationTimeout      — one operation exceeded its bound; recorded, run continues
    ReportSinkError       — a sink failed to render a result; logged only
"""

from typing import Optional


class HarnessError(Exception):
    """Base class for every error raised by the harness."""


class StoreConnectionError(HarnessError, ConnectionError):
    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class OperationError(HarnessError):
    message_template = "Operation '{label}' failed: {cause}"

    def __init__(self, label: str, cause: BaseException):
        super().__init__(self.message_template.format(label=label, cause=cause))
        self.label = label
        self.cause = cause


class OperationTimeout(OperationError, TimeoutError):
    message_template = "Operation '{label}' timed out: {cause}"


class ReportSinkError(HarnessError):
    def __init__(self, sink_name: str, cause: BaseException):
        super().__init__(f"Sink '{sink_name}' failed to render result: {cause}")
        self.sink_name = sink_name
        self.cause = cause
