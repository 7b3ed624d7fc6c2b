"""Diagnostic sinks for dead-letter records."""

from tasklane.domain.triage import DiagnosticRecord
from tasklane.observability.logging import get_logger

_diagnostics_logger = get_logger("tasklane.dead_letter")


class LogDiagnosticSink:
    """Writes each diagnostic record as one JSON log event.

    The full payload is included: this record is the terminal audit
    artifact for the task.
    """

    def __init__(self, logger=None) -> None:
        self._logger = logger or _diagnostics_logger

    def emit(self, record: DiagnosticRecord) -> None:
        self._logger.error(record.message, extra={"extra_fields": record.to_dict()})
