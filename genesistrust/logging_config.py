"""
Logging configuration for genesistrust.

Provides structured JSON logging for audit trails and debugging. All
log output goes to stderr; stdout carries only the trust document.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Any, Dict, List, Optional

# Context variable for run ID tracking
run_id_var: ContextVar[str] = ContextVar('run_id', default='')


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    One JSON object per line, suitable for log aggregation.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": time.strftime('%Y-%m-%dT%H:%M:%SZ', time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        run_id = run_id_var.get()
        if run_id:
            log_data["run_id"] = run_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_fields'):
            log_data.update(record.extra_fields)

        return json.dumps(log_data)


class AuditLogger:
    """
    Specialized logger for trust-pipeline audit events.

    One method per event type, so every decision the pipeline makes
    leaves a machine-readable trace.
    """

    def __init__(self, name: str = "genesistrust.audit"):
        self._logger = logging.getLogger(name)

    def _log(self, level: int, event_type: str, **kwargs) -> None:
        if not self._logger.isEnabledFor(level):
            return
        extra = {
            "event_type": event_type,
            "run_id": run_id_var.get(),
            **kwargs
        }

        record = self._logger.makeRecord(
            self._logger.name,
            level,
            "",
            0,
            f"{event_type}: {kwargs.get('message', '')}",
            (),
            None
        )
        record.extra_fields = extra
        self._logger.handle(record)

    def run_started(self, commit_count: int, whitelist_size: int, workers: int) -> None:
        self._log(
            logging.INFO,
            "RUN_STARTED",
            commit_count=commit_count,
            whitelist_size=whitelist_size,
            workers=workers,
            message=f"Verifying {commit_count} commits"
        )

    def commit_whitelisted(self, commit_hash: str) -> None:
        self._log(
            logging.INFO,
            "COMMIT_WHITELISTED",
            commit=commit_hash,
            message=f"{commit_hash} trusted by whitelist"
        )

    def commit_verified(self, commit_hash: str, key_id: str) -> None:
        self._log(
            logging.INFO,
            "COMMIT_VERIFIED",
            commit=commit_hash,
            key_id=key_id,
            message=f"{commit_hash} signed by {key_id}"
        )

    def commit_rejected(self, commit_hash: str, kind: str, reason: Optional[str] = None) -> None:
        self._log(
            logging.ERROR,
            "COMMIT_REJECTED",
            commit=commit_hash,
            kind=kind,
            reason=reason,
            message=f"{commit_hash} rejected: {kind}"
        )

    def key_exported(self, key_id: str) -> None:
        self._log(
            logging.INFO,
            "KEY_EXPORTED",
            key_id=key_id,
            message=f"Exported key {key_id}"
        )

    def document_built(self, commit_count: int, key_ids: List[str], digest: str) -> None:
        self._log(
            logging.INFO,
            "DOCUMENT_BUILT",
            commit_count=commit_count,
            key_ids=key_ids,
            digest=digest,
            message=f"Trust document {digest}"
        )

    def run_aborted(self, error: Dict[str, Any]) -> None:
        self._log(
            logging.ERROR,
            "RUN_ABORTED",
            **error,
            message=f"Run aborted: {error.get('kind')}"
        )


def configure_logging(
    level: str = "WARNING",
    json_format: bool = True,
    log_file: Optional[str] = None
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatting
        log_file: Optional file path for log output
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if json_format:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def set_run_id(run_id: Optional[str] = None) -> str:
    """
    Set the run ID for the current context.

    Returns:
        The run ID that was set
    """
    if run_id is None:
        run_id = str(uuid.uuid4())
    run_id_var.set(run_id)
    return run_id


def get_run_id() -> str:
    return run_id_var.get()


# Global audit logger instance
audit_log = AuditLogger()
