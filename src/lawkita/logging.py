"""Logging for LawKita.

JSON lines in production, a compact text format during development.
Pipeline code logs through `get_context_logger` so run ids and sources
travel with every message, and through the event helpers below for the
records dashboards key on (`event` field).
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from .config import get_settings

# Attributes present on every LogRecord; anything else came in via `extra`
_RESERVED_ATTRS = set(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime"}

# Libraries that log every request at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "openai", "anthropic", "trafilatura", "sqlalchemy.engine")


class JSONFormatter(logging.Formatter):
    """One JSON object per record, including `extra` fields."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_data.update(
            (key, value)
            for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS and not key.startswith("_")
        )
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable lines, prefixed with the run id when there is one."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        run_id = getattr(record, "run_id", None)
        return f"[{str(run_id)[:8]}] {line}" if run_id else line


def setup_logging() -> None:
    """Install one stdout handler on the root logger."""
    settings = get_settings()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if settings.log_format == "json" else TextFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    root_logger.handlers = [handler]

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class LoggerAdapter(logging.LoggerAdapter):
    """Adds fixed context to every record; per-call `extra` wins on clashes."""

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs


def get_context_logger(name: str, **context: Any) -> LoggerAdapter:
    """Logger carrying context fields.

    Usage:
        log = get_context_logger(__name__, source="news", run_id=run_id)
        log.info("Fetched 12 documents")
    """
    return LoggerAdapter(get_logger(name), context)


# =========================
# Pipeline events
# =========================


def _log_event(
    logger_name: str, level: int, event: str, message: str, **fields: Any
) -> None:
    """Emit one record tagged with `event`; fields become JSON keys."""
    get_logger(logger_name).log(level, message, extra={"event": event, **fields})


def log_job_start(source: str, run_id: str, dry_run: bool) -> None:
    suffix = " (dry run)" if dry_run else ""
    _log_event(
        "lawkita.jobs", logging.INFO, "job_start", f"Starting {source} job{suffix}",
        source=source, run_id=run_id, dry_run=dry_run,
    )


def log_job_complete(
    source: str,
    run_id: str,
    records_processed: int,
    duration_ms: int,
) -> None:
    _log_event(
        "lawkita.jobs", logging.INFO, "job_complete",
        f"Finished {source} job: {records_processed} documents in {duration_ms}ms",
        source=source, run_id=run_id,
        records_processed=records_processed, duration_ms=duration_ms,
    )


def log_job_error(source: str, run_id: str, error: str) -> None:
    """A job-fatal error; per-document failures go through log_document_outcome."""
    _log_event(
        "lawkita.jobs", logging.ERROR, "job_error", f"{source} job failed: {error}",
        source=source, run_id=run_id, error=error,
    )


def log_document_outcome(
    run_id: str,
    document_id: str,
    stage: str,
    action: str,
    case_key: str | None = None,
) -> None:
    """Final outcome for one document.

    `stage` is the last stage the document reached and `action` is one of
    created, updated, skipped or failed.
    """
    level = logging.WARNING if action == "failed" else logging.DEBUG
    _log_event(
        "lawkita.pipeline", level, "document_outcome",
        f"{document_id}: {action} after {stage}",
        run_id=run_id, document_id=document_id, stage=stage,
        action=action, case_key=case_key,
    )


def log_resolution_event(
    strategy: str,
    source_name: str,
    matched_entity: str | None,
    confidence: float,
    is_match: bool,
) -> None:
    target = matched_entity if is_match else "unresolved"
    _log_event(
        "lawkita.resolution", logging.DEBUG, "entity_resolution",
        f"{source_name!r} -> {target} ({strategy}, {confidence:.2f})",
        strategy=strategy, source_name=source_name, matched_entity=matched_entity,
        confidence=confidence, is_match=is_match,
    )


def log_gate_decision(case_key: str, confidence: int, state: str) -> None:
    level = logging.INFO if state == "published" else logging.DEBUG
    _log_event(
        "lawkita.publication", level, "gate_decision",
        f"{case_key} at {confidence} -> {state}",
        case_key=case_key, confidence=confidence, state=state,
    )
