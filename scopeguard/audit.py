# ScopeGuard - Audit trail of access decisions (QueueHandler pipeline)
import json
import logging
import logging.handlers
import queue
from collections import deque
from datetime import datetime, timezone
from pathlib import Path

from .models import AccessDecision, Requester

# Most recent entries kept in memory; older ones live only in the JSONL file
AUDIT_MEMORY_LIMIT = 1000

_audit_memory: deque = deque(maxlen=AUDIT_MEMORY_LIMIT)
_audit_queue: queue.Queue = queue.Queue(-1)
_audit_logger = logging.getLogger("scopeguard.audit")
_audit_logger.setLevel(logging.INFO)
_audit_logger.propagate = False
_audit_logger.addHandler(logging.handlers.QueueHandler(_audit_queue))

_listener: logging.handlers.QueueListener | None = None

logger = logging.getLogger(__name__)


class AuditFileHandler(logging.Handler):
    """Append one JSON line per decision."""

    def __init__(self, filepath: Path):
        super().__init__()
        self.filepath = Path(filepath)

    def emit(self, record):
        entry = getattr(record, "audit_entry", None)
        if not entry:
            return
        try:
            with open(self.filepath, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry, default=str) + "\n")
        except OSError:
            self.handleError(record)


class AuditMemoryHandler(logging.Handler):
    def emit(self, record):
        entry = getattr(record, "audit_entry", None)
        if entry:
            _audit_memory.append(entry)


def start_audit_logger(filepath: Path) -> None:
    """Start draining the audit queue into the JSONL file and the in-memory log."""
    global _listener
    if _listener is not None:
        return
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    _listener = logging.handlers.QueueListener(
        _audit_queue,
        AuditFileHandler(filepath),
        AuditMemoryHandler(),
        respect_handler_level=True,
    )
    _listener.start()
    logger.info("Audit logger ready (QueueHandler -> %s)", filepath)


def shutdown_audit_logger() -> None:
    """Flush pending entries and stop the listener."""
    global _listener
    if _listener is None:
        return
    _listener.stop()
    _listener = None


def log_decision(
    trace_id: str,
    requester: Requester,
    decision: AccessDecision,
    resource_id: str | None = None,
) -> dict:
    entry = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "trace_id": trace_id,
        "user_id": requester.id,
        "role": requester.role.value,
        "action": decision.action.value,
        "resource_id": resource_id,
        "allowed": decision.allowed,
        "reason": decision.reason.value,
    }
    if _listener is None:
        # Nothing drains the queue while the listener is stopped
        return entry
    record = logging.LogRecord(
        name="scopeguard.audit", level=logging.INFO, pathname="", lineno=0,
        msg="audit", args=(), exc_info=None,
    )
    record.audit_entry = entry
    _audit_logger.handle(record)
    return entry


def get_audit_log(limit: int = 50) -> list[dict]:
    """Most recent audit entries (no evidence contents are ever logged)."""
    return list(_audit_memory)[-limit:]


def clear_audit_log() -> None:
    _audit_memory.clear()
