"""Security event logging.

Emits structured JSON security events (enrollment, logins, locks, vault
integrity problems) on the ``credvault.audit`` logger, one JSON object
per record, suitable for shipping to a SIEM.

Events carry outcomes and entry ids only. Passwords, keys, verifiers,
nonces and ciphertext are never logged.
"""

import json
import logging
import os
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from threading import Lock
from typing import Optional

from credvault.config import AUDIT_LOG_BACKUP_COUNT, AUDIT_LOG_FILE, AUDIT_LOG_MAX_BYTES

AUDIT_LOGGER_NAME = "credvault.audit"

audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)

# Module-level state
_handler: Optional[RotatingFileHandler] = None
_handler_lock = Lock()


def configure_audit_log(
    filepath: Optional[str] = AUDIT_LOG_FILE,
    max_bytes: int = AUDIT_LOG_MAX_BYTES,
    backup_count: int = AUDIT_LOG_BACKUP_COUNT,
) -> Optional[RotatingFileHandler]:
    """Send security events to a rotating JSONL file.

    Replaces any handler installed by an earlier call. Passing None
    detaches the file handler.

    Returns:
        The installed handler, or None
    """
    global _handler
    with _handler_lock:
        if _handler is not None:
            audit_logger.removeHandler(_handler)
            _handler.close()
            _handler = None

        if not filepath:
            return None

        directory = os.path.dirname(os.path.abspath(filepath))
        os.makedirs(directory, mode=0o700, exist_ok=True)

        handler = RotatingFileHandler(
            filepath,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
        audit_logger.addHandler(handler)
        audit_logger.setLevel(logging.INFO)
        _handler = handler
        return handler


def ensure_audit_log() -> None:
    """Attach the file handler named by CREDVAULT_AUDIT_LOG, once."""
    if AUDIT_LOG_FILE and _handler is None:
        configure_audit_log(AUDIT_LOG_FILE)


def log_security_event(
    event_type: str,
    status: str,
    details: Optional[dict] = None,
    level: int = logging.INFO,
) -> None:
    """Log event in JSON format suitable for SIEM tools.

    Args:
        event_type: Type of security event (e.g. 'login_attempt', 'vault_open')
        status: Event status (e.g. 'SUCCESS', 'FAILURE')
        details: Optional additional event details (no secrets)
        level: Logging level for the record
    """
    event = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "event_type": event_type,
        "status": status,
        "source": "credvault",
    }
    if details:
        event["details"] = details

    audit_logger.log(level, json.dumps(event, sort_keys=True))


def parse_event(message: str) -> Optional[dict]:
    """Parse one audit log line back into an event dict."""
    try:
        event = json.loads(message)
    except json.JSONDecodeError:
        return None
    return event if isinstance(event, dict) else None


def read_events(filepath: str, limit: int = 100) -> list[dict]:
    """Read the most recent events from an audit log file.

    Args:
        filepath: Audit log written by configure_audit_log()
        limit: Maximum number of events to return
    """
    if not os.path.exists(filepath):
        return []

    events = []
    with open(filepath, "r", encoding="utf-8") as f:
        for line in f:
            event = parse_event(line)
            if event is not None:
                events.append(event)

    return events[-limit:]
