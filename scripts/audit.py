"""Signed audit trail for provisioning operations.

Each create / update / delete / bulk delete / register call appends one JSON
line to ``AUDIT_LOG_DIR/provisioning-events.jsonl``. Lines carry an
HMAC-SHA256 signature over their canonical form so edits are detectable.
"""

from __future__ import annotations
import datetime
import hashlib
import hmac
import json
import logging
import os
from pathlib import Path
from typing import Any, Iterator, Literal, Optional

logger = logging.getLogger(__name__)

AUDIT_LOG_DIR = Path(os.environ.get("AUDIT_LOG_DIR", ".runtime/audit"))
AUDIT_LOG_FILE = AUDIT_LOG_DIR / "provisioning-events.jsonl"

DEMO_SIGNING_KEY = "demo-audit-signing-key-change-in-production"

EventType = Literal[
    "user_create", "user_update", "user_delete",
    "user_bulk_delete", "user_register",
]


def _get_signing_key() -> bytes:
    """Signing key from the environment, looked up per event so a rotated key applies."""
    key = os.environ.get("AUDIT_LOG_SIGNING_KEY", "").strip()
    if not key:
        key = os.environ.get("AUDIT_LOG_SIGNING_KEY_DEMO", DEMO_SIGNING_KEY)
    return key.encode("utf-8")


def _canonical(event: dict[str, Any]) -> bytes:
    return json.dumps(event, sort_keys=True, separators=(",", ":")).encode("utf-8")


def _sign_event(event: dict[str, Any]) -> str:
    signing_key = _get_signing_key()
    if not signing_key:
        return ""
    return hmac.new(signing_key, _canonical(event), hashlib.sha256).hexdigest()


def log_event(
    event_type: EventType,
    subject: str,
    *,
    operator: str = "system",
    details: dict[str, Any] | None = None,
    success: bool = True,
) -> None:
    """Append a provisioning event to the audit trail.

    Args:
        event_type: Provisioning operation
        subject: User id, or the email while no id exists yet (role ids for bulk deletes)
        operator: Admin user id, "public" for self-registration, "cli" by default from scripts
        details: Step name, provider error, counts
        success: False when the operation failed
    """
    AUDIT_LOG_DIR.mkdir(parents=True, exist_ok=True)
    AUDIT_LOG_DIR.chmod(0o700)

    event = {
        "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        "event_type": event_type,
        "subject": subject,
        "operator": operator,
        "success": success,
        "details": details or {},
    }
    signature = _sign_event(event)
    if signature:
        event["signature"] = signature

    with AUDIT_LOG_FILE.open("a", encoding="utf-8") as f:
        f.write(json.dumps(event, ensure_ascii=False) + "\n")
    AUDIT_LOG_FILE.chmod(0o600)


def safe_log_event(
    event_type: EventType,
    subject: str,
    *,
    operator: str = "system",
    details: dict[str, Any] | None = None,
    success: bool = True,
) -> bool:
    """Log an event, never raising.

    Remote state has already changed when this runs, so a write failure is
    only logged.

    Returns:
        True if the event was written
    """
    try:
        log_event(event_type, subject, operator=operator, details=details, success=success)
        return True
    except Exception as e:
        logger.warning("Failed to log %s event for %s: %s", event_type, subject, e)
        return False


def iter_events() -> Iterator[Optional[dict[str, Any]]]:
    """Yield each non-blank line as a dict, or None when it is not valid JSON."""
    if not AUDIT_LOG_FILE.exists():
        return
    with AUDIT_LOG_FILE.open("r", encoding="utf-8") as f:
        for line in f:
            if not line.strip():
                continue
            try:
                event = json.loads(line)
            except json.JSONDecodeError:
                yield None
                continue
            yield event if isinstance(event, dict) else None


def recent_events(limit: int = 20, event_type: Optional[str] = None) -> list[dict[str, Any]]:
    """Last ``limit`` readable events, oldest first, optionally of one type."""
    events = [
        e for e in iter_events()
        if e is not None and (event_type is None or e.get("event_type") == event_type)
    ]
    return events[-limit:] if limit > 0 else events


def verify_audit_log() -> tuple[int, int]:
    """Re-check every signature.

    Returns:
        (total_events, valid_signatures); unreadable or unsigned lines count
        towards the total only
    """
    total = 0
    valid = 0
    for event in iter_events():
        total += 1
        if event is None:
            continue
        stored_sig = event.pop("signature", "")
        if stored_sig and hmac.compare_digest(stored_sig, _sign_event(event)):
            valid += 1
    return total, valid


if __name__ == "__main__":
    import sys
    total, valid = verify_audit_log()
    print(f"Audit log: {valid}/{total} events with valid signatures")
    sys.exit(0 if total == valid else 1)
