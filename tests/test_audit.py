"""Unit tests for the provisioning audit trail."""

import json

import pytest

from scripts import audit


def test_log_event_creates_file(temp_audit_dir):
    """Logging creates the audit file with owner-only permissions."""
    _, audit_file = temp_audit_dir

    assert not audit_file.exists()

    audit.log_event("user_create", "user-1", operator="admin", details={"role_id": 2})

    assert audit_file.exists()
    assert audit_file.stat().st_mode & 0o777 == 0o600


def test_log_event_creates_valid_json(temp_audit_dir):
    _, audit_file = temp_audit_dir

    audit.log_event(
        "user_update",
        "user-1",
        operator="admin-7",
        details={"role_id": 3, "previous_role_id": 2},
    )

    event = json.loads(audit_file.read_text().splitlines()[0])

    assert event["event_type"] == "user_update"
    assert event["subject"] == "user-1"
    assert event["operator"] == "admin-7"
    assert event["success"] is True
    assert event["details"] == {"role_id": 3, "previous_role_id": 2}
    assert "timestamp" in event
    assert "signature" in event


def test_log_multiple_events(temp_audit_dir):
    _, audit_file = temp_audit_dir

    for event_type, subject in [
        ("user_register", "user-1"),
        ("user_delete", "user-1"),
        ("user_bulk_delete", "3,4"),
    ]:
        audit.log_event(event_type, subject)

    parsed = [json.loads(line) for line in audit_file.read_text().splitlines()]
    assert [e["event_type"] for e in parsed] == ["user_register", "user_delete", "user_bulk_delete"]
    assert parsed[2]["subject"] == "3,4"


def test_verify_audit_log_with_valid_signatures(temp_audit_dir):
    for i in range(5):
        audit.log_event("user_create", f"user-{i}", operator="test")

    assert audit.verify_audit_log() == (5, 5)


def test_verify_audit_log_detects_tampering(temp_audit_dir):
    """Changing a signed field invalidates the event."""
    _, audit_file = temp_audit_dir

    audit.log_event("user_delete", "user-1", operator="admin")

    event = json.loads(audit_file.read_text().splitlines()[0])
    event["subject"] = "user-2"
    audit_file.write_text(json.dumps(event) + "\n")

    assert audit.verify_audit_log() == (1, 0)


def test_verify_audit_log_without_file(temp_audit_dir):
    assert audit.verify_audit_log() == (0, 0)


def test_log_event_without_signing_key(temp_audit_dir, monkeypatch):
    monkeypatch.setenv("AUDIT_LOG_SIGNING_KEY", "")
    monkeypatch.setenv("AUDIT_LOG_SIGNING_KEY_DEMO", "")
    _, audit_file = temp_audit_dir

    audit.log_event("user_register", "user-1", operator="public")

    event = json.loads(audit_file.read_text().splitlines()[0])
    assert "signature" not in event


def test_log_failed_operation(temp_audit_dir):
    _, audit_file = temp_audit_dir

    audit.log_event(
        "user_create",
        "a@x.com",
        details={"step": "create_identity", "error": "gotrue down"},
        success=False,
    )

    event = json.loads(audit_file.read_text().splitlines()[0])
    assert event["success"] is False
    assert event["details"]["step"] == "create_identity"


def test_safe_log_event_swallows_write_errors(monkeypatch):
    def boom(*args, **kwargs):
        raise OSError("disk full")

    monkeypatch.setattr(audit, "log_event", boom)

    assert audit.safe_log_event("user_delete", "user-1") is False


def test_safe_log_event_reports_success(temp_audit_dir):
    assert audit.safe_log_event("user_delete", "user-1") is True


def test_audit_directory_permissions(temp_audit_dir):
    audit_dir, _ = temp_audit_dir

    audit.log_event("user_create", "user-1")

    assert audit_dir.stat().st_mode & 0o777 == 0o700


@pytest.mark.parametrize("operator", ["admin-uuid", "public", "cli"])
def test_operator_is_recorded(temp_audit_dir, operator):
    _, audit_file = temp_audit_dir
    audit.log_event("user_create", "user-1", operator=operator)
    assert json.loads(audit_file.read_text())["operator"] == operator


def test_recent_events_filters_and_limits(temp_audit_dir):
    for i in range(3):
        audit.log_event("user_create", f"user-{i}")
    audit.log_event("user_delete", "user-0")

    assert [e["subject"] for e in audit.recent_events(limit=2)] == ["user-2", "user-0"]
    assert [e["subject"] for e in audit.recent_events(event_type="user_create")] == ["user-0", "user-1", "user-2"]


def test_unreadable_lines_count_but_never_verify(temp_audit_dir):
    _, audit_file = temp_audit_dir
    audit.log_event("user_create", "user-1")
    with audit_file.open("a") as f:
        f.write("not json\n")

    assert audit.verify_audit_log() == (2, 1)
    assert len(audit.recent_events()) == 1
