"""Unit tests for procureflow/services/audit_service.py"""

from structlog.testing import capture_logs

from procureflow.services.audit_service import _compute_changed_fields, emit_audit_event


def test_changed_fields_lists_differences_sorted():
    before = {"status": "PENDING", "step": 1, "notes": None}
    after = {"status": "APPROVED", "step": 1, "decided_at": "2026-01-01"}
    assert _compute_changed_fields(before, after) == ["decided_at", "status"]


def test_changed_fields_treats_missing_key_as_none():
    assert _compute_changed_fields({"notes": None}, {"status": "APPROVED"}) == ["status"]
    assert _compute_changed_fields({"notes": None}, {"notes": "ok"}) == ["notes"]


def test_changed_fields_none_without_both_states():
    assert _compute_changed_fields(None, {"status": "SUBMITTED"}) is None
    assert _compute_changed_fields({"a": 1}, {"a": 1}) is None


def test_emit_audit_event_logs_structured_record():
    with capture_logs() as logs:
        emit_audit_event(
            action="APPROVAL_APPROVED",
            entity_type="PR",
            entity_id="pr-1",
            actor_id="user-1",
            before_state={"status": "PENDING"},
            after_state={"status": "APPROVED"},
        )

    [event] = logs
    assert event["event"] == "audit_event"
    assert event["action"] == "APPROVAL_APPROVED"
    assert event["changed_fields"] == ["status"]
    assert event["actor_email"] is None
