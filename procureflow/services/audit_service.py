"""
Audit sink: structured audit events for state changes.

Events are shipped as `audit_event` log records; routes schedule them with
BackgroundTasks so they fire only after the request transaction committed.
Never call this inside a transaction you still intend to roll back.
"""

from typing import Optional

import structlog

logger = structlog.get_logger("procureflow.audit")


def _compute_changed_fields(
    before: Optional[dict], after: Optional[dict]
) -> Optional[list[str]]:
    """Diff two state dicts and return list of changed field names."""
    if not before or not after:
        return None
    changed = []
    all_keys = set(before.keys()) | set(after.keys())
    for key in sorted(all_keys):
        if before.get(key) != after.get(key):
            changed.append(key)
    return changed or None


def emit_audit_event(
    action: str,
    entity_type: str,
    entity_id: str,
    actor_id: Optional[str],
    before_state: Optional[dict] = None,
    after_state: Optional[dict] = None,
    actor_email: Optional[str] = None,
) -> None:
    logger.info(
        "audit_event",
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        actor_id=str(actor_id) if actor_id else None,
        actor_email=actor_email,
        before_state=before_state,
        after_state=after_state,
        changed_fields=_compute_changed_fields(before_state, after_state),
    )
