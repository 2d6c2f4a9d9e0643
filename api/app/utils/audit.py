"""Audit logging utility for moderation actions."""

from __future__ import annotations

from sqlalchemy.orm import Session

from .. import models


def log_moderation_action(
    db: Session,
    actor_id: int | None,
    action: str,
    target_type: str | None = None,
    target_id: int | str | None = None,
    reason_code: str | None = None,
    note: str | None = None,
) -> models.AuditLog:
    """
    Add a moderation action to the audit log.

    The entry joins the caller's transaction; it is persisted when the
    caller commits, together with the action it records.

    Args:
        db: Database session
        actor_id: ID of the user performing the action
        action: Action name (e.g., "ban_user", "approve_article", "mark_comment_spam")
        target_type: Type of target (e.g., "user", "article", "comment")
        target_id: ID of the target entity
        reason_code: Reason code for the action (e.g., "spam", "abuse", "other")
        note: Additional context or notes about the action

    Returns:
        The pending AuditLog entry
    """
    audit_entry = models.AuditLog(
        actor_id=actor_id,
        action=action,
        target_type=target_type,
        target_id=str(target_id) if target_id is not None else None,
        reason_code=reason_code,
        note=note,
    )
    db.add(audit_entry)
    return audit_entry
