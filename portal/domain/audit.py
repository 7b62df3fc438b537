from __future__ import annotations

from dataclasses import replace
from datetime import datetime

from portal.domain.ids import new_audit_entry_id
from portal.domain.lifecycle import stage_status_for
from portal.domain.models import SYSTEM_ACTOR, Actor, AuditEntry, Submission


def build_audit_entry(
    submission: Submission,
    *,
    action: str,
    note: str,
    created_at: datetime,
    actor: Actor | None = None,
    entry_id: str | None = None,
) -> AuditEntry:
    """Snapshot the post-transition stage, status and workflow of ``submission``."""
    stage, status = stage_status_for(submission.workflow.lifecycle_status)
    actor = actor or SYSTEM_ACTOR
    return AuditEntry(
        id=entry_id or new_audit_entry_id(),
        action=action,
        stage=stage,
        status=status,
        workflow=submission.workflow,
        note=note,
        created_at=created_at,
        actor_name=actor.name or SYSTEM_ACTOR.name,
        actor_email=actor.email or SYSTEM_ACTOR.email,
    )


def append_audit_entry(submission: Submission, entry: AuditEntry | None) -> Submission:
    if entry is None:
        return submission
    return replace(submission, audit_trail=(*submission.audit_trail, entry))


def record_transition(
    submission: Submission,
    *,
    action: str,
    note: str,
    now: datetime,
    actor: Actor | None = None,
) -> Submission:
    entry = build_audit_entry(submission, action=action, note=note, created_at=now, actor=actor)
    return append_audit_entry(submission, entry)
