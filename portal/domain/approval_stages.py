from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime

from portal.domain.errors import StageNotPendingError, UnknownStageError
from portal.domain.ids import approval_stage_id
from portal.domain.models import (
    ActingAs,
    ApprovalStageCode,
    ApprovalStageRecord,
    ApprovalStageStatus,
    Decision,
    SponsorContacts,
    WorkflowState,
)

STAGE_ORDER: tuple[ApprovalStageCode, ...] = (
    ApprovalStageCode.BUSINESS,
    ApprovalStageCode.TECHNOLOGY,
    ApprovalStageCode.FINANCE,
    ApprovalStageCode.BENEFITS,
)

_STATUS_FROM_SPONSOR_DECISION: dict[Decision, ApprovalStageStatus] = {
    Decision.APPROVED: ApprovalStageStatus.APPROVED,
    Decision.REJECTED: ApprovalStageStatus.REJECTED,
}


def is_stage_applicable(stage: ApprovalStageCode, contacts: SponsorContacts) -> bool:
    if stage == ApprovalStageCode.BUSINESS:
        return contacts.business_sponsor is not None or contacts.business_delegate is not None
    if stage == ApprovalStageCode.TECHNOLOGY:
        return contacts.technology_sponsor is not None
    if stage == ApprovalStageCode.FINANCE:
        return contacts.finance_sponsor is not None
    return contacts.benefits_sponsor is not None


def compute_applicable_stages(
    *,
    submission_id: str,
    sponsor_contacts: SponsorContacts,
    workflow: WorkflowState,
    existing: Iterable[ApprovalStageRecord] = (),
) -> tuple[ApprovalStageRecord, ...]:
    """Derive ordered stage records from the populated sponsor slots.

    Existing records are kept by stage code. When there is no stage history
    at all, the first applicable stage inherits the legacy sponsor decision.
    """
    existing_by_stage = {record.stage: record for record in existing}
    has_history = bool(existing_by_stage)
    stages: list[ApprovalStageRecord] = []
    for stage in STAGE_ORDER:
        if not is_stage_applicable(stage, sponsor_contacts):
            continue
        record = existing_by_stage.get(stage)
        if record is None:
            status = ApprovalStageStatus.PENDING
            if not has_history and not stages:
                status = _STATUS_FROM_SPONSOR_DECISION.get(workflow.sponsor_decision, ApprovalStageStatus.PENDING)
            record = ApprovalStageRecord(
                id=approval_stage_id(submission_id=submission_id, stage=stage),
                stage=stage,
                status=status,
            )
        stages.append(record)
    return tuple(stages)


def reset_stages(stages: Iterable[ApprovalStageRecord]) -> tuple[ApprovalStageRecord, ...]:
    return tuple(
        replace(
            record,
            status=ApprovalStageStatus.PENDING,
            decided_by_user_id=None,
            acting_as=None,
            comment=None,
            decided_at=None,
        )
        for record in stages
    )


def find_stage(stages: Iterable[ApprovalStageRecord], stage: ApprovalStageCode | str) -> ApprovalStageRecord | None:
    for record in stages:
        if record.stage == stage:
            return record
    return None


def record_stage_decision(
    stages: tuple[ApprovalStageRecord, ...],
    *,
    stage: ApprovalStageCode | str,
    status: ApprovalStageStatus,
    decided_at: datetime,
    decided_by_user_id: str | None = None,
    acting_as: ActingAs | None = None,
    comment: str | None = None,
) -> tuple[ApprovalStageRecord, ...]:
    current = find_stage(stages, stage)
    if current is None:
        raise UnknownStageError(str(stage))
    if current.status != ApprovalStageStatus.PENDING:
        raise StageNotPendingError(stage=current.stage, status=current.status)

    decided = replace(
        current,
        status=status,
        decided_by_user_id=decided_by_user_id,
        acting_as=acting_as,
        comment=comment,
        decided_at=decided_at,
    )
    return tuple(decided if record.stage == current.stage else record for record in stages)


def all_stages_approved(stages: Iterable[ApprovalStageRecord]) -> bool:
    records = list(stages)
    return bool(records) and all(record.status == ApprovalStageStatus.APPROVED for record in records)


def any_stage_in(stages: Iterable[ApprovalStageRecord], status: ApprovalStageStatus) -> bool:
    return any(record.status == status for record in stages)
