from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime

from portal.domain.models import (
    CommitteeDecision,
    Decision,
    EntityType,
    FundingStatus,
    LifecycleStatus,
    ProjectStage,
    ProjectStatus,
    WorkflowAction,
    WorkflowState,
)

DEFAULT_LOCK_REASON = "Submission is locked in the current workflow stage."
CHANGE_REVIEW_LOCK_REASON = "Project is in change review."


LIFECYCLE_STAGE_STATUS: dict[LifecycleStatus, tuple[ProjectStage, ProjectStatus]] = {
    LifecycleStatus.DRAFT: (ProjectStage.PROPOSAL, ProjectStatus.DRAFT),
    LifecycleStatus.AT_SPONSOR_REVIEW: (ProjectStage.PROPOSAL, ProjectStatus.SPONSOR_REVIEW),
    LifecycleStatus.AT_PGO_FGO_REVIEW: (ProjectStage.PROPOSAL, ProjectStatus.PGO_FGO_REVIEW),
    LifecycleStatus.AT_SPO_REVIEW: (ProjectStage.PROPOSAL, ProjectStatus.SPO_REVIEW),
    LifecycleStatus.SPO_DECISION_DEFERRED: (ProjectStage.PROPOSAL, ProjectStatus.SPO_REVIEW),
    LifecycleStatus.SPO_DECISION_REJECTED: (ProjectStage.PROPOSAL, ProjectStatus.REJECTED),
    LifecycleStatus.SPO_DECISION_APPROVED: (ProjectStage.FUNDING, ProjectStatus.DRAFT),
    LifecycleStatus.FR_DRAFT: (ProjectStage.FUNDING, ProjectStatus.DRAFT),
    LifecycleStatus.FR_AT_SPONSOR_APPROVALS: (ProjectStage.FUNDING, ProjectStatus.SPONSOR_REVIEW),
    LifecycleStatus.FR_AT_PGO_FGO_REVIEW: (ProjectStage.FUNDING, ProjectStatus.PGO_FGO_REVIEW),
    LifecycleStatus.FR_APPROVED: (ProjectStage.FUNDING, ProjectStatus.APPROVED),
    LifecycleStatus.FR_REJECTED: (ProjectStage.FUNDING, ProjectStatus.REJECTED),
    LifecycleStatus.CLOSED: (ProjectStage.LIVE, ProjectStatus.ACTIVE),
    LifecycleStatus.ARCHIVED: (ProjectStage.LIVE, ProjectStatus.CHANGE_REVIEW),
}

_PROPOSAL_LIFECYCLE_BY_STATUS: dict[ProjectStatus, LifecycleStatus] = {
    ProjectStatus.DRAFT: LifecycleStatus.DRAFT,
    ProjectStatus.SPONSOR_REVIEW: LifecycleStatus.AT_SPONSOR_REVIEW,
    ProjectStatus.PGO_FGO_REVIEW: LifecycleStatus.AT_PGO_FGO_REVIEW,
    ProjectStatus.SPO_REVIEW: LifecycleStatus.AT_SPO_REVIEW,
    ProjectStatus.REJECTED: LifecycleStatus.SPO_DECISION_REJECTED,
}

_FUNDING_LIFECYCLE_BY_STATUS: dict[ProjectStatus, LifecycleStatus] = {
    ProjectStatus.SPONSOR_REVIEW: LifecycleStatus.FR_AT_SPONSOR_APPROVALS,
    ProjectStatus.PGO_FGO_REVIEW: LifecycleStatus.FR_AT_PGO_FGO_REVIEW,
    ProjectStatus.APPROVED: LifecycleStatus.FR_APPROVED,
    ProjectStatus.REJECTED: LifecycleStatus.FR_REJECTED,
}

EDITABLE_STATES: frozenset[LifecycleStatus] = frozenset(
    {
        LifecycleStatus.DRAFT,
        LifecycleStatus.FR_DRAFT,
        LifecycleStatus.SPO_DECISION_APPROVED,
    }
)

# States the reconciliation engine inspects; every other state is a no-op.
RECONCILABLE_STATES: frozenset[LifecycleStatus] = frozenset(
    {
        LifecycleStatus.AT_SPONSOR_REVIEW,
        LifecycleStatus.AT_PGO_FGO_REVIEW,
        LifecycleStatus.FR_AT_SPONSOR_APPROVALS,
        LifecycleStatus.FR_AT_PGO_FGO_REVIEW,
    }
)

# Edges produced by reconciliation. Each call follows at most one of them.
RECONCILIATION_EDGES: dict[LifecycleStatus, frozenset[LifecycleStatus]] = {
    LifecycleStatus.AT_SPONSOR_REVIEW: frozenset(
        {
            LifecycleStatus.DRAFT,
            LifecycleStatus.SPO_DECISION_REJECTED,
            LifecycleStatus.AT_PGO_FGO_REVIEW,
        }
    ),
    LifecycleStatus.AT_PGO_FGO_REVIEW: frozenset({LifecycleStatus.AT_SPO_REVIEW}),
    LifecycleStatus.FR_AT_SPONSOR_APPROVALS: frozenset(
        {LifecycleStatus.FR_DRAFT, LifecycleStatus.FR_AT_PGO_FGO_REVIEW}
    ),
    LifecycleStatus.FR_AT_PGO_FGO_REVIEW: frozenset({LifecycleStatus.FR_DRAFT, LifecycleStatus.FR_APPROVED}),
}


@dataclass(frozen=True)
class ActionTransition:
    action: WorkflowAction
    source_states: frozenset[LifecycleStatus]
    target_state: LifecycleStatus
    opens_review_round: bool = False
    entity_type: EntityType | None = None
    reset_decisions: bool = False
    spo_decision: Decision | None = None
    funding_status: FundingStatus | None = None
    committee_decision: CommitteeDecision | None = None
    lock_reason: str | None = None
    supersede_reason: str | None = None


ACTION_TRANSITIONS: dict[WorkflowAction, ActionTransition] = {
    WorkflowAction.SEND_TO_SPONSOR: ActionTransition(
        action=WorkflowAction.SEND_TO_SPONSOR,
        source_states=frozenset({LifecycleStatus.DRAFT}),
        target_state=LifecycleStatus.AT_SPONSOR_REVIEW,
        opens_review_round=True,
        entity_type=EntityType.PROPOSAL,
        reset_decisions=True,
        funding_status=FundingStatus.NOT_REQUESTED,
        supersede_reason="Superseded by a new proposal sponsor review submission.",
    ),
    WorkflowAction.SUBMIT_FUNDING_REQUEST: ActionTransition(
        action=WorkflowAction.SUBMIT_FUNDING_REQUEST,
        source_states=frozenset({LifecycleStatus.FR_DRAFT, LifecycleStatus.SPO_DECISION_APPROVED}),
        target_state=LifecycleStatus.FR_AT_SPONSOR_APPROVALS,
        opens_review_round=True,
        entity_type=EntityType.FUNDING_REQUEST,
        reset_decisions=True,
        funding_status=FundingStatus.REQUESTED,
        supersede_reason="Superseded by a newly submitted funding request.",
    ),
    WorkflowAction.SPO_APPROVE: ActionTransition(
        action=WorkflowAction.SPO_APPROVE,
        source_states=frozenset({LifecycleStatus.AT_SPO_REVIEW, LifecycleStatus.SPO_DECISION_DEFERRED}),
        target_state=LifecycleStatus.FR_DRAFT,
        entity_type=EntityType.FUNDING_REQUEST,
        reset_decisions=True,
        spo_decision=Decision.APPROVED,
        funding_status=FundingStatus.REQUESTED,
        committee_decision=CommitteeDecision.APPROVED,
    ),
    WorkflowAction.SPO_REJECT: ActionTransition(
        action=WorkflowAction.SPO_REJECT,
        source_states=frozenset({LifecycleStatus.AT_SPO_REVIEW, LifecycleStatus.SPO_DECISION_DEFERRED}),
        target_state=LifecycleStatus.SPO_DECISION_REJECTED,
        spo_decision=Decision.REJECTED,
        committee_decision=CommitteeDecision.REJECTED,
    ),
    WorkflowAction.REJECT_FUNDING_REQUEST: ActionTransition(
        action=WorkflowAction.REJECT_FUNDING_REQUEST,
        source_states=frozenset({LifecycleStatus.FR_DRAFT, LifecycleStatus.SPO_DECISION_APPROVED}),
        target_state=LifecycleStatus.FR_REJECTED,
        funding_status=FundingStatus.NOT_REQUESTED,
    ),
    WorkflowAction.MARK_LIVE: ActionTransition(
        action=WorkflowAction.MARK_LIVE,
        source_states=frozenset({LifecycleStatus.FR_APPROVED}),
        target_state=LifecycleStatus.CLOSED,
        funding_status=FundingStatus.LIVE,
    ),
    WorkflowAction.RAISE_CHANGE_REQUEST: ActionTransition(
        action=WorkflowAction.RAISE_CHANGE_REQUEST,
        source_states=frozenset({LifecycleStatus.CLOSED}),
        target_state=LifecycleStatus.ARCHIVED,
        lock_reason=CHANGE_REVIEW_LOCK_REASON,
    ),
}

STAGE_LABELS: dict[ProjectStage, str] = {
    ProjectStage.PROPOSAL: "Proposal",
    ProjectStage.FUNDING: "Funding",
    ProjectStage.LIVE: "Live",
}

STATUS_LABELS: dict[ProjectStatus, str] = {
    ProjectStatus.DRAFT: "Draft",
    ProjectStatus.SPONSOR_REVIEW: "Sponsor Review",
    ProjectStatus.PGO_FGO_REVIEW: "PGO/FGO Review",
    ProjectStatus.SPO_REVIEW: "SPO Review",
    ProjectStatus.REJECTED: "Rejected",
    ProjectStatus.APPROVED: "Approved",
    ProjectStatus.ACTIVE: "Active",
    ProjectStatus.CHANGE_REVIEW: "Change Review",
}


def stage_status_for(lifecycle_status: LifecycleStatus) -> tuple[ProjectStage, ProjectStatus]:
    return LIFECYCLE_STAGE_STATUS[lifecycle_status]


def lifecycle_for_stage_status(stage: ProjectStage, status: ProjectStatus) -> LifecycleStatus:
    if stage == ProjectStage.PROPOSAL:
        return _PROPOSAL_LIFECYCLE_BY_STATUS.get(status, LifecycleStatus.AT_SPO_REVIEW)
    if stage == ProjectStage.FUNDING:
        return _FUNDING_LIFECYCLE_BY_STATUS.get(status, LifecycleStatus.FR_DRAFT)
    if status == ProjectStatus.CHANGE_REVIEW:
        return LifecycleStatus.ARCHIVED
    return LifecycleStatus.CLOSED


def is_funding_track(lifecycle_status: LifecycleStatus) -> bool:
    return stage_status_for(lifecycle_status)[0] == ProjectStage.FUNDING


def entity_type_for(lifecycle_status: LifecycleStatus) -> EntityType:
    stage, _ = stage_status_for(lifecycle_status)
    if stage == ProjectStage.PROPOSAL:
        return EntityType.PROPOSAL
    return EntityType.FUNDING_REQUEST


def allowed_actions(lifecycle_status: LifecycleStatus) -> tuple[WorkflowAction, ...]:
    return tuple(
        transition.action
        for transition in ACTION_TRANSITIONS.values()
        if lifecycle_status in transition.source_states
    )


def is_editable(lifecycle_status: LifecycleStatus) -> bool:
    return lifecycle_status in EDITABLE_STATES


def lifecycle_label(lifecycle_status: LifecycleStatus) -> str:
    stage, status = stage_status_for(lifecycle_status)
    return f"{STAGE_LABELS[stage]} - {STATUS_LABELS[status]}"


def apply_lock(workflow: WorkflowState, *, now: datetime, lock_reason: str | None = None) -> WorkflowState:
    """Stamp or clear lock fields according to the editable table."""
    if is_editable(workflow.lifecycle_status):
        return replace(workflow, locked_at=None, lock_reason=None)
    return replace(
        workflow,
        locked_at=workflow.locked_at or now,
        lock_reason=lock_reason or workflow.lock_reason or DEFAULT_LOCK_REASON,
    )
