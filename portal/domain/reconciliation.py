from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime

from portal.domain.approval_stages import all_stages_approved, any_stage_in
from portal.domain.audit import record_transition
from portal.domain.lifecycle import apply_lock
from portal.domain.models import (
    Actor,
    ApprovalStageStatus,
    ApprovalSummary,
    CommitteeDecision,
    Decision,
    FundingStatus,
    LifecycleStatus,
    Submission,
    WorkflowState,
)

RECONCILED_ACTION = "WORKFLOW_RECONCILED"


@dataclass(frozen=True)
class GatingSignals:
    finance_done: bool = False
    governance_done: bool = False

    @property
    def both_done(self) -> bool:
        return self.finance_done and self.governance_done


@dataclass(frozen=True)
class ReconciliationStep:
    source: LifecycleStatus
    target: LifecycleStatus
    workflow: WorkflowState
    committee_decision: CommitteeDecision | None = None


def plan_reconciliation(
    submission: Submission,
    *,
    summary: ApprovalSummary,
    gating: GatingSignals,
) -> ReconciliationStep | None:
    """Pick the single next transition, or None when no condition is met."""
    workflow = submission.workflow
    lifecycle = workflow.lifecycle_status
    stages = submission.approval_stages

    if lifecycle == LifecycleStatus.AT_SPONSOR_REVIEW:
        if summary.any_need_more_info:
            return _step(
                workflow,
                LifecycleStatus.DRAFT,
                sponsor_decision=Decision.NEED_MORE_INFO,
            )
        if summary.any_rejected:
            return _step(
                workflow,
                LifecycleStatus.SPO_DECISION_REJECTED,
                committee_decision=CommitteeDecision.REJECTED,
                sponsor_decision=Decision.REJECTED,
            )
        if summary.all_required_approved:
            return _step(
                workflow,
                LifecycleStatus.AT_PGO_FGO_REVIEW,
                sponsor_decision=Decision.APPROVED,
                pgo_decision=Decision.PENDING,
                finance_decision=Decision.PENDING,
            )
        return None

    if lifecycle == LifecycleStatus.AT_PGO_FGO_REVIEW:
        if gating.both_done:
            return _step(
                workflow,
                LifecycleStatus.AT_SPO_REVIEW,
                pgo_decision=Decision.APPROVED,
                finance_decision=Decision.APPROVED,
                spo_decision=Decision.PENDING,
            )
        return None

    if lifecycle == LifecycleStatus.FR_AT_SPONSOR_APPROVALS:
        if summary.any_need_more_info or any_stage_in(stages, ApprovalStageStatus.NEED_MORE_INFO):
            return _step(workflow, LifecycleStatus.FR_DRAFT, sponsor_decision=Decision.NEED_MORE_INFO)
        if summary.any_rejected or any_stage_in(stages, ApprovalStageStatus.REJECTED):
            return _step(workflow, LifecycleStatus.FR_DRAFT, sponsor_decision=Decision.REJECTED)
        if summary.all_required_approved or all_stages_approved(stages):
            return _step(
                workflow,
                LifecycleStatus.FR_AT_PGO_FGO_REVIEW,
                sponsor_decision=Decision.APPROVED,
                pgo_decision=Decision.PENDING,
                finance_decision=Decision.PENDING,
            )
        return None

    if lifecycle == LifecycleStatus.FR_AT_PGO_FGO_REVIEW:
        if summary.any_rejected or any_stage_in(stages, ApprovalStageStatus.REJECTED):
            return _step(
                workflow,
                LifecycleStatus.FR_DRAFT,
                pgo_decision=Decision.REJECTED,
                finance_decision=Decision.REJECTED,
            )
        if gating.both_done:
            return _step(
                workflow,
                LifecycleStatus.FR_APPROVED,
                funding_status=FundingStatus.FUNDED,
                pgo_decision=Decision.APPROVED,
                finance_decision=Decision.APPROVED,
            )
        return None

    return None


def apply_reconciliation(
    submission: Submission,
    step: ReconciliationStep | None,
    *,
    now: datetime,
    actor: Actor | None = None,
) -> Submission:
    if step is None:
        return submission
    workflow = apply_lock(replace(step.workflow, last_saved_at=now), now=now)
    updated = replace(
        submission,
        workflow=workflow,
        committee_decision=step.committee_decision or submission.committee_decision,
        updated_at=now,
    )
    return record_transition(
        updated,
        action=RECONCILED_ACTION,
        note=f"Workflow reconciled from {step.source} to {step.target}.",
        now=now,
        actor=actor,
    )


def reconcile_submission(
    submission: Submission,
    *,
    summary: ApprovalSummary,
    gating: GatingSignals,
    now: datetime,
    actor: Actor | None = None,
) -> Submission:
    step = plan_reconciliation(submission, summary=summary, gating=gating)
    return apply_reconciliation(submission, step, now=now, actor=actor)


def _step(
    workflow: WorkflowState,
    target: LifecycleStatus,
    *,
    committee_decision: CommitteeDecision | None = None,
    **changes: object,
) -> ReconciliationStep:
    return ReconciliationStep(
        source=workflow.lifecycle_status,
        target=target,
        workflow=replace(workflow, lifecycle_status=target, **changes),  # type: ignore[arg-type]
        committee_decision=committee_decision,
    )
