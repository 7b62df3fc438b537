from __future__ import annotations

from dataclasses import replace
from datetime import datetime

from portal.domain.approval_stages import compute_applicable_stages, reset_stages
from portal.domain.audit import record_transition
from portal.domain.errors import IllegalTransitionError, SponsorNotConfiguredError
from portal.domain.lifecycle import ACTION_TRANSITIONS, ActionTransition, allowed_actions, apply_lock, stage_status_for
from portal.domain.models import Actor, Decision, Submission, WorkflowAction, WorkflowState


def transition_for(submission: Submission, action: WorkflowAction) -> ActionTransition:
    lifecycle = submission.workflow.lifecycle_status
    transition = ACTION_TRANSITIONS[action]
    if lifecycle not in transition.source_states:
        raise IllegalTransitionError(
            action=action,
            lifecycle_status=lifecycle,
            allowed_actions=allowed_actions(lifecycle),
        )
    if action == WorkflowAction.SEND_TO_SPONSOR:
        contacts = submission.sponsor_contacts
        if contacts.business_sponsor is None and contacts.business_delegate is None:
            raise SponsorNotConfiguredError(submission.id)
    return transition


def apply_workflow_action(
    submission: Submission,
    action: WorkflowAction,
    *,
    now: datetime,
    actor: Actor | None = None,
) -> Submission:
    """Validate and apply a named action, returning the audited submission.

    Raises before touching anything when the action is illegal, so callers
    never observe a partially applied transition.
    """
    transition = transition_for(submission, action)
    workflow = _next_workflow(submission.workflow, transition, now=now)

    approval_stages = submission.approval_stages
    if transition.opens_review_round:
        approval_stages = reset_stages(
            compute_applicable_stages(
                submission_id=submission.id,
                sponsor_contacts=submission.sponsor_contacts,
                workflow=workflow,
                existing=submission.approval_stages,
            )
        )

    updated = replace(
        submission,
        workflow=workflow,
        approval_stages=approval_stages,
        committee_decision=transition.committee_decision or submission.committee_decision,
        updated_at=now,
    )
    source_stage, source_status = stage_status_for(submission.workflow.lifecycle_status)
    target_stage, target_status = stage_status_for(workflow.lifecycle_status)
    return record_transition(
        updated,
        action=action.value,
        note=(
            f"Workflow action {action} moved record from {source_stage}/{source_status} "
            f"to {target_stage}/{target_status}."
        ),
        now=now,
        actor=actor,
    )


def _next_workflow(workflow: WorkflowState, transition: ActionTransition, *, now: datetime) -> WorkflowState:
    updated = replace(workflow, lifecycle_status=transition.target_state, last_saved_at=now)
    if transition.entity_type is not None:
        updated = replace(updated, entity_type=transition.entity_type)
    if transition.reset_decisions:
        updated = replace(
            updated,
            sponsor_decision=Decision.PENDING,
            pgo_decision=Decision.PENDING,
            finance_decision=Decision.PENDING,
            spo_decision=Decision.PENDING,
        )
    if transition.spo_decision is not None:
        updated = replace(updated, spo_decision=transition.spo_decision)
    if transition.funding_status is not None:
        updated = replace(updated, funding_status=transition.funding_status)
    if transition.opens_review_round:
        updated = replace(updated, review_round=workflow.review_round + 1)
    return apply_lock(updated, now=now, lock_reason=transition.lock_reason)
