from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace

from portal.domain.models import EntityType, GovernanceCard, GovernanceLane, GovernanceTask

GOVERNANCE_REVIEW_TASK_TYPE = "GOVERNANCE_REVIEW"
DONE_STATUS = "Done"
LEGACY_GATING_TITLE = "conduct proposal placemat gating review"
PROPOSAL_GATING_TITLE = "Conduct proposal placemat gating review"
FUNDING_GATING_TITLE = "Conduct project funding gating review"


def is_gating_task_done(task: GovernanceTask) -> bool:
    if (task.task_type or "").upper() == GOVERNANCE_REVIEW_TASK_TYPE:
        return task.status == DONE_STATUS
    return task.title.strip().lower() == LEGACY_GATING_TITLE and task.status == DONE_STATUS


def cards_in_scope(
    cards: Iterable[GovernanceCard],
    *,
    project_id: str,
    workflow_stage: EntityType | None,
) -> list[GovernanceCard]:
    """Cards for the project; unscoped cards apply to every workflow stage."""
    return [
        card
        for card in cards
        if card.project_id == project_id
        and (card.workflow_stage is None or workflow_stage is None or card.workflow_stage == workflow_stage)
    ]


def lane_done(
    cards: Iterable[GovernanceCard],
    *,
    project_id: str,
    lane: GovernanceLane,
    workflow_stage: EntityType | None = None,
) -> bool:
    for card in cards_in_scope(cards, project_id=project_id, workflow_stage=workflow_stage):
        if card.lane == lane:
            return any(is_gating_task_done(task) for task in card.tasks)
    return False


def gating_task_title(workflow_stage: EntityType) -> str:
    if workflow_stage == EntityType.FUNDING_REQUEST:
        return FUNDING_GATING_TITLE
    return PROPOSAL_GATING_TITLE


def card_key(card: GovernanceCard) -> tuple[str, GovernanceLane, EntityType | None]:
    return (card.project_id, card.lane, card.workflow_stage)


def merge_cards(existing: Iterable[GovernanceCard], incoming: Iterable[GovernanceCard]) -> list[GovernanceCard]:
    """Append incoming cards whose project, lane and stage are not on the board yet."""
    merged = list(existing)
    known = {card_key(card) for card in merged}
    for card in incoming:
        if card_key(card) not in known:
            known.add(card_key(card))
            merged.append(card)
    return merged


def with_gating_task_done(
    cards: Iterable[GovernanceCard],
    *,
    project_id: str,
    lane: GovernanceLane,
    workflow_stage: EntityType,
) -> list[GovernanceCard]:
    """Return the board with the lane's gating task marked Done, adding the card or task when missing."""
    updated = list(cards)
    for index, card in enumerate(updated):
        if card_key(card) == (project_id, lane, workflow_stage):
            updated[index] = replace(card, tasks=_done_gating_tasks(card))
            return updated
    card = GovernanceCard(project_id=project_id, lane=lane, workflow_stage=workflow_stage)
    updated.append(replace(card, tasks=_done_gating_tasks(card)))
    return updated


def _done_gating_tasks(card: GovernanceCard) -> tuple[GovernanceTask, ...]:
    tasks = list(card.tasks)
    for index, task in enumerate(tasks):
        if (task.task_type or "").upper() == GOVERNANCE_REVIEW_TASK_TYPE:
            tasks[index] = replace(task, status=DONE_STATUS)
            return tuple(tasks)
    stage = card.workflow_stage or EntityType.PROPOSAL
    tasks.append(
        GovernanceTask(
            id=f"{card.project_id}-{card.lane.replace(' ', '-')}-{stage.lower()}-gating",
            title=gating_task_title(stage),
            status=DONE_STATUS,
            task_type=GOVERNANCE_REVIEW_TASK_TYPE,
        )
    )
    return tuple(tasks)
