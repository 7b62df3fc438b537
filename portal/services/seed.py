from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
import logging
from pathlib import Path
from typing import Any

import yaml

from portal.domain.contracts import GovernanceCardImporter, SubmissionRepository
from portal.domain.errors import DomainValidationError
from portal.domain.models import EntityType, GovernanceCard, GovernanceLane, GovernanceTask, Submission
from portal.domain.normalization import normalize_submission

DEFAULT_SEED_PATH = Path(__file__).resolve().parent.parent / "seed" / "demo_submissions.yaml"

logger = logging.getLogger("runtime")


@dataclass(frozen=True)
class DemoSeed:
    submissions: list[dict[str, Any]] = field(default_factory=list)
    governance_cards: list[GovernanceCard] = field(default_factory=list)


def load_demo_seed(path: Path = DEFAULT_SEED_PATH) -> DemoSeed:
    document = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(document, Mapping):
        raise DomainValidationError(f"{path} must contain a mapping at the top level")
    submissions = document.get("submissions") or []
    if not isinstance(submissions, list) or not all(isinstance(item, Mapping) for item in submissions):
        raise DomainValidationError(f"{path}: 'submissions' must be a list of mappings")
    cards = [_card_from_mapping(item) for item in document.get("governance_cards") or []]
    return DemoSeed(submissions=[dict(item) for item in submissions], governance_cards=cards)


async def seed_demo_data(
    *,
    repository: SubmissionRepository,
    board: GovernanceCardImporter | None = None,
    path: Path = DEFAULT_SEED_PATH,
) -> list[Submission]:
    """Import demo submissions that are not stored yet; returns the imported ones."""
    seed = load_demo_seed(path)
    imported: list[Submission] = []
    for record in seed.submissions:
        submission = normalize_submission(record)
        if await repository.load(submission_id=submission.id) is not None:
            continue
        imported.append(submission)
    if imported:
        await repository.save_all(imported)
    if board is not None:
        board.add_cards(seed.governance_cards)
    logger.info(
        "demo data seeded",
        extra={"submission_count": len(imported), "seed_path": str(path)},
    )
    return imported


def _card_from_mapping(raw: Any) -> GovernanceCard:
    if not isinstance(raw, Mapping):
        raise DomainValidationError("governance card entries must be mappings")
    stage = raw.get("workflow_stage")
    return GovernanceCard(
        project_id=str(raw["project_id"]),
        lane=GovernanceLane(raw["lane"]),
        workflow_stage=EntityType(stage) if stage else None,
        tasks=tuple(
            GovernanceTask(
                id=str(task["id"]),
                title=str(task.get("title") or ""),
                status=str(task.get("status") or ""),
                task_type=task.get("task_type"),
            )
            for task in raw.get("tasks") or []
        ),
    )
