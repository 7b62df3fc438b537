from __future__ import annotations

from collections.abc import Collection, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from portal.domain.governance import lane_done, merge_cards, with_gating_task_done
from portal.domain.ids import parse_case_id
from portal.domain.models import (
    ApprovalRequest,
    EntityType,
    GovernanceCard,
    GovernanceLane,
    LifecycleStatus,
    ProjectManagementTask,
    Submission,
    TaskStatus,
)
from portal.domain.normalization import normalize_submission, submission_to_record


@dataclass
class InMemorySubmissionRepository:
    """Non-network repository; every read goes through the normalizer."""

    records: dict[str, dict[str, Any]] = field(default_factory=dict)
    sequences: dict[int, int] = field(default_factory=dict)

    async def load(self, *, submission_id: str) -> Submission | None:
        record = self.records.get(submission_id)
        if record is None:
            return None
        return normalize_submission(record)

    async def save_all(self, submissions: list[Submission]) -> None:
        for submission in submissions:
            self.records[submission.id] = submission_to_record(submission)

    async def list_submissions(
        self,
        *,
        lifecycle_statuses: Collection[LifecycleStatus] | None = None,
    ) -> list[Submission]:
        submissions = [normalize_submission(record) for _, record in sorted(self.records.items())]
        if lifecycle_statuses is None:
            return submissions
        wanted = set(lifecycle_statuses)
        return [item for item in submissions if item.workflow.lifecycle_status in wanted]

    async def allocate_case_sequence(self, *, year: int) -> int:
        used = [
            parsed[1]
            for parsed in (parse_case_id(submission_id) for submission_id in self.records)
            if parsed is not None and parsed[0] == year
        ]
        sequence = max([self.sequences.get(year, 0), *used]) + 1
        self.sequences[year] = sequence
        return sequence

    def import_records(self, records: Iterable[Mapping[str, Any]]) -> list[Submission]:
        imported = [normalize_submission(record) for record in records]
        for submission in imported:
            self.records[submission.id] = submission_to_record(submission)
        return imported


@dataclass
class InMemoryApprovalRequestRepository:
    rows: dict[str, ApprovalRequest] = field(default_factory=dict)

    async def get(self, *, request_id: str) -> ApprovalRequest | None:
        return self.rows.get(request_id)

    async def list_for_submission(self, *, submission_id: str) -> list[ApprovalRequest]:
        return sorted(
            (row for row in self.rows.values() if row.submission_id == submission_id),
            key=lambda row: (row.requested_at, row.id),
        )

    async def list_for_approver(self, *, approver_email: str) -> list[ApprovalRequest]:
        return sorted(
            (row for row in self.rows.values() if row.approver_email == approver_email),
            key=lambda row: (row.requested_at, row.id),
        )

    async def save_all(self, requests: list[ApprovalRequest]) -> None:
        for request in requests:
            self.rows[request.id] = request


@dataclass
class InMemoryTaskRepository:
    rows: dict[str, ProjectManagementTask] = field(default_factory=dict)

    async def find_open(self, *, project_id: str, task_type: str) -> ProjectManagementTask | None:
        for row in self.rows.values():
            if row.project_id == project_id and row.task_type == task_type and row.status == TaskStatus.OPEN:
                return row
        return None

    async def save(self, task: ProjectManagementTask) -> None:
        self.rows[task.id] = task

    async def list_for_project(self, *, project_id: str) -> list[ProjectManagementTask]:
        return sorted(
            (row for row in self.rows.values() if row.project_id == project_id),
            key=lambda row: (row.created_at, row.id),
        )


@dataclass
class InMemoryGovernanceBoard:
    """Operations board double: Finance and Project Governance lane cards."""

    cards: list[GovernanceCard] = field(default_factory=list)
    lookups: list[tuple[str, str, str | None]] = field(default_factory=list)

    def is_gating_task_done(
        self,
        *,
        project_id: str,
        lane: GovernanceLane,
        workflow_stage: EntityType | None = None,
    ) -> bool:
        self.lookups.append((project_id, lane, workflow_stage))
        return lane_done(self.cards, project_id=project_id, lane=lane, workflow_stage=workflow_stage)

    def mark_gating_task_done(
        self,
        *,
        project_id: str,
        lane: GovernanceLane,
        workflow_stage: EntityType,
    ) -> None:
        self.cards = with_gating_task_done(
            self.cards,
            project_id=project_id,
            lane=lane,
            workflow_stage=workflow_stage,
        )

    def add_cards(self, cards: Iterable[GovernanceCard]) -> None:
        self.cards = merge_cards(self.cards, cards)
