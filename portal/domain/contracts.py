from __future__ import annotations

from collections.abc import Collection, Iterable
from typing import Protocol, runtime_checkable

from portal.domain.models import (
    ApprovalRequest,
    EntityType,
    GovernanceCard,
    GovernanceLane,
    LifecycleStatus,
    ProjectManagementTask,
    Submission,
)


@runtime_checkable
class SubmissionRepository(Protocol):
    """Persistence contract for submission aggregates.

    Implementations return normalized submissions and guarantee
    read-your-writes within a single process.
    """

    async def load(self, *, submission_id: str) -> Submission | None: ...

    async def save_all(self, submissions: list[Submission]) -> None: ...

    async def list_submissions(
        self,
        *,
        lifecycle_statuses: Collection[LifecycleStatus] | None = None,
    ) -> list[Submission]: ...

    async def allocate_case_sequence(self, *, year: int) -> int: ...


@runtime_checkable
class ApprovalRequestRepository(Protocol):
    async def get(self, *, request_id: str) -> ApprovalRequest | None: ...

    async def list_for_submission(self, *, submission_id: str) -> list[ApprovalRequest]: ...

    async def list_for_approver(self, *, approver_email: str) -> list[ApprovalRequest]: ...

    async def save_all(self, requests: list[ApprovalRequest]) -> None: ...


@runtime_checkable
class TaskRepository(Protocol):
    async def find_open(self, *, project_id: str, task_type: str) -> ProjectManagementTask | None: ...

    async def save(self, task: ProjectManagementTask) -> None: ...

    async def list_for_project(self, *, project_id: str) -> list[ProjectManagementTask]: ...


@runtime_checkable
class GovernanceBoard(Protocol):
    def is_gating_task_done(
        self,
        *,
        project_id: str,
        lane: GovernanceLane,
        workflow_stage: EntityType | None = None,
    ) -> bool: ...


@runtime_checkable
class Notifier(Protocol):
    def notify(self, *, recipient: str, title: str, body: str, link: str) -> None: ...


@runtime_checkable
class GovernanceTaskUpdater(Protocol):
    def mark_gating_task_done(
        self,
        *,
        project_id: str,
        lane: GovernanceLane,
        workflow_stage: EntityType,
    ) -> None: ...


@runtime_checkable
class GovernanceCardImporter(Protocol):
    def add_cards(self, cards: Iterable[GovernanceCard]) -> None: ...
