from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from portal.clients.stub import StubNotifier
from portal.domain.dto import CreateSubmissionCommand
from portal.domain.models import (
    ApprovalRequest,
    ApprovalRequestStatus,
    EntityType,
    GovernanceCard,
    GovernanceLane,
    GovernanceTask,
    PersonRef,
    SponsorContacts,
    Submission,
)
from portal.domain.use_cases.deps import WorkflowDeps
from portal.domain.use_cases.submissions import create_submission
from portal.repositories.stub import (
    InMemoryApprovalRequestRepository,
    InMemoryGovernanceBoard,
    InMemorySubmissionRepository,
    InMemoryTaskRepository,
)

START = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)

JORDAN = PersonRef(id="user-jordan", display_name="Jordan Sponsor", email="approver@portal.local")
CASEY = PersonRef(id="user-casey", display_name="Casey Sponsor", email="reviewer@portal.local")
DREW = PersonRef(id="user-drew", display_name="Drew Sponsor", email="admin@portal.local")
AVERY = PersonRef(id="user-avery", display_name="Avery Sponsor", email="avery@portal.local")
DANA = PersonRef(id="user-dana", display_name="Dana Delegate", email="dana.delegate@portal.local")


@dataclass
class SteppingClock:
    """Deterministic clock; every call advances by one second."""

    current: datetime = START
    step: timedelta = timedelta(seconds=1)

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current + self.step
        return value


@dataclass
class FailingNotifier:
    attempts: int = 0

    def notify(self, *, recipient: str, title: str, body: str, link: str) -> None:
        del recipient, title, body, link
        self.attempts += 1
        raise RuntimeError("mail relay unavailable")


@dataclass
class Harness:
    submissions: InMemorySubmissionRepository = field(default_factory=InMemorySubmissionRepository)
    approval_requests: InMemoryApprovalRequestRepository = field(default_factory=InMemoryApprovalRequestRepository)
    tasks: InMemoryTaskRepository = field(default_factory=InMemoryTaskRepository)
    board: InMemoryGovernanceBoard = field(default_factory=InMemoryGovernanceBoard)
    notifier: StubNotifier | FailingNotifier = field(default_factory=StubNotifier)
    clock: SteppingClock = field(default_factory=SteppingClock)

    @property
    def deps(self) -> WorkflowDeps:
        return self._deps

    def __post_init__(self) -> None:
        self._deps = WorkflowDeps(
            submissions=self.submissions,
            approval_requests=self.approval_requests,
            tasks=self.tasks,
            board=self.board,
            notifier=self.notifier,
            clock=self.clock,
        )

    async def create_draft(
        self,
        *,
        title: str = "Customer onboarding portal refresh",
        sponsor_contacts: SponsorContacts | None = None,
    ) -> Submission:
        return await create_submission(
            self.deps,
            CreateSubmissionCommand(
                title=title,
                owner_name="Riley Owner",
                owner_email="riley.owner@portal.local",
                sponsor_contacts=sponsor_contacts or SponsorContacts(business_sponsor=JORDAN),
            ),
        )

    async def requests_for(
        self,
        submission_id: str,
        *,
        status: ApprovalRequestStatus | None = None,
    ) -> list[ApprovalRequest]:
        rows = await self.approval_requests.list_for_submission(submission_id=submission_id)
        if status is None:
            return rows
        return [row for row in rows if row.status == status]

    def complete_gates(self, project_id: str, workflow_stage: EntityType) -> None:
        for lane in (GovernanceLane.FINANCE, GovernanceLane.PROJECT_GOVERNANCE):
            self.board.mark_gating_task_done(project_id=project_id, lane=lane, workflow_stage=workflow_stage)


def gating_card(
    project_id: str,
    lane: GovernanceLane,
    *,
    workflow_stage: EntityType | None = None,
    status: str = "Done",
    title: str = "Conduct proposal placemat gating review",
    task_type: str | None = "GOVERNANCE_REVIEW",
) -> GovernanceCard:
    return GovernanceCard(
        project_id=project_id,
        lane=lane,
        workflow_stage=workflow_stage,
        tasks=(GovernanceTask(id=f"{project_id}-{lane}", title=title, status=status, task_type=task_type),),
    )
