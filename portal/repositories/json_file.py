from __future__ import annotations

from collections.abc import Callable, Collection, Iterable
from dataclasses import dataclass, field
import errno
import json
import logging
import os
from pathlib import Path
import tempfile
from typing import Any

from portal.domain.errors import DomainDependencyError
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
from portal.repositories.records import (
    approval_request_from_record,
    approval_request_to_record,
    governance_card_from_record,
    governance_card_to_record,
    task_from_record,
    task_to_record,
)

SUBMISSIONS_FILE = "submissions.json"
APPROVAL_REQUESTS_FILE = "approval-requests.json"
TASKS_FILE = "project-management-tasks.json"
SEQUENCES_FILE = "case-sequences.json"
BOARD_FILE = "governance-board.json"

READONLY_FS_ERRNOS = frozenset({errno.EROFS, errno.EACCES, errno.EPERM})

logger = logging.getLogger("runtime")


@dataclass
class JsonFileStore:
    """JSON document store owning its own open/close lifecycle.

    Collections are loaded on ``open()`` and written back atomically after
    every change. On a read-only filesystem the store keeps serving from
    memory and logs the failed write.
    """

    data_dir: Path
    submissions: dict[str, dict[str, Any]] = field(default_factory=dict)
    approval_requests: dict[str, dict[str, Any]] = field(default_factory=dict)
    tasks: dict[str, dict[str, Any]] = field(default_factory=dict)
    sequences: dict[str, int] = field(default_factory=dict)
    board_cards: list[dict[str, Any]] = field(default_factory=list)
    is_open: bool = False
    read_only: bool = False

    async def open(self) -> None:
        self.data_dir = Path(self.data_dir)
        self.submissions = _index(self._read(SUBMISSIONS_FILE, default=[]))
        self.approval_requests = _index(self._read(APPROVAL_REQUESTS_FILE, default=[]))
        self.tasks = _index(self._read(TASKS_FILE, default=[]))
        sequences = self._read(SEQUENCES_FILE, default={})
        self.sequences = {str(key): int(value) for key, value in sequences.items()}
        self.board_cards = [card for card in self._read(BOARD_FILE, default=[]) if isinstance(card, dict)]
        self.is_open = True
        logger.info(
            "json store opened",
            extra={"data_dir": str(self.data_dir), "submission_count": len(self.submissions)},
        )

    async def close(self) -> None:
        self.is_open = False

    def ensure_open(self) -> None:
        if not self.is_open:
            raise DomainDependencyError("json store is not open")

    def persist(self, name: str) -> None:
        payloads: dict[str, Any] = {
            SUBMISSIONS_FILE: list(self.submissions.values()),
            APPROVAL_REQUESTS_FILE: list(self.approval_requests.values()),
            TASKS_FILE: list(self.tasks.values()),
            SEQUENCES_FILE: self.sequences,
            BOARD_FILE: self.board_cards,
        }
        if self.read_only:
            return
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            _atomic_write(self.data_dir / name, payloads[name])
        except OSError as exc:
            if exc.errno not in READONLY_FS_ERRNOS:
                raise DomainDependencyError(f"failed to write {name}: {exc}") from exc
            self.read_only = True
            logger.warning(
                "json store is read-only; continuing in memory",
                extra={"data_dir": str(self.data_dir), "error_code": "persistence_failed"},
            )

    def _read(self, name: str, *, default: Any) -> Any:
        path = self.data_dir / name
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return default
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise DomainDependencyError(f"{path} is not valid JSON: {exc}") from exc
        if not isinstance(parsed, type(default)):
            return default
        return parsed


@dataclass
class JsonFileSubmissionRepository:
    store: JsonFileStore

    async def load(self, *, submission_id: str) -> Submission | None:
        self.store.ensure_open()
        record = self.store.submissions.get(submission_id)
        return normalize_submission(record) if record is not None else None

    async def save_all(self, submissions: list[Submission]) -> None:
        self.store.ensure_open()
        for submission in submissions:
            self.store.submissions[submission.id] = submission_to_record(submission)
        self.store.persist(SUBMISSIONS_FILE)

    async def list_submissions(
        self,
        *,
        lifecycle_statuses: Collection[LifecycleStatus] | None = None,
    ) -> list[Submission]:
        self.store.ensure_open()
        submissions = [normalize_submission(record) for _, record in sorted(self.store.submissions.items())]
        if lifecycle_statuses is None:
            return submissions
        wanted = set(lifecycle_statuses)
        return [item for item in submissions if item.workflow.lifecycle_status in wanted]

    async def allocate_case_sequence(self, *, year: int) -> int:
        self.store.ensure_open()
        used = [
            parsed[1]
            for parsed in (parse_case_id(submission_id) for submission_id in self.store.submissions)
            if parsed is not None and parsed[0] == year
        ]
        sequence = max([self.store.sequences.get(str(year), 0), *used]) + 1
        self.store.sequences[str(year)] = sequence
        self.store.persist(SEQUENCES_FILE)
        return sequence


@dataclass
class JsonFileApprovalRequestRepository:
    store: JsonFileStore

    async def get(self, *, request_id: str) -> ApprovalRequest | None:
        self.store.ensure_open()
        record = self.store.approval_requests.get(request_id)
        return approval_request_from_record(record) if record is not None else None

    async def list_for_submission(self, *, submission_id: str) -> list[ApprovalRequest]:
        return self._select(lambda row: row.submission_id == submission_id)

    async def list_for_approver(self, *, approver_email: str) -> list[ApprovalRequest]:
        return self._select(lambda row: row.approver_email == approver_email)

    async def save_all(self, requests: list[ApprovalRequest]) -> None:
        self.store.ensure_open()
        for request in requests:
            self.store.approval_requests[request.id] = approval_request_to_record(request)
        self.store.persist(APPROVAL_REQUESTS_FILE)

    def _select(self, predicate: Callable[[ApprovalRequest], bool]) -> list[ApprovalRequest]:
        self.store.ensure_open()
        rows = [approval_request_from_record(record) for record in self.store.approval_requests.values()]
        return sorted((row for row in rows if predicate(row)), key=lambda row: (row.requested_at, row.id))


@dataclass
class JsonFileTaskRepository:
    store: JsonFileStore

    async def find_open(self, *, project_id: str, task_type: str) -> ProjectManagementTask | None:
        for task in await self.list_for_project(project_id=project_id):
            if task.task_type == task_type and task.status == TaskStatus.OPEN:
                return task
        return None

    async def save(self, task: ProjectManagementTask) -> None:
        self.store.ensure_open()
        self.store.tasks[task.id] = task_to_record(task)
        self.store.persist(TASKS_FILE)

    async def list_for_project(self, *, project_id: str) -> list[ProjectManagementTask]:
        self.store.ensure_open()
        rows = [task_from_record(record) for record in self.store.tasks.values()]
        return sorted(
            (row for row in rows if row.project_id == project_id),
            key=lambda row: (row.created_at, row.id),
        )


def _index(rows: list[Any]) -> dict[str, dict[str, Any]]:
    return {str(row["id"]): row for row in rows if isinstance(row, dict) and row.get("id")}


def _atomic_write(path: Path, payload: Any) -> None:
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


@dataclass
class JsonFileGovernanceBoard:
    """Governance board cards kept in the store so gating signals survive restarts."""

    store: JsonFileStore

    @property
    def cards(self) -> list[GovernanceCard]:
        self.store.ensure_open()
        return [governance_card_from_record(record) for record in self.store.board_cards]

    def is_gating_task_done(
        self,
        *,
        project_id: str,
        lane: GovernanceLane,
        workflow_stage: EntityType | None = None,
    ) -> bool:
        return lane_done(self.cards, project_id=project_id, lane=lane, workflow_stage=workflow_stage)

    def mark_gating_task_done(
        self,
        *,
        project_id: str,
        lane: GovernanceLane,
        workflow_stage: EntityType,
    ) -> None:
        self._replace_cards(
            with_gating_task_done(self.cards, project_id=project_id, lane=lane, workflow_stage=workflow_stage)
        )

    def add_cards(self, cards: Iterable[GovernanceCard]) -> None:
        self._replace_cards(merge_cards(self.cards, cards))

    def _replace_cards(self, cards: list[GovernanceCard]) -> None:
        self.store.board_cards = [governance_card_to_record(card) for card in cards]
        self.store.persist(BOARD_FILE)
