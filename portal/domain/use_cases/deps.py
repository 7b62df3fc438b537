from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
import weakref

from portal.domain.contracts import (
    ApprovalRequestRepository,
    GovernanceBoard,
    Notifier,
    SubmissionRepository,
    TaskRepository,
)


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass
class SubmissionLocks:
    """One lock per submission id; submissions never lock each other.

    Locks are held weakly: a lock lives while some caller holds or awaits it
    and is dropped afterwards, so the map only tracks submissions in flight.
    """

    _locks: weakref.WeakValueDictionary[str, asyncio.Lock] = field(default_factory=weakref.WeakValueDictionary)

    def __len__(self) -> int:
        return len(self._locks)

    def for_submission(self, submission_id: str) -> asyncio.Lock:
        lock = self._locks.get(submission_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[submission_id] = lock
        return lock


@dataclass(frozen=True)
class WorkflowDeps:
    submissions: SubmissionRepository
    approval_requests: ApprovalRequestRepository
    tasks: TaskRepository
    board: GovernanceBoard
    notifier: Notifier
    locks: SubmissionLocks = field(default_factory=SubmissionLocks)
    clock: Callable[[], datetime] = utc_now
