from __future__ import annotations

from dataclasses import dataclass
import logging

from portal.domain.errors import SubmissionNotFoundError
from portal.domain.lifecycle import RECONCILABLE_STATES
from portal.domain.models import SYSTEM_ACTOR
from portal.domain.use_cases.deps import WorkflowDeps
from portal.domain.use_cases.reconcile import reconcile_locked
from portal.domain.use_cases.submissions import load_submission

logger = logging.getLogger("runtime")

RECONCILE_STAGE = "reconcile"


@dataclass
class ReconcileLoop:
    """Sweeps submissions in reconcilable states and applies due transitions."""

    role: str
    deps: WorkflowDeps
    stage: str = RECONCILE_STAGE

    async def run_once(self) -> bool:
        candidates = await self.deps.submissions.list_submissions(lifecycle_statuses=RECONCILABLE_STATES)
        changed_count = 0
        for candidate in candidates:
            async with self.deps.locks.for_submission(candidate.id):
                try:
                    submission = await load_submission(self.deps, candidate.id)
                except SubmissionNotFoundError:
                    continue
                # Another writer may have moved it between listing and locking.
                if submission.workflow.lifecycle_status not in RECONCILABLE_STATES:
                    continue
                _, changed = await reconcile_locked(self.deps, submission, actor=SYSTEM_ACTOR)
            if changed:
                changed_count += 1
        if changed_count:
            logger.info(
                "reconcile sweep advanced submissions",
                extra={"role": self.role, "stage": self.stage, "changed_count": changed_count},
            )
        return changed_count > 0
