import asyncio
import logging
from dataclasses import dataclass

import pytest

from portal.domain.dto import DecideApprovalRequestCommand, RunActionCommand
from portal.domain.models import ApprovalRequestStatus, EntityType, LifecycleStatus, WorkflowAction
from portal.domain.use_cases.approvals import decide_approval_request
from portal.domain.use_cases.workflow import run_action
from portal.workers.loop import ReconcileLoop
from portal.workers.runner import (
    WorkerRuntimeSettings,
    WorkerRuntimeState,
    run_worker_until_stopped,
    worker_runtime_settings_from_env,
)
from tests.unit.workflow_builders import Harness


@pytest.mark.unit
def test_worker_runtime_settings_read_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WORKER_POLL_INTERVAL_MS", "50")
    monkeypatch.setenv("WORKER_IDLE_BACKOFF_MS", "100")
    monkeypatch.setenv("WORKER_ERROR_BACKOFF_MS", "150")

    settings = worker_runtime_settings_from_env()

    assert settings == WorkerRuntimeSettings(
        poll_interval_ms=50,
        idle_backoff_ms=100,
        error_backoff_ms=150,
    )


@pytest.mark.unit
def test_worker_runtime_settings_fall_back_on_bad_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WORKER_POLL_INTERVAL_MS", "abc")
    monkeypatch.setenv("WORKER_IDLE_BACKOFF_MS", "0")
    monkeypatch.setenv("WORKER_ERROR_BACKOFF_MS", "-10")

    settings = worker_runtime_settings_from_env()

    assert settings == WorkerRuntimeSettings()


@pytest.mark.unit
def test_reconcile_loop_advances_due_submissions_once() -> None:
    async def _run() -> None:
        harness = Harness()
        draft = await harness.create_draft()
        await run_action(
            harness.deps,
            RunActionCommand(submission_id=draft.id, action=WorkflowAction.SEND_TO_SPONSOR),
        )
        (request,) = await harness.requests_for(draft.id)
        await decide_approval_request(
            harness.deps,
            DecideApprovalRequestCommand(request_id=request.id, decision=ApprovalRequestStatus.APPROVED),
        )
        idle_draft = await harness.create_draft(title="Untouched draft")
        harness.complete_gates(draft.id, EntityType.PROPOSAL)
        loop = ReconcileLoop(role="worker-reconcile", deps=harness.deps)

        first = await loop.run_once()
        second = await loop.run_once()

        assert first is True
        assert second is False
        advanced = await harness.submissions.load(submission_id=draft.id)
        untouched = await harness.submissions.load(submission_id=idle_draft.id)
        assert advanced is not None and untouched is not None
        assert advanced.workflow.lifecycle_status == LifecycleStatus.AT_SPO_REVIEW
        assert advanced.audit_trail[-1].actor_name == "System"
        assert untouched.workflow.lifecycle_status == LifecycleStatus.DRAFT

    asyncio.run(_run())


@pytest.mark.unit
def test_reconcile_loop_is_idle_without_candidates() -> None:
    loop = ReconcileLoop(role="worker-reconcile", deps=Harness().deps)

    assert asyncio.run(loop.run_once()) is False


@dataclass
class _FlakyLoop:
    calls: int = 0

    @property
    def stage(self) -> str:
        return "reconcile"

    async def run_once(self) -> bool:
        self.calls += 1
        if self.calls == 1:
            raise RuntimeError("boom")
        return self.calls == 2


@pytest.mark.unit
def test_runner_survives_errors_and_continues() -> None:
    flaky_loop = _FlakyLoop()
    stop_event = asyncio.Event()
    settings = WorkerRuntimeSettings(poll_interval_ms=1, idle_backoff_ms=1, error_backoff_ms=1)
    state = WorkerRuntimeState()

    async def _run() -> None:
        task = asyncio.create_task(
            run_worker_until_stopped(
                worker_loop=flaky_loop,
                role="worker-reconcile",
                run_id="run-1",
                stop_event=stop_event,
                settings=settings,
                logger=logging.getLogger("test"),
                state=state,
            )
        )
        await asyncio.sleep(0.05)
        stop_event.set()
        await task

    asyncio.run(_run())
    assert flaky_loop.calls >= 3
    assert state.started is True
    assert state.stopped is True
    assert state.ticks_total >= 3
    assert state.errors_total == 1
    assert state.changed_ticks_total == 1
    assert state.idle_ticks_total >= 1


@pytest.mark.unit
def test_sweep_delay_depends_on_outcome() -> None:
    settings = WorkerRuntimeSettings(poll_interval_ms=10, idle_backoff_ms=200, error_backoff_ms=3000)

    assert settings.delay_after(did_work=True) == 0.01
    assert settings.delay_after(did_work=False) == 0.2
    assert settings.delay_after(did_work=None) == 3.0
