import asyncio
import time

import pytest
from fastapi.testclient import TestClient

from portal.api.http_app import build_app
from portal.domain.dto import CreateSubmissionCommand, DecideApprovalRequestCommand, RunActionCommand
from portal.domain.models import (
    ApprovalRequestStatus,
    EntityType,
    GovernanceLane,
    LifecycleStatus,
    SponsorContacts,
    WorkflowAction,
)
from portal.domain.normalization import person_from_value
from portal.domain.use_cases.approvals import decide_approval_request
from portal.domain.use_cases.submissions import create_submission
from portal.domain.use_cases.workflow import run_action
from portal.roles import SUPPORTED_ROLES, validate_role
from portal.services.bootstrap import RuntimeContainer, build_runtime_container
from portal.workers.runner import WorkerRuntimeSettings


@pytest.fixture(autouse=True)
def _memory_storage(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("DATABASE_URL", "PORTAL_DATA_DIR", "PORTAL_SEED_DEMO"):
        monkeypatch.delenv(name, raising=False)


def _wait_until_ready(client: TestClient) -> dict[str, object]:
    payload: dict[str, object] = {}
    for _ in range(100):
        payload = client.get("/ready").json()
        if payload["worker_loop_ready"]:
            break
        time.sleep(0.01)
    return payload


@pytest.mark.integration
@pytest.mark.parametrize("role_name", SUPPORTED_ROLES)
def test_roles_report_ready(role_name: str) -> None:
    role = validate_role(role_name)
    container = build_runtime_container(role)
    app = build_app(
        role=role.name,
        run_id="integration",
        worker_loop=container.worker_loop,
        worker_runtime_settings=WorkerRuntimeSettings(poll_interval_ms=5, idle_backoff_ms=5, error_backoff_ms=5),
        api_deps=container.api_deps,
        on_startup=container.on_startup,
        on_shutdown=container.on_shutdown,
    )

    with TestClient(app) as client:
        payload = _wait_until_ready(client)

    assert payload["status"] == "ready"
    assert payload["role"] == role_name
    assert payload["mode"] == "workflow"
    assert payload["worker_loop_enabled"] == (role_name != "api")
    assert payload["worker_loop_ready"] is True


async def _submission_in_pgo_review(container: RuntimeContainer) -> str:
    deps = container.workflow_deps
    sponsor = person_from_value({"displayName": "Jordan Sponsor", "email": "approver@portal.local"})
    draft = await create_submission(
        deps,
        CreateSubmissionCommand(
            title="Warehouse automation",
            owner_name="Riley Owner",
            owner_email="riley.owner@portal.local",
            sponsor_contacts=SponsorContacts(business_sponsor=sponsor),
        ),
    )
    await run_action(deps, RunActionCommand(submission_id=draft.id, action=WorkflowAction.SEND_TO_SPONSOR))
    (request,) = await deps.approval_requests.list_for_submission(submission_id=draft.id)
    decided = await decide_approval_request(
        deps,
        DecideApprovalRequestCommand(request_id=request.id, decision=ApprovalRequestStatus.APPROVED),
    )
    assert decided.workflow.lifecycle_status == LifecycleStatus.AT_PGO_FGO_REVIEW
    return draft.id


@pytest.mark.integration
def test_reconcile_worker_advances_gated_submission_in_background() -> None:
    role = validate_role("worker-reconcile")
    container = build_runtime_container(role)
    assert container.worker_loop is not None
    submission_id = asyncio.run(_submission_in_pgo_review(container))
    for lane in (GovernanceLane.FINANCE, GovernanceLane.PROJECT_GOVERNANCE):
        container.board.mark_gating_task_done(
            project_id=submission_id,
            lane=lane,
            workflow_stage=EntityType.PROPOSAL,
        )

    app = build_app(
        role=role.name,
        run_id="integration",
        worker_loop=container.worker_loop,
        worker_runtime_settings=WorkerRuntimeSettings(poll_interval_ms=5, idle_backoff_ms=5, error_backoff_ms=5),
        api_deps=container.api_deps,
    )
    with TestClient(app) as client:
        _wait_until_ready(client)
        time.sleep(0.1)
        metrics = client.get("/ready").json()["worker_metrics"]
        fetched = client.get(f"/submissions/{submission_id}")

    assert fetched.json()["lifecycle_status"] == LifecycleStatus.AT_SPO_REVIEW
    assert metrics["started"] is True
    assert metrics["ticks_total"] >= 2
    assert metrics["changed_ticks_total"] == 1
