from __future__ import annotations

from contextlib import asynccontextmanager
import asyncio
from collections.abc import Awaitable, Callable
import logging

from fastapi import FastAPI, HTTPException, Path, Query

from portal.api.handlers.approvals import (
    approval_queue_handler,
    approval_summary_handler,
    decide_request_handler,
    record_stage_decision_handler,
)
from portal.api.handlers.deps import ApiDeps
from portal.api.handlers.governance import complete_gating_task_handler
from portal.api.handlers.submissions import (
    create_submission_handler,
    get_submission_handler,
    list_submissions_handler,
    update_sponsors_handler,
)
from portal.api.handlers.workflow import reconcile_handler, run_action_handler
from portal.api.schemas import (
    APPROVAL_REQUEST_ID_PATTERN,
    EMAIL_PATTERN,
    SUBMISSION_ID_PATTERN,
    ApprovalQueueResponse,
    ApprovalSummaryResponse,
    CompleteGatingTaskRequest,
    CreateSubmissionRequest,
    ErrorResponse,
    HealthResponse,
    ReadyResponse,
    ReconcileRequest,
    RequestDecisionRequest,
    RunActionRequest,
    StageDecisionRequest,
    SubmissionListResponse,
    SubmissionResponse,
    UpdateSponsorsRequest,
    WorkerMetrics,
)
from portal.domain.error_taxonomy import classify_error, http_status_for, resolve_operation_error
from portal.domain.errors import DomainError
from portal.domain.models import LifecycleStatus
from portal.workers.loop import ReconcileLoop
from portal.workers.runner import (
    WorkerRuntimeSettings,
    WorkerRuntimeState,
    run_worker_until_stopped,
    worker_runtime_settings_from_env,
)

ERROR_RESPONSES: dict[int | str, dict[str, object]] = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


def build_app(
    role: str,
    run_id: str,
    worker_loop: ReconcileLoop | None = None,
    worker_runtime_settings: WorkerRuntimeSettings | None = None,
    api_deps: ApiDeps | None = None,
    on_startup: Callable[[], Awaitable[None]] | None = None,
    on_shutdown: Callable[[], Awaitable[None]] | None = None,
) -> FastAPI:
    logger = logging.getLogger("runtime")
    worker_state: WorkerRuntimeState | None = None
    worker_task: asyncio.Task[None] | None = None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        nonlocal worker_task, worker_state
        del app
        stop_event: asyncio.Event | None = None

        logger.info(
            "role started",
            extra={"role": role, "service": role, "run_id": run_id},
        )

        if on_startup is not None:
            await on_startup()

        if worker_loop is not None:
            settings = worker_runtime_settings or worker_runtime_settings_from_env()
            worker_state = WorkerRuntimeState()
            stop_event = asyncio.Event()
            worker_task = asyncio.create_task(
                run_worker_until_stopped(
                    worker_loop=worker_loop,
                    role=role,
                    run_id=run_id,
                    stop_event=stop_event,
                    settings=settings,
                    logger=logger,
                    state=worker_state,
                )
            )

        yield

        if stop_event is not None and worker_task is not None:
            stop_event.set()
            await worker_task

        if on_shutdown is not None:
            await on_shutdown()

        logger.info(
            "role stopped",
            extra={"role": role, "service": role, "run_id": run_id},
        )

    app = FastAPI(title="submission-portal", version="0.1.0", lifespan=lifespan)

    def _require_deps() -> ApiDeps:
        if api_deps is None:
            raise HTTPException(status_code=503, detail="api dependencies are not available")
        return api_deps

    def _http_error(operation: str, exc: DomainError) -> HTTPException:
        code = resolve_operation_error(operation=operation, code=exc.code)
        status_code = http_status_for(code)
        log = logger.warning if status_code < 500 else logger.error
        log(
            "request failed",
            extra={
                "role": role,
                "run_id": run_id,
                "action": operation,
                "error_code": code,
                "retry_classification": classify_error(code),
            },
        )
        return HTTPException(status_code=status_code, detail=str(exc))

    @app.get("/health", response_model=HealthResponse, tags=["System"])
    async def health() -> HealthResponse:
        return HealthResponse(status="ok", role=role, mode="workflow")

    @app.get("/ready", response_model=ReadyResponse, tags=["System"])
    async def ready() -> ReadyResponse:
        worker_loop_enabled = worker_loop is not None
        worker_loop_ready = True
        metrics = WorkerMetrics(
            started=False,
            stopped=False,
            ticks_total=0,
            changed_ticks_total=0,
            idle_ticks_total=0,
            errors_total=0,
        )
        if worker_loop_enabled:
            worker_loop_ready = (
                worker_state is not None
                and worker_state.started
                and worker_task is not None
                and not worker_task.done()
            )
            if worker_state is not None:
                metrics = WorkerMetrics(
                    started=worker_state.started,
                    stopped=worker_state.stopped,
                    ticks_total=worker_state.ticks_total,
                    changed_ticks_total=worker_state.changed_ticks_total,
                    idle_ticks_total=worker_state.idle_ticks_total,
                    errors_total=worker_state.errors_total,
                )

        return ReadyResponse(
            status="ready",
            role=role,
            mode="workflow",
            worker_loop_enabled=worker_loop_enabled,
            worker_loop_ready=worker_loop_ready,
            worker_metrics=metrics,
        )

    @app.post(
        "/submissions",
        response_model=SubmissionResponse,
        status_code=201,
        responses=ERROR_RESPONSES,
        tags=["Submissions"],
    )
    async def create_submission(request: CreateSubmissionRequest) -> SubmissionResponse:
        deps = _require_deps()
        try:
            return await create_submission_handler(
                title=request.title,
                owner_name=request.owner_name,
                owner_email=request.owner_email,
                sponsor_contacts=request.sponsor_contacts,
                payload=request.payload,
                actor=request.actor,
                api_deps=deps,
            )
        except DomainError as exc:
            raise _http_error("create_submission", exc) from exc

    @app.get("/submissions", response_model=SubmissionListResponse, tags=["Submissions"])
    async def list_submissions(
        lifecycle_status: LifecycleStatus | None = Query(default=None),
    ) -> SubmissionListResponse:
        deps = _require_deps()
        try:
            return await list_submissions_handler(lifecycle_status=lifecycle_status, api_deps=deps)
        except DomainError as exc:
            raise _http_error("list_submissions", exc) from exc

    @app.get(
        "/submissions/{submission_id}",
        response_model=SubmissionResponse,
        responses=ERROR_RESPONSES,
        tags=["Submissions"],
    )
    async def get_submission(
        submission_id: str = Path(pattern=SUBMISSION_ID_PATTERN),
    ) -> SubmissionResponse:
        deps = _require_deps()
        try:
            return await get_submission_handler(submission_id=submission_id, api_deps=deps)
        except DomainError as exc:
            raise _http_error("get_submission", exc) from exc

    @app.put(
        "/submissions/{submission_id}/sponsors",
        response_model=SubmissionResponse,
        responses=ERROR_RESPONSES,
        tags=["Submissions"],
    )
    async def update_sponsors(
        request: UpdateSponsorsRequest,
        submission_id: str = Path(pattern=SUBMISSION_ID_PATTERN),
    ) -> SubmissionResponse:
        deps = _require_deps()
        try:
            return await update_sponsors_handler(
                submission_id=submission_id,
                sponsor_contacts=request.sponsor_contacts,
                actor=request.actor,
                api_deps=deps,
            )
        except DomainError as exc:
            raise _http_error("update_sponsors", exc) from exc

    @app.post(
        "/submissions/{submission_id}/actions",
        response_model=SubmissionResponse,
        responses=ERROR_RESPONSES,
        tags=["Workflow"],
    )
    async def run_workflow_action(
        request: RunActionRequest,
        submission_id: str = Path(pattern=SUBMISSION_ID_PATTERN),
    ) -> SubmissionResponse:
        deps = _require_deps()
        try:
            return await run_action_handler(
                submission_id=submission_id,
                action=request.action,
                actor=request.actor,
                api_deps=deps,
            )
        except DomainError as exc:
            raise _http_error("run_action", exc) from exc

    @app.post(
        "/submissions/{submission_id}/reconcile",
        response_model=SubmissionResponse,
        responses=ERROR_RESPONSES,
        tags=["Workflow"],
    )
    async def reconcile_submission(
        submission_id: str = Path(pattern=SUBMISSION_ID_PATTERN),
        request: ReconcileRequest | None = None,
    ) -> SubmissionResponse:
        deps = _require_deps()
        try:
            return await reconcile_handler(
                submission_id=submission_id,
                actor=request.actor if request is not None else None,
                api_deps=deps,
            )
        except DomainError as exc:
            raise _http_error("reconcile", exc) from exc

    @app.post(
        "/submissions/{submission_id}/approval-stages/{stage}/decision",
        response_model=SubmissionResponse,
        responses=ERROR_RESPONSES,
        tags=["Approvals"],
    )
    async def record_stage_decision(
        request: StageDecisionRequest,
        stage: str,
        submission_id: str = Path(pattern=SUBMISSION_ID_PATTERN),
    ) -> SubmissionResponse:
        deps = _require_deps()
        try:
            return await record_stage_decision_handler(
                submission_id=submission_id,
                stage=stage,
                decision=request.decision,
                acting_as=request.acting_as,
                comment=request.comment,
                actor=request.actor,
                api_deps=deps,
            )
        except DomainError as exc:
            raise _http_error("record_approval_decision", exc) from exc

    @app.get(
        "/submissions/{submission_id}/approval-requests",
        response_model=ApprovalSummaryResponse,
        responses=ERROR_RESPONSES,
        tags=["Approvals"],
    )
    async def get_approval_summary(
        submission_id: str = Path(pattern=SUBMISSION_ID_PATTERN),
    ) -> ApprovalSummaryResponse:
        deps = _require_deps()
        try:
            return await approval_summary_handler(submission_id=submission_id, api_deps=deps)
        except DomainError as exc:
            raise _http_error("approval_summary", exc) from exc

    @app.post(
        "/approval-requests/{request_id}/decision",
        response_model=SubmissionResponse,
        responses=ERROR_RESPONSES,
        tags=["Approvals"],
    )
    async def decide_approval_request(
        request: RequestDecisionRequest,
        request_id: str = Path(pattern=APPROVAL_REQUEST_ID_PATTERN),
    ) -> SubmissionResponse:
        deps = _require_deps()
        try:
            return await decide_request_handler(
                request_id=request_id,
                decision=request.decision,
                comment=request.comment,
                actor=request.actor,
                api_deps=deps,
            )
        except DomainError as exc:
            raise _http_error("decide_approval_request", exc) from exc

    @app.get("/approvals/queue", response_model=ApprovalQueueResponse, tags=["Approvals"])
    async def get_approval_queue(
        email: str = Query(pattern=EMAIL_PATTERN),
    ) -> ApprovalQueueResponse:
        deps = _require_deps()
        try:
            return await approval_queue_handler(approver_email=email, api_deps=deps)
        except DomainError as exc:
            raise _http_error("approval_queue", exc) from exc

    @app.post(
        "/governance/gating-tasks/complete",
        response_model=SubmissionResponse,
        responses=ERROR_RESPONSES,
        tags=["Governance"],
    )
    async def complete_gating_task(request: CompleteGatingTaskRequest) -> SubmissionResponse:
        deps = _require_deps()
        try:
            return await complete_gating_task_handler(
                project_id=request.project_id,
                lane=request.lane,
                workflow_stage=request.workflow_stage,
                actor=request.actor,
                api_deps=deps,
            )
        except DomainError as exc:
            raise _http_error("complete_gating_task", exc) from exc

    return app
