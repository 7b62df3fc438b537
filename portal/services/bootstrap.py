from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
import logging
import os
from pathlib import Path

from portal.api.handlers.deps import ApiDeps
from portal.clients.stub import StubNotifier
from portal.domain.contracts import ApprovalRequestRepository, SubmissionRepository, TaskRepository
from portal.domain.use_cases.deps import SubmissionLocks, WorkflowDeps
from portal.repositories.json_file import (
    JsonFileApprovalRequestRepository,
    JsonFileGovernanceBoard,
    JsonFileStore,
    JsonFileSubmissionRepository,
    JsonFileTaskRepository,
)
from portal.repositories.postgres import (
    AsyncpgPoolManager,
    PostgresApprovalRequestRepository,
    PostgresSubmissionRepository,
    PostgresTaskRepository,
)
from portal.repositories.stub import (
    InMemoryApprovalRequestRepository,
    InMemoryGovernanceBoard,
    InMemorySubmissionRepository,
    InMemoryTaskRepository,
)
from portal.roles import RuntimeRole
from portal.services.seed import seed_demo_data
from portal.workers.loop import ReconcileLoop


logger = logging.getLogger("runtime")


@dataclass
class RuntimeContainer:
    storage_mode: str
    submissions: SubmissionRepository
    approval_requests: ApprovalRequestRepository
    tasks: TaskRepository
    board: InMemoryGovernanceBoard | JsonFileGovernanceBoard
    notifier: StubNotifier
    workflow_deps: WorkflowDeps
    api_deps: ApiDeps
    worker_loop: ReconcileLoop | None
    on_startup: Callable[[], Awaitable[None]] | None
    on_shutdown: Callable[[], Awaitable[None]] | None


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def build_runtime_container(role: RuntimeRole) -> RuntimeContainer:
    database_url = os.getenv("DATABASE_URL")
    data_dir = os.getenv("PORTAL_DATA_DIR")
    seed_demo = _env_flag("PORTAL_SEED_DEMO")

    open_store: Callable[[], Awaitable[None]] | None = None
    close_store: Callable[[], Awaitable[None]] | None = None
    submissions: SubmissionRepository
    approval_requests: ApprovalRequestRepository
    tasks: TaskRepository
    board: InMemoryGovernanceBoard | JsonFileGovernanceBoard
    if database_url:
        storage_mode = "postgres"
        pool_manager = AsyncpgPoolManager(dsn=database_url)
        submissions = PostgresSubmissionRepository(pool_manager=pool_manager)
        approval_requests = PostgresApprovalRequestRepository(pool_manager=pool_manager)
        tasks = PostgresTaskRepository(pool_manager=pool_manager)
        # No board table: gating cards live in process for this mode.
        board = InMemoryGovernanceBoard()
        open_store = pool_manager.startup
        close_store = pool_manager.shutdown
    elif data_dir:
        storage_mode = "json"
        store = JsonFileStore(data_dir=Path(data_dir))
        submissions = JsonFileSubmissionRepository(store=store)
        approval_requests = JsonFileApprovalRequestRepository(store=store)
        tasks = JsonFileTaskRepository(store=store)
        board = JsonFileGovernanceBoard(store=store)
        open_store = store.open
        close_store = store.close
    else:
        storage_mode = "memory"
        submissions = InMemorySubmissionRepository()
        approval_requests = InMemoryApprovalRequestRepository()
        tasks = InMemoryTaskRepository()
        board = InMemoryGovernanceBoard()

    notifier = StubNotifier()
    workflow_deps = WorkflowDeps(
        submissions=submissions,
        approval_requests=approval_requests,
        tasks=tasks,
        board=board,
        notifier=notifier,
        locks=SubmissionLocks(),
    )

    async def on_startup() -> None:
        if open_store is not None:
            await open_store()
        if seed_demo:
            await seed_demo_data(repository=submissions, board=board)
        logger.info(
            "storage ready",
            extra={"role": role.name, "service": role.name, "storage_mode": storage_mode},
        )

    worker_loop: ReconcileLoop | None = None
    if role.runs_reconcile_worker:
        worker_loop = ReconcileLoop(role=role.name, deps=workflow_deps)

    return RuntimeContainer(
        storage_mode=storage_mode,
        submissions=submissions,
        approval_requests=approval_requests,
        tasks=tasks,
        board=board,
        notifier=notifier,
        workflow_deps=workflow_deps,
        api_deps=ApiDeps(workflow=workflow_deps),
        worker_loop=worker_loop,
        on_startup=on_startup,
        on_shutdown=close_store,
    )
