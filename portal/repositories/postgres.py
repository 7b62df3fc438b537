from __future__ import annotations

from collections.abc import Collection
from dataclasses import dataclass
import importlib
import json
from typing import Any

from portal.domain.errors import DomainDependencyError, DomainInvariantError
from portal.domain.models import ApprovalRequest, LifecycleStatus, ProjectManagementTask, Submission
from portal.domain.normalization import normalize_submission, submission_to_record
from portal.repositories.records import (
    approval_request_from_record,
    approval_request_to_record,
    task_from_record,
    task_to_record,
)
from portal.repositories.sql_loader import load_sql

try:
    asyncpg_module = importlib.import_module("asyncpg")
except ModuleNotFoundError:  # pragma: no cover
    asyncpg_module = None  # type: ignore[assignment]


SQL_GET_SUBMISSION = load_sql("get_submission.sql")
SQL_UPSERT_SUBMISSION = load_sql("upsert_submission.sql")
SQL_LIST_SUBMISSIONS = load_sql("list_submissions.sql")
SQL_LIST_SUBMISSIONS_BY_LIFECYCLE = load_sql("list_submissions_by_lifecycle.sql")
SQL_MAX_CASE_SEQUENCE = load_sql("max_case_sequence_for_year.sql")
SQL_ALLOCATE_CASE_SEQUENCE = load_sql("allocate_case_sequence.sql")
SQL_GET_APPROVAL_REQUEST = load_sql("get_approval_request.sql")
SQL_LIST_REQUESTS_FOR_SUBMISSION = load_sql("list_approval_requests_for_submission.sql")
SQL_LIST_REQUESTS_FOR_APPROVER = load_sql("list_approval_requests_for_approver.sql")
SQL_UPSERT_APPROVAL_REQUEST = load_sql("upsert_approval_request.sql")
SQL_FIND_OPEN_TASK = load_sql("find_open_task.sql")
SQL_UPSERT_TASK = load_sql("upsert_task.sql")
SQL_LIST_TASKS_FOR_PROJECT = load_sql("list_tasks_for_project.sql")


@dataclass
class AsyncpgPoolManager:
    dsn: str
    pool: Any | None = None

    async def startup(self) -> None:
        if asyncpg_module is None:  # pragma: no cover
            raise RuntimeError("asyncpg is required for postgres repository mode")

        async def _init_connection(conn: Any) -> None:
            await conn.set_type_codec(
                "json",
                encoder=json.dumps,
                decoder=json.loads,
                schema="pg_catalog",
            )
            await conn.set_type_codec(
                "jsonb",
                encoder=json.dumps,
                decoder=json.loads,
                schema="pg_catalog",
            )

        self.pool = await asyncpg_module.create_pool(
            dsn=self.dsn,
            min_size=1,
            max_size=5,
            init=_init_connection,
        )

    async def shutdown(self) -> None:
        if self.pool is None:
            return
        await self.pool.close()
        self.pool = None

    def acquire_pool(self) -> Any:
        if self.pool is None:
            raise DomainDependencyError("postgres pool is not initialized")
        return self.pool


@dataclass
class PostgresSubmissionRepository:
    """Submissions stored as normalized JSON documents keyed by case id."""

    pool_manager: AsyncpgPoolManager

    async def load(self, *, submission_id: str) -> Submission | None:
        pool = self.pool_manager.acquire_pool()
        async with pool.acquire() as conn:
            document = await conn.fetchval(SQL_GET_SUBMISSION, submission_id)
        if document is None:
            return None
        return normalize_submission(document)

    async def save_all(self, submissions: list[Submission]) -> None:
        if not submissions:
            return
        pool = self.pool_manager.acquire_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                for submission in submissions:
                    await conn.execute(
                        SQL_UPSERT_SUBMISSION,
                        submission.id,
                        submission.workflow.lifecycle_status.value,
                        submission_to_record(submission),
                        submission.created_at,
                        submission.updated_at,
                    )

    async def list_submissions(
        self,
        *,
        lifecycle_statuses: Collection[LifecycleStatus] | None = None,
    ) -> list[Submission]:
        pool = self.pool_manager.acquire_pool()
        async with pool.acquire() as conn:
            if lifecycle_statuses is None:
                rows = await conn.fetch(SQL_LIST_SUBMISSIONS)
            else:
                statuses = sorted(status.value for status in lifecycle_statuses)
                rows = await conn.fetch(SQL_LIST_SUBMISSIONS_BY_LIFECYCLE, statuses)
        return [normalize_submission(row["document"]) for row in rows]

    async def allocate_case_sequence(self, *, year: int) -> int:
        pool = self.pool_manager.acquire_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                used = await conn.fetchval(SQL_MAX_CASE_SEQUENCE, str(year))
                sequence = await conn.fetchval(SQL_ALLOCATE_CASE_SEQUENCE, year, int(used or 0))
        if sequence is None:
            raise DomainInvariantError(f"failed to allocate case sequence for {year}")
        return int(sequence)


@dataclass
class PostgresApprovalRequestRepository:
    pool_manager: AsyncpgPoolManager

    async def get(self, *, request_id: str) -> ApprovalRequest | None:
        pool = self.pool_manager.acquire_pool()
        async with pool.acquire() as conn:
            document = await conn.fetchval(SQL_GET_APPROVAL_REQUEST, request_id)
        return approval_request_from_record(document) if document is not None else None

    async def list_for_submission(self, *, submission_id: str) -> list[ApprovalRequest]:
        return await self._fetch(SQL_LIST_REQUESTS_FOR_SUBMISSION, submission_id)

    async def list_for_approver(self, *, approver_email: str) -> list[ApprovalRequest]:
        return await self._fetch(SQL_LIST_REQUESTS_FOR_APPROVER, approver_email.strip().lower())

    async def save_all(self, requests: list[ApprovalRequest]) -> None:
        if not requests:
            return
        pool = self.pool_manager.acquire_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                for request in requests:
                    await conn.execute(
                        SQL_UPSERT_APPROVAL_REQUEST,
                        request.id,
                        request.submission_id,
                        request.approver_email,
                        request.status.value,
                        request.review_round,
                        approval_request_to_record(request),
                        request.requested_at,
                        request.updated_at,
                    )

    async def _fetch(self, sql: str, *args: Any) -> list[ApprovalRequest]:
        pool = self.pool_manager.acquire_pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(sql, *args)
        return [approval_request_from_record(row["document"]) for row in rows]


@dataclass
class PostgresTaskRepository:
    pool_manager: AsyncpgPoolManager

    async def find_open(self, *, project_id: str, task_type: str) -> ProjectManagementTask | None:
        pool = self.pool_manager.acquire_pool()
        async with pool.acquire() as conn:
            document = await conn.fetchval(SQL_FIND_OPEN_TASK, project_id, task_type)
        return task_from_record(document) if document is not None else None

    async def save(self, task: ProjectManagementTask) -> None:
        pool = self.pool_manager.acquire_pool()
        async with pool.acquire() as conn:
            await conn.execute(
                SQL_UPSERT_TASK,
                task.id,
                task.project_id,
                task.task_type,
                task.status.value,
                task_to_record(task),
                task.created_at,
                task.updated_at,
            )

    async def list_for_project(self, *, project_id: str) -> list[ProjectManagementTask]:
        pool = self.pool_manager.acquire_pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(SQL_LIST_TASKS_FOR_PROJECT, project_id)
        return [task_from_record(row["document"]) for row in rows]
