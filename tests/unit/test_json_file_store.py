import asyncio
import errno
import json
from pathlib import Path

import pytest

from portal.domain.dto import RunActionCommand
from portal.domain.errors import DomainDependencyError
from portal.domain.models import LifecycleStatus, WorkflowAction
from portal.domain.use_cases.workflow import run_action
from portal.repositories import json_file
from portal.repositories.json_file import (
    JsonFileApprovalRequestRepository,
    JsonFileStore,
    JsonFileSubmissionRepository,
    JsonFileTaskRepository,
)
from tests.unit.workflow_builders import Harness


def _harness(store: JsonFileStore) -> Harness:
    return Harness(
        submissions=JsonFileSubmissionRepository(store=store),  # pyright: ignore[reportArgumentType]
        approval_requests=JsonFileApprovalRequestRepository(store=store),  # pyright: ignore[reportArgumentType]
        tasks=JsonFileTaskRepository(store=store),  # pyright: ignore[reportArgumentType]
    )


@pytest.mark.unit
def test_store_persists_and_reloads_workflow_state(tmp_path: Path) -> None:
    async def _run() -> None:
        store = JsonFileStore(data_dir=tmp_path)
        await store.open()
        harness = _harness(store)
        draft = await harness.create_draft()
        await run_action(harness.deps, RunActionCommand(submission_id=draft.id, action=WorkflowAction.SEND_TO_SPONSOR))
        await store.close()

        reopened = JsonFileStore(data_dir=tmp_path)
        await reopened.open()
        submissions = JsonFileSubmissionRepository(store=reopened)
        requests = JsonFileApprovalRequestRepository(store=reopened)
        loaded = await submissions.load(submission_id=draft.id)
        assert loaded is not None
        assert loaded.workflow.lifecycle_status == LifecycleStatus.AT_SPONSOR_REVIEW
        assert len(await requests.list_for_submission(submission_id=draft.id)) == 1
        assert await submissions.allocate_case_sequence(year=2026) == 2

    asyncio.run(_run())
    raw = json.loads((tmp_path / "submissions.json").read_text(encoding="utf-8"))
    assert raw[0]["workflow"]["lifecycleStatus"] == "AT_SPONSOR_REVIEW"


@pytest.mark.unit
def test_store_must_be_opened_before_use(tmp_path: Path) -> None:
    repository = JsonFileSubmissionRepository(store=JsonFileStore(data_dir=tmp_path))

    with pytest.raises(DomainDependencyError):
        asyncio.run(repository.load(submission_id="SP-2026-001"))


@pytest.mark.unit
def test_invalid_json_fails_open(tmp_path: Path) -> None:
    (tmp_path / "submissions.json").write_text("{not json", encoding="utf-8")

    with pytest.raises(DomainDependencyError, match="not valid JSON"):
        asyncio.run(JsonFileStore(data_dir=tmp_path).open())


@pytest.mark.unit
def test_read_only_filesystem_keeps_serving_from_memory(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def _read_only(path: Path, payload: object) -> None:
        del path, payload
        raise OSError(errno.EROFS, "Read-only file system")

    monkeypatch.setattr(json_file, "_atomic_write", _read_only)

    async def _run() -> None:
        store = JsonFileStore(data_dir=tmp_path)
        await store.open()
        harness = _harness(store)
        draft = await harness.create_draft()

        assert store.read_only is True
        assert await harness.submissions.load(submission_id=draft.id) is not None

    asyncio.run(_run())
    assert not (tmp_path / "submissions.json").exists()


@pytest.mark.unit
def test_other_write_failures_surface_as_dependency_errors(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def _disk_full(path: Path, payload: object) -> None:
        del path, payload
        raise OSError(errno.ENOSPC, "No space left on device")

    monkeypatch.setattr(json_file, "_atomic_write", _disk_full)

    async def _run() -> None:
        store = JsonFileStore(data_dir=tmp_path)
        await store.open()
        with pytest.raises(DomainDependencyError):
            await _harness(store).create_draft()

    asyncio.run(_run())
