from __future__ import annotations

import asyncio
from contextlib import suppress
from dataclasses import dataclass
import logging
import os
from typing import Protocol

POLL_INTERVAL_ENV = "WORKER_POLL_INTERVAL_MS"
IDLE_BACKOFF_ENV = "WORKER_IDLE_BACKOFF_MS"
ERROR_BACKOFF_ENV = "WORKER_ERROR_BACKOFF_MS"


class SweepLoop(Protocol):
    @property
    def stage(self) -> str: ...

    async def run_once(self) -> bool: ...


@dataclass(frozen=True)
class WorkerRuntimeSettings:
    """Delays between sweeps, in milliseconds.

    A sweep that advanced at least one submission is followed by
    ``poll_interval_ms`` so follow-up steps land quickly; an idle sweep waits
    ``idle_backoff_ms`` and a failed one ``error_backoff_ms``.
    """

    poll_interval_ms: int = 200
    idle_backoff_ms: int = 5000
    error_backoff_ms: int = 10000

    def delay_after(self, *, did_work: bool | None) -> float:
        if did_work is None:
            return self.error_backoff_ms / 1000
        return (self.poll_interval_ms if did_work else self.idle_backoff_ms) / 1000


@dataclass
class WorkerRuntimeState:
    started: bool = False
    stopped: bool = False
    ticks_total: int = 0
    changed_ticks_total: int = 0
    idle_ticks_total: int = 0
    errors_total: int = 0

    def record_sweep(self, *, did_work: bool) -> None:
        self.ticks_total += 1
        if did_work:
            self.changed_ticks_total += 1
        else:
            self.idle_ticks_total += 1

    def record_error(self) -> None:
        self.ticks_total += 1
        self.errors_total += 1


def worker_runtime_settings_from_env() -> WorkerRuntimeSettings:
    defaults = WorkerRuntimeSettings()
    return WorkerRuntimeSettings(
        poll_interval_ms=_env_int(POLL_INTERVAL_ENV, defaults.poll_interval_ms),
        idle_backoff_ms=_env_int(IDLE_BACKOFF_ENV, defaults.idle_backoff_ms),
        error_backoff_ms=_env_int(ERROR_BACKOFF_ENV, defaults.error_backoff_ms),
    )


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw.isdigit():
        return default
    return int(raw) or default


async def run_worker_until_stopped(
    *,
    worker_loop: SweepLoop,
    role: str,
    run_id: str,
    stop_event: asyncio.Event,
    settings: WorkerRuntimeSettings,
    logger: logging.Logger,
    state: WorkerRuntimeState | None = None,
) -> None:
    state = state if state is not None else WorkerRuntimeState()
    context = {"role": role, "service": role, "run_id": run_id, "stage": worker_loop.stage}
    state.started = True
    logger.info("worker loop started", extra=context)

    while not stop_event.is_set():
        did_work: bool | None
        try:
            did_work = await worker_loop.run_once()
        except Exception:
            did_work = None
            state.record_error()
            logger.exception("reconcile sweep failed", extra={**context, "error_code": "internal_error"})
        else:
            state.record_sweep(did_work=did_work)
            if did_work:
                logger.info("reconcile sweep changed submissions", extra={**context, "did_work": "true"})
            else:
                logger.debug("reconcile sweep idle", extra={**context, "did_work": "false"})

        with suppress(TimeoutError):
            await asyncio.wait_for(stop_event.wait(), timeout=settings.delay_after(did_work=did_work))

    state.stopped = True
    logger.info("worker loop stopped", extra=context)
