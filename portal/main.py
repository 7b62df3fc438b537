from __future__ import annotations

import argparse
import logging
import os
import sys
import uuid

from fastapi import FastAPI
import uvicorn

from portal.api.http_app import build_app
from portal.logging_setup import configure_logging
from portal.roles import API_ROLE, RECONCILE_ROLE, SUPPORTED_ROLES, RuntimeRole, validate_role
from portal.services.bootstrap import RuntimeContainer, build_runtime_container

DEFAULT_PORTS = {API_ROLE: 8000, RECONCILE_ROLE: 8100}

logger = logging.getLogger("runtime")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="submission-portal",
        description="Submission portal runtime: HTTP API or reconciliation worker",
    )
    parser.add_argument("--role", required=True, help=f"Runtime role ({', '.join(SUPPORTED_ROLES)})")
    parser.add_argument("--host", default=os.getenv("APP_HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=None, help="Defaults to 8000 for api, 8100 for workers")
    parser.add_argument(
        "--seed-demo",
        action="store_true",
        help="Load the bundled demo submissions at startup (same as PORTAL_SEED_DEMO=1)",
    )
    parser.add_argument("--dry-run-startup", action="store_true", help="Wire storage for the role and exit")
    parser.add_argument("--reload", action="store_true", help="Enable code reload (dev mode)")
    return parser.parse_args(argv)


def _app_for(role: RuntimeRole, container: RuntimeContainer, run_id: str) -> FastAPI:
    return build_app(
        role=role.name,
        run_id=run_id,
        worker_loop=container.worker_loop,
        api_deps=container.api_deps,
        on_startup=container.on_startup,
        on_shutdown=container.on_shutdown,
    )


def create_runtime_app() -> FastAPI:
    """uvicorn factory used by ``--reload``; the role comes from APP_ROLE."""
    role = validate_role(os.getenv("APP_ROLE", API_ROLE))
    configure_logging()
    return _app_for(role, build_runtime_container(role), str(uuid.uuid4()))


def run(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        role = validate_role(args.role)
    except ValueError as exc:
        sys.stderr.write(f"ERROR: {exc}\n")
        return 2

    configure_logging()
    if args.seed_demo:
        os.environ["PORTAL_SEED_DEMO"] = "1"
    run_id = str(uuid.uuid4())
    context = {"role": role.name, "service": role.name, "run_id": run_id}
    logger.info("runtime initialized", extra=context)

    if args.dry_run_startup:
        container = build_runtime_container(role)
        logger.info("dry-run startup complete", extra={**context, "storage_mode": container.storage_mode})
        return 0

    port = args.port if args.port is not None else DEFAULT_PORTS.get(role.name, 8100)
    if args.reload:
        os.environ["APP_ROLE"] = role.name
        uvicorn.run(
            "portal.main:create_runtime_app",
            host=args.host,
            port=port,
            log_level="warning",
            reload=True,
            factory=True,
        )
        return 0

    uvicorn.run(_app_for(role, build_runtime_container(role), run_id), host=args.host, port=port, log_level="warning")
    return 0


if __name__ == "__main__":
    raise SystemExit(run())
