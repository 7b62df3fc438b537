from __future__ import annotations

import importlib
import re

ulid_module = importlib.import_module("ulid")

CASE_ID_PATTERN = re.compile(r"^SP-(\d{4})-(\d+)$")
_NUMERIC_RUN = re.compile(r"(\d+)")


def format_case_id(*, year: int, sequence: int) -> str:
    return f"SP-{year}-{sequence:03d}"


def parse_case_id(case_id: str) -> tuple[int, int] | None:
    match = CASE_ID_PATTERN.match(case_id)
    if match is None:
        return None
    return int(match.group(1)), int(match.group(2))


def coerce_case_id(raw_id: str, *, year: int) -> str:
    """Convert a legacy identifier into the SP-<year>-<seq> shape."""
    if raw_id.startswith("SP-"):
        return raw_id
    runs = _NUMERIC_RUN.findall(raw_id)
    sequence = int(runs[-1]) if runs else 1
    return format_case_id(year=year, sequence=sequence)


def new_approval_request_id() -> str:
    return f"apr_{ulid_module.new().str}"


def new_audit_entry_id() -> str:
    return f"audit_{ulid_module.new().str}"


def new_task_id() -> str:
    return f"pmt_{ulid_module.new().str}"


def approval_stage_id(*, submission_id: str, stage: str) -> str:
    return f"approval-{submission_id}-{stage.lower()}"
