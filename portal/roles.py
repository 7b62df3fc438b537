from __future__ import annotations

from dataclasses import dataclass

API_ROLE = "api"
RECONCILE_ROLE = "worker-reconcile"

ROLE_DESCRIPTIONS = {
    API_ROLE: "HTTP API for submissions, workflow actions and approvals",
    RECONCILE_ROLE: "background sweep that reconciles submissions in review",
}
SUPPORTED_ROLES = tuple(ROLE_DESCRIPTIONS)


@dataclass(frozen=True)
class RuntimeRole:
    name: str

    @property
    def runs_reconcile_worker(self) -> bool:
        return self.name == RECONCILE_ROLE


def validate_role(role: str) -> RuntimeRole:
    normalized = role.strip().lower()
    if normalized in ROLE_DESCRIPTIONS:
        return RuntimeRole(name=normalized)

    raise ValueError(
        f"Unsupported role '{role}'. Supported roles: {', '.join(SUPPORTED_ROLES)}. "
        "Note: schema migrations are applied externally and are not an app role."
    )
