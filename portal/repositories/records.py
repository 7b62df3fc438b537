from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from portal.domain.models import (
    ApprovalRequest,
    ApprovalRequestStatus,
    EntityType,
    GovernanceCard,
    GovernanceLane,
    GovernanceTask,
    ProjectManagementTask,
    RoleContext,
    TaskStatus,
)
from portal.domain.normalization import EPOCH, parse_timestamp


def approval_request_to_record(request: ApprovalRequest) -> dict[str, Any]:
    return {
        "id": request.id,
        "submissionId": request.submission_id,
        "entityType": request.entity_type.value,
        "roleContext": request.role_context.value,
        "approverName": request.approver_name,
        "approverEmail": request.approver_email,
        "approverUserId": request.approver_user_id,
        "status": request.status.value,
        "reviewRound": request.review_round,
        "createdByUserId": request.created_by_user_id,
        "requestedAt": request.requested_at.isoformat(),
        "decidedAt": request.decided_at.isoformat() if request.decided_at else None,
        "comment": request.comment,
        "updatedAt": request.updated_at.isoformat(),
    }


def approval_request_from_record(record: Mapping[str, Any]) -> ApprovalRequest:
    requested_at = parse_timestamp(record.get("requestedAt")) or EPOCH
    return ApprovalRequest(
        id=str(record["id"]),
        submission_id=str(record["submissionId"]),
        entity_type=EntityType(record.get("entityType") or EntityType.PROPOSAL),
        role_context=RoleContext(record["roleContext"]),
        approver_name=str(record.get("approverName") or ""),
        approver_email=str(record.get("approverEmail") or "").lower(),
        approver_user_id=record.get("approverUserId"),
        status=ApprovalRequestStatus(record.get("status") or ApprovalRequestStatus.PENDING),
        review_round=int(record.get("reviewRound") or 0),
        created_by_user_id=record.get("createdByUserId"),
        requested_at=requested_at,
        decided_at=parse_timestamp(record.get("decidedAt")),
        comment=record.get("comment"),
        updated_at=parse_timestamp(record.get("updatedAt")) or requested_at,
    )


def task_to_record(task: ProjectManagementTask) -> dict[str, Any]:
    return {
        "id": task.id,
        "projectId": task.project_id,
        "fundingRequestId": task.funding_request_id,
        "taskType": task.task_type,
        "status": task.status.value,
        "createdAt": task.created_at.isoformat(),
        "updatedAt": task.updated_at.isoformat(),
    }


def task_from_record(record: Mapping[str, Any]) -> ProjectManagementTask:
    created_at = parse_timestamp(record.get("createdAt")) or EPOCH
    return ProjectManagementTask(
        id=str(record["id"]),
        project_id=str(record["projectId"]),
        funding_request_id=str(record.get("fundingRequestId") or record["projectId"]),
        task_type=str(record["taskType"]),
        status=TaskStatus(record.get("status") or TaskStatus.OPEN),
        created_at=created_at,
        updated_at=parse_timestamp(record.get("updatedAt")) or created_at,
    )


def governance_card_to_record(card: GovernanceCard) -> dict[str, Any]:
    return {
        "projectId": card.project_id,
        "lane": card.lane.value,
        "workflowStage": card.workflow_stage.value if card.workflow_stage else None,
        "tasks": [
            {"id": task.id, "title": task.title, "status": task.status, "taskType": task.task_type}
            for task in card.tasks
        ],
    }


def governance_card_from_record(record: Mapping[str, Any]) -> GovernanceCard:
    stage = record.get("workflowStage")
    return GovernanceCard(
        project_id=str(record["projectId"]),
        lane=GovernanceLane(record["lane"]),
        workflow_stage=EntityType(stage) if stage else None,
        tasks=tuple(
            GovernanceTask(
                id=str(task["id"]),
                title=str(task.get("title") or ""),
                status=str(task.get("status") or ""),
                task_type=task.get("taskType"),
            )
            for task in record.get("tasks") or []
        ),
    )
