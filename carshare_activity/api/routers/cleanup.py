"""Retention admin router: /admin/activity/cleanup (stats, policy management, cleanup runs, emergency purge)."""

import logging
from typing import Annotated, Any, Dict, Literal

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from carshare_activity.api.dependencies import get_retention_service, require_capability
from carshare_activity.application.retention_service import (
    CleanupStats,
    RetentionConditions,
    RetentionPolicy,
    RetentionService,
)
from carshare_activity.domain.schemas.activity import (
    CleanupRequest,
    CleanupStatsSchema,
    EmergencyCleanupRequest,
    RetentionPolicySchema,
)
from carshare_activity.domain.validators.activity_validator import parse_actions, parse_severities
from carshare_activity.security.rbac import Capability, Principal

logger = logging.getLogger(__name__)

router = APIRouter()

EMERGENCY_CONFIRMATION = "DELETE_ALL_DATA"


def policy_to_dict(policy: RetentionPolicy) -> Dict[str, Any]:
    c = policy.conditions
    return {
        "name": policy.name,
        "description": policy.description,
        "retentionDays": policy.retention_days,
        "conditions": {
            "severity": [s.value for s in c.severities],
            "actions": [a.value for a in c.actions],
            "resources": list(c.resources),
            "excludeUsers": list(c.exclude_users),
        },
        "archiveBeforeDelete": policy.archive_before_delete,
        "archiveLocation": policy.archive_location,
        "specificity": policy.specificity,
    }


def schema_to_policy(schema: RetentionPolicySchema) -> RetentionPolicy:
    """Map the wire shape to a domain policy. Unknown severities or actions raise DomainValidationError."""
    c = schema.conditions
    conditions = RetentionConditions()
    if c is not None:
        conditions = RetentionConditions(
            severities=tuple(parse_severities(c.severity) or ()),
            actions=tuple(parse_actions(c.actions) or ()),
            resources=tuple(c.resources or ()),
            exclude_users=tuple(c.exclude_users or ()),
        )
    return RetentionPolicy(
        name=schema.name.strip(),
        retention_days=schema.retention_days,
        description=schema.description,
        conditions=conditions,
        archive_before_delete=schema.archive_before_delete,
        archive_location=schema.archive_location,
    )


def _stats_payload(stats: CleanupStats) -> Dict[str, Any]:
    return CleanupStatsSchema(
        processed=stats.processed,
        deleted=stats.deleted,
        archived=stats.archived,
        space_saved_mb=round(stats.space_saved_mb, 3),
        execution_time_ms=stats.execution_time_ms,
        errors=stats.errors,
    ).model_dump(by_alias=True)


@router.get("/cleanup")
async def get_cleanup_info(
    principal: Annotated[Principal, Depends(require_capability(Capability.MANAGE_RETENTION))],
    retention: Annotated[RetentionService, Depends(get_retention_service)],
    action: Literal["stats", "policies"] = "stats",
):
    """action=stats: record counts by age, severity and action. action=policies: policies in execution order."""
    if action == "policies":
        return {
            "success": True,
            "policies": [policy_to_dict(p) for p in retention.get_policies()],
        }
    return {"success": True, "stats": await retention.get_retention_stats()}


@router.post("/cleanup")
async def manage_cleanup(
    body: CleanupRequest,
    principal: Annotated[Principal, Depends(require_capability(Capability.MANAGE_RETENTION))],
    retention: Annotated[RetentionService, Depends(get_retention_service)],
):
    if body.action == "cleanup":
        stats = await retention.execute_cleanup(dry_run=body.dry_run)
        logger.info(
            "cleanup_requested",
            extra={"requested_by": principal.user_id, "dry_run": body.dry_run},
        )
        return {
            "success": True,
            "message": "Dry run completed" if body.dry_run else "Cleanup completed",
            "dryRun": body.dry_run,
            "stats": _stats_payload(stats),
        }

    if body.action == "add_policy":
        if body.policy is None:
            return JSONResponse(status_code=400, content={"detail": "policy is required for add_policy"})
        policy = schema_to_policy(body.policy)
        retention.add_policy(policy)
        return {
            "success": True,
            "message": f"Retention policy '{policy.name}' added",
            "policy": policy_to_dict(policy),
        }

    if not body.policy_name:
        return JSONResponse(
            status_code=400, content={"detail": "policyName is required for remove_policy"}
        )
    removed = retention.remove_policy(body.policy_name)
    return {
        "success": True,
        "message": f"Retention policy '{removed.name}' removed",
        "policy": policy_to_dict(removed),
    }


@router.delete("/cleanup")
async def emergency_cleanup(
    body: EmergencyCleanupRequest,
    principal: Annotated[Principal, Depends(require_capability(Capability.EMERGENCY_CLEANUP))],
    retention: Annotated[RetentionService, Depends(get_retention_service)],
):
    """Delete everything older than olderThanDays. Requires confirm == "DELETE_ALL_DATA"."""
    if body.confirm != EMERGENCY_CONFIRMATION:
        return JSONResponse(
            status_code=400,
            content={"detail": f"confirm must be '{EMERGENCY_CONFIRMATION}'"},
        )
    deleted = await retention.purge_older_than(body.older_than_days)
    logger.warning(
        "emergency_cleanup_requested",
        extra={"requested_by": principal.user_id, "older_than_days": body.older_than_days},
    )
    return {
        "success": True,
        "message": f"Deleted all records older than {body.older_than_days} days",
        "deleted": deleted,
    }
