"""API routes for deployment health.

Endpoints:
  GET  /api/deployments/{id}/health           : aggregate + latest record
  GET  /api/deployments/{id}/health/history   : most recent records first
  POST /api/deployments/{id}/health           : record an external probe result
  POST /api/deployments/{id}/check            : probe now and record
  GET  /api/health/summary                    : every deployed workflow
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel, field_validator

from deploywatch.config import settings
from deploywatch.deployments.models import DeploymentStatus, now_ms
from deploywatch.deployments.store import DeploymentStore, NotFoundError
from deploywatch.health.models import ProbeResult, iso_to_ms
from deploywatch.health.prober import health_issues
from deploywatch.health.recorder import HealthRecorder

logger = logging.getLogger(__name__)

health_router = APIRouter()


# ── Request models ───────────────────────────────────────────────────────────


class LastExecutionBody(BaseModel):
    id: str
    status: str
    startedAt: str | None = None
    finishedAt: str | None = None

    @field_validator("startedAt", "finishedAt")
    @classmethod
    def _iso_timestamp(cls, value: str | None) -> str | None:
        if value is not None:
            iso_to_ms(value)  # ValueError becomes a 422
        return value


class ProbeDetailsBody(BaseModel):
    workflowActive: bool = False
    recentExecutions: int = 0
    successRate: int = 100
    avgExecutionTime: int = 0


class RecordHealthBody(BaseModel):
    isHealthy: bool
    error: str | None = None
    latencyMs: int | None = None
    lastExecution: LastExecutionBody | None = None
    details: ProbeDetailsBody | None = None
    timestamp: int | None = None


# ── Helpers ──────────────────────────────────────────────────────────────────


def _deployments(request: Request) -> DeploymentStore:
    return request.app.state.deployments  # type: ignore[no-any-return]


def _recorder(request: Request) -> HealthRecorder:
    return request.app.state.recorder  # type: ignore[no-any-return]


def _require(request: Request, deployment_id: str):
    try:
        return _deployments(request).require(deployment_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


# ── Endpoints ────────────────────────────────────────────────────────────────


@health_router.get("/deployments/{deployment_id}/health")
def get_health(deployment_id: str, request: Request) -> dict[str, Any]:
    deployment = _require(request, deployment_id)
    latest = _recorder(request).history.get_latest(deployment_id)
    return {
        "deployment_id": deployment_id,
        "workflow_name": deployment.workflow_name,
        "status": deployment.status.value,
        "health": deployment.health.to_dict(),
        "latest": latest.to_dict() if latest else None,
    }


@health_router.get("/deployments/{deployment_id}/health/history")
def get_history(
    deployment_id: str, request: Request, limit: int | None = Query(None, ge=0),
) -> dict[str, Any]:
    """Health-check records, most recent first."""
    _require(request, deployment_id)
    history = _recorder(request).get_history(
        deployment_id, limit if limit is not None else settings.health_history_limit,
    )
    return {
        "deployment_id": deployment_id,
        "history": [r.to_dict() for r in history],
        "count": len(history),
    }


@health_router.post("/deployments/{deployment_id}/health")
def record_health(deployment_id: str, body: RecordHealthBody, request: Request) -> dict[str, Any]:
    """Record a probe result produced outside this service."""
    result = ProbeResult.from_dict(body.model_dump())
    try:
        notification = _recorder(request).record(
            deployment_id, body.isHealthy, result,
            body.timestamp if body.timestamp is not None else now_ms(),
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    deployment = _deployments(request).require(deployment_id)
    return {
        "deployment_id": deployment_id,
        "health": deployment.health.to_dict(),
        "notification": notification.to_dict() if notification else None,
    }


@health_router.post("/deployments/{deployment_id}/check")
async def trigger_check(deployment_id: str, request: Request) -> dict[str, Any]:
    """Probe a deployment's workflow now."""
    _require(request, deployment_id)
    scheduler = request.app.state.health_scheduler
    try:
        outcome = await scheduler.run_deployment_check(deployment_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {
        "deployment_id": deployment_id,
        "is_healthy": outcome.result.is_healthy,
        "error": outcome.result.error,
        "latency_ms": outcome.result.latency_ms,
        "alerted": outcome.notification is not None,
        "issues": [i.to_dict() for i in health_issues(outcome.result)],
    }


@health_router.get("/health/summary")
def health_summary(request: Request) -> dict[str, Any]:
    """Current health of every deployed workflow."""
    deployments = _deployments(request).list_all(DeploymentStatus.DEPLOYED)
    summary = [
        {
            "deployment_id": d.id,
            "workflow_name": d.workflow_name,
            "client_id": d.client_id,
            "is_healthy": d.health.is_healthy,
            "consecutive_errors": d.health.consecutive_errors,
            "last_checked": d.health.last_checked,
        }
        for d in deployments
    ]
    return {
        "summary": summary,
        "total": len(summary),
        "unhealthy": sum(1 for s in summary if not s["is_healthy"]),
    }
