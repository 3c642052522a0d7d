"""Probe results coming in and health-check records going into history."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class OverallStatus(str, Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    ERROR = "error"
    UNKNOWN = "unknown"


def iso_to_ms(value: str) -> int:
    """Convert an n8n ISO-8601 timestamp to epoch milliseconds."""
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


# ── Probe result ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class LastExecution:
    id: str
    status: str
    started_at: str | None = None
    finished_at: str | None = None

    @property
    def started_at_ms(self) -> int | None:
        # Queued and waiting executions have no start time yet
        return iso_to_ms(self.started_at) if self.started_at else None


@dataclass(frozen=True)
class ProbeDetails:
    workflow_active: bool = False
    recent_executions: int = 0
    success_rate: int = 100
    avg_execution_time_ms: int = 0


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of probing one deployment's workflow on its n8n instance."""

    is_healthy: bool
    error: str | None = None
    latency_ms: int | None = None
    last_execution: LastExecution | None = None
    details: ProbeDetails | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProbeResult":
        """Parse the camelCase payload external probers post."""
        last = data.get("lastExecution") or data.get("last_execution")
        details = data.get("details")
        return cls(
            is_healthy=bool(data.get("isHealthy", data.get("is_healthy", False))),
            error=data.get("error"),
            latency_ms=data.get("latencyMs", data.get("latency_ms")),
            last_execution=LastExecution(
                id=str(last["id"]),
                status=last.get("status", ""),
                started_at=last.get("startedAt") or last.get("started_at"),
                finished_at=last.get("finishedAt") or last.get("finished_at"),
            ) if last else None,
            details=ProbeDetails(
                workflow_active=bool(details.get("workflowActive", details.get("workflow_active", False))),
                recent_executions=int(details.get("recentExecutions", details.get("recent_executions", 0))),
                success_rate=int(details.get("successRate", details.get("success_rate", 100))),
                avg_execution_time_ms=int(
                    details.get("avgExecutionTime", details.get("avg_execution_time_ms", 0))
                ),
            ) if details else None,
        )


# ── Health-check history record ──────────────────────────────────────────────


@dataclass(frozen=True)
class HealthChecks:
    workflow_exists: bool
    workflow_active: bool
    credentials_valid: bool
    recent_execution: bool
    no_errors: bool


@dataclass(frozen=True)
class ExecutionData:
    last_execution_id: str
    last_execution_time: int | None
    last_execution_status: str
    error_message: str | None = None


@dataclass(frozen=True)
class HealthCheckRecord:
    """Immutable snapshot appended to history for every probe."""

    deployment_id: str
    timestamp: int
    overall_status: OverallStatus
    checks: HealthChecks
    details: str | None = None
    execution_data: ExecutionData | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "deployment_id": self.deployment_id,
            "timestamp": self.timestamp,
            "overall_status": self.overall_status.value,
            "checks": asdict(self.checks),
            "details": self.details,
            "execution_data": asdict(self.execution_data) if self.execution_data else None,
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "HealthCheckRecord":
        execution = json.loads(row["execution_data"]) if row.get("execution_data") else None
        return cls(
            deployment_id=row["deployment_id"],
            timestamp=row["timestamp"],
            overall_status=OverallStatus(row["overall_status"]),
            checks=HealthChecks(**json.loads(row["checks"])),
            details=row.get("details"),
            execution_data=ExecutionData(**execution) if execution else None,
        )
