"""Deployment records and the health aggregate embedded in each of them."""

from __future__ import annotations

import time
import uuid
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


def now_ms() -> int:
    return int(time.time() * 1000)


# ── Enums ────────────────────────────────────────────────────────────────────


class DeploymentStatus(str, Enum):
    DEPLOYED = "deployed"
    DEPLOYING = "deploying"
    FAILED = "failed"
    ARCHIVED = "archived"


class DeploymentType(str, Enum):
    CLIENT_INSTANCE = "client_instance"
    YOUR_INSTANCE = "your_instance"


class ExecutionStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"

    @classmethod
    def from_probe(cls, status: str | None) -> "ExecutionStatus":
        """n8n reports many execution states; anything unclear is a warning."""
        if status == "success":
            return cls.SUCCESS
        if status == "error":
            return cls.ERROR
        return cls.WARNING


class ErrorSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class CredentialStatus(str, Enum):
    ACTIVE = "active"
    NEEDS_REFRESH = "needs_refresh"
    FAILED = "failed"
    ARCHIVED = "archived"


# ── Health aggregate ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class HealthError:
    """One entry of a deployment's recent error history."""

    timestamp: int
    message: str
    type: str = "health_check_failed"
    severity: ErrorSeverity = ErrorSeverity.ERROR

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "message": self.message,
            "type": self.type,
            "severity": self.severity.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HealthError":
        return cls(
            timestamp=int(data["timestamp"]),
            message=data["message"],
            type=data.get("type", "health_check_failed"),
            severity=ErrorSeverity(data.get("severity", "error")),
        )


@dataclass
class DeploymentHealth:
    """Current-state health summary, mutated on every probe."""

    last_checked: int | None = None
    is_healthy: bool = True
    error_count: int = 0
    consecutive_errors: int = 0
    errors: list[HealthError] = field(default_factory=list)
    last_execution_time: int | None = None
    last_execution_status: ExecutionStatus | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "last_checked": self.last_checked,
            "is_healthy": self.is_healthy,
            "error_count": self.error_count,
            "consecutive_errors": self.consecutive_errors,
            "errors": [e.to_dict() for e in self.errors],
            "last_execution_time": self.last_execution_time,
            "last_execution_status": (
                self.last_execution_status.value if self.last_execution_status else None
            ),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DeploymentHealth":
        status = data.get("last_execution_status")
        return cls(
            last_checked=data.get("last_checked"),
            is_healthy=bool(data.get("is_healthy", True)),
            error_count=int(data.get("error_count", 0)),
            consecutive_errors=int(data.get("consecutive_errors", 0)),
            errors=[HealthError.from_dict(e) for e in data.get("errors", [])],
            last_execution_time=data.get("last_execution_time"),
            last_execution_status=ExecutionStatus(status) if status else None,
        )


# ── Credentials ──────────────────────────────────────────────────────────────


@dataclass
class Credential:
    """Reference to a credential created in n8n for a deployment.

    The secret value is never part of this record; its encrypted form lives
    in the credential secret store.
    """

    key: str
    external_reference_id: str
    display_name: str
    type: str
    status: CredentialStatus = CredentialStatus.ACTIVE
    created_at: int = field(default_factory=now_ms)
    updated_at: int | None = None
    expires_at: int | None = None

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["status"] = self.status.value
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Credential":
        return cls(
            key=data["key"],
            external_reference_id=data.get("external_reference_id", ""),
            display_name=data.get("display_name", data["key"]),
            type=data.get("type", ""),
            status=CredentialStatus(data.get("status", "active")),
            created_at=data.get("created_at", 0),
            updated_at=data.get("updated_at"),
            expires_at=data.get("expires_at"),
        )


# ── Deployment ───────────────────────────────────────────────────────────────


@dataclass
class Deployment:
    """One workflow instance running for one client."""

    client_id: str
    agent_id: str
    workflow_id: str
    workflow_name: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:16])
    deployment_type: DeploymentType = DeploymentType.YOUR_INSTANCE
    n8n_instance_url: str | None = None
    workflow_url: str | None = None
    status: DeploymentStatus = DeploymentStatus.DEPLOYING
    deployment_error: str | None = None
    credentials: list[Credential] = field(default_factory=list)
    health: DeploymentHealth = field(default_factory=DeploymentHealth)
    deployed_at: int = field(default_factory=now_ms)
    updated_at: int = field(default_factory=now_ms)
    archived_at: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "client_id": self.client_id,
            "agent_id": self.agent_id,
            "deployment_type": self.deployment_type.value,
            "n8n_instance_url": self.n8n_instance_url,
            "workflow_id": self.workflow_id,
            "workflow_name": self.workflow_name,
            "workflow_url": self.workflow_url,
            "status": self.status.value,
            "deployment_error": self.deployment_error,
            "credentials": [c.to_dict() for c in self.credentials],
            "health": self.health.to_dict(),
            "deployed_at": self.deployed_at,
            "updated_at": self.updated_at,
            "archived_at": self.archived_at,
        }
