from deploywatch.deployments.models import (
    Credential,
    CredentialStatus,
    Deployment,
    DeploymentHealth,
    DeploymentStatus,
    DeploymentType,
    ExecutionStatus,
    HealthError,
)
from deploywatch.deployments.store import DeploymentStore, NotFoundError

__all__ = [
    "Credential",
    "CredentialStatus",
    "Deployment",
    "DeploymentHealth",
    "DeploymentStatus",
    "DeploymentStore",
    "DeploymentType",
    "ExecutionStatus",
    "HealthError",
    "NotFoundError",
]
