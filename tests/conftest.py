"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from deploywatch.db import Database
from deploywatch.deployments.models import Deployment, DeploymentStatus
from deploywatch.deployments.store import DeploymentStore
from deploywatch.health.recorder import HealthRecorder


@pytest.fixture
def db(tmp_path: Path) -> Database:
    return Database(tmp_path / "test_deploywatch.db")


@pytest.fixture
def deployments(db: Database) -> DeploymentStore:
    return DeploymentStore(db)


@pytest.fixture
def recorder(db: Database, deployments: DeploymentStore) -> HealthRecorder:
    return HealthRecorder(db, deployments=deployments)


@pytest.fixture
def make_deployment(deployments: DeploymentStore):
    """Factory for stored deployments, healthy and deployed by default."""

    def _make(**overrides) -> Deployment:
        fields = {
            "client_id": "client-1",
            "agent_id": "agent-1",
            "workflow_id": "wf-1",
            "workflow_name": "Lead Intake",
            "status": DeploymentStatus.DEPLOYED,
        }
        fields.update(overrides)
        return deployments.create(Deployment(**fields))

    return _make


@pytest.fixture
def deployment(make_deployment) -> Deployment:
    return make_deployment()
