"""Deployment storage: SQLite-backed, one row per deployment.

The health aggregate and credential references are stored as JSON columns
on the deployment row so a single UPDATE patches the whole aggregate.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from typing import Any

from deploywatch.db import Database
from deploywatch.deployments.models import (
    Credential,
    Deployment,
    DeploymentHealth,
    DeploymentStatus,
    DeploymentType,
    now_ms,
)

logger = logging.getLogger(__name__)


class NotFoundError(Exception):
    """Raised when a referenced deployment does not exist."""

    def __init__(self, deployment_id: str) -> None:
        self.deployment_id = deployment_id
        super().__init__(f"Deployment not found: {deployment_id}")


def _from_row(row: sqlite3.Row) -> Deployment:
    return Deployment(
        id=row["id"],
        client_id=row["client_id"],
        agent_id=row["agent_id"],
        deployment_type=DeploymentType(row["deployment_type"]),
        n8n_instance_url=row["n8n_instance_url"],
        workflow_id=row["workflow_id"],
        workflow_name=row["workflow_name"],
        workflow_url=row["workflow_url"],
        status=DeploymentStatus(row["status"]),
        deployment_error=row["deployment_error"],
        credentials=[Credential.from_dict(c) for c in json.loads(row["credentials"] or "[]")],
        health=DeploymentHealth.from_dict(json.loads(row["health"])),
        deployed_at=row["deployed_at"],
        updated_at=row["updated_at"],
        archived_at=row["archived_at"],
    )


class DeploymentStore:
    """CRUD for deployments plus the health aggregate patch."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def create(self, deployment: Deployment) -> Deployment:
        d = deployment.to_dict()
        d["credentials"] = json.dumps(d["credentials"])
        d["health"] = json.dumps(d["health"])
        with self._db.transaction() as conn:
            conn.execute("""
                INSERT INTO deployments (id, client_id, agent_id, deployment_type,
                                         n8n_instance_url, workflow_id, workflow_name,
                                         workflow_url, status, deployment_error,
                                         credentials, health, deployed_at,
                                         updated_at, archived_at)
                VALUES (:id, :client_id, :agent_id, :deployment_type,
                        :n8n_instance_url, :workflow_id, :workflow_name,
                        :workflow_url, :status, :deployment_error,
                        :credentials, :health, :deployed_at,
                        :updated_at, :archived_at)
            """, d)
        logger.info("Deployment created: %s (%s)", deployment.id, deployment.workflow_name)
        return deployment

    def get(self, deployment_id: str, conn: sqlite3.Connection | None = None) -> Deployment | None:
        if conn is not None:
            row = conn.execute(
                "SELECT * FROM deployments WHERE id = ?", (deployment_id,)
            ).fetchone()
        else:
            with self._db.reader() as own:
                row = own.execute(
                    "SELECT * FROM deployments WHERE id = ?", (deployment_id,)
                ).fetchone()
        return _from_row(row) if row else None

    def require(self, deployment_id: str, conn: sqlite3.Connection | None = None) -> Deployment:
        deployment = self.get(deployment_id, conn)
        if deployment is None:
            raise NotFoundError(deployment_id)
        return deployment

    def list_all(self, status: DeploymentStatus | None = None) -> list[Deployment]:
        with self._db.reader() as conn:
            if status:
                rows = conn.execute(
                    "SELECT * FROM deployments WHERE status = ? ORDER BY deployed_at",
                    (status.value,),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM deployments ORDER BY deployed_at"
                ).fetchall()
        return [_from_row(r) for r in rows]

    def list_active_ids(self) -> list[str]:
        """IDs of every deployment currently in the ``deployed`` state."""
        with self._db.reader() as conn:
            rows = conn.execute(
                "SELECT id FROM deployments WHERE status = ? ORDER BY deployed_at",
                (DeploymentStatus.DEPLOYED.value,),
            ).fetchall()
        return [r["id"] for r in rows]

    def save_health(
        self,
        deployment_id: str,
        health: DeploymentHealth,
        conn: sqlite3.Connection | None = None,
    ) -> None:
        with self._db.use(conn) as c:
            cursor = c.execute(
                "UPDATE deployments SET health = ?, updated_at = ? WHERE id = ?",
                (json.dumps(health.to_dict()), now_ms(), deployment_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(deployment_id)

    def update_status(
        self,
        deployment_id: str,
        status: DeploymentStatus,
        error: str | None = None,
        workflow_id: str | None = None,
        workflow_url: str | None = None,
    ) -> Deployment:
        updates: dict[str, Any] = {"status": status.value, "updated_at": now_ms()}
        if error is not None:
            updates["deployment_error"] = error
        if workflow_id is not None:
            updates["workflow_id"] = workflow_id
        if workflow_url is not None:
            updates["workflow_url"] = workflow_url
        if status == DeploymentStatus.ARCHIVED:
            updates["archived_at"] = updates["updated_at"]

        set_clause = ", ".join(f"{k} = :{k}" for k in updates)
        updates["id"] = deployment_id
        with self._db.transaction() as conn:
            cursor = conn.execute(f"UPDATE deployments SET {set_clause} WHERE id = :id", updates)
            if cursor.rowcount == 0:
                raise NotFoundError(deployment_id)
            return self.require(deployment_id, conn)

    def set_credentials(self, deployment_id: str, credentials: list[Credential]) -> None:
        with self._db.transaction() as conn:
            cursor = conn.execute(
                "UPDATE deployments SET credentials = ?, updated_at = ? WHERE id = ?",
                (json.dumps([c.to_dict() for c in credentials]), now_ms(), deployment_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(deployment_id)
