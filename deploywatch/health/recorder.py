"""Health recorder: ingests one probe result per deployment.

Each call runs as one SQLite transaction:
  1. resolve the deployment (NotFoundError if missing)
  2. append an immutable health-check record to history
  3. patch the deployment's health aggregate
  4. evaluate the transition and insert the alert notification, if any

A failure anywhere rolls back all of it.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import asdict, replace
from datetime import datetime, timedelta, timezone

from deploywatch.db import Database
from deploywatch.deployments.models import (
    DeploymentHealth,
    ErrorSeverity,
    ExecutionStatus,
    HealthError,
)
from deploywatch.deployments.store import DeploymentStore
from deploywatch.health.alerts import AlertEngine, HealthSnapshot
from deploywatch.health.buffer import ErrorHistoryBuffer
from deploywatch.health.models import (
    ExecutionData,
    HealthCheckRecord,
    HealthChecks,
    OverallStatus,
    ProbeResult,
)
from deploywatch.notifications.models import Notification
from deploywatch.notifications.store import NotificationStore

logger = logging.getLogger(__name__)

HEALTH_CHECK_FAILED = "health_check_failed"


# ── History storage ──────────────────────────────────────────────────────────


class HealthHistory:
    """Append-only table of health-check records."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def append(self, record: HealthCheckRecord, conn: sqlite3.Connection | None = None) -> None:
        with self._db.use(conn) as c:
            c.execute(
                "INSERT INTO health_checks "
                "(deployment_id, timestamp, overall_status, checks, details, execution_data) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    record.deployment_id,
                    record.timestamp,
                    record.overall_status.value,
                    json.dumps(asdict(record.checks)),
                    record.details,
                    json.dumps(asdict(record.execution_data)) if record.execution_data else None,
                ),
            )

    def get_history(self, deployment_id: str, limit: int = 20) -> list[HealthCheckRecord]:
        """Most recent records first, at most ``limit``."""
        if limit <= 0:
            return []
        with self._db.reader() as conn:
            rows = conn.execute(
                "SELECT * FROM health_checks WHERE deployment_id = ? "
                "ORDER BY timestamp DESC, id DESC LIMIT ?",
                (deployment_id, limit),
            ).fetchall()
        return [HealthCheckRecord.from_row(dict(r)) for r in rows]

    def get_latest(self, deployment_id: str) -> HealthCheckRecord | None:
        history = self.get_history(deployment_id, limit=1)
        return history[0] if history else None

    def cleanup_old(self, days: int = 30) -> int:
        """Remove health-check records older than N days."""
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)
        with self._db.transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM health_checks WHERE timestamp < ?",
                (int(cutoff.timestamp() * 1000),),
            )
        return cursor.rowcount


# ── Recorder ─────────────────────────────────────────────────────────────────


def build_record(
    deployment_id: str,
    is_healthy: bool,
    result: ProbeResult,
    timestamp: int,
) -> HealthCheckRecord:
    details = result.details
    execution = result.last_execution
    return HealthCheckRecord(
        deployment_id=deployment_id,
        timestamp=timestamp,
        overall_status=OverallStatus.HEALTHY if is_healthy else OverallStatus.ERROR,
        checks=HealthChecks(
            # The probe can't tell these failure modes apart yet
            workflow_exists=True,
            workflow_active=details.workflow_active if details else False,
            credentials_valid=True,
            recent_execution=(details.recent_executions if details else 0) > 0,
            no_errors=is_healthy,
        ),
        details=result.error,
        execution_data=ExecutionData(
            last_execution_id=execution.id,
            last_execution_time=execution.started_at_ms,
            last_execution_status=execution.status,
            error_message=result.error if execution.status == "error" else None,
        ) if execution else None,
    )


def apply_result(
    health: DeploymentHealth,
    is_healthy: bool,
    result: ProbeResult,
    timestamp: int,
) -> DeploymentHealth:
    """Return the aggregate after one probe; ``health`` is left untouched."""
    errors = health.errors
    if is_healthy:
        error_count = 0
        consecutive_errors = 0
    else:
        if result.error is not None:
            buffer = ErrorHistoryBuffer(health.errors)
            buffer.push(HealthError(
                timestamp=timestamp,
                message=result.error,
                type=HEALTH_CHECK_FAILED,
                severity=ErrorSeverity.ERROR,
            ))
            errors = buffer.entries()
        error_count = health.error_count + 1
        consecutive_errors = health.consecutive_errors + 1

    updated = replace(
        health,
        last_checked=timestamp,
        is_healthy=is_healthy,
        error_count=error_count,
        consecutive_errors=consecutive_errors,
        errors=list(errors),
    )
    if result.last_execution is not None:
        started_ms = result.last_execution.started_at_ms
        if started_ms is not None:
            updated.last_execution_time = started_ms
        updated.last_execution_status = ExecutionStatus.from_probe(result.last_execution.status)
    return updated


class HealthRecorder:
    """Records probe results against deployments and raises health alerts."""

    def __init__(
        self,
        db: Database,
        deployments: DeploymentStore | None = None,
        history: HealthHistory | None = None,
        notifications: NotificationStore | None = None,
        alerts: AlertEngine | None = None,
    ) -> None:
        self._db = db
        self.deployments = deployments or DeploymentStore(db)
        self.history = history or HealthHistory(db)
        self.notifications = notifications or NotificationStore(db)
        self.alerts = alerts or AlertEngine()

    def record(
        self,
        deployment_id: str,
        is_healthy: bool,
        result: ProbeResult,
        timestamp: int,
    ) -> Notification | None:
        """Record one probe result; returns the alert created, if any."""
        with self._db.transaction() as conn:
            deployment = self.deployments.require(deployment_id, conn)
            previous = deployment.health

            self.history.append(build_record(deployment_id, is_healthy, result, timestamp), conn)

            updated = apply_result(previous, is_healthy, result, timestamp)
            self.deployments.save_health(deployment_id, updated, conn)

            notification = self.alerts.evaluate(
                HealthSnapshot.of(previous),
                HealthSnapshot.of(updated),
                workflow_name=deployment.workflow_name,
                error_message=result.error,
                deployment_id=deployment_id,
                timestamp=timestamp,
            )
            if notification is not None:
                self.notifications.insert(notification, conn)

        logger.debug(
            "Recorded %s for %s (consecutive_errors=%d)",
            "healthy" if is_healthy else "unhealthy",
            deployment_id,
            updated.consecutive_errors,
        )
        return notification

    def get_history(self, deployment_id: str, limit: int = 20) -> list[HealthCheckRecord]:
        return self.history.get_history(deployment_id, limit)
