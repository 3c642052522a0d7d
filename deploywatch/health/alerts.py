"""Alert decision for health transitions.

An alert fires when a deployment goes unhealthy after being healthy, and on
every unhealthy probe once ``consecutive_errors`` has reached the threshold.
The repeat above the threshold is intentional: a deployment that stays down
keeps producing one alert per probe.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from deploywatch.deployments.models import DeploymentHealth
from deploywatch.notifications.models import Notification, NotificationType, Severity

logger = logging.getLogger(__name__)

ALERT_THRESHOLD = 3
UNKNOWN_ERROR_MESSAGE = "Unknown health check error"


@dataclass(frozen=True)
class HealthSnapshot:
    """The two aggregate fields the alert rule looks at."""

    is_healthy: bool
    consecutive_errors: int

    @classmethod
    def of(cls, health: DeploymentHealth) -> "HealthSnapshot":
        return cls(is_healthy=health.is_healthy, consecutive_errors=health.consecutive_errors)


class AlertEngine:
    def __init__(self, threshold: int = ALERT_THRESHOLD) -> None:
        self.threshold = threshold

    def should_alert(self, previous: HealthSnapshot, updated: HealthSnapshot) -> bool:
        if updated.is_healthy:
            return False
        return previous.is_healthy or updated.consecutive_errors >= self.threshold

    def evaluate(
        self,
        previous: HealthSnapshot,
        updated: HealthSnapshot,
        workflow_name: str,
        error_message: str | None,
        deployment_id: str,
        timestamp: int,
    ) -> Notification | None:
        """Return the health alert to emit for this transition, if any."""
        if not self.should_alert(previous, updated):
            return None

        logger.info(
            "Health alert for %s (%s): consecutive_errors=%d",
            deployment_id, workflow_name, updated.consecutive_errors,
        )
        return Notification(
            type=NotificationType.HEALTH_ALERT,
            title=f"Health Check Failed: {workflow_name}",
            message=error_message if error_message is not None else UNKNOWN_ERROR_MESSAGE,
            severity=Severity.ERROR,
            related_entity_type="deployment",
            related_entity_id=deployment_id,
            read=False,
            dismissed=False,
            created_at=timestamp,
        )
