"""n8n workflow prober: turns a deployment's live state into a ProbeResult.

Every transport problem (timeouts, connection errors, HTTP errors) is folded
into an unhealthy result with a descriptive error string; ``probe`` never
raises for network reasons.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any

import httpx

from deploywatch.config import settings
from deploywatch.credentials.store import CredentialSecretStore
from deploywatch.deployments.models import Deployment, DeploymentType, ErrorSeverity
from deploywatch.health.models import LastExecution, ProbeDetails, ProbeResult, iso_to_ms

logger = logging.getLogger(__name__)

N8N_API_KEY_CREDENTIAL = "n8n_api_key"
EXECUTION_SAMPLE = 20
MIN_SUCCESS_RATE = 80
SLOW_EXECUTION_MS = 30_000


class N8nApiError(Exception):
    """Raised when the n8n API answers with an error status."""

    def __init__(self, status_code: int, detail: str) -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"n8n API error {status_code}: {detail}")


@dataclass(frozen=True)
class ProbeTarget:
    base_url: str
    api_key: str
    workflow_id: str


@dataclass(frozen=True)
class HealthIssue:
    type: str
    severity: ErrorSeverity
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"type": self.type, "severity": self.severity.value, "message": self.message}


def compute_metrics(executions: list[dict[str, Any]]) -> tuple[int, int, int]:
    """(recent_executions, success_rate %, avg_execution_time_ms)."""
    if not executions:
        return 0, 100, 0  # no failures if nothing ran

    successful = sum(1 for e in executions if e.get("status") == "success")
    success_rate = round(successful / len(executions) * 100)

    durations = [
        iso_to_ms(e["stoppedAt"]) - iso_to_ms(e["startedAt"])
        for e in executions
        if e.get("startedAt") and e.get("stoppedAt")
    ]
    avg = round(sum(durations) / len(durations)) if durations else 0
    return len(executions), success_rate, avg


def health_issues(result: ProbeResult) -> list[HealthIssue]:
    """Reasons a probe result looks wrong, for display next to the raw metrics."""
    issues: list[HealthIssue] = []
    if result.error and "unreachable" in result.error:
        issues.append(HealthIssue("connection_lost", ErrorSeverity.CRITICAL, "Cannot reach n8n instance"))

    details = result.details
    if details is not None:
        if not details.workflow_active:
            issues.append(HealthIssue("workflow_inactive", ErrorSeverity.WARNING, "Workflow is not active"))
        if details.success_rate < MIN_SUCCESS_RATE:
            issues.append(HealthIssue(
                "high_failure_rate",
                ErrorSeverity.CRITICAL if details.success_rate < 50 else ErrorSeverity.ERROR,
                f"High failure rate: {100 - details.success_rate}% of recent executions failed",
            ))
        if details.avg_execution_time_ms > SLOW_EXECUTION_MS:
            issues.append(HealthIssue(
                "slow_execution",
                ErrorSeverity.WARNING,
                f"Slow execution time: {round(details.avg_execution_time_ms / 1000)}s average",
            ))

    if result.last_execution is not None and result.last_execution.status == "error":
        issues.append(HealthIssue("execution_failed", ErrorSeverity.ERROR, "Last workflow execution failed"))
    return issues


class N8nProber:
    """Synchronous httpx prober, safe to call from worker threads."""

    def __init__(
        self,
        secrets: CredentialSecretStore | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._secrets = secrets
        self._timeout = timeout or settings.probe_timeout_seconds
        self._transport = transport

    def target_for(self, deployment: Deployment) -> ProbeTarget | None:
        """Where to probe a deployment, or None if its n8n access is not configured."""
        if deployment.deployment_type == DeploymentType.CLIENT_INSTANCE:
            base_url = deployment.n8n_instance_url or ""
            api_key = ""
            if self._secrets is not None and base_url:
                api_key = self._secrets.get(deployment.id, N8N_API_KEY_CREDENTIAL) or ""
        else:
            base_url = settings.n8n_instance_url
            api_key = settings.n8n_api_key
        if not base_url or not api_key:
            return None
        return ProbeTarget(base_url.rstrip("/"), api_key, deployment.workflow_id)

    def probe_deployment(self, deployment: Deployment) -> ProbeResult:
        target = self.target_for(deployment)
        if target is None:
            return ProbeResult(is_healthy=False, error="n8n credentials missing")
        return self.probe(target)

    def probe(self, target: ProbeTarget) -> ProbeResult:
        t0 = time.perf_counter()
        try:
            with httpx.Client(
                timeout=self._timeout,
                transport=self._transport,
                headers={"X-N8N-API-KEY": target.api_key, "Accept": "application/json"},
            ) as client:
                if not self._instance_reachable(client, target.base_url):
                    return ProbeResult(is_healthy=False, error="n8n instance is unreachable")

                workflow = self._get(client, f"{target.base_url}/api/v1/workflows/{target.workflow_id}")
                executions = self._get(
                    client,
                    f"{target.base_url}/api/v1/executions",
                    params={"workflowId": target.workflow_id, "limit": str(EXECUTION_SAMPLE)},
                )
        except httpx.TimeoutException:
            return ProbeResult(
                is_healthy=False,
                latency_ms=round((time.perf_counter() - t0) * 1000),
                error=f"n8n request timed out ({self._timeout:g}s)",
            )
        except httpx.HTTPError as e:
            return ProbeResult(
                is_healthy=False,
                latency_ms=round((time.perf_counter() - t0) * 1000),
                error=f"Connection error: {e}",
            )
        except N8nApiError as e:
            return ProbeResult(
                is_healthy=False,
                latency_ms=round((time.perf_counter() - t0) * 1000),
                error=e.detail,
            )

        latency = round((time.perf_counter() - t0) * 1000)
        runs = executions.get("data", []) if isinstance(executions, dict) else executions
        recent, success_rate, avg_ms = compute_metrics(runs)
        active = bool(workflow.get("active", False))

        last_execution = None
        started = next((r for r in runs if r.get("startedAt")), None)
        if started is not None:
            last_execution = LastExecution(
                id=str(started["id"]),
                status=started.get("status", ""),
                started_at=started["startedAt"],
                finished_at=started.get("stoppedAt"),
            )

        return ProbeResult(
            is_healthy=active and success_rate >= MIN_SUCCESS_RATE and recent > 0,
            latency_ms=latency,
            last_execution=last_execution,
            details=ProbeDetails(
                workflow_active=active,
                recent_executions=recent,
                success_rate=success_rate,
                avg_execution_time_ms=avg_ms,
            ),
        )

    # -- HTTP helpers ---------------------------------------------------------

    @staticmethod
    def _instance_reachable(client: httpx.Client, base_url: str) -> bool:
        try:
            resp = client.get(f"{base_url}/healthz")
        except httpx.HTTPError as e:
            logger.debug("n8n healthz failed for %s: %s", base_url, e)
            return False
        return resp.is_success

    @staticmethod
    def _get(client: httpx.Client, url: str, params: dict[str, str] | None = None) -> Any:
        resp = client.get(url, params=params)
        if resp.status_code >= 400:
            detail = f"n8n API Error: {resp.status_code} {resp.reason_phrase}"
            try:
                body = resp.json()
            except ValueError:
                body = None
            if isinstance(body, dict):
                detail = body.get("message", detail)
            raise N8nApiError(resp.status_code, str(detail))
        return resp.json()
