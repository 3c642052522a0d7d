"""Tests for the n8n prober (httpx MockTransport, no network)."""

from __future__ import annotations

import httpx
import pytest

from deploywatch.config import settings
from deploywatch.credentials.store import CredentialSecretStore
from deploywatch.credentials.vault import CredentialVault
from deploywatch.deployments.models import Deployment, DeploymentType, ErrorSeverity
from deploywatch.health.models import ProbeDetails, ProbeResult
from deploywatch.health.prober import N8nProber, ProbeTarget, compute_metrics, health_issues

TARGET = ProbeTarget("https://n8n.test", "api-key", "wf-1")


def execution(i: int, status: str = "success") -> dict:
    return {
        "id": str(i),
        "status": status,
        "startedAt": "2025-01-01T00:00:00.000Z",
        "stoppedAt": "2025-01-01T00:00:02.000Z",
        "workflowId": "wf-1",
    }


def n8n_transport(
    active: bool = True,
    executions: list[dict] | None = None,
    healthz: int = 200,
    workflow_status: int = 200,
    seen: list[httpx.Request] | None = None,
) -> httpx.MockTransport:
    runs = [execution(i) for i in range(5)] if executions is None else executions

    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        path = request.url.path
        if path == "/healthz":
            return httpx.Response(healthz)
        if path == "/api/v1/workflows/wf-1":
            if workflow_status != 200:
                return httpx.Response(workflow_status, json={"message": "Workflow not found"})
            return httpx.Response(200, json={"id": "wf-1", "active": active})
        if path == "/api/v1/executions":
            return httpx.Response(200, json={"data": runs})
        return httpx.Response(404)

    return httpx.MockTransport(handler)


# ── Metrics ──────────────────────────────────────────────────────────────────


class TestMetrics:
    def test_no_executions(self) -> None:
        assert compute_metrics([]) == (0, 100, 0)

    def test_success_rate_and_duration(self) -> None:
        runs = [execution(1), execution(2), execution(3, "error"), execution(4)]
        assert compute_metrics(runs) == (4, 75, 2000)

    def test_running_executions_skip_duration(self) -> None:
        runs = [execution(1), {"id": "2", "status": "running", "startedAt": "2025-01-01T00:00:00Z"}]
        recent, rate, avg = compute_metrics(runs)
        assert (recent, rate, avg) == (2, 50, 2000)


# ── Probe ────────────────────────────────────────────────────────────────────


class TestProbe:
    def test_healthy(self) -> None:
        seen: list[httpx.Request] = []
        result = N8nProber(transport=n8n_transport(seen=seen)).probe(TARGET)

        assert result.is_healthy is True
        assert result.error is None
        assert result.details is not None
        assert result.details.workflow_active is True
        assert result.details.recent_executions == 5
        assert result.last_execution is not None
        assert result.last_execution.id == "0"
        assert all(r.headers.get("X-N8N-API-KEY") == "api-key" for r in seen)
        executions_req = next(r for r in seen if r.url.path == "/api/v1/executions")
        assert executions_req.url.params["workflowId"] == "wf-1"
        assert executions_req.url.params["limit"] == "20"

    def test_inactive_workflow(self) -> None:
        result = N8nProber(transport=n8n_transport(active=False)).probe(TARGET)
        assert result.is_healthy is False
        assert result.details is not None
        assert result.details.workflow_active is False

    def test_low_success_rate(self) -> None:
        runs = [execution(1), execution(2, "error"), execution(3, "error")]
        result = N8nProber(transport=n8n_transport(executions=runs)).probe(TARGET)
        assert result.is_healthy is False
        assert result.details.success_rate == 33
        assert result.last_execution.status == "success"

    def test_no_recent_executions(self) -> None:
        result = N8nProber(transport=n8n_transport(executions=[])).probe(TARGET)
        assert result.is_healthy is False
        assert result.last_execution is None

    def test_newest_execution_not_started_yet(self) -> None:
        waiting = {"id": "9", "status": "waiting", "startedAt": None, "stoppedAt": None}
        runs = [waiting, execution(1), execution(2)]
        result = N8nProber(transport=n8n_transport(executions=runs)).probe(TARGET)

        assert result.details.recent_executions == 3
        assert result.last_execution is not None
        assert result.last_execution.id == "1"
        assert result.last_execution.started_at_ms is not None

    def test_no_execution_started_yet(self) -> None:
        runs = [{"id": "9", "status": "new", "startedAt": None}]
        result = N8nProber(transport=n8n_transport(executions=runs)).probe(TARGET)
        assert result.last_execution is None

    def test_unreachable(self) -> None:
        result = N8nProber(transport=n8n_transport(healthz=503)).probe(TARGET)
        assert result.is_healthy is False
        assert result.error == "n8n instance is unreachable"

    def test_api_error_message(self) -> None:
        result = N8nProber(transport=n8n_transport(workflow_status=404)).probe(TARGET)
        assert result.is_healthy is False
        assert result.error == "Workflow not found"

    def test_connection_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/healthz":
                return httpx.Response(200)
            raise httpx.ConnectError("connection refused", request=request)

        result = N8nProber(transport=httpx.MockTransport(handler)).probe(TARGET)
        assert result.is_healthy is False
        assert result.error.startswith("Connection error")

    def test_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/healthz":
                return httpx.Response(200)
            raise httpx.ReadTimeout("slow", request=request)

        result = N8nProber(timeout=2, transport=httpx.MockTransport(handler)).probe(TARGET)
        assert result.is_healthy is False
        assert "timed out" in result.error


# ── Target resolution ────────────────────────────────────────────────────────


class TestTargetFor:
    def test_managed_instance_uses_settings(self, monkeypatch) -> None:
        monkeypatch.setattr(settings, "n8n_instance_url", "https://managed.test/")
        monkeypatch.setattr(settings, "n8n_api_key", "managed-key")
        d = Deployment(client_id="c", agent_id="a", workflow_id="wf-7", workflow_name="x")

        target = N8nProber().target_for(d)
        assert target == ProbeTarget("https://managed.test", "managed-key", "wf-7")

    def test_missing_config_is_unhealthy(self, monkeypatch) -> None:
        monkeypatch.setattr(settings, "n8n_instance_url", "")
        d = Deployment(client_id="c", agent_id="a", workflow_id="wf-7", workflow_name="x")

        result = N8nProber().probe_deployment(d)
        assert result.is_healthy is False
        assert result.error == "n8n credentials missing"

    def test_client_instance_reads_encrypted_key(self, db, make_deployment) -> None:
        d = make_deployment(
            deployment_type=DeploymentType.CLIENT_INSTANCE,
            n8n_instance_url="https://client.test",
        )
        secrets = CredentialSecretStore(db, CredentialVault("s3cret"))
        prober = N8nProber(secrets=secrets)
        assert prober.target_for(d) is None

        secrets.put(d.id, "n8n_api_key", "client-key")
        assert prober.target_for(d) == ProbeTarget("https://client.test", "client-key", "wf-1")


# ── Issues ───────────────────────────────────────────────────────────────────


class TestHealthIssues:
    def test_healthy_result_has_none(self) -> None:
        result = N8nProber(transport=n8n_transport()).probe(TARGET)
        assert health_issues(result) == []

    def test_unreachable(self) -> None:
        result = N8nProber(transport=n8n_transport(healthz=503)).probe(TARGET)
        assert [i.type for i in health_issues(result)] == ["connection_lost"]
        assert health_issues(result)[0].severity == ErrorSeverity.CRITICAL

    def test_inactive_failing_and_last_run_failed(self) -> None:
        runs = [execution(1, "error"), execution(2), execution(3, "error")]
        result = N8nProber(transport=n8n_transport(active=False, executions=runs)).probe(TARGET)

        issues = {i.type: i for i in health_issues(result)}
        assert set(issues) == {"workflow_inactive", "high_failure_rate", "execution_failed"}
        assert issues["high_failure_rate"].severity == ErrorSeverity.CRITICAL
        assert issues["high_failure_rate"].message == "High failure rate: 67% of recent executions failed"

    def test_moderate_failure_rate_is_error(self) -> None:
        result = ProbeResult(is_healthy=False, details=ProbeDetails(workflow_active=True, success_rate=60))
        (issue,) = health_issues(result)
        assert issue.type == "high_failure_rate"
        assert issue.severity == ErrorSeverity.ERROR

    def test_slow_executions(self) -> None:
        result = ProbeResult(
            is_healthy=True,
            details=ProbeDetails(workflow_active=True, recent_executions=3, avg_execution_time_ms=45_000),
        )
        (issue,) = health_issues(result)
        assert issue.to_dict() == {
            "type": "slow_execution",
            "severity": "warning",
            "message": "Slow execution time: 45s average",
        }
