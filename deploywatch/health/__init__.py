"""Health subsystem: recorder, alert engine, n8n prober, scheduler."""

from .alerts import AlertEngine, HealthSnapshot
from .buffer import ErrorHistoryBuffer
from .models import HealthCheckRecord, OverallStatus, ProbeResult
from .prober import HealthIssue, N8nProber, health_issues
from .recorder import HealthHistory, HealthRecorder
from .scheduler import HealthScheduler
