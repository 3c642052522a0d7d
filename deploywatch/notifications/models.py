"""In-app notification records."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class NotificationType(str, Enum):
    HEALTH_ALERT = "health_alert"
    DEPLOYMENT_SUCCESS = "deployment_success"
    DEPLOYMENT_FAILURE = "deployment_failure"
    CREDENTIAL_EXPIRING = "credential_expiring"
    SYSTEM_MESSAGE = "system_message"


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    SUCCESS = "success"


@dataclass
class Notification:
    type: NotificationType
    title: str
    message: str
    severity: Severity
    created_at: int
    related_entity_type: str | None = None
    related_entity_id: str | None = None  # identifies, does not own
    read: bool = False
    dismissed: bool = False
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "title": self.title,
            "message": self.message,
            "severity": self.severity.value,
            "related_entity_type": self.related_entity_type,
            "related_entity_id": self.related_entity_id,
            "read": self.read,
            "dismissed": self.dismissed,
            "created_at": self.created_at,
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Notification":
        return cls(
            id=row["id"],
            type=NotificationType(row["type"]),
            title=row["title"],
            message=row["message"],
            severity=Severity(row["severity"]),
            related_entity_type=row.get("related_entity_type"),
            related_entity_id=row.get("related_entity_id"),
            read=bool(row.get("read", 0)),
            dismissed=bool(row.get("dismissed", 0)),
            created_at=row["created_at"],
        )
