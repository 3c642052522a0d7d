"""Bounded FIFO of a deployment's most recent health errors."""

from __future__ import annotations

from collections.abc import Iterable

from deploywatch.deployments.models import HealthError

ERROR_HISTORY_CAP = 10


class ErrorHistoryBuffer:
    """Keeps the newest ``capacity`` errors, evicting the oldest first.

    Display-only: alerting looks at ``consecutive_errors``, never at this.
    """

    def __init__(self, entries: Iterable[HealthError] = (), capacity: int = ERROR_HISTORY_CAP) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._entries: list[HealthError] = []
        for entry in entries:
            self.push(entry)

    def push(self, entry: HealthError) -> None:
        self._entries.append(entry)
        while len(self._entries) > self.capacity:
            self._entries.pop(0)

    def entries(self) -> list[HealthError]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
