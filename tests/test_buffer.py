"""Tests for the bounded error history."""

from __future__ import annotations

import pytest

from deploywatch.deployments.models import HealthError
from deploywatch.health.buffer import ERROR_HISTORY_CAP, ErrorHistoryBuffer


def err(i: int) -> HealthError:
    return HealthError(timestamp=i, message=f"E{i}")


class TestErrorHistoryBuffer:
    def test_default_capacity(self) -> None:
        assert ErrorHistoryBuffer().capacity == ERROR_HISTORY_CAP == 10

    def test_push_below_capacity(self) -> None:
        buf = ErrorHistoryBuffer()
        for i in range(3):
            buf.push(err(i))
        assert [e.timestamp for e in buf.entries()] == [0, 1, 2]

    def test_evicts_oldest_first(self) -> None:
        buf = ErrorHistoryBuffer()
        for i in range(12):
            buf.push(err(i))
        assert len(buf) == 10
        assert [e.timestamp for e in buf.entries()] == list(range(2, 12))

    def test_seeded_with_oversized_history(self) -> None:
        buf = ErrorHistoryBuffer([err(i) for i in range(14)])
        assert [e.timestamp for e in buf.entries()] == list(range(4, 14))

    def test_entries_is_a_copy(self) -> None:
        buf = ErrorHistoryBuffer([err(1)])
        buf.entries().append(err(2))
        assert len(buf) == 1

    def test_invalid_capacity(self) -> None:
        with pytest.raises(ValueError):
            ErrorHistoryBuffer(capacity=0)
