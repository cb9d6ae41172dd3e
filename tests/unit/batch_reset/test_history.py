"""Unit tests for HistoryCursor."""

from __future__ import annotations

import pytest

from tctl.client.batch_reset.history import HistoryCursor, history_cursor_factory
from tctl.core.exceptions import ErrorKind, HistoryFetchError, ServiceError


async def _collect(cursor: HistoryCursor) -> list[int]:
    return [event.event_id async for event in cursor]


class TestHistoryCursor:
    """Forward-only iteration over paginated history."""

    @pytest.mark.asyncio
    async def test_follows_continuation_tokens(self, service) -> None:
        events = [service.scheduled(i) for i in range(1, 8)]
        service.add_run("wf-1", "run-A", events)

        cursor = HistoryCursor(service, "wf-1", "run-A", page_size=3)

        assert await _collect(cursor) == [1, 2, 3, 4, 5, 6, 7]
        assert cursor.pages_fetched == 3
        tokens = [call[3] for call in service.calls_to("get_history_page")]
        assert tokens == [None, "3", "6"]

    @pytest.mark.asyncio
    async def test_empty_history(self, service) -> None:
        service.add_run("wf-1", "run-A", [])

        cursor = HistoryCursor(service, "wf-1", "run-A")

        assert await _collect(cursor) == []
        assert cursor.pages_fetched == 1

    @pytest.mark.asyncio
    async def test_page_failure_raises_history_fetch_error(self, service) -> None:
        service.add_run("wf-1", "run-A", [service.scheduled(i) for i in range(1, 5)])
        cursor = HistoryCursor(service, "wf-1", "run-A", page_size=2)
        seen = []

        with pytest.raises(HistoryFetchError) as exc_info:
            async for event in cursor:
                seen.append(event.event_id)
                if len(seen) == 2:
                    service.fail(
                        "get_history_page",
                        ServiceError(ErrorKind.UNAVAILABLE, "connection reset"),
                    )

        assert seen == [1, 2]
        assert exc_info.value.kind == ErrorKind.UNAVAILABLE
        assert isinstance(exc_info.value.__cause__, ServiceError)

    @pytest.mark.asyncio
    async def test_does_not_retry(self, service) -> None:
        service.add_run("wf-1", "run-A", [service.scheduled(1)])
        service.fail(
            "get_history_page", ServiceError(ErrorKind.UNAVAILABLE, "unavailable")
        )

        with pytest.raises(HistoryFetchError):
            await _collect(HistoryCursor(service, "wf-1", "run-A"))

        assert len(service.calls_to("get_history_page")) == 1

    @pytest.mark.asyncio
    async def test_not_restartable(self, service) -> None:
        service.add_run("wf-1", "run-A", [service.scheduled(1)])
        cursor = HistoryCursor(service, "wf-1", "run-A")
        await _collect(cursor)

        with pytest.raises(RuntimeError):
            await _collect(cursor)

    def test_factory_passes_page_size(self, service) -> None:
        factory = history_cursor_factory(service)

        cursor = factory("wf-1", "run-A", 25)

        assert cursor.workflow_id == "wf-1"
        assert cursor.run_id == "run-A"
        assert cursor.page_size == 25
