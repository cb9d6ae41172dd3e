"""Forward-only iteration over a run's paginated event history."""

from __future__ import annotations

from typing import AsyncIterator, Callable, Optional

import structlog

from tctl.client.service import HistoryEventView, WorkflowService
from tctl.core.exceptions import HistoryFetchError

logger = structlog.get_logger(__name__)


class HistoryCursor:
    """Async iterator over the events of one run, following continuation tokens.

    A page fetch failure is raised as HistoryFetchError; the cursor never
    retries and cannot be restarted.

    Usage:
        async for event in HistoryCursor(service, "wf-1", "run-A"):
            ...
    """

    def __init__(
        self,
        service: WorkflowService,
        workflow_id: str,
        run_id: str,
        page_size: int = 1000,
    ) -> None:
        self.service = service
        self.workflow_id = workflow_id
        self.run_id = run_id
        self.page_size = page_size
        self.pages_fetched = 0
        self._started = False

    def __aiter__(self) -> AsyncIterator[HistoryEventView]:
        if self._started:
            raise RuntimeError(
                f"history cursor for {self.workflow_id}/{self.run_id} "
                "was already consumed"
            )
        self._started = True
        return self._events()

    async def _events(self) -> AsyncIterator[HistoryEventView]:
        page_token: Optional[str] = None
        while True:
            try:
                page = await self.service.get_history_page(
                    self.workflow_id,
                    self.run_id,
                    page_token=page_token,
                    page_size=self.page_size,
                )
            except Exception as exc:
                raise HistoryFetchError(self.workflow_id, self.run_id, exc) from exc
            self.pages_fetched += 1
            for event in page.events:
                yield event
            if not page.next_page_token:
                break
            page_token = page.next_page_token
        logger.debug(
            "History scanned",
            workflow_id=self.workflow_id,
            run_id=self.run_id,
            pages=self.pages_fetched,
        )


HistoryCursorFactory = Callable[[str, str, int], HistoryCursor]


def history_cursor_factory(service: WorkflowService) -> HistoryCursorFactory:
    """Return a factory creating cursors over ``service``."""

    def factory(workflow_id: str, run_id: str, page_size: int = 1000) -> HistoryCursor:
        return HistoryCursor(service, workflow_id, run_id, page_size=page_size)

    return factory
