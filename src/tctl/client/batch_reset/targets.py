"""TargetSource: the executions a batch reset processes."""

from __future__ import annotations

from pathlib import Path
from typing import AsyncIterator, Callable, Iterator, Optional, Union

import structlog

from tctl.client.service import WorkflowRef, WorkflowService
from tctl.core.exceptions import ConfigError, TargetSourceError

logger = structlog.get_logger(__name__)

DEFAULT_SEPARATOR = "\t"
COMMENT_PREFIX = "#"

ExcludedCallback = Callable[[WorkflowRef], None]


def parse_target_line(
    line: str, separator: str = DEFAULT_SEPARATOR, line_number: int = 0
) -> Optional[WorkflowRef]:
    """Parse one input line into a ref.

    Returns None for blank and comment lines. A line without a workflow id in
    its first column raises TargetSourceError.
    """
    stripped = line.strip()
    if not stripped:
        logger.warning("Skipping blank input line", line_number=line_number)
        return None
    if stripped.startswith(COMMENT_PREFIX):
        return None

    columns = [column.strip() for column in stripped.split(separator)]
    workflow_id = columns[0]
    if not workflow_id:
        raise TargetSourceError(
            f"line {line_number} is malformed, no workflow id found: {line!r}"
        )
    run_id = columns[1] if len(columns) > 1 else ""
    return WorkflowRef(workflow_id=workflow_id, run_id=run_id)


def _read_lines(
    path: Union[str, Path], separator: str
) -> Iterator[tuple[int, WorkflowRef]]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            for line_number, line in enumerate(f, start=1):
                ref = parse_target_line(line, separator, line_number)
                if ref is not None:
                    yield line_number, ref
    except (OSError, UnicodeDecodeError) as e:
        raise TargetSourceError(f"unable to read input file {path}: {e}") from e


def load_exclusion_set(
    path: Optional[Union[str, Path]], separator: str = DEFAULT_SEPARATOR
) -> frozenset[str]:
    """Read the workflow ids of an exclude file; only the first column is used."""
    if not path:
        return frozenset()
    excluded = frozenset(ref.workflow_id for _, ref in _read_lines(path, separator))
    logger.info("Loaded exclude file", path=str(path), excluded=len(excluded))
    return excluded


class TargetSource:
    """Lazy, non-restartable async sequence of the refs to reset.

    Exactly one of ``input_file`` and ``query`` must be given. Refs whose
    workflow id is excluded are passed to ``on_excluded`` and not yielded.

    Usage:
        source = TargetSource(service, input_file="targets.tsv")
        async for ref in source:
            ...
    """

    def __init__(
        self,
        service: Optional[WorkflowService] = None,
        input_file: Optional[Union[str, Path]] = None,
        query: Optional[str] = None,
        separator: str = DEFAULT_SEPARATOR,
        excluded: frozenset[str] = frozenset(),
        on_excluded: Optional[ExcludedCallback] = None,
        page_size: int = 1000,
    ) -> None:
        if bool(input_file) == bool(query):
            raise ConfigError("must provide exactly one of input file or query")
        if query and service is None:
            raise ConfigError("a service is required to scan executions by query")
        self.service = service
        self.input_file = input_file
        self.query = query
        self.separator = separator
        self.excluded = excluded
        self.on_excluded = on_excluded
        self.page_size = page_size
        self._started = False

    def __aiter__(self) -> AsyncIterator[WorkflowRef]:
        if self._started:
            raise RuntimeError("target source was already consumed")
        self._started = True
        return self._filtered()

    async def _filtered(self) -> AsyncIterator[WorkflowRef]:
        source: AsyncIterator[WorkflowRef]
        if self.input_file:
            source = self._from_file(self.input_file)
        elif self.service is not None and self.query:
            source = self._from_query(self.service, self.query)
        else:
            raise ConfigError("must provide exactly one of input file or query")
        async for ref in source:
            if ref.workflow_id in self.excluded:
                logger.info(
                    "Skipping excluded workflow",
                    workflow_id=ref.workflow_id,
                    run_id=ref.run_id,
                )
                if self.on_excluded is not None:
                    self.on_excluded(ref)
                continue
            yield ref

    async def _from_file(
        self, input_file: Union[str, Path]
    ) -> AsyncIterator[WorkflowRef]:
        for _, ref in _read_lines(input_file, self.separator):
            yield ref

    async def _from_query(
        self, service: WorkflowService, query: str
    ) -> AsyncIterator[WorkflowRef]:
        page_token: Optional[str] = None
        pages = 0
        while True:
            try:
                page = await service.scan_executions(
                    query, page_token=page_token, page_size=self.page_size
                )
            except Exception as e:
                raise TargetSourceError(
                    f"failed to scan executions for query {query!r}: {e}"
                ) from e
            pages += 1
            for ref in page.refs:
                yield ref
            if not page.next_page_token:
                break
            page_token = page.next_page_token
        logger.debug("Query scan finished", query=query, pages=pages)
