"""BatchResetOrchestrator: bounded-concurrency reset of a stream of executions.

A producer task drains the TargetSource into a bounded queue and ``parallelism``
worker tasks consume it. Each worker takes a target through
SafetyFilter -> ResetPointResolver -> reset (or a dry run report), retrying
retryable failures. The orchestrator returns once every worker has seen its
stop sentinel, so every queued target has reached a terminal outcome.
"""

from __future__ import annotations

import asyncio
import getpass
import random
import uuid
from typing import Any, AsyncIterable, Callable, Optional

import click
import structlog
from structlog.contextvars import bound_contextvars
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_random,
)

from tctl.client.batch_reset.models import (
    BatchResetConfig,
    BatchResetResult,
    OutcomeStatus,
    TargetOutcome,
)
from tctl.client.batch_reset.resolver import ResetPointResolver
from tctl.client.batch_reset.safety import SafetyFilter
from tctl.client.service import WorkflowRef, WorkflowService
from tctl.core.exceptions import error_kind, is_retryable

logger = structlog.get_logger(__name__)

Reporter = Callable[[TargetOutcome], None]

_STOP: Any = object()


def echo_reporter(outcome: TargetOutcome) -> None:
    """Print one line per outcome; failures go to stderr."""
    click.echo(outcome.describe(), err=outcome.status == OutcomeStatus.FAILED)


def current_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "unknown"


class BatchResetOrchestrator:
    """Runs one batch reset over an async sequence of targets.

    An orchestrator is single use: ``run`` may only be called once.

    Usage:
        orchestrator = BatchResetOrchestrator(service, config)
        source = TargetSource(service, input_file=path,
                              on_excluded=orchestrator.report_excluded)
        result = await orchestrator.run(source)
    """

    def __init__(
        self,
        service: WorkflowService,
        config: BatchResetConfig,
        reporter: Optional[Reporter] = None,
        safety_filter: Optional[SafetyFilter] = None,
        resolver: Optional[ResetPointResolver] = None,
        identity: Optional[str] = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            service: Service handle shared by all workers.
            config: Options of the batch.
            reporter: Receives every terminal outcome, defaults to echo_reporter.
            safety_filter: Pre-flight checks, built from config if not given.
            resolver: Reset anchor resolution, built from config if not given.
            identity: Prefix of the reset reason, defaults to the current user.
        """
        self.service = service
        self.config = config
        self.reporter = reporter or echo_reporter
        self.safety_filter = safety_filter or SafetyFilter(service, config)
        self.resolver = resolver or ResetPointResolver(
            service,
            config.strategy,
            bad_binary_checksum=config.bad_binary_checksum,
            page_size=config.history_page_size,
        )
        self.reason = f"{identity or current_user()}:{config.reason}"
        self.result = BatchResetResult()
        self._started = False

    def record(self, outcome: TargetOutcome) -> None:
        """Add a terminal outcome to the result and report it."""
        self.result.add(outcome)
        self.reporter(outcome)

    def report_excluded(self, ref: WorkflowRef) -> None:
        """Record a target the exclusion set kept from the workers."""
        self.record(TargetOutcome(ref=ref, status=OutcomeStatus.EXCLUDED))

    async def run(self, source: AsyncIterable[WorkflowRef]) -> BatchResetResult:
        """Process every target of ``source`` and wait for all workers to finish.

        Raises:
            TargetSourceError: the source failed; targets queued before the
                failure are still processed first.
        """
        if self._started:
            raise RuntimeError("a batch reset orchestrator can only run once")
        self._started = True

        logger.info(
            "Starting batch reset",
            strategy=self.config.strategy.value,
            parallelism=self.config.parallelism,
            dry_run=self.config.dry_run,
        )
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.config.queue_size)
        producer = asyncio.create_task(self._produce(source, queue))
        workers = [
            asyncio.create_task(self._work(worker_id, queue))
            for worker_id in range(self.config.parallelism)
        ]
        try:
            await asyncio.gather(*workers)
        except BaseException:
            producer.cancel()
            for worker in workers:
                worker.cancel()
            raise

        try:
            await producer
        except Exception as e:
            logger.error(
                "Batch reset aborted by target source failure",
                error=str(e),
                summary=self.result.summary(),
            )
            raise

        logger.info("Batch reset finished", summary=self.result.summary())
        return self.result

    async def _produce(
        self, source: AsyncIterable[WorkflowRef], queue: asyncio.Queue
    ) -> None:
        queued = 0
        try:
            async for ref in source:
                await queue.put(ref)
                queued += 1
        finally:
            # one sentinel per worker, also when the source fails
            for _ in range(self.config.parallelism):
                await queue.put(_STOP)
            logger.debug("Producer finished", queued=queued)

    async def _work(self, worker_id: int, queue: asyncio.Queue) -> None:
        while True:
            ref = await queue.get()
            if ref is _STOP:
                logger.debug("Worker finished", worker_id=worker_id)
                return
            with bound_contextvars(
                workflow_id=ref.workflow_id, run_id=ref.run_id, worker_id=worker_id
            ):
                outcome = await self.process(ref)
                self.record(outcome)
            if self.config.pacing_jitter > 0:
                await asyncio.sleep(random.uniform(0, self.config.pacing_jitter))

    async def process(self, ref: WorkflowRef) -> TargetOutcome:
        """Take one target to a terminal outcome, retrying retryable failures."""
        attempts = 0
        outcome: Optional[TargetOutcome] = None
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.config.max_attempts),
                wait=wait_random(0, self.config.retry_jitter),
                retry=retry_if_exception(is_retryable),
                before_sleep=self._log_retry,
                sleep=asyncio.sleep,
                reraise=True,
            ):
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    outcome = await self._attempt(ref, attempts)
        except Exception as e:
            logger.error(
                "Failed processing workflow",
                error=str(e),
                error_kind=error_kind(e).value,
                attempts=attempts,
            )
            return TargetOutcome(
                ref=ref, status=OutcomeStatus.FAILED, error=e, attempts=attempts
            )
        if outcome is None:
            raise RuntimeError(f"no attempt was made to process {ref}")
        return outcome

    async def _attempt(self, ref: WorkflowRef, attempt: int) -> TargetOutcome:
        decision = await self.safety_filter.check(ref)
        target = decision.ref
        if decision.skipped:
            return TargetOutcome(
                ref=target,
                status=OutcomeStatus.SKIPPED,
                reason=decision.skip_reason,
                attempts=attempt,
            )

        anchor = await self.resolver.resolve(target)
        if self.config.dry_run:
            return TargetOutcome(
                ref=target, status=OutcomeStatus.DRY_RUN, anchor=anchor, attempts=attempt
            )

        new_run_id = await self.service.reset_execution(
            workflow_id=target.workflow_id,
            run_id=anchor.anchor_run_id,
            event_id=anchor.event_id,
            reason=self.reason,
            request_id=str(uuid.uuid4()),
            reapply_type=self.config.reapply_type,
        )
        logger.info(
            "Reset workflow",
            anchor_run_id=anchor.anchor_run_id,
            event_id=anchor.event_id,
            new_run_id=new_run_id,
        )
        return TargetOutcome(
            ref=target,
            status=OutcomeStatus.RESET,
            anchor=anchor,
            new_run_id=new_run_id,
            attempts=attempt,
        )

    @staticmethod
    def _log_retry(retry_state: RetryCallState) -> None:
        exception = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "Retrying workflow",
            attempt=retry_state.attempt_number,
            error=str(exception),
            error_kind=error_kind(exception).value if exception else None,
        )
