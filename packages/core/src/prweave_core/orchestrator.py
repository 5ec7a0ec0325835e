"""Workflow orchestration: one pull request in, one published review out.

    Ingested → Splitting → Analyzing → Aggregating → Publishing → Notifying → Succeeded
        └──────────┴───────────┴────────────┴─────────────┴──────────→ Failed

Each stage commits its output onto the WorkflowExecution before the next
stage starts, and stages only ever move forward. Running a non-terminal
execution again therefore resumes at the stage it stopped in, reusing what
earlier stages committed (for Analyzing: only chunks without a result are
dispatched again).

The orchestrator itself holds no per-execution state. Everything about a run
lives on the WorkflowExecution passed through every stage call, so one
Orchestrator can drive executions for different pull requests from several
threads at once. The AnalysisBudget is the only thing they share.
"""

from __future__ import annotations

import logging
import time
from functools import partial
from typing import Callable

from rich.console import Console

from prweave_core.aggregator import aggregate
from prweave_core.analyzer import ChunkAnalyzerClient, get_analyzer
from prweave_core.config import load_guidelines, load_settings
from prweave_core.dispatch import ChunkDispatcher
from prweave_core.errors import (
    AggregationError,
    ErrorHandler,
    ExecutionCancelled,
    NotifyError,
    PublishError,
    SplitError,
)
from prweave_core.ingest import validate_request
from prweave_core.models import Outcome, ReviewRequest, Stage, WorkflowExecution
from prweave_core.notifier import BaseNotifier, get_notifier
from prweave_core.policy import AnalysisBudget, RetryPolicy
from prweave_core.publisher import BasePublisher
from prweave_core.splitter import ChunkSplitter

console = Console()
logger = logging.getLogger(__name__)

ArchiveHook = Callable[[WorkflowExecution], None]


class Orchestrator:
    def __init__(
        self,
        splitter: ChunkSplitter,
        analyzer: ChunkAnalyzerClient,
        publisher: BasePublisher,
        notifier: BaseNotifier,
        budget: AnalysisBudget | None = None,
        join_timeout: float | None = None,
        publish_policy: RetryPolicy | None = None,
        archive: ArchiveHook | None = None,
        error_handler: ErrorHandler | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.splitter = splitter
        self.analyzer = analyzer
        self.publisher = publisher
        self.notifier = notifier
        self.budget = budget or AnalysisBudget(4)
        self.join_timeout = join_timeout
        self.publish_policy = publish_policy or RetryPolicy()
        self.archive = archive
        self.error_handler = error_handler or ErrorHandler()
        self._sleep = sleep

    @classmethod
    def from_config(
        cls,
        config: dict,
        publisher: BasePublisher,
        notifier: BaseNotifier | None = None,
        archive: ArchiveHook | None = None,
    ) -> Orchestrator:
        """Wire up an orchestrator from a loaded config dict."""
        settings = load_settings(config)
        analyzer = ChunkAnalyzerClient(
            get_analyzer(config),
            policy=settings.analysis_policy,
            guidelines=load_guidelines(config),
        )
        return cls(
            splitter=ChunkSplitter(settings.max_chunk_size, settings.chunk_size_unit),
            analyzer=analyzer,
            publisher=publisher,
            notifier=notifier or get_notifier(config),
            budget=AnalysisBudget(settings.max_concurrent_analyses),
            join_timeout=settings.join_timeout,
            publish_policy=settings.publish_policy,
            archive=archive,
        )

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def start(self, request: ReviewRequest) -> WorkflowExecution:
        """Validate ``request`` and run a new execution to a terminal state.

        Raises InputError for a malformed request; in that case no execution
        exists and nothing is notified.
        """
        return self.run(self.begin(request))

    def begin(self, request: ReviewRequest) -> WorkflowExecution:
        """Create an execution in ``Ingested`` without running it."""
        validate_request(request)
        execution = WorkflowExecution(request=request)
        logger.info(
            "Execution %s started for %s#%s (%d file(s))",
            execution.execution_id,
            request.repo,
            request.pr_number,
            len(request.files),
        )
        return execution

    def run(self, execution: WorkflowExecution) -> WorkflowExecution:
        """Drive ``execution`` from its current stage to Succeeded or Failed."""
        if execution.is_terminal:
            return execution

        try:
            if execution.stage is Stage.INGESTED:
                self._enter(execution, Stage.SPLITTING)
            if execution.stage is Stage.SPLITTING:
                self._split(execution)
            if execution.stage is Stage.ANALYZING:
                self._analyze(execution)
            if execution.stage is Stage.AGGREGATING:
                self._aggregate(execution)
            if execution.stage is Stage.PUBLISHING:
                self._publish(execution)
        except Exception as e:
            self._compensate(execution, e)
            return execution

        if execution.stage is Stage.NOTIFYING:
            self._notify(self._outcome(execution))
            execution.advance(Stage.SUCCEEDED)
            logger.info("Execution %s succeeded", execution.execution_id)
        self._archive(execution)
        return execution

    # ------------------------------------------------------------------ #
    # Stages                                                               #
    # ------------------------------------------------------------------ #

    def _enter(self, execution: WorkflowExecution, stage: Stage) -> None:
        """Stage boundary: honour a pending cancellation, then move forward."""
        if execution.cancel_requested:
            raise ExecutionCancelled(f"Execution cancelled before {stage.value}")
        self._advance(execution, stage)

    def _advance(self, execution: WorkflowExecution, stage: Stage) -> None:
        previous = execution.stage
        execution.advance(stage)
        logger.debug("Execution %s: %s -> %s", execution.execution_id, previous.value, stage.value)

    def _split(self, execution: WorkflowExecution) -> None:
        if execution.chunks is None:
            try:
                outcome = self.splitter.split_with_report(execution.request)
            except Exception as e:
                raise SplitError(f"Could not split the change set: {e}") from e
            execution.chunks = outcome.chunks
            execution.split_degraded = outcome.degraded

        if execution.chunks:
            console.print(f"Split into {len(execution.chunks)} chunk(s).")
            self._enter(execution, Stage.ANALYZING)
        else:
            # Nothing to analyze: go straight to an empty, complete review.
            self._enter(execution, Stage.AGGREGATING)

    def _analyze(self, execution: WorkflowExecution) -> None:
        pending = execution.pending_chunks()
        if pending:
            analyze = partial(self.analyzer.analyze, description=execution.request.body)
            dispatcher = ChunkDispatcher(analyze, self.budget, self.join_timeout)
            results, timed_out = dispatcher.dispatch(pending)
            for chunk in pending:
                execution.record_result(results[chunk.chunk_id])
            execution.join_timed_out = execution.join_timed_out or timed_out

        failed = sum(1 for r in execution.chunk_results.values() if not r.succeeded)
        if failed:
            console.print(f"[yellow]{failed} chunk(s) failed; the review will be partial.[/yellow]")
        self._enter(execution, Stage.AGGREGATING)

    def _aggregate(self, execution: WorkflowExecution) -> None:
        if execution.review is None:
            try:
                results = [execution.chunk_results[c.chunk_id] for c in execution.chunks or []]
                execution.review = aggregate(results)
            except Exception as e:
                raise AggregationError(f"Could not aggregate chunk results: {e}") from e
        self._enter(execution, Stage.PUBLISHING)

    def _publish(self, execution: WorkflowExecution) -> None:
        policy = self.publish_policy
        attempt = 0
        while True:
            if execution.cancel_requested:
                raise ExecutionCancelled("Execution cancelled before publishing")
            attempt += 1
            try:
                execution.receipt = self.publisher.publish(
                    execution.execution_id, execution.request, execution.review
                )
                break
            except Exception as e:
                if attempt >= policy.max_attempts:
                    raise PublishError(f"Publishing failed after {attempt} attempt(s): {e}") from e
                delay = policy.delay_for(attempt)
                logger.warning(
                    "Publish attempt %d/%d for execution %s failed: %s. Retrying in %.1fs...",
                    attempt,
                    policy.max_attempts,
                    execution.execution_id,
                    e,
                    delay,
                )
                self._sleep(delay)
        # The review is live on the pull request; a later cancel no longer applies.
        self._advance(execution, Stage.NOTIFYING)

    # ------------------------------------------------------------------ #
    # Compensation, notification, archive                                 #
    # ------------------------------------------------------------------ #

    def _compensate(self, execution: WorkflowExecution, cause: Exception) -> None:
        """Fatal path: classify, mark Failed, tell someone."""
        record = self.error_handler.handle(execution.stage, cause)
        logger.error(
            "Execution %s failed in %s: %s: %s",
            execution.execution_id,
            record.stage,
            record.kind,
            record.message,
        )
        execution.fail(record)
        self._notify(self._outcome(execution))
        self._archive(execution)

    def _notify(self, outcome: Outcome) -> None:
        try:
            self.notifier.notify(outcome)
        except Exception as e:
            error = e if isinstance(e, NotifyError) else NotifyError(f"{type(e).__name__}: {e}")
            logger.warning("Notification for execution %s failed: %s", outcome.execution_id, error)

    def _archive(self, execution: WorkflowExecution) -> None:
        if self.archive is None:
            return
        try:
            self.archive(execution)
        except Exception as e:
            logger.warning("Could not archive execution %s (%s): %s", execution.execution_id, type(e).__name__, e)

    @staticmethod
    def _outcome(execution: WorkflowExecution) -> Outcome:
        request = execution.request
        review = execution.review
        if execution.error is not None:
            return Outcome(
                execution_id=execution.execution_id,
                repo=request.repo,
                pr_number=request.pr_number,
                status=Stage.FAILED.value,
                error=execution.error,
                complete=False,
            )
        summary = ""
        if review is not None:
            summary = f"{len(review.findings)} finding(s) across {review.chunk_count} chunk(s) · {review.verdict}"
        return Outcome(
            execution_id=execution.execution_id,
            repo=request.repo,
            pr_number=request.pr_number,
            status=Stage.SUCCEEDED.value,
            summary=summary,
            location=execution.receipt.location if execution.receipt else None,
            complete=review.complete if review is not None else True,
        )
