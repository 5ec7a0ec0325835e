"""Bounded fan-out of chunk analyses with a single join barrier.

Every chunk is submitted up front in splitter order, but a task only calls
the analyzer once it holds a slot in the shared AnalysisBudget. The join
waits for all tasks or for the stage timeout, whichever comes first.

On timeout the stage does not wait any further: unfinished chunks get a
synthesized ``JoinTimeout`` failure and the pipeline moves on. Tasks that
were still queued are cancelled. Tasks already admitted keep running until
the analyzer returns (or hits its own per-attempt timeout) — they are never
killed mid-call — and whatever they return is discarded.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import replace
from typing import Callable

from prweave_core.errors import ChunkFatalError, ErrorHandler, JoinTimeout
from prweave_core.models import Chunk, ChunkResult, Stage
from prweave_core.policy import AnalysisBudget

logger = logging.getLogger(__name__)

_error_handler = ErrorHandler()


def timeout_result(chunk: Chunk, timeout: float | None) -> ChunkResult:
    error = JoinTimeout(f"Chunk {chunk.chunk_id} did not finish within the {timeout}s analysis stage timeout")
    record = _error_handler.handle(Stage.ANALYZING, error)
    return ChunkResult.failed(chunk.chunk_id, replace(record, chunk_id=chunk.chunk_id))


class ChunkDispatcher:
    def __init__(
        self,
        analyze: Callable[[Chunk], ChunkResult],
        budget: AnalysisBudget,
        join_timeout: float | None = None,
    ):
        self.analyze = analyze
        self.budget = budget
        self.join_timeout = join_timeout

    def dispatch(self, chunks: list[Chunk]) -> tuple[dict[int, ChunkResult], bool]:
        """Analyze ``chunks`` concurrently. Returns (results by chunk id, timed_out)."""
        if not chunks:
            return {}, False

        closed = threading.Event()
        executor = ThreadPoolExecutor(
            max_workers=min(self.budget.limit, len(chunks)),
            thread_name_prefix="prweave-chunk",
        )
        try:
            futures = {executor.submit(self._run_one, chunk, closed): chunk for chunk in chunks}
            done, pending = wait(futures, timeout=self.join_timeout)
            closed.set()
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        results: dict[int, ChunkResult] = {}
        for future in done:
            chunk = futures[future]
            results[chunk.chunk_id] = future.result()
        for future in pending:
            chunk = futures[future]
            logger.warning("Chunk %d timed out at the join barrier", chunk.chunk_id)
            results[chunk.chunk_id] = timeout_result(chunk, self.join_timeout)

        if pending:
            logger.warning(
                "Join barrier timed out after %ss: %d/%d chunk(s) unfinished",
                self.join_timeout,
                len(pending),
                len(chunks),
            )
        return results, bool(pending)

    def _run_one(self, chunk: Chunk, closed: threading.Event) -> ChunkResult:
        with self.budget.slot():
            if closed.is_set():
                # The barrier already gave up on this chunk; don't start a call nobody will read.
                return timeout_result(chunk, self.join_timeout)
            try:
                return self.analyze(chunk)
            except Exception as e:
                logger.exception("Analyzer raised for chunk %d", chunk.chunk_id)
                error = ChunkFatalError(f"{type(e).__name__}: {e}", chunk.chunk_id)
                return ChunkResult.failed(chunk.chunk_id, _error_handler.handle(Stage.ANALYZING, error))
