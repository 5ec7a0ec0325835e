"""Error taxonomy and the error handler.

Every failure the pipeline knows how to reason about is a PrweaveError
subclass carrying a stable ``kind`` string. The kind is what ends up in an
ErrorRecord and in the failure notification, so it must not change when a
class is renamed.

Propagation rules:
  - InputError is raised by Orchestrator.start() before an execution exists.
  - Chunk errors never cross the ChunkAnalyzerClient boundary; they are
    turned into failed ChunkResults.
  - Stage errors (split, aggregate, publish) are fatal to one execution and
    are routed through ErrorHandler -> Notifier -> Failed.
  - NotifyError is only ever logged.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from prweave_core.models import ErrorRecord


class PrweaveError(Exception):
    kind: str = "PrweaveError"


class InputError(PrweaveError, ValueError):
    """The ReviewRequest is malformed; no execution is started."""

    kind = "InputError"


class IllegalTransition(PrweaveError):
    """A workflow execution was asked to move backwards or leave a terminal state."""

    kind = "IllegalTransition"


class GraphBuildError(PrweaveError):
    """The dependency graph could not be built; the splitter degrades to per-file chunks."""

    kind = "SplitDegraded"


class ChunkError(PrweaveError):
    kind = "ChunkError"

    def __init__(self, message: str, chunk_id: int | None = None):
        super().__init__(message)
        self.chunk_id = chunk_id


class ChunkTransientError(ChunkError):
    """Rate limiting, dropped connections, timeouts — worth another attempt."""

    kind = "ChunkTransientError"


class ChunkFatalError(ChunkError):
    """The chunk cannot be analyzed; retrying would give the same answer."""

    kind = "ChunkFatalError"


class AnalysisRejected(ChunkFatalError):
    """The analysis capability refused the input or answered with something unusable."""

    kind = "ChunkFatalError"


class JoinTimeout(PrweaveError):
    kind = "JoinTimeout"


class StageError(PrweaveError):
    kind = "StageError"


class SplitError(StageError):
    kind = "SplitError"


class AggregationError(StageError):
    kind = "AggregationError"


class PublishError(PrweaveError):
    kind = "PublishError"


class NotifyError(PrweaveError):
    kind = "NotifyError"


class ExecutionCancelled(PrweaveError):
    kind = "ExecutionCancelled"


class ErrorHandler:
    """Normalizes any failure into an ErrorRecord.

    Pure classification: no logging, no I/O. The only consumer of the
    record is the notifier (and the archive, via the execution).
    """

    def handle(self, stage: str, cause: BaseException) -> ErrorRecord:
        from prweave_core.models import ErrorRecord

        if isinstance(cause, PrweaveError):
            kind = cause.kind
        else:
            kind = type(cause).__name__
        message = str(cause) or type(cause).__name__
        chunk_id = cause.chunk_id if isinstance(cause, ChunkError) else None
        return ErrorRecord(stage=str(getattr(stage, "value", stage)), kind=kind, message=message, chunk_id=chunk_id)
