"""Records that flow between pipeline stages.

Everything except WorkflowExecution is frozen: a record is created by the
stage that owns it and never mutated afterwards. WorkflowExecution is the
one mutable object, owned by a single Orchestrator.run() call for the
lifetime of the execution.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from prweave_core.errors import IllegalTransition

SEVERITIES = ("critical", "major", "minor", "nitpick")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class ChangedFile:
    path: str
    patch: str = ""
    status: str = "modified"
    content: str = ""  # full new-file text when the ingestion adapter has it

    def size(self, unit: str = "bytes") -> int:
        if unit == "lines":
            return len(self.patch.splitlines())
        return len(self.patch.encode("utf-8"))


@dataclass(frozen=True)
class ReviewRequest:
    """Immutable description of the change under review."""

    repo: str
    pr_number: int
    base_sha: str = ""
    head_sha: str = ""
    files: tuple[ChangedFile, ...] = ()
    title: str = ""
    body: str = ""

    @property
    def paths(self) -> list[str]:
        return [f.path for f in self.files]


@dataclass(frozen=True)
class Chunk:
    """A connected, size-bounded slice of the change assigned for analysis."""

    chunk_id: int
    files: tuple[ChangedFile, ...]

    @property
    def paths(self) -> list[str]:
        return [f.path for f in self.files]

    @property
    def content(self) -> str:
        return "\n".join(f.patch for f in self.files)

    def size(self, unit: str = "bytes") -> int:
        return sum(f.size(unit) for f in self.files)


@dataclass(frozen=True)
class Finding:
    path: str
    line: int
    severity: str
    message: str
    code: str = ""

    @property
    def location(self) -> tuple[str, int]:
        return (self.path, self.line)


@dataclass(frozen=True)
class ErrorRecord:
    stage: str
    kind: str
    message: str
    chunk_id: int | None = None


@dataclass(frozen=True)
class ChunkResult:
    chunk_id: int
    status: str  # "ok" | "failed"
    findings: tuple[Finding, ...] = ()
    error: ErrorRecord | None = None
    attempts: int = 0

    @classmethod
    def ok(cls, chunk_id: int, findings, attempts: int = 1) -> ChunkResult:
        return cls(chunk_id=chunk_id, status="ok", findings=tuple(findings), attempts=attempts)

    @classmethod
    def failed(cls, chunk_id: int, error: ErrorRecord, attempts: int = 0) -> ChunkResult:
        return cls(chunk_id=chunk_id, status="failed", error=error, attempts=attempts)

    @property
    def succeeded(self) -> bool:
        return self.status == "ok"


@dataclass(frozen=True)
class AggregatedReview:
    findings: tuple[Finding, ...] = ()
    summary: str = ""
    complete: bool = True
    notices: tuple[str, ...] = ()
    chunk_count: int = 0
    failed_chunks: tuple[int, ...] = ()
    verdict: str = "APPROVE"  # "APPROVE" | "COMMENT" | "REQUEST_CHANGES"


@dataclass(frozen=True)
class PublishReceipt:
    execution_id: str
    location: str
    comment_id: int | str | None = None
    updated: bool = False


@dataclass(frozen=True)
class Outcome:
    """What the notifier is told about a finished execution."""

    execution_id: str
    repo: str
    pr_number: int
    status: str  # "Succeeded" | "Failed"
    summary: str = ""
    location: str | None = None
    error: ErrorRecord | None = None
    complete: bool = True

    @property
    def succeeded(self) -> bool:
        return self.status == Stage.SUCCEEDED.value


class Stage(str, Enum):
    INGESTED = "Ingested"
    SPLITTING = "Splitting"
    ANALYZING = "Analyzing"
    AGGREGATING = "Aggregating"
    PUBLISHING = "Publishing"
    NOTIFYING = "Notifying"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"


_ORDER = [
    Stage.INGESTED,
    Stage.SPLITTING,
    Stage.ANALYZING,
    Stage.AGGREGATING,
    Stage.PUBLISHING,
    Stage.NOTIFYING,
    Stage.SUCCEEDED,
]
TERMINAL_STAGES = frozenset({Stage.SUCCEEDED, Stage.FAILED})


@dataclass
class WorkflowExecution:
    """Run-level record for one pull-request review.

    Passed explicitly through every stage call; nothing about an execution
    lives in module or orchestrator state, so executions for different pull
    requests never see each other.
    """

    request: ReviewRequest
    execution_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    stage: Stage = Stage.INGESTED
    history: list[tuple[str, str]] = field(default_factory=list)
    chunks: list[Chunk] | None = None
    chunk_results: dict[int, ChunkResult] = field(default_factory=dict)
    split_degraded: bool = False
    join_timed_out: bool = False
    review: AggregatedReview | None = None
    receipt: PublishReceipt | None = None
    error: ErrorRecord | None = None
    started_at: str = field(default_factory=_now)
    finished_at: str | None = None
    _cancel: threading.Event = field(default_factory=threading.Event, repr=False, compare=False)

    def __post_init__(self):
        if not self.history:
            self.history.append((self.stage.value, self.started_at))

    @property
    def is_terminal(self) -> bool:
        return self.stage in TERMINAL_STAGES

    @property
    def status(self) -> str | None:
        """Terminal status ("Succeeded" / "Failed"), or None while running."""
        return self.stage.value if self.is_terminal else None

    @property
    def cancel_requested(self) -> bool:
        return self._cancel.is_set()

    def cancel(self) -> None:
        """Ask the orchestrator to stop at the next stage boundary."""
        self._cancel.set()

    def advance(self, stage: Stage) -> None:
        """Move forward to ``stage``. Stages may be skipped but never revisited."""
        if self.is_terminal:
            raise IllegalTransition(f"Execution {self.execution_id} is already {self.stage.value}.")
        if stage is Stage.FAILED:
            self._enter(stage)
            return
        if _ORDER.index(stage) <= _ORDER.index(self.stage):
            raise IllegalTransition(f"Cannot move from {self.stage.value} to {stage.value}.")
        self._enter(stage)

    def fail(self, error: ErrorRecord) -> None:
        self.error = error
        self.advance(Stage.FAILED)

    def record_result(self, result: ChunkResult) -> None:
        """Commit a chunk result. The first result written for a chunk wins."""
        self.chunk_results.setdefault(result.chunk_id, result)

    def pending_chunks(self) -> list[Chunk]:
        return [c for c in (self.chunks or []) if c.chunk_id not in self.chunk_results]

    def _enter(self, stage: Stage) -> None:
        self.stage = stage
        ts = _now()
        self.history.append((stage.value, ts))
        if stage in TERMINAL_STAGES:
            self.finished_at = ts
