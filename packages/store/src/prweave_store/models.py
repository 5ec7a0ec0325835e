"""Execution archive data models.

Decoupled from prweave_core so the store layer can be used independently
and prweave_core has no knowledge of persistence concerns.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class FindingRecord:
    """A single finding persisted with its execution."""

    file: str
    line: int
    severity: str
    message: str


@dataclass
class ExecutionRecord:
    """A finished workflow execution persisted to the store.

    Created by the CLI layer once Orchestrator.run() returns a terminal
    WorkflowExecution. Execution ids are never reused, so saving a record
    with an id that already exists replaces it.
    """

    execution_id: str
    repo: str
    pr_number: int
    head_sha: str
    status: str  # "Succeeded" | "Failed"
    started_at: str  # ISO-8601 UTC timestamp
    finished_at: str
    chunk_count: int = 0
    failed_chunks: list[int] = field(default_factory=list)
    complete: bool = True
    verdict: str = ""
    review_url: str | None = None
    error_stage: str | None = None
    error_kind: str | None = None
    error_message: str | None = None
    findings: list[FindingRecord] = field(default_factory=list)

    @property
    def total_findings(self) -> int:
        return len(self.findings)
