"""No-op store — the default when no store is configured.

Using a NoOpStore rather than None lets the CLI always call store.save()
without conditional checks.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from prweave_store.base import BaseStore

if TYPE_CHECKING:
    from prweave_store.models import ExecutionRecord


class NoOpStore(BaseStore):
    """Silently discards all records."""

    def save(self, record: ExecutionRecord) -> None:
        pass  # intentional no-op

    def get(self, execution_id: str) -> ExecutionRecord | None:
        return None

    def list_executions(self, repo: str, pr_number: int | None = None) -> list[ExecutionRecord]:
        return []
