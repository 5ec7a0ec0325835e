"""Abstract store interface.

Any storage backend for finished executions implements this interface. The
CLI depends on BaseStore — not on a concrete backend — so backends are
swappable without touching CLI code.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from prweave_store.models import ExecutionRecord


class BaseStore(ABC):
    """Pluggable archive of finished workflow executions."""

    @abstractmethod
    def save(self, record: ExecutionRecord) -> None:
        """Persist a finished execution, replacing any record with the same id."""

    @abstractmethod
    def get(self, execution_id: str) -> ExecutionRecord | None:
        """Return one execution by id, or None."""

    @abstractmethod
    def list_executions(self, repo: str, pr_number: int | None = None) -> list[ExecutionRecord]:
        """Return executions for a repo, oldest first, optionally filtered by PR number.

        Returns an empty list if none exist — never raises.
        """

    def close(self) -> None:
        """Release any resources held by the store (connections, file handles).

        Optional — subclasses that need cleanup should override this.
        """
