"""Operational notifications for finished executions.

Notification is best-effort. Notifiers may raise; the orchestrator catches
everything a notifier throws, logs it as a NotifyError and carries on.
A broken Slack webhook must never turn a published review into a failed run.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

import requests
from rich.console import Console

from prweave_core.errors import NotifyError
from prweave_core.models import Outcome

console = Console()
logger = logging.getLogger(__name__)

_SLACK_TIMEOUT = 10


def format_outcome(outcome: Outcome) -> str:
    target = f"{outcome.repo}#{outcome.pr_number}"
    if outcome.succeeded:
        text = f":white_check_mark: Review published for {target}"
        if outcome.location:
            text += f" — {outcome.location}"
        if not outcome.complete:
            text += "\n:warning: Partial review: some chunks could not be analyzed."
        if outcome.summary:
            text += f"\n{outcome.summary}"
    else:
        err = outcome.error
        text = f":x: Review failed for {target}"
        if err is not None:
            text += f" at stage *{err.stage}*: `{err.kind}` — {err.message}"
            if err.chunk_id is not None:
                text += f" (chunk {err.chunk_id})"
    return text + f"\n_execution {outcome.execution_id}_"


class BaseNotifier(ABC):
    @abstractmethod
    def notify(self, outcome: Outcome) -> None:
        """Deliver the outcome. May raise; callers treat failures as non-fatal."""


class NoOpNotifier(BaseNotifier):
    def notify(self, outcome: Outcome) -> None:
        pass  # intentional no-op


class ConsoleNotifier(BaseNotifier):
    def notify(self, outcome: Outcome) -> None:
        color = "green" if outcome.succeeded else "red"
        console.print(f"[{color}]{outcome.status}[/{color}] {outcome.repo}#{outcome.pr_number}", highlight=False)
        if outcome.location:
            console.print(f"  Review: {outcome.location}")
        if outcome.error is not None:
            console.print(f"  [red]{outcome.error.stage}: {outcome.error.kind} — {outcome.error.message}[/red]")
        console.print(f"  [dim]execution {outcome.execution_id}[/dim]")


class SlackNotifier(BaseNotifier):
    """Posts to a Slack incoming webhook."""

    def __init__(self, webhook_url: str, timeout: float = _SLACK_TIMEOUT):
        self.webhook_url = webhook_url
        self.timeout = timeout

    def notify(self, outcome: Outcome) -> None:
        text = format_outcome(outcome)
        payload = {
            "text": text,
            "blocks": [{"type": "section", "text": {"type": "mrkdwn", "text": text}}],
        }
        try:
            resp = requests.post(self.webhook_url, json=payload, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise NotifyError(f"Slack webhook failed: {e}") from e


def get_notifier(config: dict) -> BaseNotifier:
    kind = config.get("notifier", "console")
    if kind == "slack":
        url = config.get("slack_webhook_url")
        if not url:
            logger.warning("notifier: slack is configured but SLACK_WEBHOOK_URL is not set. Falling back to console.")
            return ConsoleNotifier()
        return SlackNotifier(url)
    if kind in ("none", "noop"):
        return NoOpNotifier()
    return ConsoleNotifier()
