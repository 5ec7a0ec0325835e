"""Publish an aggregated review to the code host.

Publishing is idempotent per execution: the review body carries a hidden
marker with the execution id, and publishing again for the same execution
rewrites that artifact instead of adding a second one. The orchestrator
relies on this to retry a failed publish blindly.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from github import GithubException
from rich.console import Console

from prweave_core.errors import PublishError
from prweave_core.gh.pull_request import execution_marker, find_execution_comment, get_pull, get_repo
from prweave_core.models import AggregatedReview, PublishReceipt, ReviewRequest

console = Console()
logger = logging.getLogger(__name__)

_SEVERITY_COLOR = {"critical": "red", "major": "yellow", "minor": "blue", "nitpick": "dim"}


def render_body(execution_id: str, review: AggregatedReview) -> str:
    """Markdown body for the review comment, ending with the execution marker."""
    lines = [review.summary]
    if review.findings:
        lines.append("\n### Findings\n")
        for f in review.findings:
            lines.append(f"- **[{f.severity.upper()}]** `{f.path}` line {f.line}: {f.message}")
    lines.append(f"\n_Verdict: {review.verdict}_")
    lines.append(execution_marker(execution_id))
    return "\n".join(lines)


class BasePublisher(ABC):
    @abstractmethod
    def publish(self, execution_id: str, request: ReviewRequest, review: AggregatedReview) -> PublishReceipt:
        """Publish (or re-publish) the review for ``execution_id``.

        Raises PublishError on failure. Calling twice with the same
        execution id leaves exactly one artifact on the code host.
        """


class GitHubPublisher(BasePublisher):
    """Posts the review as a single PR conversation comment.

    A conversation comment rather than a PR review: reviews cannot be
    edited after submission, so they cannot be made idempotent.
    """

    def __init__(self, token: str | None = None, repo_obj=None):
        if token is None and repo_obj is None:
            raise ValueError("GitHubPublisher needs a token or a repository object.")
        self._token = token
        self._repo_obj = repo_obj

    def _repo(self, repo_name: str):
        if self._repo_obj is not None:
            return self._repo_obj
        return get_repo(repo_name, token=self._token)

    def publish(self, execution_id: str, request: ReviewRequest, review: AggregatedReview) -> PublishReceipt:
        body = render_body(execution_id, review)
        try:
            pr = get_pull(self._repo(request.repo), request.pr_number)
            existing = find_execution_comment(pr, execution_id)
            if existing is not None:
                existing.edit(body)
                logger.info("Updated review comment %s for execution %s", existing.id, execution_id)
                return PublishReceipt(execution_id, existing.html_url, existing.id, updated=True)
            comment = pr.create_issue_comment(body)
        except GithubException as e:
            raise PublishError(f"GitHub rejected the review comment: {e}") from e
        logger.info("Posted review comment %s for execution %s", comment.id, execution_id)
        return PublishReceipt(execution_id, comment.html_url, comment.id, updated=False)


class ShadowPublisher(BasePublisher):
    """Dry-run publisher: prints the review to the terminal instead of posting it.

    Keeps the last body per execution id in memory, so repeated publishes
    for one execution still amount to one artifact.
    """

    def __init__(self, quiet: bool = False):
        self.published: dict[str, str] = {}
        self.quiet = quiet

    def publish(self, execution_id: str, request: ReviewRequest, review: AggregatedReview) -> PublishReceipt:
        updated = execution_id in self.published
        self.published[execution_id] = render_body(execution_id, review)
        if not self.quiet:
            self._print(request, review)
        location = f"shadow://{request.repo}/pull/{request.pr_number}/{execution_id}"
        return PublishReceipt(execution_id, location, execution_id, updated=updated)

    @staticmethod
    def _print(request: ReviewRequest, review: AggregatedReview) -> None:
        if not review.findings:
            console.print(f"[yellow]Shadow mode: no findings for {request.repo}#{request.pr_number}.[/yellow]")
        else:
            console.print(f"\n[bold]Shadow review — {len(review.findings)} finding(s) (not posted)[/bold]\n")
        for f in review.findings:
            color = _SEVERITY_COLOR.get(f.severity, "white")
            console.print(
                f"[bold cyan]{f.path}[/bold cyan]  line [bold]{f.line}[/bold]  [{color}]{f.severity.upper()}[/{color}]"
            )
            if f.code.strip():
                console.print(f"  [dim]{f.code.strip()}[/dim]")
            console.print(f"  {f.message}")
            console.print()
        for notice in review.notices:
            console.print(f"[yellow]{notice}[/yellow]")
