"""review command — run the review pipeline on a GitHub pull request."""

from __future__ import annotations

import click
from rich.console import Console

from prweave_core.gh.pull_request import get_pull, get_pull_requests, get_repo
from prweave_core.ingest import request_from_pull
from prweave_core.models import ReviewRequest, WorkflowExecution
from prweave_core.orchestrator import Orchestrator
from prweave_core.publisher import BasePublisher, GitHubPublisher, ShadowPublisher
from prweave_store.models import ExecutionRecord, FindingRecord

console = Console()


def _execution_to_record(execution: WorkflowExecution) -> ExecutionRecord:
    """Map a terminal WorkflowExecution to an ExecutionRecord for the store.

    The CLI owns this mapping — prweave_core has no store knowledge and
    prweave_store has no core knowledge.
    """
    review = execution.review
    error = execution.error
    return ExecutionRecord(
        execution_id=execution.execution_id,
        repo=execution.request.repo,
        pr_number=execution.request.pr_number,
        head_sha=execution.request.head_sha,
        status=execution.status or execution.stage.value,
        started_at=execution.started_at,
        finished_at=execution.finished_at or "",
        chunk_count=len(execution.chunks or []),
        failed_chunks=list(review.failed_chunks) if review else [],
        complete=review.complete if review else False,
        verdict=review.verdict if review else "",
        review_url=execution.receipt.location if execution.receipt else None,
        error_stage=error.stage if error else None,
        error_kind=error.kind if error else None,
        error_message=error.message if error else None,
        findings=[
            FindingRecord(file=f.path, line=f.line, severity=f.severity, message=f.message)
            for f in (review.findings if review else ())
        ],
    )


def run_pipeline(ctx, config: dict, request: ReviewRequest, publisher: BasePublisher) -> WorkflowExecution:
    """Run one execution and archive it in the configured store. Exits 1 if it failed."""
    store = ctx.obj.get("store") if ctx.obj else None

    def archive(execution: WorkflowExecution) -> None:
        if store is not None:
            store.save(_execution_to_record(execution))

    try:
        orchestrator = Orchestrator.from_config(config, publisher=publisher, archive=archive)
    except (ValueError, ImportError, FileNotFoundError) as e:
        raise click.UsageError(str(e))
    console.print(f"Reviewing {request.repo}#{request.pr_number}: {len(request.files)} file(s)")
    execution = orchestrator.start(request)
    _print_execution(execution)
    if execution.status != "Succeeded":
        ctx.exit(1)
    return execution


def _print_execution(execution: WorkflowExecution) -> None:
    review = execution.review
    if execution.status == "Succeeded":
        console.print(f"\n[green]Succeeded[/green] — execution {execution.execution_id}")
        if execution.receipt:
            console.print(f"Review: {execution.receipt.location}")
        if review is not None:
            console.print(f"{len(review.findings)} finding(s) · verdict {review.verdict}")
            if not review.complete:
                failed = ", ".join(f"#{c}" for c in review.failed_chunks)
                console.print(f"[yellow]Partial review: chunk(s) {failed} failed.[/yellow]")
        if execution.split_degraded:
            console.print("[yellow]Dependency graph unavailable; files were reviewed one per chunk.[/yellow]")
    else:
        error = execution.error
        console.print(f"\n[red]Failed[/red] — execution {execution.execution_id}")
        if error is not None:
            console.print(f"[red]{error.stage}: {error.kind} — {error.message}[/red]")


@click.command("review")
@click.option("--repo", required=True, help="GitHub repository in owner/name format.")
@click.option(
    "--pr",
    "pr_number",
    type=int,
    default=None,
    help="Pull request number. Omit to list open PRs interactively.",
)
@click.option(
    "--model",
    type=click.Choice(["anthropic", "openai"]),
    default=None,
    help="AI model provider. Overrides config file.",
)
@click.option(
    "--guidelines",
    "guidelines_path",
    default=None,
    help="Path to a Markdown guidelines file. Overrides config file.",
)
@click.option(
    "--shadow",
    "-s",
    is_flag=True,
    help="Dry-run mode: print the review instead of posting it to GitHub.",
)
@click.pass_context
def review_cmd(
    ctx,
    repo: str,
    pr_number: int | None,
    model: str | None,
    guidelines_path: str | None,
    shadow: bool,
):
    """Review a GitHub pull request.

    Splits the change into groups of related files, analyzes the groups in
    parallel with Claude or GPT-4o, and posts one merged review comment.

    \b
    Required environment variables:
      GITHUB_TOKEN         GitHub personal access token (or use gh CLI)
      ANTHROPIC_API_KEY    Required when using --model anthropic
      OPENAI_API_KEY       Required when using --model openai
      SLACK_WEBHOOK_URL    Required when notifier: slack
    """
    from prweave_cli.auth import require_github_token, require_model_key

    config = dict(ctx.obj["config"])
    for key, value in {"model": model, "guidelines": guidelines_path}.items():
        if value is not None:
            config[key] = value

    token = require_github_token(config)
    require_model_key(config)

    this_repo = get_repo(repo, token=token)

    if pr_number is None:
        prs = list(get_pull_requests(this_repo))
        if not prs:
            console.print("[yellow]No open pull requests found.[/yellow]")
            return
        console.print("\nOpen pull requests:")
        for pr in prs:
            console.print(f"  [bold]#{pr.number}[/bold]  {pr.title}")
        pr_number = click.prompt("\nEnter the pull request number", type=int)

    pr_obj = get_pull(this_repo, pr_number)
    request = request_from_pull(this_repo, pr_obj, config)
    if request is None:
        console.print("[yellow]Skipping draft PR. Set review_draft_prs: true in .prweave.yml to review drafts.[/yellow]")
        return

    publisher = ShadowPublisher() if shadow else GitHubPublisher(repo_obj=this_repo)
    run_pipeline(ctx, config, request, publisher)
