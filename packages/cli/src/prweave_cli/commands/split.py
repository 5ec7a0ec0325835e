"""split command — show the chunk plan for a change without analyzing it."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from prweave_core.config import load_settings
from prweave_core.gh.pull_request import get_pull, get_repo
from prweave_core.ingest import request_from_pull
from prweave_core.splitter import ChunkSplitter

console = Console()


@click.command("split")
@click.option("--repo", default=None, help="GitHub repository in owner/name format.")
@click.option("--pr", "pr_number", type=int, default=None, help="Pull request number.")
@click.option(
    "--payload",
    "payload_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="pull_request webhook payload to split instead of a live PR.",
)
@click.option("--diff", "diff_path", type=click.Path(exists=True, dir_okay=False), default=None)
@click.pass_context
def split_cmd(ctx, repo: str | None, pr_number: int | None, payload_path: str | None, diff_path: str | None):
    """Print how a pull request would be split into review chunks."""
    from prweave_cli.auth import require_github_token
    from prweave_cli.commands.event import load_event_request

    config = ctx.obj["config"]
    try:
        settings = load_settings(config)
    except ValueError as e:
        raise click.UsageError(str(e))

    if payload_path:
        request = load_event_request(config, payload_path, diff_path)
    elif repo and pr_number:
        this_repo = get_repo(repo, token=require_github_token(config))
        request = request_from_pull(this_repo, get_pull(this_repo, pr_number), config, fetch_content=True)
    else:
        raise click.UsageError("Pass --repo and --pr, or --payload.")

    if request is None:
        console.print("[yellow]Nothing to split.[/yellow]")
        return

    outcome = ChunkSplitter(settings.max_chunk_size, settings.chunk_size_unit).split_with_report(request)
    if outcome.degraded:
        console.print(f"[yellow]Dependency graph unavailable ({outcome.reason}); one chunk per file.[/yellow]")
    if not outcome.chunks:
        console.print("[yellow]No reviewable files in this change.[/yellow]")
        return

    table = Table(title=f"Chunk plan — {request.repo}#{request.pr_number}", show_header=True, header_style="bold cyan")
    table.add_column("Chunk", justify="right", width=6)
    table.add_column("Files")
    table.add_column(f"Size ({settings.chunk_size_unit})", justify="right", width=14)
    for chunk in outcome.chunks:
        table.add_row(f"#{chunk.chunk_id}", "\n".join(chunk.paths), str(chunk.size(settings.chunk_size_unit)))
    console.print(table)
