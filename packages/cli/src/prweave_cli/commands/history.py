"""history command — display archived executions from the store."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

console = Console()

_STATUS_STYLE = {"Succeeded": "green", "Failed": "red"}


@click.command("history")
@click.option("--repo", required=True, help="GitHub repository (owner/name).")
@click.option("--pr", "pr_number", type=int, default=None, help="Filter by PR number.")
@click.option("--limit", default=20, show_default=True, help="Maximum number of records to show.")
@click.pass_context
def history_cmd(ctx, repo: str, pr_number: int | None, limit: int):
    """Show past review executions for a repository.

    Reads from the configured store. Add 'store: sqlite' to .prweave.yml to
    start archiving executions.
    """
    from prweave_store.noop import NoOpStore

    store = ctx.obj.get("store") if ctx.obj else None
    if store is None or isinstance(store, NoOpStore):
        raise click.UsageError("No store configured. Add 'store: sqlite' to .prweave.yml.")

    records = store.list_executions(repo, pr_number=pr_number)
    if not records:
        console.print("[yellow]No executions found.[/yellow]")
        return

    # Most recent first, capped at --limit.
    records = list(reversed(records))[:limit]

    table = Table(title=f"Review executions — {repo}", show_header=True, header_style="bold cyan")
    table.add_column("PR", style="bold", width=6)
    table.add_column("Execution", width=10)
    table.add_column("Status", width=10)
    table.add_column("Chunks", justify="right", width=8)
    table.add_column("Findings", justify="right", width=9)
    table.add_column("Verdict / Error", max_width=40)
    table.add_column("Started At", width=20)

    for r in records:
        style = _STATUS_STYLE.get(r.status, "white")
        chunks = f"{r.chunk_count - len(r.failed_chunks)}/{r.chunk_count}"
        detail = r.verdict if r.status == "Succeeded" else f"{r.error_kind}: {r.error_message or ''}"
        table.add_row(
            f"#{r.pr_number}",
            r.execution_id[:8],
            f"[{style}]{r.status}[/{style}]",
            chunks,
            str(r.total_findings),
            detail[:40],
            r.started_at[:19].replace("T", " "),
        )

    console.print(table)
