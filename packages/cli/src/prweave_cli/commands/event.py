"""event command — run the pipeline from a pull_request webhook payload."""

from __future__ import annotations

import json

import click
from rich.console import Console

from prweave_cli.commands.review import run_pipeline
from prweave_core.errors import InputError
from prweave_core.ingest import request_from_event
from prweave_core.publisher import GitHubPublisher, ShadowPublisher

console = Console()


def load_event_request(config: dict, payload_path: str, diff_path: str | None):
    """Read a payload (and optional unified diff) from disk into a ReviewRequest."""
    with open(payload_path, encoding="utf-8") as f:
        try:
            payload = json.load(f)
        except json.JSONDecodeError as e:
            raise click.BadParameter(f"{payload_path} is not valid JSON: {e}", param_hint="PAYLOAD")
    diff_text = None
    if diff_path:
        with open(diff_path, encoding="utf-8") as f:
            diff_text = f.read()
    try:
        return request_from_event(payload, config, diff_text=diff_text)
    except InputError as e:
        raise click.UsageError(str(e))


@click.command("event")
@click.argument("payload_path", metavar="PAYLOAD", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--diff",
    "diff_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Unified diff of the pull request, when the payload does not carry a file list.",
)
@click.option("--shadow", "-s", is_flag=True, help="Print the review instead of posting it to GitHub.")
@click.pass_context
def event_cmd(ctx, payload_path: str, diff_path: str | None, shadow: bool):
    """Run a review from a GitHub pull_request event payload (JSON file)."""
    from prweave_cli.auth import require_github_token, require_model_key

    config = dict(ctx.obj["config"])
    require_model_key(config)

    request = load_event_request(config, payload_path, diff_path)
    if request is None:
        console.print("[yellow]Event does not call for a review. Nothing to do.[/yellow]")
        return

    if shadow:
        publisher = ShadowPublisher()
    else:
        publisher = GitHubPublisher(token=require_github_token(config))
    run_pipeline(ctx, config, request, publisher)
