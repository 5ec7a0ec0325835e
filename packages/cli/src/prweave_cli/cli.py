"""CLI entry point for prweave.

Commands:
  review   — run the review pipeline on a GitHub pull request
  event    — run the pipeline from a pull_request webhook payload
  split    — show how a change would be chunked, without analyzing it
  history  — display archived executions from the configured store
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from prweave_cli.commands.event import event_cmd
from prweave_cli.commands.history import history_cmd
from prweave_cli.commands.review import review_cmd
from prweave_cli.commands.split import split_cmd

console = Console()


def _build_store(config: dict):
    """Instantiate the configured store from .prweave.yml settings.

      store: sqlite → SQLiteStore (uses store_path or .prweave.db)
      (default)     → NoOpStore  (executions are not archived)
    """
    from prweave_store.noop import NoOpStore

    if config.get("store", "noop") == "sqlite":
        from prweave_store.sqlite import SQLiteStore

        return SQLiteStore(db_path=config.get("store_path", ".prweave.db"))

    return NoOpStore()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=verbose, show_path=False)],
    )


@click.group()
@click.version_option(
    version=importlib.metadata.version("prweave"),
    prog_name="prweave",
)
@click.option(
    "--config",
    "config_path",
    default=".prweave.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="PRWEAVE_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Log pipeline stages, retries and timeouts.")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """Dependency-aware, parallel AI code review for pull requests."""
    from prweave_cli.auth import resolve_github_token
    from prweave_core.config import load_config

    _configure_logging(verbose)
    ctx.ensure_object(dict)

    config = load_config(config_path)

    token = resolve_github_token()
    if token:
        config["github_token"] = token

    store = _build_store(config)
    ctx.obj["store"] = store
    ctx.obj["config"] = config
    ctx.call_on_close(store.close)


main.add_command(review_cmd)
main.add_command(event_cmd)
main.add_command(split_cmd)
main.add_command(history_cmd)
