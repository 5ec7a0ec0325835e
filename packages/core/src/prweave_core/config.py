import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

from prweave_core.policy import RetryPolicy

DEFAULT_CONFIG: dict = {
    "model": "anthropic",
    "max_chunk_size": 40000,
    "chunk_size_unit": "bytes",  # "bytes" | "lines"
    "max_concurrent_analyses": 4,
    "analysis_timeout": 120,  # seconds, per attempt
    "max_analysis_attempts": 3,
    "analysis_retry_base_delay": 1.0,
    "join_timeout": 900,  # seconds, whole analysis stage
    "max_publish_attempts": 3,
    "publish_retry_base_delay": 2.0,
    "guidelines": None,  # None = use built-in default; set to a path string to override
    "exclude": [],  # fnmatch patterns or directory names to skip (e.g. "migrations/", "*.min.js")
    "review_draft_prs": False,
    "max_chars_per_file": 20000,  # cap on full-file content fetched as analysis context
    "notifier": "console",  # "console" | "slack" | "none"
    "store": "noop",  # "noop" | "sqlite"
    "store_path": ".prweave.db",
}

BUILTIN_GUIDELINES_DIR = Path(__file__).parent / "guidelines"
_BUILTIN_DEFAULT = BUILTIN_GUIDELINES_DIR / "default.md"


@dataclass(frozen=True)
class PipelineSettings:
    """The validated, typed subset of the config the orchestrator runs on."""

    max_chunk_size: int
    chunk_size_unit: str
    max_concurrent_analyses: int
    analysis_policy: RetryPolicy
    publish_policy: RetryPolicy
    join_timeout: Optional[float]


def load_config(config_path: str = ".prweave.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .prweave.yml in the current directory
      3. CLI argument overrides
    """
    config = {**DEFAULT_CONFIG, "exclude": list(DEFAULT_CONFIG["exclude"])}

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    # Resolve credentials from environment variables
    config["github_token"] = os.environ.get("GITHUB_TOKEN")
    config["anthropic_api_key"] = os.environ.get("ANTHROPIC_API_KEY")
    config["openai_api_key"] = os.environ.get("OPENAI_API_KEY")
    config["slack_webhook_url"] = os.environ.get("SLACK_WEBHOOK_URL") or config.get("slack_webhook_url")

    return config


def _positive(config: dict, key: str, cast=int):
    value = config.get(key, DEFAULT_CONFIG[key])
    try:
        value = cast(value)
    except (TypeError, ValueError):
        raise ValueError(f"Config option {key!r} must be a number, got {value!r}.")
    if value <= 0:
        raise ValueError(f"Config option {key!r} must be positive, got {value!r}.")
    return value


def load_settings(config: dict) -> PipelineSettings:
    """Validate the pipeline options in ``config`` and build the policy objects."""
    unit = config.get("chunk_size_unit", "bytes")
    if unit not in ("bytes", "lines"):
        raise ValueError(f"Config option 'chunk_size_unit' must be 'bytes' or 'lines', got {unit!r}.")

    base_delay = float(config.get("analysis_retry_base_delay", DEFAULT_CONFIG["analysis_retry_base_delay"]))
    publish_delay = float(config.get("publish_retry_base_delay", DEFAULT_CONFIG["publish_retry_base_delay"]))
    join_timeout = config.get("join_timeout", DEFAULT_CONFIG["join_timeout"])

    return PipelineSettings(
        max_chunk_size=_positive(config, "max_chunk_size"),
        chunk_size_unit=unit,
        max_concurrent_analyses=_positive(config, "max_concurrent_analyses"),
        analysis_policy=RetryPolicy(
            max_attempts=_positive(config, "max_analysis_attempts"),
            base_delay=base_delay,
            timeout=_positive(config, "analysis_timeout", float),
        ),
        publish_policy=RetryPolicy(
            max_attempts=_positive(config, "max_publish_attempts"),
            base_delay=publish_delay,
        ),
        # join_timeout: null in the YAML file waits for every chunk.
        join_timeout=None if join_timeout is None else _positive(config, "join_timeout", float),
    )


def load_guidelines(config: dict) -> str:
    """
    Load review guidelines.

    If ``guidelines`` is set in config, loads from that path (relative to cwd).
    Otherwise falls back to the built-in default.
    """
    custom_path = config.get("guidelines")
    if custom_path:
        p = Path(custom_path)
        if not p.exists():
            raise FileNotFoundError(f"Guidelines file not found: {custom_path}")
        return p.read_text()

    if _BUILTIN_DEFAULT.exists():
        return _BUILTIN_DEFAULT.read_text()

    raise FileNotFoundError("No guidelines configured and built-in default is missing.")
