"""Base analyzer implementing the Template Method pattern.

All providers share the same chunk-analysis algorithm:
    analyze() → _build_system_prompt() + _build_user_prompt()
              → _call_api()   ← only this differs per provider
              → _parse()

Subclasses implement three things only:
  - __init__: validate and store the SDK client
  - _call_api: make one raw API call and return the text response
  - _is_transient: say whether an SDK exception is worth retrying

A provider makes exactly one attempt per analyze() call. Retry, backoff
and the per-attempt timeout budget belong to ChunkAnalyzerClient, which is
where the policy objects live.
"""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from prweave_core.errors import AnalysisRejected, ChunkError, ChunkTransientError

if TYPE_CHECKING:
    from prweave_core.models import Chunk

logger = logging.getLogger(__name__)

_MAX_TOKENS = 4096


class BaseAnalyzer(ABC):
    MAX_TOKENS: int = _MAX_TOKENS

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def analyze(
        self,
        chunk: Chunk,
        description: str = "",
        guidelines: str = "",
        timeout: float | None = None,
    ) -> list[dict]:
        """Analyze one chunk and return the raw comment dicts.

        Raises ChunkTransientError or ChunkFatalError; never returns a
        partial answer. SDK exceptions are classified by _is_transient().
        """
        system = self._build_system_prompt(guidelines)
        user = self._build_user_prompt(description, chunk)
        try:
            raw = self._call_api(system, user, timeout)
        except ChunkError:
            raise
        except (TimeoutError, ConnectionError) as e:
            raise ChunkTransientError(f"{type(e).__name__}: {e}", chunk.chunk_id) from e
        except Exception as e:
            if self._is_transient(e):
                raise ChunkTransientError(f"{type(e).__name__}: {e}", chunk.chunk_id) from e
            raise AnalysisRejected(f"{type(e).__name__}: {e}", chunk.chunk_id) from e
        return self._parse(raw, chunk.chunk_id)

    # ------------------------------------------------------------------ #
    # Abstract — implement in each provider                               #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def _call_api(self, system_prompt: str, user_prompt: str, timeout: float | None) -> str:
        """Make a single API call and return the raw text response."""

    def _is_transient(self, error: Exception) -> bool:
        return False

    # ------------------------------------------------------------------ #
    # Shared implementations                                               #
    # ------------------------------------------------------------------ #

    def _build_system_prompt(self, guidelines: str) -> str:
        return f"""You are a strict and precise senior code reviewer.
Review the patches below and identify issues according to the guidelines.

{guidelines}

Rules:
- The patches belong to one group of related files from a larger pull request.
  Use the other files in the group as context, but report each issue against the file it occurs in.
- Focus on added lines (starting with '+') for direct violations.
- Also consider implications of removed lines (starting with '-') — e.g. deleted null checks,
  removed error handling, dropped permission guards.
- Do not comment on code that already follows best practices.
- Avoid assumptions when context is unclear. Be concise and actionable."""

    def _build_user_prompt(self, description: str, chunk: Chunk) -> str:
        """Build the per-chunk user prompt: PR description, each file's diff, and its content when known."""
        sections = []
        for f in chunk.files:
            section = f"### `{f.path}` ({f.status})\n\n#### Diff\n{f.patch}\n"
            if f.content:
                section += f"\n#### Full File Content\n{f.content}\n"
            sections.append(section)
        files_block = "\n".join(sections)
        return f"""You are reviewing {len(chunk.files)} related file(s) from a pull request.

## PR Description
{description}

## Files
{files_block}

### Output Format:
Respond with **only** a valid JSON list:

[
  {{
    "path": "<file path exactly as given above>",
    "line": <line number in the new file (integer)>,
    "severity": "<critical|major|minor|nitpick>",
    "comment": "<concise, actionable comment — use GitHub-flavored markdown>"
  }},
  ...
]

Severity guide:
- critical: security vulnerability, data loss risk, crash
- major: logic bug, missing error handling, significant performance issue
- minor: code smell, unclear naming, missing type hint
- nitpick: style preference, minor formatting

If there are no issues, return: []
Do not return any text outside the JSON block."""

    def _parse(self, raw: str | None, chunk_id: int | None = None) -> list[dict]:
        """Parse the model's raw text response into a list of comment dicts.

        An answer that is not a JSON list is a rejection, not an empty review:
        reporting "no findings" for a chunk nobody actually reviewed would
        mark the review complete when it is not.
        """
        if raw is None:
            raise AnalysisRejected("Empty response from analysis provider", chunk_id)
        # Strip only the outer ```json ... ``` fence, not backticks inside comment values.
        cleaned = re.sub(r"^```(?:json)?\s*", "", raw.strip())
        cleaned = re.sub(r"\s*```$", "", cleaned.strip())
        try:
            parsed = json.loads(cleaned)
        except json.JSONDecodeError:
            logger.warning("%s: failed to parse response as JSON: %s", self.__class__.__name__, raw[:200])
            raise AnalysisRejected("Analysis response was not valid JSON", chunk_id)
        if not isinstance(parsed, list):
            raise AnalysisRejected("Analysis response was not a JSON list", chunk_id)
        return [c for c in parsed if isinstance(c, dict)]
