"""Chunk Analyzer Client — one analysis call per chunk, normalized into a ChunkResult.

This is the isolation boundary for chunk failures: whatever happens inside
analyze(), the caller gets a ChunkResult back. Transient failures are
retried with exponential backoff under a RetryPolicy; anything else fails
the chunk on the spot. Sibling chunks never see each other's failures.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from prweave_core.errors import ChunkFatalError, ChunkTransientError, ErrorHandler
from prweave_core.models import SEVERITIES, Chunk, ChunkResult, Finding, Stage
from prweave_core.policy import RetryPolicy
from prweave_core.providers.anthropic import AnthropicAnalyzer
from prweave_core.providers.base import BaseAnalyzer
from prweave_core.providers.openai import OpenAIAnalyzer
from prweave_core.utils.diff import get_patch_line_content, reviewable_lines

logger = logging.getLogger(__name__)

_error_handler = ErrorHandler()


def get_analyzer(config: dict) -> BaseAnalyzer:
    model = config["model"]
    if model == "anthropic":
        return AnthropicAnalyzer(api_key=config["anthropic_api_key"])
    if model == "openai":
        return OpenAIAnalyzer(api_key=config["openai_api_key"])
    raise ValueError(f"Unknown model provider: {model!r}. Choose 'anthropic' or 'openai'.")


def normalize_findings(chunk: Chunk, comments: list[dict]) -> list[Finding]:
    """Turn raw provider comments into Findings, keeping provider order.

    Drops comments with no line or text, comments on files outside the
    chunk, and comments on lines the diff does not show. A comment with no
    path is attributed to the chunk's only file when there is exactly one.
    """
    patches = {f.path: f.patch for f in chunk.files}
    line_sets = {path: reviewable_lines(patch) for path, patch in patches.items()}
    findings: list[Finding] = []

    for comment in comments:
        path = comment.get("path") or comment.get("file")
        if not path and len(chunk.files) == 1:
            path = chunk.files[0].path
        line = comment.get("line")
        text = (comment.get("comment") or comment.get("message") or "").strip()
        severity = str(comment.get("severity", "minor")).lower()
        if severity not in SEVERITIES:
            severity = "minor"
        if not isinstance(line, int) or isinstance(line, bool) or not text:
            continue
        if path not in patches:
            logger.debug("Chunk %d: dropping comment for %r (not in chunk)", chunk.chunk_id, path)
            continue
        if line not in line_sets[path]:
            logger.debug("Chunk %d: dropping comment for %s:%d (not in diff)", chunk.chunk_id, path, line)
            continue
        findings.append(
            Finding(
                path=path,
                line=line,
                severity=severity,
                message=text,
                code=get_patch_line_content(patches[path], line),
            )
        )
    return findings


class ChunkAnalyzerClient:
    def __init__(
        self,
        capability: BaseAnalyzer,
        policy: RetryPolicy | None = None,
        guidelines: str = "",
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.capability = capability
        self.policy = policy or RetryPolicy()
        self.guidelines = guidelines
        self._sleep = sleep

    def analyze(self, chunk: Chunk, description: str = "") -> ChunkResult:
        if not chunk.files:
            error = ChunkFatalError("Chunk has no files to analyze", chunk.chunk_id)
            return ChunkResult.failed(chunk.chunk_id, _error_handler.handle(Stage.ANALYZING, error))
        if not any(f.patch for f in chunk.files):
            # Pure renames and binary changes: GitHub sends no patch, so there is nothing to comment on.
            logger.info("Chunk %d has no textual diff; nothing to analyze", chunk.chunk_id)
            return ChunkResult.ok(chunk.chunk_id, [], attempts=0)

        name = self.capability.__class__.__name__
        attempt = 0
        while True:
            attempt += 1
            try:
                comments = self.capability.analyze(
                    chunk,
                    description=description,
                    guidelines=self.guidelines,
                    timeout=self.policy.timeout,
                )
            except ChunkTransientError as e:
                if attempt >= self.policy.max_attempts:
                    logger.error(
                        "%s failed on chunk %d after %d attempts: %s", name, chunk.chunk_id, attempt, e
                    )
                    return self._failed(chunk, e, attempt)
                delay = self.policy.delay_for(attempt)
                logger.warning(
                    "%s error on chunk %d (attempt %d/%d): %s. Retrying in %.1fs...",
                    name,
                    chunk.chunk_id,
                    attempt,
                    self.policy.max_attempts,
                    e,
                    delay,
                )
                self._sleep(delay)
                continue
            except ChunkFatalError as e:
                logger.error("%s rejected chunk %d: %s", name, chunk.chunk_id, e)
                return self._failed(chunk, e, attempt)
            except Exception as e:
                logger.exception("Unexpected error analyzing chunk %d", chunk.chunk_id)
                return self._failed(chunk, ChunkFatalError(f"{type(e).__name__}: {e}", chunk.chunk_id), attempt)

            findings = normalize_findings(chunk, comments)
            logger.info("Chunk %d: %d finding(s) from %s", chunk.chunk_id, len(findings), name)
            return ChunkResult.ok(chunk.chunk_id, findings, attempts=attempt)

    @staticmethod
    def _failed(chunk: Chunk, error: Exception, attempts: int) -> ChunkResult:
        if getattr(error, "chunk_id", None) is None:
            error.chunk_id = chunk.chunk_id
        record = _error_handler.handle(Stage.ANALYZING, error)
        return ChunkResult.failed(chunk.chunk_id, record, attempts=attempts)
