"""Thin ingestion adapter: turn a pull-request event into a ReviewRequest.

Two sources are supported — a GitHub ``pull_request`` webhook payload
(optionally wrapped in an API-gateway style ``{"body": ...}`` envelope) with
either an embedded file list or a unified diff, and a live pull request
fetched through PyGithub. Both apply the same file filtering: excluded
paths and non-code files never become part of the change under review.
"""

from __future__ import annotations

import json
import logging

from github import GithubException

from prweave_core.errors import InputError
from prweave_core.gh.pull_request import get_diff
from prweave_core.models import ChangedFile, ReviewRequest
from prweave_core.utils.code import is_code_file, is_excluded
from prweave_core.utils.diff import split_unified_diff

logger = logging.getLogger(__name__)

REVIEWABLE_ACTIONS = {"opened", "reopened", "synchronize", "ready_for_review"}


def validate_request(request: ReviewRequest) -> None:
    """Raise InputError unless the request identifies a repository and a pull request."""
    if not request.repo or "/" not in request.repo:
        raise InputError(f"Review request needs a repository in owner/name form, got {request.repo!r}.")
    if isinstance(request.pr_number, bool) or not isinstance(request.pr_number, int) or request.pr_number < 1:
        raise InputError(f"Review request needs a positive pull request number, got {request.pr_number!r}.")
    seen: set[str] = set()
    for f in request.files:
        if not f.path:
            raise InputError("Changed file without a path.")
        if f.path in seen:
            raise InputError(f"File {f.path!r} appears twice in the change set.")
        seen.add(f.path)


def filter_files(files: list[ChangedFile], config: dict) -> list[ChangedFile]:
    patterns = config.get("exclude", [])
    kept = []
    for f in files:
        if is_excluded(f.path, patterns) or not is_code_file(f.path):
            logger.info("Skipping: %s", f.path)
            continue
        kept.append(f)
    return kept


def _unwrap(payload) -> dict:
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as e:
            raise InputError(f"Event payload is not valid JSON: {e}") from e
    if not isinstance(payload, dict):
        raise InputError("Event payload must be a JSON object.")
    if "pull_request" not in payload and "body" in payload:
        return _unwrap(payload["body"])
    return payload


def request_from_event(payload, config: dict, diff_text: str | None = None) -> ReviewRequest | None:
    """Build a ReviewRequest from a webhook payload.

    Returns None for events that should not trigger a review (closed PRs,
    label changes, drafts when ``review_draft_prs`` is off). Raises
    InputError when the payload is missing the repository or PR identity,
    or carries neither a diff nor a file list.
    """
    event = _unwrap(payload)
    action = event.get("action")
    if action is not None and action not in REVIEWABLE_ACTIONS:
        logger.info("Ignoring pull_request action %r", action)
        return None

    pr = event.get("pull_request") or {}
    repo = (event.get("repository") or {}).get("full_name") or ""
    number = pr.get("number", event.get("number"))
    if not repo or number is None:
        raise InputError("Event payload is missing repository.full_name or pull_request.number.")

    if pr.get("draft") and not config.get("review_draft_prs", False):
        logger.info("Skipping draft PR %s#%s", repo, number)
        return None

    if diff_text is None:
        diff_text = event.get("diff")
    if diff_text is None and "files" not in event:
        # GitHub's own pull_request payload carries neither.
        raise InputError(
            f"Event for {repo}#{number} carries neither a diff nor a file list. "
            "Supply the unified diff, or review the live pull request instead."
        )
    if diff_text is not None:
        files = [ChangedFile(path=path, patch=patch) for path, patch in split_unified_diff(diff_text).items()]
    else:
        files = [
            ChangedFile(
                path=f.get("filename") or f.get("path") or "",
                patch=f.get("patch") or "",
                status=f.get("status", "modified"),
                content=f.get("content") or "",
            )
            for f in event.get("files", [])
        ]

    try:
        pr_number = int(number)
    except (TypeError, ValueError):
        raise InputError(f"pull_request.number must be an integer, got {number!r}.")

    request = ReviewRequest(
        repo=repo,
        pr_number=pr_number,
        base_sha=(pr.get("base") or {}).get("sha", ""),
        head_sha=(pr.get("head") or {}).get("sha", ""),
        files=tuple(filter_files(files, config)),
        title=pr.get("title") or "",
        body=pr.get("body") or "",
    )
    validate_request(request)
    return request


def request_from_pull(repo_obj, pr, config: dict, fetch_content: bool = True) -> ReviewRequest | None:
    """Build a ReviewRequest from a live PyGithub pull request.

    Full file content is fetched at the head SHA for added and modified
    files so the graph builder sees real definitions. A file whose content
    cannot be fetched is still reviewed from its patch alone.
    """
    if pr.draft and not config.get("review_draft_prs", False):
        logger.info("Skipping draft PR %s#%s", repo_obj.full_name, pr.number)
        return None

    head_sha = pr.head.sha
    max_chars = config.get("max_chars_per_file", 20000)
    files = []
    for f in get_diff(pr):
        changed = ChangedFile(path=f.filename, patch=f.patch or "", status=f.status)
        files.append(changed)

    kept = filter_files(files, config)
    if fetch_content:
        kept = [_with_content(repo_obj, f, head_sha, max_chars) for f in kept]

    request = ReviewRequest(
        repo=repo_obj.full_name,
        pr_number=pr.number,
        base_sha=pr.base.sha,
        head_sha=head_sha,
        files=tuple(kept),
        title=pr.title or "",
        body=pr.body or "",
    )
    validate_request(request)
    return request


def _with_content(repo_obj, f: ChangedFile, ref: str, max_chars: int) -> ChangedFile:
    if f.status not in ("added", "modified", "renamed"):
        return f
    try:
        content = repo_obj.get_contents(f.path, ref=ref).decoded_content.decode("utf-8", errors="replace")
    except GithubException as e:
        logger.warning("Could not fetch %s at %s: %s", f.path, ref[:7], e)
        return f
    if len(content) > max_chars:
        content = content[:max_chars] + "\n... [file truncated]"
    return ChangedFile(path=f.path, patch=f.patch, status=f.status, content=content)
