from __future__ import annotations

import re

from github import Github

_EXECUTION_MARKER = "<!-- prweave-execution: {execution_id} -->"
_EXECUTION_MARKER_RE = re.compile(r"<!-- prweave-execution: ([0-9a-zA-Z_-]+) -->")


def get_repo(repo_name: str, token: str):
    return Github(token).get_repo(repo_name)


def get_pull(repo, pr_number: int):
    return repo.get_pull(pr_number)


def get_pull_requests(repo, state: str = "open"):
    return repo.get_pulls(state=state)


def get_diff(pr):
    return pr.get_files()


def execution_marker(execution_id: str) -> str:
    return _EXECUTION_MARKER.format(execution_id=execution_id)


def find_execution_comment(pr, execution_id: str):
    """Return the PR comment previously published for this execution, or None."""
    for comment in pr.get_issue_comments():
        match = _EXECUTION_MARKER_RE.search(comment.body or "")
        if match and match.group(1) == execution_id:
            return comment
    return None
