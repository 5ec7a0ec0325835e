"""Merge per-chunk results into one review.

aggregate() is a pure function: no I/O, no clock, no logging. Its output is
determined by the set of ChunkResults alone — results are re-sorted by
chunk id, so the order in which analyses happened to finish is irrelevant.
"""

from __future__ import annotations

from typing import Iterable

from prweave_core.models import SEVERITIES, AggregatedReview, ChunkResult, Finding

PARTIAL_RESULT_NOTICE = "Partial result: {count} of {total} chunk(s) could not be analyzed ({chunks})."


def _determine_verdict(findings: list[Finding]) -> str:
    """Choose the review event based on the highest severity present."""
    if not findings:
        return "APPROVE"
    if {f.severity for f in findings} & {"critical", "major"}:
        return "REQUEST_CHANGES"
    return "COMMENT"


def _dedupe(findings: Iterable[Finding]) -> list[Finding]:
    """Drop exact repeats (same location, severity and text), keeping the first.

    Chunks that share a boundary file through graph context can surface the
    same issue twice. Only byte-identical findings are merged; near-duplicates
    with different wording are kept.
    """
    seen: set[tuple[str, int, str, str]] = set()
    unique = []
    for f in findings:
        key = (f.path, f.line, f.severity, f.message)
        if key in seen:
            continue
        seen.add(key)
        unique.append(f)
    return unique


def _build_summary(findings: list[Finding], notices: list[str], chunk_count: int, failed: list[int]) -> str:
    """Build the top-level review body text."""
    file_counts: dict[str, dict[str, int]] = {}
    for f in findings:
        if f.path not in file_counts:
            file_counts[f.path] = {s: 0 for s in SEVERITIES}
        file_counts[f.path][f.severity] += 1

    totals = {s: sum(counts[s] for counts in file_counts.values()) for s in SEVERITIES}
    total = len(findings)

    lines = ["## Review summary\n"]

    if total == 0:
        verdict = "No issues found. The changes look good."
    else:
        issue_str = ", ".join(f"{totals[s]} {s}" for s in SEVERITIES if totals[s])
        # Ties broken by path so the text is stable.
        flagged = sorted(file_counts, key=lambda p: (-sum(file_counts[p].values()), p))
        top = f"`{flagged[0]}`"
        if totals["critical"] or totals["major"]:
            verdict = f"{issue_str} issue(s) — changes required. Most flagged: {top}."
        else:
            verdict = f"{issue_str} suggestion(s). Most flagged: {top}."
    lines.append(f"> {verdict}\n")

    analyzed = chunk_count - len(failed)
    lines.append(
        f"**{analyzed}/{chunk_count}** chunk(s) analyzed"
        + (f", **{len(failed)}** failed" if failed else "")
        + f" · **{total}** finding(s)\n"
    )

    if file_counts:
        lines.append("| File | Critical | Major | Minor | Nitpick | Total |")
        lines.append("|------|:--------:|:-----:|:-----:|:-------:|:-----:|")
        for path, fc in file_counts.items():
            lines.append(
                f"| `{path}` "
                f"| {fc['critical'] or '—'} "
                f"| {fc['major'] or '—'} "
                f"| {fc['minor'] or '—'} "
                f"| {fc['nitpick'] or '—'} "
                f"| {sum(fc.values())} |"
            )

    for notice in notices:
        lines.append(f"\n:warning: **{notice}**")

    return "\n".join(lines)


def aggregate(results: Iterable[ChunkResult]) -> AggregatedReview:
    ordered = sorted(results, key=lambda r: r.chunk_id)
    failed = [r.chunk_id for r in ordered if not r.succeeded]

    findings = _dedupe(f for r in ordered if r.succeeded for f in r.findings)

    notices: list[str] = []
    if failed:
        notices.append(
            PARTIAL_RESULT_NOTICE.format(
                count=len(failed),
                total=len(ordered),
                chunks=", ".join(f"#{c}" for c in failed),
            )
        )

    return AggregatedReview(
        findings=tuple(findings),
        summary=_build_summary(findings, notices, len(ordered), failed),
        complete=not failed,
        notices=tuple(notices),
        chunk_count=len(ordered),
        failed_chunks=tuple(failed),
        verdict=_determine_verdict(findings),
    )
