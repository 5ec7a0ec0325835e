"""Partition a change set into review chunks.

The splitter is the only owner of the dependency graph: it builds it, reads
components and neighbours from it, and drops it once the chunks exist.

Output is a pure function of the request and the size settings. Retrying an
execution therefore sees the same chunk boundaries and chunk ids, which is
what lets committed per-chunk results be reused on resume.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass

from prweave_core.errors import GraphBuildError
from prweave_core.graph import DependencyGraph, build_graph
from prweave_core.models import ChangedFile, Chunk, ReviewRequest

logger = logging.getLogger(__name__)

SIZE_UNITS = ("bytes", "lines")


@dataclass(frozen=True)
class SplitOutcome:
    chunks: list[Chunk]
    degraded: bool = False
    reason: str | None = None


class ChunkSplitter:
    def __init__(self, max_chunk_size: int = 40_000, size_unit: str = "bytes"):
        if max_chunk_size < 1:
            raise ValueError("max_chunk_size must be positive")
        if size_unit not in SIZE_UNITS:
            raise ValueError(f"Unknown chunk size unit: {size_unit!r}. Choose 'bytes' or 'lines'.")
        self.max_chunk_size = max_chunk_size
        self.size_unit = size_unit

    def split(self, request: ReviewRequest) -> list[Chunk]:
        return self.split_with_report(request).chunks

    def split_with_report(self, request: ReviewRequest) -> SplitOutcome:
        files = list(request.files)
        if not files:
            return SplitOutcome(chunks=[])

        try:
            graph = build_graph(files)
        except GraphBuildError as e:
            # SplitDegraded: a valid chunking, just without dependency grouping.
            logger.warning("SplitDegraded for %s#%s: %s. Using one chunk per file.", request.repo, request.pr_number, e)
            chunks = [Chunk(chunk_id=i, files=(f,)) for i, f in enumerate(files)]
            return SplitOutcome(chunks=chunks, degraded=True, reason=str(e))

        groups = self._pack(graph, files)
        chunks = [Chunk(chunk_id=i, files=tuple(files[n] for n in group)) for i, group in enumerate(groups)]
        logger.info(
            "Split %s#%s: %d file(s) into %d chunk(s)", request.repo, request.pr_number, len(files), len(chunks)
        )
        return SplitOutcome(chunks=chunks)

    # ------------------------------------------------------------------ #
    # Packing                                                              #
    # ------------------------------------------------------------------ #

    def _pack(self, graph: DependencyGraph, files: list[ChangedFile]) -> list[list[int]]:
        """Return node-id groups, one per chunk, in canonical chunk order."""
        sizes = [f.size(self.size_unit) for f in files]
        adjacency = graph.neighbours()
        groups: list[list[int]] = []

        for component in graph.components():
            if sum(sizes[n] for n in component) <= self.max_chunk_size:
                groups.append(component)
            else:
                groups.extend(self._bin_pack(component, sizes, adjacency))

        # Canonical order: first appearance of each chunk's earliest file.
        groups.sort(key=lambda g: g[0])
        return groups

    def _bin_pack(self, component: list[int], sizes: list[int], adjacency: dict[int, set[int]]) -> list[list[int]]:
        """Greedy, connectivity-preserving bin packing of one oversized component.

        Each bin is seeded with the earliest unassigned file and grown
        breadth-first through unassigned neighbours, taking a neighbour only
        if it still fits. A bin only ever grows along edges from files
        already inside it, so every bin is connected. A seed larger than the
        maximum becomes a bin of its own.
        """
        unassigned = set(component)
        bins: list[list[int]] = []

        for seed in component:
            if seed not in unassigned:
                continue
            unassigned.discard(seed)
            members = [seed]
            total = sizes[seed]
            queue = deque([seed])
            while queue:
                node = queue.popleft()
                for other in sorted(adjacency[node]):
                    if other not in unassigned:
                        continue
                    if total + sizes[other] > self.max_chunk_size:
                        continue
                    unassigned.discard(other)
                    members.append(other)
                    total += sizes[other]
                    queue.append(other)
            bins.append(sorted(members))

        return bins
