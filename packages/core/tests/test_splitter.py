"""Tests for ChunkSplitter: partitioning, size bounds, connectivity and fallback."""

import pytest

from prweave_core.graph import build_graph
from prweave_core.models import ChangedFile, ReviewRequest
from prweave_core.splitter import ChunkSplitter


def _step(path, name, calls=None):
    """A three-line patch (header + two lines) defining ``name`` and optionally calling ``calls``."""
    body = f"return {calls}()" if calls else "return 1"
    return ChangedFile(path=path, patch=f"@@ -0,0 +1,2 @@\n+def {name}():\n+    {body}", status="added")


# alpha <- beta <- gamma <- delta
CHAIN = (
    _step("pkg/alpha.py", "step_alpha"),
    _step("pkg/beta.py", "step_beta", "step_alpha"),
    _step("pkg/gamma.py", "step_gamma", "step_beta"),
    _step("pkg/delta.py", "step_delta", "step_gamma"),
)
LONER = _step("tools/standalone.py", "lonely_helper")


def _request(files):
    return ReviewRequest(repo="owner/repo", pr_number=7, files=tuple(files))


def _assert_partition(request, chunks):
    paths = [p for c in chunks for p in c.paths]
    assert sorted(paths) == sorted(request.paths)
    assert len(paths) == len(set(paths))


class TestSplit:
    def test_empty_request_gives_no_chunks(self):
        assert ChunkSplitter().split(_request([])) == []

    def test_related_files_share_a_chunk(self):
        request = _request([*CHAIN, LONER])
        chunks = ChunkSplitter(max_chunk_size=1000, size_unit="lines").split(request)
        assert [c.paths for c in chunks] == [
            ["pkg/alpha.py", "pkg/beta.py", "pkg/gamma.py", "pkg/delta.py"],
            ["tools/standalone.py"],
        ]
        assert [c.chunk_id for c in chunks] == [0, 1]

    def test_chunks_partition_the_change_set(self):
        request = _request([LONER, *CHAIN])
        for limit in (1, 3, 6, 9, 100):
            _assert_partition(request, ChunkSplitter(max_chunk_size=limit, size_unit="lines").split(request))

    def test_split_is_deterministic(self):
        request = _request([*CHAIN, LONER])
        splitter = ChunkSplitter(max_chunk_size=6, size_unit="lines")
        assert splitter.split(request) == splitter.split(request)

    def test_oversized_component_respects_limit(self):
        request = _request(CHAIN)
        chunks = ChunkSplitter(max_chunk_size=6, size_unit="lines").split(request)
        assert [c.paths for c in chunks] == [["pkg/alpha.py", "pkg/beta.py"], ["pkg/gamma.py", "pkg/delta.py"]]
        assert all(c.size("lines") <= 6 for c in chunks)

    def test_bin_packed_chunks_stay_connected(self):
        request = _request(CHAIN)
        graph = build_graph(list(CHAIN))
        adjacency = graph.neighbours()
        for chunk in ChunkSplitter(max_chunk_size=6, size_unit="lines").split(request):
            ids = [graph.node_id(p) for p in chunk.paths]
            reached = {ids[0]}
            frontier = [ids[0]]
            while frontier:
                node = frontier.pop()
                for other in adjacency[node]:
                    if other in ids and other not in reached:
                        reached.add(other)
                        frontier.append(other)
            assert reached == set(ids)

    def test_file_larger_than_limit_gets_its_own_chunk(self):
        request = _request(CHAIN)
        chunks = ChunkSplitter(max_chunk_size=1, size_unit="lines").split(request)
        assert [len(c.files) for c in chunks] == [1, 1, 1, 1]
        assert [c.chunk_id for c in chunks] == [0, 1, 2, 3]

    def test_chunk_order_follows_first_appearance(self):
        request = _request([LONER, *CHAIN])
        chunks = ChunkSplitter(max_chunk_size=1000, size_unit="lines").split(request)
        assert chunks[0].paths == ["tools/standalone.py"]

    def test_byte_unit_counts_patch_bytes(self):
        f = ChangedFile(path="a.py", patch="@@ -0,0 +1 @@\n+x = 1")
        assert f.size("bytes") == len(f.patch.encode("utf-8"))
        assert f.size("lines") == 2


class TestFallback:
    def test_no_supported_language_degrades_to_one_chunk_per_file(self):
        files = [
            ChangedFile(path="docs/guide.md", patch="@@ -0,0 +1 @@\n+Guide"),
            ChangedFile(path="docs/faq.md", patch="@@ -0,0 +1 @@\n+FAQ"),
        ]
        outcome = ChunkSplitter().split_with_report(_request(files))
        assert outcome.degraded is True
        assert outcome.reason
        assert [c.paths for c in outcome.chunks] == [["docs/guide.md"], ["docs/faq.md"]]

    def test_malformed_patch_degrades(self):
        files = [*CHAIN[:2], ChangedFile(path="pkg/broken.py", patch="@@ what @@\n+x = 1")]
        outcome = ChunkSplitter().split_with_report(_request(files))
        assert outcome.degraded is True
        assert len(outcome.chunks) == 3

    def test_normal_split_is_not_degraded(self):
        outcome = ChunkSplitter().split_with_report(_request(CHAIN))
        assert outcome.degraded is False
        assert outcome.reason is None


class TestValidation:
    def test_rejects_non_positive_size(self):
        with pytest.raises(ValueError):
            ChunkSplitter(max_chunk_size=0)

    def test_rejects_unknown_unit(self):
        with pytest.raises(ValueError):
            ChunkSplitter(size_unit="tokens")
