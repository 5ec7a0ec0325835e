"""End-to-end tests for the Orchestrator state machine.

Everything below the orchestrator is real (splitter, analyzer client,
dispatcher, aggregator, shadow publisher) except the analysis capability,
which is scripted per file path.
"""

import threading
from unittest.mock import MagicMock

import pytest

from prweave_core.analyzer import ChunkAnalyzerClient
from prweave_core.errors import AnalysisRejected, ChunkTransientError, InputError, NotifyError, PublishError
from prweave_core.models import ChangedFile, ChunkResult, PublishReceipt, ReviewRequest, Stage
from prweave_core.notifier import BaseNotifier
from prweave_core.orchestrator import Orchestrator
from prweave_core.policy import NO_DELAY, AnalysisBudget, RetryPolicy
from prweave_core.publisher import ShadowPublisher
from prweave_core.splitter import ChunkSplitter


def _file(i):
    # Independent files: each defines its own name and references nothing else.
    return ChangedFile(path=f"src/mod_{i}.py", patch=f"@@ -0,0 +1 @@\n+value_{i} = {i}", status="added")


def _request(n=5, pr_number=3):
    return ReviewRequest(repo="owner/repo", pr_number=pr_number, files=tuple(_file(i) for i in range(n)))


class ScriptedCapability:
    """Answers per file path; thread-safe because chunks are analyzed concurrently."""

    def __init__(self, behaviour=None, default=None):
        self.behaviour = behaviour or {}
        self.default = default if default is not None else []
        self.seen = []
        self._lock = threading.Lock()

    def analyze(self, chunk, description="", guidelines="", timeout=None):
        path = chunk.paths[0]
        with self._lock:
            self.seen.append(path)
        outcome = self.behaviour.get(path, self.default)
        if callable(outcome):
            outcome = outcome()
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class RecordingNotifier(BaseNotifier):
    def __init__(self, error=None):
        self.outcomes = []
        self.error = error

    def notify(self, outcome):
        self.outcomes.append(outcome)
        if self.error is not None:
            raise self.error


def _orchestrator(capability=None, publisher=None, notifier=None, **kwargs):
    kwargs.setdefault("publish_policy", RetryPolicy(max_attempts=3, base_delay=0.0))
    splitter = kwargs.pop("splitter", ChunkSplitter(max_chunk_size=1000, size_unit="lines"))
    return Orchestrator(
        splitter=splitter,
        analyzer=ChunkAnalyzerClient(capability or ScriptedCapability(), policy=NO_DELAY, sleep=lambda s: None),
        publisher=publisher or ShadowPublisher(quiet=True),
        notifier=notifier or RecordingNotifier(),
        sleep=lambda s: None,
        **kwargs,
    )


def _stages(execution):
    return [stage for stage, _ in execution.history]


class TestHappyPath:
    def test_full_run_succeeds(self):
        capability = ScriptedCapability({"src/mod_0.py": [{"line": 1, "severity": "major", "comment": "Magic number"}]})
        notifier = RecordingNotifier()
        publisher = ShadowPublisher(quiet=True)
        execution = _orchestrator(capability, publisher, notifier).start(_request())

        assert execution.status == "Succeeded"
        assert _stages(execution) == [
            "Ingested",
            "Splitting",
            "Analyzing",
            "Aggregating",
            "Publishing",
            "Notifying",
            "Succeeded",
        ]
        assert len(execution.chunks) == 5
        assert execution.review.complete is True
        assert [f.location for f in execution.review.findings] == [("src/mod_0.py", 1)]
        assert execution.receipt.location.startswith("shadow://owner/repo/pull/3/")
        assert execution.execution_id in publisher.published
        assert [o.status for o in notifier.outcomes] == ["Succeeded"]
        assert notifier.outcomes[0].location == execution.receipt.location

    def test_empty_change_set_skips_analysis(self):
        capability = ScriptedCapability()
        execution = _orchestrator(capability).start(_request(n=0))

        assert execution.status == "Succeeded"
        assert "Analyzing" not in _stages(execution)
        assert execution.review.findings == ()
        assert execution.review.complete is True
        assert capability.seen == []

    def test_rename_without_patch_keeps_review_complete(self):
        files = (_file(0), ChangedFile(path="src/old_name.py", patch="", status="renamed"))
        capability = ScriptedCapability()
        execution = _orchestrator(capability).start(ReviewRequest(repo="owner/repo", pr_number=4, files=files))

        assert execution.status == "Succeeded"
        assert execution.review.complete is True
        assert execution.review.notices == ()
        assert capability.seen == ["src/mod_0.py"]

    def test_description_reaches_the_capability(self):
        calls = []

        class Capturing(ScriptedCapability):
            def analyze(self, chunk, description="", guidelines="", timeout=None):
                calls.append(description)
                return []

        request = ReviewRequest(repo="owner/repo", pr_number=1, files=(_file(0),), body="Why this change")
        _orchestrator(Capturing()).start(request)
        assert calls == ["Why this change"]


class TestPartialResults:
    def test_chunk_exhausting_retries_still_publishes(self):
        attempts = []

        def flaky():
            attempts.append(1)
            return ChunkTransientError("429 Too Many Requests")

        capability = ScriptedCapability(
            {
                "src/mod_2.py": flaky,
                "src/mod_4.py": [{"line": 1, "severity": "minor", "comment": "Rename"}],
            }
        )
        notifier = RecordingNotifier()
        execution = _orchestrator(capability, notifier=notifier).start(_request())

        assert execution.status == "Succeeded"
        assert len(attempts) == NO_DELAY.max_attempts
        assert execution.review.complete is False
        assert execution.review.failed_chunks == (2,)
        assert execution.chunk_results[2].error.kind == "ChunkTransientError"
        assert execution.chunk_results[2].attempts == NO_DELAY.max_attempts
        assert [f.path for f in execution.review.findings] == ["src/mod_4.py"]
        assert notifier.outcomes[0].complete is False

    def test_rejected_chunk_is_not_retried(self):
        capability = ScriptedCapability({"src/mod_2.py": AnalysisRejected("content filtered")})
        execution = _orchestrator(capability).start(_request())

        assert execution.review.failed_chunks == (2,)
        assert execution.chunk_results[2].error.kind == "ChunkFatalError"
        assert capability.seen.count("src/mod_2.py") == 1

    def test_all_chunks_failing_is_still_a_published_review(self):
        capability = ScriptedCapability(default=lambda: AnalysisRejected("no"))
        execution = _orchestrator(capability).start(_request(n=3))
        assert execution.status == "Succeeded"
        assert execution.review.failed_chunks == (0, 1, 2)

    def test_join_timeout_produces_partial_review(self):
        release = threading.Event()

        def stall():
            release.wait(5)
            return []

        capability = ScriptedCapability({"src/mod_1.py": stall, "src/mod_3.py": stall})
        orchestrator = _orchestrator(capability, budget=AnalysisBudget(5), join_timeout=0.2)
        try:
            execution = orchestrator.start(_request())
        finally:
            release.set()

        assert execution.status == "Succeeded"
        assert execution.join_timed_out is True
        assert execution.review.failed_chunks == (1, 3)
        assert execution.chunk_results[1].error.kind == "JoinTimeout"
        assert execution.chunk_results[3].error.kind == "JoinTimeout"
        assert execution.review.complete is False

    def test_graph_failure_degrades_to_per_file_chunks(self):
        files = (
            ChangedFile(path="docs/a.md", patch="@@ -0,0 +1 @@\n+Alpha"),
            ChangedFile(path="docs/b.md", patch="@@ -0,0 +1 @@\n+Beta"),
        )
        execution = _orchestrator().start(ReviewRequest(repo="owner/repo", pr_number=2, files=files))
        assert execution.status == "Succeeded"
        assert execution.split_degraded is True
        assert [c.paths for c in execution.chunks] == [["docs/a.md"], ["docs/b.md"]]


class TestFatalPaths:
    def test_publish_retries_then_fails(self):
        publisher = MagicMock()
        publisher.publish.side_effect = PublishError("GitHub is down")
        notifier = RecordingNotifier()
        delays = []
        orchestrator = _orchestrator(
            publisher=publisher,
            notifier=notifier,
            publish_policy=RetryPolicy(max_attempts=3, base_delay=0.5, multiplier=2.0),
        )
        orchestrator._sleep = delays.append

        execution = orchestrator.start(_request(n=2))

        assert execution.status == "Failed"
        assert execution.error.stage == "Publishing"
        assert execution.error.kind == "PublishError"
        assert publisher.publish.call_count == 3
        assert delays == [0.5, 1.0]
        assert [o.status for o in notifier.outcomes] == ["Failed"]
        assert notifier.outcomes[0].error.kind == "PublishError"

    def test_publish_retry_reuses_execution_id(self):
        publisher = MagicMock()
        publisher.publish.side_effect = [PublishError("flaky"), PublishReceipt("x", "https://gh/c/1", 1)]
        execution = _orchestrator(publisher=publisher).start(_request(n=1))
        assert execution.status == "Succeeded"
        ids = {c.args[0] for c in publisher.publish.call_args_list}
        assert ids == {execution.execution_id}

    def test_split_error_fails_execution(self):
        splitter = MagicMock()
        splitter.split_with_report.side_effect = RuntimeError("disk on fire")
        notifier = RecordingNotifier()
        execution = _orchestrator(notifier=notifier, splitter=splitter).start(_request())
        assert execution.status == "Failed"
        assert execution.error.stage == "Splitting"
        assert execution.error.kind == "SplitError"
        assert notifier.outcomes[0].status == "Failed"

    def test_aggregation_error_fails_execution(self, mocker):
        mocker.patch("prweave_core.orchestrator.aggregate", side_effect=KeyError("chunk"))
        execution = _orchestrator().start(_request(n=2))
        assert execution.status == "Failed"
        assert execution.error.kind == "AggregationError"
        assert execution.error.stage == "Aggregating"

    def test_notifier_failure_does_not_fail_the_run(self):
        notifier = RecordingNotifier(error=NotifyError("webhook 500"))
        execution = _orchestrator(notifier=notifier).start(_request(n=2))
        assert execution.status == "Succeeded"
        assert len(notifier.outcomes) == 1

    def test_unexpected_notifier_exception_is_also_contained(self):
        notifier = RecordingNotifier(error=RuntimeError("bug"))
        assert _orchestrator(notifier=notifier).start(_request(n=1)).status == "Succeeded"

    def test_invalid_request_raises_without_notifying(self):
        notifier = RecordingNotifier()
        with pytest.raises(InputError):
            _orchestrator(notifier=notifier).start(ReviewRequest(repo="no-owner", pr_number=1))
        assert notifier.outcomes == []


class TestCancellation:
    def test_cancel_before_run(self):
        capability = ScriptedCapability()
        orchestrator = _orchestrator(capability)
        execution = orchestrator.begin(_request())
        execution.cancel()
        orchestrator.run(execution)
        assert execution.status == "Failed"
        assert execution.error.kind == "ExecutionCancelled"
        assert capability.seen == []

    def test_cancel_during_analysis_stops_at_next_boundary(self):
        holder = {}

        def cancel_then_answer():
            holder["execution"].cancel()
            return []

        capability = ScriptedCapability({"src/mod_0.py": cancel_then_answer})
        publisher = MagicMock()
        orchestrator = _orchestrator(capability, publisher=publisher)
        execution = orchestrator.begin(_request(n=1))
        holder["execution"] = execution
        orchestrator.run(execution)

        assert execution.status == "Failed"
        assert execution.error.stage == "Analyzing"
        assert execution.error.kind == "ExecutionCancelled"
        publisher.publish.assert_not_called()

    def test_cancel_after_review_is_posted_still_succeeds(self):
        holder = {}

        class CancellingPublisher(ShadowPublisher):
            def publish(self, execution_id, request, review):
                receipt = super().publish(execution_id, request, review)
                holder["execution"].cancel()
                return receipt

        notifier = RecordingNotifier()
        orchestrator = _orchestrator(publisher=CancellingPublisher(quiet=True), notifier=notifier)
        execution = orchestrator.begin(_request(n=2))
        holder["execution"] = execution
        orchestrator.run(execution)

        assert execution.status == "Succeeded"
        assert execution.error is None
        assert [o.status for o in notifier.outcomes] == ["Succeeded"]
        assert notifier.outcomes[0].location == execution.receipt.location

    def test_cancel_between_publish_attempts_posts_nothing(self):
        holder = {}
        publisher = MagicMock()

        def fail_and_cancel(*args):
            holder["execution"].cancel()
            raise ConnectionError("502 Bad Gateway")

        publisher.publish.side_effect = fail_and_cancel
        notifier = RecordingNotifier()
        orchestrator = _orchestrator(publisher=publisher, notifier=notifier)
        execution = orchestrator.begin(_request(n=1))
        holder["execution"] = execution
        orchestrator.run(execution)

        assert execution.status == "Failed"
        assert execution.error.stage == "Publishing"
        assert execution.error.kind == "ExecutionCancelled"
        assert execution.receipt is None
        assert publisher.publish.call_count == 1
        assert [o.status for o in notifier.outcomes] == ["Failed"]


class TestResume:
    def test_resume_only_reanalyzes_pending_chunks(self):
        capability = ScriptedCapability()
        orchestrator = _orchestrator(capability)
        request = _request()
        execution = orchestrator.begin(request)
        execution.advance(Stage.SPLITTING)
        execution.chunks = orchestrator.splitter.split(request)
        execution.advance(Stage.ANALYZING)
        execution.record_result(ChunkResult.ok(0, []))
        execution.record_result(ChunkResult.ok(1, []))

        orchestrator.run(execution)

        assert execution.status == "Succeeded"
        assert sorted(capability.seen) == ["src/mod_2.py", "src/mod_3.py", "src/mod_4.py"]
        assert execution.review.chunk_count == 5

    def test_running_a_terminal_execution_is_a_no_op(self):
        notifier = RecordingNotifier()
        orchestrator = _orchestrator(notifier=notifier)
        execution = orchestrator.start(_request(n=1))
        orchestrator.run(execution)
        assert len(notifier.outcomes) == 1


class TestArchive:
    def test_archive_hook_sees_terminal_execution(self):
        archived = []
        execution = _orchestrator(archive=archived.append).start(_request(n=1))
        assert archived == [execution]
        assert archived[0].is_terminal

    def test_failed_runs_are_archived(self):
        archived = []
        publisher = MagicMock()
        publisher.publish.side_effect = PublishError("down")
        execution = _orchestrator(publisher=publisher, archive=archived.append).start(_request(n=1))
        assert archived == [execution]
        assert archived[0].status == "Failed"

    def test_archive_failure_is_contained(self):
        def broken(execution):
            raise OSError("read-only filesystem")

        assert _orchestrator(archive=broken).start(_request(n=1)).status == "Succeeded"


class TestConcurrentExecutions:
    def test_executions_are_independent_and_share_the_budget(self):
        budget = AnalysisBudget(2)
        orchestrator = _orchestrator(budget=budget)
        executions = {}

        def run(pr_number):
            executions[pr_number] = orchestrator.start(_request(n=4, pr_number=pr_number))

        threads = [threading.Thread(target=run, args=(n,)) for n in (10, 11, 12)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert {e.status for e in executions.values()} == {"Succeeded"}
        assert len({e.execution_id for e in executions.values()}) == 3
        assert {e.request.pr_number for e in executions.values()} == {10, 11, 12}
        assert budget.peak <= 2


def test_from_config_wires_settings(mocker):
    mocker.patch("anthropic.Anthropic")
    config = {
        "model": "anthropic",
        "anthropic_api_key": "k",
        "guidelines": None,
        "max_chunk_size": 300,
        "chunk_size_unit": "lines",
        "max_concurrent_analyses": 2,
        "join_timeout": None,
        "notifier": "none",
    }
    orchestrator = Orchestrator.from_config(config, publisher=ShadowPublisher(quiet=True))
    assert orchestrator.splitter.max_chunk_size == 300
    assert orchestrator.budget.limit == 2
    assert orchestrator.join_timeout is None
