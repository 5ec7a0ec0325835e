"""Tests for outcome notifiers."""

import pytest
import requests

from prweave_core.errors import NotifyError
from prweave_core.models import ErrorRecord, Outcome
from prweave_core.notifier import ConsoleNotifier, NoOpNotifier, SlackNotifier, format_outcome, get_notifier

SUCCESS = Outcome(
    execution_id="e1",
    repo="owner/repo",
    pr_number=4,
    status="Succeeded",
    summary="2 finding(s) across 3 chunk(s) · COMMENT",
    location="https://gh/c/1",
    complete=False,
)
FAILURE = Outcome(
    execution_id="e2",
    repo="owner/repo",
    pr_number=4,
    status="Failed",
    error=ErrorRecord(stage="Publishing", kind="PublishError", message="502"),
    complete=False,
)


class TestFormatOutcome:
    def test_success_mentions_location_and_partial(self):
        text = format_outcome(SUCCESS)
        assert "owner/repo#4" in text
        assert "https://gh/c/1" in text
        assert "Partial review" in text
        assert "e1" in text

    def test_failure_mentions_stage_and_kind(self):
        text = format_outcome(FAILURE)
        assert "Publishing" in text
        assert "PublishError" in text


class TestSlackNotifier:
    def test_posts_to_webhook(self, mocker):
        post = mocker.patch("prweave_core.notifier.requests.post")
        SlackNotifier("https://hooks.slack.test/x").notify(SUCCESS)
        post.assert_called_once()
        assert post.call_args.args[0] == "https://hooks.slack.test/x"
        assert "owner/repo#4" in post.call_args.kwargs["json"]["text"]
        assert post.call_args.kwargs["timeout"] == 10

    def test_http_failure_raises_notify_error(self, mocker):
        mocker.patch("prweave_core.notifier.requests.post", side_effect=requests.ConnectionError("refused"))
        with pytest.raises(NotifyError):
            SlackNotifier("https://hooks.slack.test/x").notify(FAILURE)

    def test_bad_status_raises_notify_error(self, mocker):
        response = mocker.MagicMock()
        response.raise_for_status.side_effect = requests.HTTPError("404")
        mocker.patch("prweave_core.notifier.requests.post", return_value=response)
        with pytest.raises(NotifyError):
            SlackNotifier("https://hooks.slack.test/x").notify(SUCCESS)


class TestGetNotifier:
    def test_default_is_console(self):
        assert isinstance(get_notifier({}), ConsoleNotifier)

    def test_slack_with_url(self):
        assert isinstance(get_notifier({"notifier": "slack", "slack_webhook_url": "https://x"}), SlackNotifier)

    def test_slack_without_url_falls_back(self):
        assert isinstance(get_notifier({"notifier": "slack"}), ConsoleNotifier)

    def test_none(self):
        assert isinstance(get_notifier({"notifier": "none"}), NoOpNotifier)


def test_console_notifier_prints(capsys):
    ConsoleNotifier().notify(FAILURE)
    out = capsys.readouterr().out
    assert "Failed" in out
    assert "PublishError" in out
