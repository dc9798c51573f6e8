"""Unit tests for event classification."""

import pytest

from autorebase.classifier import (
    CiSignalRoute,
    LifecycleRoute,
    NopRoute,
    OneTimeCommandRoute,
    classify,
    is_one_time_command,
)
from autorebase.events import (
    CheckCompletedPayload,
    CommentCreatedPayload,
    Event,
    EventName,
    PullRequestChangedPayload,
    ReviewSubmittedPayload,
    StatusChangedPayload,
)

LABEL = "autorebase"


def comment_event(body, is_pull_request=True):
    return Event(
        id="e",
        name=EventName.COMMENT_CREATED,
        payload=CommentCreatedPayload(
            body=body, author="alice", issue_number=5, is_pull_request=is_pull_request
        ),
    )


def pull_request_event(action, label_name=None, mergeable=True, closed=False, merged=False):
    return Event(
        id="e",
        name=EventName.PULL_REQUEST_CHANGED,
        payload=PullRequestChangedPayload(
            action=action,
            pull_request_number=5,
            label_name=label_name,
            mergeable=mergeable,
            closed=closed,
            merged=merged,
        ),
    )


@pytest.mark.unit
class TestIsOneTimeCommand:
    """Tests for is_one_time_command()."""

    @pytest.mark.parametrize("body", ["/rebase", "/autorebase", "  /rebase\n", "\t/autorebase "])
    def test_commands(self, body):
        """Test both commands are recognized with surrounding whitespace."""
        assert is_one_time_command(body, LABEL) is True

    @pytest.mark.parametrize(
        "body", ["/rebase please", "please /rebase", "/REBASE", "rebase", "/other", ""]
    )
    def test_non_commands(self, body):
        """Test anything but an exact command is ignored."""
        assert is_one_time_command(body, LABEL) is False

    def test_empty_label_only_accepts_rebase(self):
        """Test an empty label does not turn '/' into a command."""
        assert is_one_time_command("/", "") is False
        assert is_one_time_command("/rebase", "") is True


@pytest.mark.unit
class TestClassifyComments:
    """Tests for classify() on comment events."""

    def test_rebase_command_on_pull_request(self):
        """Test a command on a pull request routes to the one-time branch."""
        route = classify(comment_event("/rebase"), LABEL, False)
        assert route == OneTimeCommandRoute(pull_request_number=5, username="alice")

    def test_command_on_issue_is_nop(self):
        """Test commands on plain issues are ignored."""
        assert classify(comment_event("/rebase", is_pull_request=False), LABEL, False) == NopRoute()

    def test_other_comment_is_nop(self):
        """Test ordinary comments are ignored."""
        assert classify(comment_event("LGTM"), LABEL, False) == NopRoute()


@pytest.mark.unit
class TestClassifyCiSignals:
    """Tests for classify() on check and status events."""

    def test_check_completed(self):
        """Test completed checks route by SHA."""
        event = Event(id="e", name=EventName.CHECK_COMPLETED, payload=CheckCompletedPayload("abc"))
        assert classify(event, LABEL, False) == CiSignalRoute(sha="abc")

    def test_status_changed(self):
        """Test status changes route by SHA."""
        event = Event(id="e", name=EventName.STATUS_CHANGED, payload=StatusChangedPayload("abc"))
        assert classify(event, LABEL, False) == CiSignalRoute(sha="abc")


@pytest.mark.unit
class TestClassifyLifecycle:
    """Tests for classify() on pull request and review events."""

    @pytest.mark.parametrize("action", ["opened", "synchronize"])
    def test_autorebase_actions(self, action):
        """Test opened and synchronize events target the same pull request."""
        route = classify(pull_request_event(action), LABEL, False)
        assert route == LifecycleRoute(
            pull_request_number=5,
            is_autorebase_same_pull_request_event=True,
            is_rebase_pull_request_on_same_base_event=False,
            is_merge_event=False,
        )

    def test_labeled_with_automation_label(self):
        """Test adding the automation label targets the same pull request."""
        route = classify(pull_request_event("labeled", label_name=LABEL), LABEL, False)
        assert route.is_autorebase_same_pull_request_event is True

    def test_labeled_with_other_label_is_nop(self):
        """Test unrelated labels are ignored."""
        route = classify(pull_request_event("labeled", label_name="bug"), LABEL, False)
        assert route == NopRoute()

    def test_not_mergeable_is_nop(self):
        """Test a webhook reporting mergeable=false is ignored."""
        assert classify(pull_request_event("opened", mergeable=False), LABEL, False) == NopRoute()

    def test_force_rebase_overrides_mergeable(self):
        """Test the pre-filter hook overrides the webhook mergeable flag."""
        route = classify(pull_request_event("opened", mergeable=None), LABEL, True)
        assert route.is_autorebase_same_pull_request_event is True

    def test_closed_is_not_autorebase_event(self):
        """Test closed pull requests are never rebased."""
        route = classify(pull_request_event("synchronize", closed=True), LABEL, True)
        assert route == NopRoute()

    def test_closed_and_merged(self):
        """Test a merge targets the next pull request on the same base."""
        route = classify(
            pull_request_event("closed", mergeable=None, closed=True, merged=True), LABEL, False
        )
        assert route.is_rebase_pull_request_on_same_base_event is True
        assert route.is_autorebase_same_pull_request_event is False

    def test_closed_without_merge_is_nop(self):
        """Test closing without merging is ignored."""
        route = classify(pull_request_event("closed", closed=True), LABEL, False)
        assert route == NopRoute()

    def test_review_submitted(self):
        """Test reviews are merge events."""
        event = Event(
            id="e", name=EventName.REVIEW_SUBMITTED, payload=ReviewSubmittedPayload(5)
        )
        route = classify(event, LABEL, False)
        assert route == LifecycleRoute(
            pull_request_number=5,
            is_autorebase_same_pull_request_event=False,
            is_rebase_pull_request_on_same_base_event=False,
            is_merge_event=True,
        )

    @pytest.mark.parametrize("action", ["edited", "assigned", "unlabeled", "reopened"])
    def test_other_actions_are_nop(self, action):
        """Test other pull request actions never reach the API."""
        assert classify(pull_request_event(action, label_name=LABEL), LABEL, False) == NopRoute()
