"""Tests for the decision engine, end to end over the in-memory GitHub."""

import asyncio
from dataclasses import replace

import pytest

from autorebase.engine import autorebase, autorebase_pull_request
from autorebase.errors import (
    GitHubAPIError,
    NetworkError,
    RebaseFailedError,
    StateUnresolvedError,
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
from autorebase.models import Abort, DenyOneTimeRebase, Merge, Nop, Rebase
from autorebase.resolver import resolve_pull_request


def pull_request_changed(number, action="synchronize", label_name=None, **flags):
    payload = PullRequestChangedPayload(
        action=action,
        pull_request_number=number,
        label_name=label_name,
        mergeable=flags.get("mergeable", True),
        closed=flags.get("closed", False),
        merged=flags.get("merged", False),
    )
    return Event(id="evt", name=EventName.PULL_REQUEST_CHANGED, payload=payload)


def check_completed(sha):
    return Event(id="evt", name=EventName.CHECK_COMPLETED, payload=CheckCompletedPayload(sha))


def comment(number, body="/rebase", author="alice"):
    payload = CommentCreatedPayload(
        body=body, author=author, issue_number=number, is_pull_request=True
    )
    return Event(id="evt", name=EventName.COMMENT_CREATED, payload=payload)


def review(number):
    return Event(
        id="evt", name=EventName.REVIEW_SUBMITTED, payload=ReviewSubmittedPayload(number)
    )


@pytest.mark.unit
class TestLifecyclePath:
    """Tests for pull request and review events."""

    @pytest.mark.asyncio
    async def test_behind_pull_request_is_rebased(self, context, github, rebaser):
        """Test a labeled behind pull request is rebased and the lock released."""
        github.add_pull_request(1, mergeable_state="behind")

        action = await autorebase(context, pull_request_changed(1), False)

        assert action == Rebase(pull_request_number=1)
        assert rebaser.rebased == [1]
        assert github.label_events == [("remove", 1), ("add", 1)]
        assert github.labels_of(1) == ["autorebase"]

    @pytest.mark.asyncio
    async def test_clean_pull_request_is_merged(self, context, github):
        """Test a labeled clean pull request is merged and its branch deleted."""
        github.add_pull_request(1, mergeable_state="clean", head="topic")

        action = await autorebase(context, pull_request_changed(1, action="opened"), False)

        assert action == Merge(pull_request_number=1)
        assert github.merges == [(1, "merge")]
        assert github.deleted_refs == ["heads/topic"]

    @pytest.mark.asyncio
    async def test_autosquash_forces_rebase_when_clean(self, context, github, rebaser):
        """Test fixup commits force a rebase even on a clean pull request."""
        github.add_pull_request(1, mergeable_state="clean")
        rebaser.autosquash.add(1)

        action = await autorebase(context, pull_request_changed(1), False)

        assert action == Rebase(pull_request_number=1)
        assert github.merges == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("state", ["dirty", "unstable", "blocked"])
    async def test_other_states_are_nop(self, context, github, rebaser, state):
        """Test states that need neither rebase nor merge yield nop."""
        github.add_pull_request(1, mergeable_state=state)

        action = await autorebase(context, pull_request_changed(1), False)

        assert action == Nop()
        assert rebaser.rebased == []
        assert github.merges == []

    @pytest.mark.asyncio
    async def test_unlabeled_pull_request_is_nop(self, context, github):
        """Test pull requests without the label are left alone."""
        github.add_pull_request(1, mergeable_state="behind", labels=())

        assert await autorebase(context, pull_request_changed(1), False) == Nop()

    @pytest.mark.asyncio
    async def test_force_rebase_when_not_mergeable(self, context, github, rebaser):
        """Test a forced event rebases even when GitHub reports it unmergeable."""
        github.add_pull_request(1, mergeable_state="clean")
        github.pull_requests[1]["mergeable"] = False

        action = await autorebase(context, pull_request_changed(1, mergeable=None), True)

        assert action == Rebase(pull_request_number=1)
        assert rebaser.rebased == [1]

    @pytest.mark.asyncio
    async def test_labeled_event_starts_automation(self, context, github):
        """Test adding the label to a clean pull request merges it."""
        github.add_pull_request(1, mergeable_state="clean")

        event = pull_request_changed(1, action="labeled", label_name="autorebase")
        assert await autorebase(context, event, False) == Merge(pull_request_number=1)

    @pytest.mark.asyncio
    async def test_merge_advances_next_behind_on_same_base(self, context, github, rebaser):
        """Test merging one pull request rebases the oldest behind one on its base."""
        github.add_pull_request(1, mergeable_state="clean", merged=True)
        github.add_pull_request(2, mergeable_state="behind", base="dev")
        github.add_pull_request(3, mergeable_state="clean")
        github.add_pull_request(4, mergeable_state="behind")
        github.add_pull_request(5, mergeable_state="behind")

        event = pull_request_changed(1, action="closed", closed=True, merged=True)
        action = await autorebase(context, event, False)

        assert action == Rebase(pull_request_number=4)
        assert rebaser.rebased == [4]

    @pytest.mark.asyncio
    async def test_merge_with_nothing_behind_is_nop(self, context, github):
        """Test nop when no pull request on the base is behind."""
        github.add_pull_request(1, merged=True)
        github.add_pull_request(2, mergeable_state="clean")

        event = pull_request_changed(1, action="closed", closed=True, merged=True)
        assert await autorebase(context, event, False) == Nop()

    @pytest.mark.asyncio
    async def test_review_merges_labeled_pull_request(self, context, github):
        """Test a review on a labeled mergeable pull request merges it."""
        github.add_pull_request(1, mergeable_state="clean")

        assert await autorebase(context, review(1), False) == Merge(pull_request_number=1)

    @pytest.mark.asyncio
    async def test_review_on_unlabeled_pull_request_is_nop(self, context, github):
        """Test reviews on unlabeled pull requests do nothing."""
        github.add_pull_request(1, mergeable_state="clean", labels=())

        assert await autorebase(context, review(1), False) == Nop()
        assert github.merges == []

    @pytest.mark.asyncio
    async def test_nop_events_skip_api(self, context, github):
        """Test events that cannot lead to an action make no API call."""
        event = pull_request_changed(1, action="edited")

        assert await autorebase(context, event, False) == Nop()
        assert github.fetches == []

    @pytest.mark.asyncio
    async def test_unresolved_state_propagates(self, context, github):
        """Test a state that never settles is fatal for the event."""
        github.add_pull_request(1, mergeable_state="unknown")

        with pytest.raises(StateUnresolvedError):
            await autorebase(context, pull_request_changed(1), False)

    @pytest.mark.asyncio
    async def test_state_settles_before_decision(self, context, github, rebaser):
        """Test the decision uses the settled state, not the first reading."""
        github.add_pull_request(1, mergeable_state="behind")
        github.pending_states[1] = ["unknown"]

        assert await autorebase(context, pull_request_changed(1), False) == Rebase(
            pull_request_number=1
        )


@pytest.mark.unit
class TestCiPath:
    """Tests for check and status events."""

    @pytest.mark.asyncio
    async def test_clean_matching_sha_is_merged(self, context, github):
        """Test a green check on a clean labeled pull request merges it."""
        github.add_pull_request(1, sha="abc", mergeable_state="clean")

        assert await autorebase(context, check_completed("abc"), False) == Merge(
            pull_request_number=1
        )

    @pytest.mark.asyncio
    async def test_status_event_is_handled_like_check(self, context, github):
        """Test status events follow the same path."""
        github.add_pull_request(1, sha="abc", mergeable_state="clean")
        event = Event(id="evt", name=EventName.STATUS_CHANGED, payload=StatusChangedPayload("abc"))

        assert await autorebase(context, event, False) == Merge(pull_request_number=1)

    @pytest.mark.asyncio
    async def test_blocked_falls_back_to_behind_on_same_base(self, context, github, rebaser):
        """Test a blocked pull request hands the queue to a behind one on its base."""
        github.add_pull_request(1, sha="abc", mergeable_state="blocked")
        github.add_pull_request(2, mergeable_state="behind")

        action = await autorebase(context, check_completed("abc"), False)

        assert action == Rebase(pull_request_number=2)
        assert rebaser.rebased == [2]
        assert github.merges == []

    @pytest.mark.asyncio
    async def test_blocked_without_fallback_is_nop(self, context, github):
        """Test nop when nothing else on the base is behind."""
        github.add_pull_request(1, sha="abc", mergeable_state="blocked")

        assert await autorebase(context, check_completed("abc"), False) == Nop()

    @pytest.mark.asyncio
    async def test_unknown_sha_is_nop(self, context, github):
        """Test checks on commits of no labeled pull request do nothing."""
        github.add_pull_request(1, sha="abc")

        assert await autorebase(context, check_completed("zzz"), False) == Nop()

    @pytest.mark.asyncio
    async def test_pending_state_is_nop(self, context, github):
        """Test other states wait for a later event."""
        github.add_pull_request(1, sha="abc", mergeable_state="unstable")

        assert await autorebase(context, check_completed("abc"), False) == Nop()


@pytest.mark.unit
class TestOneTimePath:
    """Tests for rebase commands."""

    @pytest.mark.asyncio
    async def test_writer_can_rebase(self, context, github, rebaser):
        """Test a collaborator with write access gets a rebase."""
        github.add_pull_request(1, mergeable_state="clean")
        github.permissions["alice"] = "write"

        assert await autorebase(context, comment(1), False) == Rebase(pull_request_number=1)
        assert rebaser.rebased == [1]

    @pytest.mark.asyncio
    async def test_label_command(self, context, github):
        """Test /<label> is accepted as a command."""
        github.add_pull_request(1)
        github.permissions["alice"] = "admin"

        action = await autorebase(context, comment(1, body="/autorebase"), False)
        assert action == Rebase(pull_request_number=1)

    @pytest.mark.asyncio
    async def test_permission_gate(self, context, github, rebaser):
        """Test a reader is denied and the pull request is untouched."""
        github.add_pull_request(1, mergeable_state="behind")
        github.permissions["mallory"] = "read"

        action = await autorebase(context, comment(1, author="mallory"), False)

        assert action == DenyOneTimeRebase(pull_request_number=1)
        assert rebaser.rebased == []
        assert github.label_events == []
        assert github.comments == [
            (
                1,
                "Rebase commands can only be submitted by collaborators with write "
                "permission on the repository.",
            )
        ]

    @pytest.mark.asyncio
    async def test_manual_command_ignores_state_and_reports_failure(
        self, context, github, rebaser
    ):
        """Test a command on a dirty pull request attempts a rebase and reports failure."""
        github.add_pull_request(1, mergeable_state="dirty", base="main", head="topic")
        github.permissions["alice"] = "write"
        rebaser.error = RuntimeError("CONFLICT (content): Merge conflict in app.py")

        with pytest.raises(RebaseFailedError, match="rebase failed"):
            await autorebase(context, comment(1), False)

        assert github.labels_of(1) == []
        number, body = github.comments[0]
        assert number == 1
        assert "rebase failed" in body
        assert "CONFLICT (content): Merge conflict in app.py" in body
        assert "git worktree add .worktrees/rebase topic" in body
        assert "git rebase --interactive --autosquash main" in body

    @pytest.mark.asyncio
    async def test_command_without_label_present_aborts(self, context, github, rebaser):
        """Test a command while another process holds the lock aborts."""
        github.add_pull_request(1, labels=())
        github.permissions["alice"] = "write"

        assert await autorebase(context, comment(1), False) == Abort(pull_request_number=1)
        assert rebaser.rebased == []

    @pytest.mark.asyncio
    async def test_no_label_rebases_without_lock(self, context, github, rebaser):
        """Test an empty label disables the lock entirely."""
        github.add_pull_request(1, labels=())
        github.permissions["alice"] = "write"
        unlocked = replace(context, label="")

        assert await autorebase(unlocked, comment(1), False) == Rebase(pull_request_number=1)
        assert github.label_events == []


@pytest.mark.unit
class TestConcurrency:
    """Tests for concurrent events on the same pull request."""

    @pytest.mark.asyncio
    async def test_lock_mutual_exclusion(self, context, github, rebaser):
        """Test two concurrent rebases yield exactly one rebase and one abort."""
        github.add_pull_request(1, mergeable_state="behind")

        actions = await asyncio.gather(
            autorebase(context, pull_request_changed(1), False),
            autorebase(context, pull_request_changed(1), False),
        )

        assert sorted(action.type for action in actions) == ["abort", "rebase"]
        assert rebaser.rebased == [1]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error", [GitHubAPIError(403, "Forbidden"), NetworkError("connection reset")]
    )
    async def test_failed_lock_removal_aborts(self, context, github, rebaser, error):
        """Test a label removal failure aborts without a failure comment."""
        github.add_pull_request(1, mergeable_state="behind")
        github.errors["remove_label"] = error

        action = await autorebase(context, pull_request_changed(1), False)

        assert action == Abort(pull_request_number=1)
        assert rebaser.rebased == []
        assert github.comments == []
        assert github.labels_of(1) == ["autorebase"]

    @pytest.mark.asyncio
    async def test_resolution_is_idempotent(self, context, github):
        """Test resolving a settled pull request twice gives the same answer."""
        github.add_pull_request(1, mergeable_state="behind")

        first = await resolve_pull_request(github, 1, "autorebase", context.backoff)
        second = await resolve_pull_request(github, 1, "autorebase", context.backoff)

        assert first.mergeable_state == second.mergeable_state
        assert first.labeled_and_opened_and_rebaseable == second.labeled_and_opened_and_rebaseable


@pytest.mark.unit
class TestAutorebasePullRequest:
    """Tests for autorebase_pull_request()."""

    @pytest.mark.asyncio
    async def test_force_rebase_on_clean(self, context, github, rebaser):
        """Test force_rebase wins over a clean state."""
        github.add_pull_request(1, mergeable_state="clean")
        info = await resolve_pull_request(github, 1, "autorebase", context.backoff)

        assert await autorebase_pull_request(context, info, True) == Rebase(pull_request_number=1)
