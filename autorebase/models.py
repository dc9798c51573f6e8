"""Pull request state and action types.

`PullRequestInfo` is derived from a fresh API read on every decision and is
never cached across events. `Action` is the decision engine's only output: a
closed union of frozen dataclasses, one per outcome.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

from autorebase.logger import get_logger

logger = get_logger(__name__)


class MergeableState(str, Enum):
    """GitHub's asynchronously computed classification of a pull request.

    UNKNOWN means GitHub has not finished computing it yet and must never be
    acted upon. DRAFT and HAS_HOOKS are reported by GitHub too; the engine
    treats them like any other state it does not act on.
    """

    UNKNOWN = "unknown"
    DIRTY = "dirty"
    CLEAN = "clean"
    UNSTABLE = "unstable"
    BLOCKED = "blocked"
    BEHIND = "behind"
    DRAFT = "draft"
    HAS_HOOKS = "has_hooks"

    @classmethod
    def parse(cls, value: str | None) -> MergeableState:
        """Parse GitHub's `mergeable_state`, mapping missing values to UNKNOWN."""
        if value is None:
            return cls.UNKNOWN
        try:
            return cls(value)
        except ValueError:
            logger.warning(f"Unexpected mergeable state '{value}', treating as unknown")
            return cls.UNKNOWN


@dataclass(frozen=True)
class PullRequestInfo:
    """Decision-relevant view of a pull request.

    Attributes:
        pull_request_number: Pull request number
        base: Base branch name
        head: Head branch name
        sha: Head commit SHA
        mergeable_state: Settled mergeable state
        merged: Whether the pull request has been merged
        labeled_and_opened_and_rebaseable: Automation label present, pull
            request not closed, and GitHub's `mergeable` flag true
    """

    pull_request_number: int
    base: str
    head: str
    sha: str
    mergeable_state: MergeableState
    merged: bool
    labeled_and_opened_and_rebaseable: bool


def is_mergeable_state_known(pull_request: dict[str, Any]) -> bool:
    """Whether a raw pull request can be consumed without polling again.

    Closed pull requests never settle, so their state counts as known. A
    missing or unrecognised state is not known yet.
    """
    if pull_request.get("closed_at") is not None:
        return True
    return MergeableState.parse(pull_request.get("mergeable_state")) != MergeableState.UNKNOWN


def pull_request_info_from_api(pull_request: dict[str, Any], label: str) -> PullRequestInfo:
    """Build a PullRequestInfo from a GitHub REST pull request object.

    GitHub's `rebaseable` flag is deliberately ignored: it is sometimes false
    for pull requests that rebase fine, so only `mergeable` is consulted.

    Args:
        pull_request: Pull request object as returned by `GET /pulls/{number}`
        label: Automation label name

    Returns:
        PullRequestInfo for the pull request
    """
    label_names = [entry["name"] for entry in pull_request.get("labels", [])]
    closed_at = pull_request.get("closed_at")
    mergeable = pull_request.get("mergeable") is True

    info = PullRequestInfo(
        pull_request_number=pull_request["number"],
        base=pull_request["base"]["ref"],
        head=pull_request["head"]["ref"],
        sha=pull_request["head"]["sha"],
        mergeable_state=MergeableState.parse(pull_request.get("mergeable_state")),
        merged=bool(pull_request.get("merged")),
        labeled_and_opened_and_rebaseable=(
            bool(label) and label in label_names and closed_at is None and mergeable
        ),
    )
    logger.debug(
        f"Pull request info #{info.pull_request_number}: base={info.base} head={info.head} "
        f"labels={label_names} closed_at={closed_at} mergeable={mergeable} "
        f"mergeable_state={info.mergeable_state.value} merged={info.merged}"
    )
    return info


# Actions


@dataclass(frozen=True)
class Nop:
    """Nothing to do for this event."""

    type: Literal["nop"] = field(default="nop", init=False)


@dataclass(frozen=True)
class Rebase:
    """The pull request was rebased."""

    pull_request_number: int
    type: Literal["rebase"] = field(default="rebase", init=False)


@dataclass(frozen=True)
class Merge:
    """The pull request was merged and its head branch deleted."""

    pull_request_number: int
    type: Literal["merge"] = field(default="merge", init=False)


@dataclass(frozen=True)
class Abort:
    """Another process holds the label lock; the pull request was left alone."""

    pull_request_number: int
    type: Literal["abort"] = field(default="abort", init=False)


@dataclass(frozen=True)
class DenyOneTimeRebase:
    """A one-time rebase command came from a user without enough permission."""

    pull_request_number: int
    type: Literal["deny-one-time-rebase"] = field(default="deny-one-time-rebase", init=False)


@dataclass(frozen=True)
class Failed:
    """Handling the event raised; only built by the application wrapper."""

    error: BaseException
    type: Literal["failed"] = field(default="failed", init=False)


Action = Nop | Rebase | Merge | Abort | DenyOneTimeRebase | Failed


def action_to_dict(action: Action) -> dict[str, Any]:
    """Serialize an action for logs and CLI output."""
    match action:
        case Nop():
            return {"type": action.type}
        case Rebase(pull_request_number=number) | Merge(pull_request_number=number):
            return {"type": action.type, "pullRequestNumber": number}
        case Abort(pull_request_number=number) | DenyOneTimeRebase(pull_request_number=number):
            return {"type": action.type, "pullRequestNumber": number}
        case Failed(error=error):
            return {"type": action.type, "error": str(error)}
