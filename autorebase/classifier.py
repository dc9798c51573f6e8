"""Event classification.

`classify` maps an event to the branch of the state machine that handles it.
It performs no I/O, so events that cannot lead to an action are discarded
before any API call.
"""

from dataclasses import dataclass

from autorebase.events import (
    CheckCompletedPayload,
    CommentCreatedPayload,
    Event,
    PullRequestChangedPayload,
    ReviewSubmittedPayload,
    StatusChangedPayload,
)

REBASE_COMMAND = "/rebase"

AUTOREBASE_ACTIONS = ("opened", "synchronize")


@dataclass(frozen=True)
class OneTimeCommandRoute:
    """A rebase command was commented on a pull request."""

    pull_request_number: int
    username: str


@dataclass(frozen=True)
class CiSignalRoute:
    """A check or status settled on a commit."""

    sha: str


@dataclass(frozen=True)
class LifecycleRoute:
    """A pull request lifecycle event worth resolving state for.

    Attributes:
        pull_request_number: Pull request the event is about
        is_autorebase_same_pull_request_event: Opened, pushed to, or labeled
            with the automation label while open and mergeable (or forced)
        is_rebase_pull_request_on_same_base_event: Merged, so the next pull
            request on the same base may need a rebase
        is_merge_event: A review was submitted
    """

    pull_request_number: int
    is_autorebase_same_pull_request_event: bool
    is_rebase_pull_request_on_same_base_event: bool
    is_merge_event: bool


@dataclass(frozen=True)
class NopRoute:
    """Nothing can come of this event."""

    pass


Route = OneTimeCommandRoute | CiSignalRoute | LifecycleRoute | NopRoute


def is_one_time_command(body: str, label: str) -> bool:
    """Whether a comment body is a one-time rebase command."""
    commands = {REBASE_COMMAND}
    if label:
        commands.add(f"/{label}")
    return body.strip() in commands


def classify(event: Event, label: str, force_rebase: bool) -> Route:
    """Decide which branch of the state machine applies to an event.

    Args:
        event: Decoded event
        label: Automation label name
        force_rebase: Result of the pre-filter hook for this event

    Returns:
        The route to take
    """
    payload = event.payload

    match payload:
        case CommentCreatedPayload():
            if payload.is_pull_request and is_one_time_command(payload.body, label):
                return OneTimeCommandRoute(
                    pull_request_number=payload.issue_number,
                    username=payload.author,
                )
            return NopRoute()

        case CheckCompletedPayload(sha=sha) | StatusChangedPayload(sha=sha):
            return CiSignalRoute(sha=sha)

        case PullRequestChangedPayload():
            is_autorebase_action = payload.action in AUTOREBASE_ACTIONS or (
                payload.action == "labeled" and payload.label_name == label
            )
            route = LifecycleRoute(
                pull_request_number=payload.pull_request_number,
                is_autorebase_same_pull_request_event=(
                    is_autorebase_action
                    and (payload.mergeable is True or force_rebase)
                    and not payload.closed
                ),
                is_rebase_pull_request_on_same_base_event=(
                    payload.action == "closed" and payload.merged
                ),
                is_merge_event=False,
            )

        case ReviewSubmittedPayload():
            route = LifecycleRoute(
                pull_request_number=payload.pull_request_number,
                is_autorebase_same_pull_request_event=False,
                is_rebase_pull_request_on_same_base_event=False,
                is_merge_event=True,
            )

        case _:
            return NopRoute()

    if (
        route.is_autorebase_same_pull_request_event
        or route.is_rebase_pull_request_on_same_base_event
        or route.is_merge_event
    ):
        return route
    return NopRoute()
