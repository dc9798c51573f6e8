"""Inbound webhook events.

Raw GitHub webhook payloads are decoded once, at the boundary, into a closed
set of frozen payload dataclasses carrying only the fields the decision engine
reads. Nothing downstream touches the raw payload dictionary.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from autorebase.logger import get_logger

logger = get_logger(__name__)


class EventName(str, Enum):
    """Events the engine subscribes to."""

    CHECK_COMPLETED = "check-completed"
    COMMENT_CREATED = "comment-created"
    PULL_REQUEST_CHANGED = "pull-request-changed"
    REVIEW_SUBMITTED = "review-submitted"
    STATUS_CHANGED = "status-changed"


@dataclass(frozen=True)
class CheckCompletedPayload:
    """A check run completed on a commit."""

    sha: str


@dataclass(frozen=True)
class StatusChangedPayload:
    """A commit status was created or updated."""

    sha: str


@dataclass(frozen=True)
class CommentCreatedPayload:
    """A comment was created on an issue or pull request.

    Attributes:
        body: Raw comment body
        author: Login of the commenter
        issue_number: Number of the issue or pull request commented on
        is_pull_request: Whether the issue is a pull request
    """

    body: str
    author: str
    issue_number: int
    is_pull_request: bool


@dataclass(frozen=True)
class PullRequestChangedPayload:
    """A pull request lifecycle change.

    Attributes:
        action: Webhook sub-action (opened, synchronize, labeled, closed, ...)
        pull_request_number: Pull request number
        label_name: Name of the label added or removed, for label actions
        mergeable: GitHub's `mergeable` flag as sent in the webhook
        closed: Whether the pull request is closed
        merged: Whether the pull request is merged
    """

    action: str
    pull_request_number: int
    label_name: str | None
    mergeable: bool | None
    closed: bool
    merged: bool


@dataclass(frozen=True)
class ReviewSubmittedPayload:
    """A review was submitted on a pull request."""

    pull_request_number: int


EventPayload = (
    CheckCompletedPayload
    | StatusChangedPayload
    | CommentCreatedPayload
    | PullRequestChangedPayload
    | ReviewSubmittedPayload
)


@dataclass(frozen=True)
class Event:
    """A decoded webhook delivery.

    Attributes:
        id: Correlation token (the delivery identifier)
        name: Which of the subscribed events this is
        payload: Fields specific to the event kind
    """

    id: str
    name: EventName
    payload: EventPayload


def _decode_check_run(payload: dict[str, Any]) -> CheckCompletedPayload | None:
    if payload.get("action") != "completed":
        return None
    return CheckCompletedPayload(sha=payload["check_run"]["head_sha"])


def _decode_status(payload: dict[str, Any]) -> StatusChangedPayload:
    return StatusChangedPayload(sha=payload["sha"])


def _decode_issue_comment(payload: dict[str, Any]) -> CommentCreatedPayload | None:
    if payload.get("action") != "created":
        return None
    issue = payload["issue"]
    comment = payload["comment"]
    return CommentCreatedPayload(
        body=comment.get("body") or "",
        author=comment["user"]["login"],
        issue_number=issue["number"],
        is_pull_request=issue.get("pull_request") is not None,
    )


def _decode_pull_request(payload: dict[str, Any]) -> PullRequestChangedPayload:
    pull_request = payload["pull_request"]
    label = payload.get("label") or {}
    return PullRequestChangedPayload(
        action=payload["action"],
        pull_request_number=pull_request["number"],
        label_name=label.get("name"),
        mergeable=pull_request.get("mergeable"),
        closed=pull_request.get("closed_at") is not None,
        merged=bool(pull_request.get("merged")),
    )


def _decode_pull_request_review(payload: dict[str, Any]) -> ReviewSubmittedPayload | None:
    if payload.get("action") != "submitted":
        return None
    return ReviewSubmittedPayload(pull_request_number=payload["pull_request"]["number"])


_DECODERS = {
    "check_run": (EventName.CHECK_COMPLETED, _decode_check_run),
    "status": (EventName.STATUS_CHANGED, _decode_status),
    "issue_comment": (EventName.COMMENT_CREATED, _decode_issue_comment),
    "pull_request": (EventName.PULL_REQUEST_CHANGED, _decode_pull_request),
    "pull_request_review": (EventName.REVIEW_SUBMITTED, _decode_pull_request_review),
}

SUBSCRIBED_WEBHOOKS = tuple(_DECODERS)


def decode_event(event_id: str, webhook_name: str, payload: dict[str, Any]) -> Event | None:
    """Decode a raw GitHub webhook delivery.

    Args:
        event_id: Delivery identifier (X-GitHub-Delivery or any correlation token)
        webhook_name: GitHub event name (X-GitHub-Event), e.g. "pull_request"
        payload: Parsed JSON payload

    Returns:
        The decoded Event, or None when the delivery is not one the engine
        subscribes to (other webhooks, or other sub-actions such as an edited
        comment or a requested check run).

    Raises:
        ValueError: If a subscribed payload is missing required fields
    """
    entry = _DECODERS.get(webhook_name)
    if entry is None:
        logger.debug(f"Skipping unsubscribed webhook '{webhook_name}'")
        return None

    name, decoder = entry
    try:
        decoded = decoder(payload)
    except (KeyError, TypeError) as e:
        raise ValueError(f"Malformed '{webhook_name}' payload: missing {e}") from e

    if decoded is None:
        logger.debug(f"Skipping '{webhook_name}' with action '{payload.get('action')}'")
        return None

    return Event(id=event_id, name=name, payload=decoded)
