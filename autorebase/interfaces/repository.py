"""Collaborator protocols consumed by the decision engine.

This module defines the interfaces a platform binding must implement for the
engine to read pull requests, mutate them, and rewrite their history. Every
method is a coroutine: each one is a suspension point in the engine.
"""

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class PullRequestRepository(Protocol):
    """Protocol for the hosting platform's pull request API, scoped to one repository.

    Raw objects are returned in the shape of the GitHub REST API so that the
    engine decodes them in a single place.
    """

    owner: str
    repo: str

    async def get_pull_request(self, number: int) -> dict[str, Any]:
        """Fetch a pull request (`GET /repos/{owner}/{repo}/pulls/{number}`)."""
        ...

    async def merge_pull_request(self, number: int, merge_method: str = "merge") -> None:
        """Merge a pull request with the given strategy."""
        ...

    async def delete_ref(self, ref: str) -> None:
        """Delete a git reference such as `heads/feature`."""
        ...

    async def add_labels(self, number: int, labels: list[str]) -> None:
        """Add labels to a pull request."""
        ...

    async def remove_label(self, number: int, name: str) -> None:
        """Remove a label from a pull request.

        Raises:
            LabelNotFoundError: If the label is not on the pull request. This
                is what makes label removal usable as a lock.
        """
        ...

    async def create_comment(self, number: int, body: str) -> None:
        """Post a comment on a pull request."""
        ...

    async def get_collaborator_permission(self, username: str) -> str:
        """Return a user's permission level (admin, write, read, none)."""
        ...

    async def search_open_labeled(self, query: str) -> list[int]:
        """Search pull requests and return their numbers, oldest first, across all pages."""
        ...

    async def list_pull_request_commits(self, number: int) -> list[dict[str, Any]]:
        """List a pull request's commits, oldest first."""
        ...


@runtime_checkable
class RebaseExecutor(Protocol):
    """Protocol for the component that rewrites a pull request's history."""

    async def rebase(self, number: int) -> None:
        """Rebase the pull request onto its base, folding fixup!/squash! commits."""
        ...

    async def needs_autosquash(self, number: int) -> bool:
        """Whether the pull request has commits that autosquash would fold."""
        ...
