"""Abstract interfaces for platform integrations."""

from autorebase.interfaces.repository import PullRequestRepository, RebaseExecutor

__all__ = [
    "PullRequestRepository",
    "RebaseExecutor",
]
