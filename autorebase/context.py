"""Per-event dependencies handed to the decision engine."""

from collections.abc import Callable
from dataclasses import dataclass

from autorebase.finder import DEFAULT_SEARCH_DELAY
from autorebase.interfaces import PullRequestRepository, RebaseExecutor
from autorebase.settle import DEFAULT_BACKOFF, BackoffPolicy


@dataclass(frozen=True)
class AutorebaseContext:
    """Everything the engine needs to act on one repository.

    Attributes:
        repository: Pull request API for the repository
        rebaser: Executor that rewrites pull request history
        label: Automation label; empty disables the label lock
        can_rebase_one_time: Predicate on a commenter's permission level
        backoff: Budget for settling mergeable states
        search_delay: Seconds to let the search index catch up
    """

    repository: PullRequestRepository
    rebaser: RebaseExecutor
    label: str
    can_rebase_one_time: Callable[[str], bool]
    backoff: BackoffPolicy = DEFAULT_BACKOFF
    search_delay: float = DEFAULT_SEARCH_DELAY
