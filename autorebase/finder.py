"""Oldest-match search over labeled pull requests.

Candidates are evaluated one at a time in ascending creation order and the
search stops at the first match. The ordering gives FIFO fairness between
queued pull requests; evaluating sequentially keeps the number of API calls
proportional to the position of the first match.
"""

import asyncio
from collections.abc import Callable

from autorebase.interfaces import PullRequestRepository
from autorebase.logger import get_logger
from autorebase.models import MergeableState, PullRequestInfo
from autorebase.resolver import resolve_pull_request
from autorebase.settle import DEFAULT_BACKOFF, BackoffPolicy

logger = get_logger(__name__)

# Time given to GitHub's search index to catch up with recent label changes
DEFAULT_SEARCH_DELAY = 1.0


def build_search_query(owner: str, repo: str, label: str, extra_qualifiers: str) -> str:
    """Build the search query for open pull requests carrying the label.

    An empty label adds no label qualifier.
    """
    terms = ["is:pr", "is:open"]
    if label:
        terms.append(f'label:"{label}"')
    terms.append(f"repo:{owner}/{repo}")
    if extra_qualifiers:
        terms.append(extra_qualifiers)
    return " ".join(terms)


async def find_oldest_pull_request(
    repository: PullRequestRepository,
    label: str,
    extra_qualifiers: str,
    predicate: Callable[[PullRequestInfo], bool],
    backoff: BackoffPolicy = DEFAULT_BACKOFF,
    search_delay: float = DEFAULT_SEARCH_DELAY,
) -> PullRequestInfo | None:
    """Find the oldest open labeled pull request matching a predicate.

    Args:
        repository: Pull request API
        label: Automation label name
        extra_qualifiers: Additional search qualifiers, e.g. "base:main" or a SHA
        predicate: Test applied to each candidate's resolved state
        backoff: Delay and attempt budget for resolving each candidate
        search_delay: Seconds to wait before searching

    Returns:
        The first matching candidate in creation order, or None
    """
    query = build_search_query(repository.owner, repository.repo, label, extra_qualifiers)
    logger.debug(f"Searching oldest matching pull request: {query}")

    await asyncio.sleep(search_delay)
    pull_request_numbers = await repository.search_open_labeled(query)
    logger.debug(f"Candidates in creation order: {pull_request_numbers}")

    for pull_request_number in pull_request_numbers:
        pull_request = await resolve_pull_request(repository, pull_request_number, label, backoff)
        matching = predicate(pull_request)
        logger.debug(f"Candidate #{pull_request_number} matching={matching}")
        if matching:
            return pull_request

    logger.info(f"No pull request matching search: {query}")
    return None


async def find_autorebaseable_pull_request_matching_sha(
    repository: PullRequestRepository,
    label: str,
    sha: str,
    backoff: BackoffPolicy = DEFAULT_BACKOFF,
    search_delay: float = DEFAULT_SEARCH_DELAY,
) -> PullRequestInfo | None:
    """Find the oldest labeled, open, mergeable pull request whose head is `sha`."""
    return await find_oldest_pull_request(
        repository,
        label,
        sha,
        lambda pull_request: (
            pull_request.labeled_and_opened_and_rebaseable and pull_request.sha == sha
        ),
        backoff,
        search_delay,
    )


async def find_behind_pull_request_on_base(
    repository: PullRequestRepository,
    label: str,
    base: str,
    backoff: BackoffPolicy = DEFAULT_BACKOFF,
    search_delay: float = DEFAULT_SEARCH_DELAY,
) -> PullRequestInfo | None:
    """Find the oldest labeled open pull request on `base` that is behind it."""
    return await find_oldest_pull_request(
        repository,
        label,
        f"base:{base}",
        lambda pull_request: pull_request.mergeable_state == MergeableState.BEHIND,
        backoff,
        search_delay,
    )
