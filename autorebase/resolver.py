"""Pull request state resolution.

GitHub computes `mergeable_state` asynchronously after most mutations, and
webhook payloads regularly carry stale values (`clean` or `unstable` for a pull
request that is really `behind`). The resolver therefore always asks the API
and waits for the state to settle before anything downstream reads it.
"""

from typing import Any

from autorebase.errors import StateUnresolvedError
from autorebase.interfaces import PullRequestRepository
from autorebase.logger import get_logger
from autorebase.models import PullRequestInfo, is_mergeable_state_known, pull_request_info_from_api
from autorebase.settle import DEFAULT_BACKOFF, BackoffPolicy, NotSettledError, await_settled

logger = get_logger(__name__)


async def wait_for_known_mergeable_state(
    repository: PullRequestRepository,
    pull_request_number: int,
    backoff: BackoffPolicy = DEFAULT_BACKOFF,
) -> dict[str, Any]:
    """Fetch a pull request until its mergeable state is known or it is closed.

    Args:
        repository: Pull request API
        pull_request_number: Pull request number
        backoff: Delay and attempt budget

    Returns:
        The raw pull request object with a settled mergeable state

    Raises:
        StateUnresolvedError: If the state is still unknown after the budget
    """

    async def fetch() -> dict[str, Any]:
        logger.debug(f"Fetching mergeable state of #{pull_request_number}")
        pull_request = await repository.get_pull_request(pull_request_number)
        logger.debug(
            f"Mergeable state of #{pull_request_number}: "
            f"{pull_request.get('mergeable_state')} (closed_at={pull_request.get('closed_at')})"
        )
        return pull_request

    try:
        return await await_settled(
            fetch,
            is_mergeable_state_known,
            backoff,
            description=f"mergeable state of #{pull_request_number}",
        )
    except NotSettledError as e:
        raise StateUnresolvedError(pull_request_number, e.attempts) from e


async def resolve_pull_request(
    repository: PullRequestRepository,
    pull_request_number: int,
    label: str,
    backoff: BackoffPolicy = DEFAULT_BACKOFF,
) -> PullRequestInfo:
    """Resolve a pull request's decision-relevant state.

    Args:
        repository: Pull request API
        pull_request_number: Pull request number
        label: Automation label name
        backoff: Delay and attempt budget for settling the mergeable state

    Returns:
        PullRequestInfo whose mergeable state is not unknown unless the pull
        request is closed

    Raises:
        StateUnresolvedError: If the state is still unknown after the budget
    """
    pull_request = await wait_for_known_mergeable_state(repository, pull_request_number, backoff)
    return pull_request_info_from_api(pull_request, label)
