"""Decision engine.

`autorebase` is the single entry point: it takes one event and returns exactly
one action, or raises. Recoverable situations (lock contention, permission
denial, nothing to do yet) are actions; only platform and rebase failures
propagate as exceptions.
"""

from autorebase.classifier import (
    CiSignalRoute,
    LifecycleRoute,
    NopRoute,
    OneTimeCommandRoute,
    classify,
)
from autorebase.context import AutorebaseContext
from autorebase.events import Event
from autorebase.executor import merge, rebase, rebase_one_time
from autorebase.finder import (
    find_autorebaseable_pull_request_matching_sha,
    find_behind_pull_request_on_base,
)
from autorebase.logger import get_logger
from autorebase.models import Action, MergeableState, Nop, PullRequestInfo
from autorebase.resolver import resolve_pull_request

logger = get_logger(__name__)


async def find_and_rebase_pull_request_on_same_base(
    context: AutorebaseContext, base: str
) -> Action:
    """Rebase the oldest labeled pull request on `base` that is behind it."""
    logger.debug(f"Searching for pull request to rebase on base '{base}'")
    pull_request = await find_behind_pull_request_on_base(
        context.repository, context.label, base, context.backoff, context.search_delay
    )
    if pull_request is None:
        return Nop()
    return await rebase(context, pull_request.pull_request_number)


async def autorebase_pull_request(
    context: AutorebaseContext, pull_request: PullRequestInfo, force_rebase: bool
) -> Action:
    """Rebase a pull request if needed, otherwise merge it if it is clean."""
    needs_autosquash = await context.rebaser.needs_autosquash(pull_request.pull_request_number)
    logger.debug(
        f"Autorebasing #{pull_request.pull_request_number}: force_rebase={force_rebase} "
        f"needs_autosquash={needs_autosquash} "
        f"mergeable_state={pull_request.mergeable_state.value}"
    )

    should_rebase = (
        force_rebase or needs_autosquash or pull_request.mergeable_state == MergeableState.BEHIND
    )
    if should_rebase:
        return await rebase(context, pull_request.pull_request_number)
    if pull_request.mergeable_state == MergeableState.CLEAN:
        return await merge(context, pull_request.pull_request_number, pull_request.head)
    return Nop()


async def _handle_ci_signal(context: AutorebaseContext, route: CiSignalRoute) -> Action:
    logger.debug(f"Handling check or status on {route.sha}")
    pull_request = await find_autorebaseable_pull_request_matching_sha(
        context.repository, context.label, route.sha, context.backoff, context.search_delay
    )
    if pull_request is None:
        return Nop()

    logger.debug(f"Pull request #{pull_request.pull_request_number} matches {route.sha}")
    if pull_request.mergeable_state == MergeableState.CLEAN:
        return await merge(context, pull_request.pull_request_number, pull_request.head)

    if pull_request.mergeable_state == MergeableState.BLOCKED:
        # A labeled pull request only gets blocked by a failing check after
        # being rebased, so it needs a human. Keep the base branch's queue
        # moving by rebasing another pull request instead.
        return await find_and_rebase_pull_request_on_same_base(context, pull_request.base)

    return Nop()


async def _handle_lifecycle(
    context: AutorebaseContext, route: LifecycleRoute, force_rebase: bool
) -> Action:
    pull_request = await resolve_pull_request(
        context.repository, route.pull_request_number, context.label, context.backoff
    )

    if route.is_autorebase_same_pull_request_event and (
        force_rebase or pull_request.labeled_and_opened_and_rebaseable
    ):
        if not pull_request.labeled_and_opened_and_rebaseable:
            logger.debug(f"Force rebasing #{pull_request.pull_request_number}")
        return await autorebase_pull_request(context, pull_request, force_rebase)

    if route.is_rebase_pull_request_on_same_base_event:
        return await find_and_rebase_pull_request_on_same_base(context, pull_request.base)

    if pull_request.labeled_and_opened_and_rebaseable:
        return await merge(context, pull_request.pull_request_number, pull_request.head)

    return Nop()


async def autorebase(context: AutorebaseContext, event: Event, force_rebase: bool) -> Action:
    """Decide and perform the single action an event calls for.

    Args:
        context: Repository collaborators and settings
        event: Decoded event; never mutated
        force_rebase: Whether the pre-filter hook asked to force a rebase

    Returns:
        Exactly one action

    Raises:
        StateUnresolvedError: If a mergeable state never settled
        RebaseFailedError: If a rebase failed (already reported on the pull request)
        GitHubAPIError: If any other platform call failed
    """
    logger.info(f"Received event {event.name.value} ({event.id})")
    route = classify(event, context.label, force_rebase)
    logger.debug(f"Route for {event.id}: {route}")

    match route:
        case OneTimeCommandRoute():
            action = await rebase_one_time(context, route.pull_request_number, route.username)
        case CiSignalRoute():
            action = await _handle_ci_signal(context, route)
        case LifecycleRoute():
            action = await _handle_lifecycle(context, route, force_rebase)
        case NopRoute():
            action = Nop()

    if isinstance(action, Nop):
        logger.info(f"Nop for event {event.id}")
    return action
