"""Application wrapper around the decision engine.

Runs the pre-filter hook, invokes the engine, turns a raised error into a
`Failed` action for the action sink, and logs every outcome.
"""

from __future__ import annotations

import json
import time
from collections.abc import Awaitable, Callable

from autorebase.context import AutorebaseContext
from autorebase.engine import autorebase
from autorebase.events import Event
from autorebase.finder import DEFAULT_SEARCH_DELAY
from autorebase.interfaces import PullRequestRepository, RebaseExecutor
from autorebase.logger import get_logger, set_event_context
from autorebase.models import Action, Failed, Nop, action_to_dict
from autorebase.permissions import require_write_access_for_one_time_rebase
from autorebase.settle import DEFAULT_BACKOFF, BackoffPolicy
from autorebase.telemetry import get_tracer, record_action

logger = get_logger(__name__)

EventHook = Callable[[Event], Awaitable[bool | None]]
ActionSink = Callable[[Action], Awaitable[None]]

DEFAULT_LABEL = "autorebase"


async def nop_event_hook(event: Event) -> None:
    """Default pre-filter hook: never forces a rebase."""
    return None


async def nop_action_sink(action: Action) -> None:
    """Default action sink: drops the action."""
    return None


class Application:
    """Handles decoded events for one repository."""

    def __init__(
        self,
        repository: PullRequestRepository,
        rebaser: RebaseExecutor,
        label: str = DEFAULT_LABEL,
        can_rebase_one_time: Callable[[str], bool] = require_write_access_for_one_time_rebase,
        handle_event: EventHook = nop_event_hook,
        handle_action: ActionSink = nop_action_sink,
        backoff: BackoffPolicy = DEFAULT_BACKOFF,
        search_delay: float = DEFAULT_SEARCH_DELAY,
    ) -> None:
        """Initialize the application.

        Args:
            repository: Pull request API for the repository
            rebaser: Executor that rewrites pull request history
            label: Automation label; empty disables the label lock
            can_rebase_one_time: Predicate on a commenter's permission level
            handle_event: Pre-filter hook; returning True forces a rebase
            handle_action: Sink receiving every action other than Nop
            backoff: Budget for settling mergeable states
            search_delay: Seconds to let the search index catch up
        """
        self.context = AutorebaseContext(
            repository=repository,
            rebaser=rebaser,
            label=label,
            can_rebase_one_time=can_rebase_one_time,
            backoff=backoff,
            search_delay=search_delay,
        )
        self.handle_event = handle_event
        self.handle_action = handle_action
        logger.debug(f"Application initialized for {self.repo_name} (label={label!r})")

    @property
    def repo_name(self) -> str:
        """Repository in 'owner/repo' format."""
        repository = self.context.repository
        return f"{repository.owner}/{repository.repo}"

    async def handle(self, event: Event) -> Action:
        """Handle one event and return the resulting action.

        Raises:
            Exception: Whatever the engine raised, after a Failed action has
                been logged and handed to the action sink
        """
        set_event_context(self.repo_name, event.id)
        started = time.monotonic()

        force_rebase = (await self.handle_event(event)) is True
        action: Action = Nop()

        with get_tracer().start_as_current_span("autorebase.handle_event") as span:
            span.set_attribute("event.id", event.id)
            span.set_attribute("event.name", event.name.value)
            span.set_attribute("force_rebase", force_rebase)
            try:
                action = await autorebase(self.context, event, force_rebase)
            except Exception as e:
                logger.exception(f"Handling event {event.id} failed: {e}")
                action = Failed(error=e)
                raise
            finally:
                span.set_attribute("action.type", action.type)
                logger.info(f"Action: {json.dumps(action_to_dict(action))}")
                record_action(
                    action.type,
                    event.name.value,
                    self.repo_name,
                    (time.monotonic() - started) * 1000,
                )
                if not isinstance(action, Nop):
                    await self.handle_action(action)

        return action
