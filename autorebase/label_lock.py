"""Label-based mutual exclusion for rebases.

The automation label doubles as a per-pull-request lock token:

- label present: the pull request is eligible and unlocked
- label absent while the pull request is open: some process is rebasing it

Removing a label is the only single-writer-wins primitive GitHub offers. When
two processes race to remove it, GitHub accepts one removal and answers the
other with "label not found". Acquiring the lock means winning that removal;
releasing it means adding the label back.

Known limitation: two removals issued within roughly 10ms of each other can
both be accepted by GitHub, so both processes believe they hold the lock. No
mitigation exists on the platform side; this gap is accepted.

On a failed rebase the lock is deliberately never released. The pull request
then stays unlabeled, which stops automation from retrying a rebase that
needs manual conflict resolution until a human re-applies the label.
"""

from collections.abc import Awaitable, Callable

from autorebase.errors import AutorebaseError, LabelNotFoundError
from autorebase.interfaces import PullRequestRepository
from autorebase.logger import get_logger

logger = get_logger(__name__)


class LabelLock:
    """Distributed mutex backed by a label on each pull request."""

    def __init__(self, repository: PullRequestRepository, label: str):
        """Initialize the lock.

        Args:
            repository: Pull request API
            label: Automation label used as the lock token
        """
        self.repository = repository
        self.label = label

    async def try_acquire(self, pull_request_number: int) -> bool:
        """Try to take the lock on a pull request by removing its label.

        Returns:
            True if this call removed the label, False if it was already gone
            or the removal failed
        """
        logger.debug(f"Acquiring lock on #{pull_request_number}")
        try:
            await self.repository.remove_label(pull_request_number, self.label)
        except LabelNotFoundError:
            logger.info(f"Lock on #{pull_request_number} already held by another process")
            return False
        except AutorebaseError as e:
            # The label is still in place, so the pull request is left alone
            logger.warning(f"Could not take the lock on #{pull_request_number}: {e}")
            return False
        logger.info(f"Lock acquired on #{pull_request_number}")
        return True

    async def release(self, pull_request_number: int) -> None:
        """Release the lock by putting the label back."""
        logger.debug(f"Releasing lock on #{pull_request_number}")
        await self.repository.add_labels(pull_request_number, [self.label])
        logger.info(f"Lock released on #{pull_request_number}")


async def with_label_lock(
    lock: LabelLock,
    pull_request_number: int,
    action: Callable[[], Awaitable[None]],
) -> bool:
    """Run `action` while holding the lock on a pull request.

    If `action` raises, the exception propagates and the lock stays held.

    Args:
        lock: Label lock for the repository
        pull_request_number: Pull request to lock
        action: Coroutine function to run under the lock

    Returns:
        True if the action ran, False if the lock was held elsewhere
    """
    if not await lock.try_acquire(pull_request_number):
        return False

    await action()
    await lock.release(pull_request_number)
    return True
