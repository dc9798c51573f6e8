"""Merge and rebase execution.

These are the only functions that change a pull request. A failed rebase is
reported on the pull request with manual recovery instructions before the
failure is raised to the caller.
"""

from autorebase.context import AutorebaseContext
from autorebase.errors import RebaseFailedError
from autorebase.label_lock import LabelLock, with_label_lock
from autorebase.logger import get_logger
from autorebase.models import Abort, DenyOneTimeRebase, Merge, Rebase

logger = get_logger(__name__)

MERGE_METHOD = "merge"

DENY_ONE_TIME_REBASE_COMMENT = (
    "Rebase commands can only be submitted by collaborators with write permission "
    "on the repository."
)


def rebase_failed_comment(error: BaseException, base_ref: str, head_ref: str) -> str:
    """Build the comment posted when a rebase fails."""
    return "\n".join(
        [
            "The rebase failed:",
            "",
            "```",
            str(error),
            "```",
            "To rebase manually, run these commands in your terminal:",
            "```bash",
            "# Fetch latest updates from GitHub.",
            "git fetch",
            "# Create new working tree.",
            f"git worktree add .worktrees/rebase {head_ref}",
            "# Navigate to the new directory.",
            "cd .worktrees/rebase",
            "# Rebase and resolve the likely conflicts.",
            f"git rebase --interactive --autosquash {base_ref}",
            "# Push the new branch state to GitHub.",
            "git push --force",
            "# Go back to the original working tree.",
            "cd ../..",
            "# Delete the working tree.",
            "git worktree remove .worktrees/rebase",
            "```",
        ]
    )


async def merge(context: AutorebaseContext, pull_request_number: int, head: str) -> Merge:
    """Merge a pull request with a merge commit, then delete its head branch.

    Failures are not retried; branch deletion cannot be undone.
    """
    logger.info(f"Merging #{pull_request_number}")
    await context.repository.merge_pull_request(pull_request_number, MERGE_METHOD)
    logger.info(f"Merged #{pull_request_number}")

    await context.repository.delete_ref(f"heads/{head}")
    logger.info(f"Deleted reference heads/{head}")
    return Merge(pull_request_number=pull_request_number)


async def rebase(context: AutorebaseContext, pull_request_number: int) -> Rebase | Abort:
    """Rebase a pull request, under the label lock when a label is configured.

    Returns:
        Rebase on success, Abort when another process holds the lock

    Raises:
        RebaseFailedError: If the rebase failed; a comment with the error and
            manual instructions has been posted and the lock is left held
    """
    logger.info(f"Rebasing #{pull_request_number}")

    async def do_rebase() -> None:
        await context.rebaser.rebase(pull_request_number)

    try:
        if context.label:
            lock = LabelLock(context.repository, context.label)
            if not await with_label_lock(lock, pull_request_number, do_rebase):
                logger.info(f"Aborting: another process is already rebasing #{pull_request_number}")
                return Abort(pull_request_number=pull_request_number)
        else:
            await do_rebase()
    except Exception as e:
        logger.error(f"Rebase of #{pull_request_number} failed: {e}")
        pull_request = await context.repository.get_pull_request(pull_request_number)
        await context.repository.create_comment(
            pull_request_number,
            rebase_failed_comment(e, pull_request["base"]["ref"], pull_request["head"]["ref"]),
        )
        raise RebaseFailedError(pull_request_number) from e

    logger.info(f"Rebased #{pull_request_number}")
    return Rebase(pull_request_number=pull_request_number)


async def rebase_one_time(
    context: AutorebaseContext, pull_request_number: int, username: str
) -> Rebase | Abort | DenyOneTimeRebase:
    """Handle a one-time rebase command, gated on the commenter's permission.

    The pull request's mergeable state is not consulted.
    """
    permission = await context.repository.get_collaborator_permission(username)
    if not context.can_rebase_one_time(permission):
        logger.info(
            f"Denied one-time rebase of #{pull_request_number} for '{username}' "
            f"(permission: {permission})"
        )
        await context.repository.create_comment(pull_request_number, DENY_ONE_TIME_REBASE_COMMENT)
        return DenyOneTimeRebase(pull_request_number=pull_request_number)

    logger.info(f"One-time rebase of #{pull_request_number} requested by '{username}'")
    return await rebase(context, pull_request_number)
