"""
Git rebase executor for autorebase.

Provides GitRebaser, which rebases pull request branches onto their base with
autosquash using the git CLI, in one worktree per pull request so that
different pull requests can be rebased concurrently.
"""

import asyncio
import contextlib
import os
import subprocess
import threading
from pathlib import Path
from typing import Any

from autorebase.errors import GitCommandError
from autorebase.interfaces import PullRequestRepository
from autorebase.logger import get_logger

logger = get_logger(__name__)

AUTOSQUASH_PREFIXES = ("fixup! ", "squash! ", "amend! ")


def needs_autosquashing(commit_messages: list[str]) -> bool:
    """Whether any commit message marks the commit for autosquash folding."""
    return any(message.startswith(AUTOSQUASH_PREFIXES) for message in commit_messages)


class GitRebaser:
    """
    Rebases pull requests with the git CLI.

    Keeps one clone per repository under the workspace directory and creates
    a throwaway worktree for each rebase.
    """

    def __init__(
        self,
        repository: PullRequestRepository,
        workspace_dir: str,
        clone_url: str,
        user_name: str = "autorebase",
        user_email: str = "autorebase@users.noreply.github.com",
        secret: str | None = None,
    ):
        """
        Initialize the rebaser.

        Args:
            repository: Pull request API for the repository
            workspace_dir: Base directory for the clone and worktrees
            clone_url: Authenticated URL to clone from and push to
            user_name: Committer name for rewritten commits
            user_email: Committer email for rewritten commits
            secret: Token embedded in clone_url, masked in error messages
        """
        self.repository = repository
        self.workspace_dir = Path(workspace_dir).resolve()
        self.clone_url = clone_url
        self.user_name = user_name
        self.user_email = user_email
        self.secret = secret
        # Guards the shared clone: clone, fetch and worktree bookkeeping
        self._repo_lock = threading.Lock()

        self.workspace_dir.mkdir(parents=True, exist_ok=True)
        logger.debug(f"GitRebaser initialized with workspace_dir: {self.workspace_dir}")

    @property
    def repo_path(self) -> Path:
        """Path of the repository clone."""
        return self.workspace_dir / f"{self.repository.owner}-{self.repository.repo}"

    def _mask(self, text: str) -> str:
        if self.secret:
            return text.replace(self.secret, "***")
        return text

    def _run_git_command(
        self, args: list[str], cwd: Path | None = None, check: bool = True
    ) -> subprocess.CompletedProcess[str]:
        """
        Run a git command with proper error handling.

        Args:
            args: Git command arguments (without 'git' prefix)
            cwd: Working directory for the command
            check: Whether to raise exception on non-zero exit code

        Returns:
            CompletedProcess instance

        Raises:
            GitCommandError: If command fails and check=True
        """
        cmd = [
            "git",
            "-c",
            f"user.name={self.user_name}",
            "-c",
            f"user.email={self.user_email}",
        ] + args
        logger.debug(f"Running git command: {self._mask(' '.join(args))}")

        if cwd is not None:
            cwd_resolved = Path(cwd).resolve()
            if not cwd_resolved.is_relative_to(self.workspace_dir):
                raise GitCommandError(
                    f"Security violation: git command cwd '{cwd_resolved}' is outside "
                    f"workspace boundaries ('{self.workspace_dir}')"
                )

        # Accept autosquash's todo list as is
        env = {**os.environ, "GIT_SEQUENCE_EDITOR": "true", "GIT_EDITOR": "true"}

        try:
            result = subprocess.run(
                cmd, cwd=cwd, capture_output=True, text=True, check=check, env=env
            )
        except subprocess.CalledProcessError as e:
            error_msg = f"Git command failed: git {' '.join(args)}\n"
            error_msg += f"Exit code: {e.returncode}\n"
            if e.stdout:
                error_msg += f"Stdout: {e.stdout}\n"
            if e.stderr:
                error_msg += f"Stderr: {e.stderr}"
            error_msg = self._mask(error_msg)
            logger.error(error_msg)
            raise GitCommandError(error_msg) from e

        if result.stderr:
            logger.debug(f"Git stderr: {self._mask(result.stderr.strip())}")
        return result

    def _ensure_repo_cloned(self) -> Path:
        """Clone the repository once; later rebases only fetch."""
        if not self.repo_path.exists():
            logger.info(f"Cloning {self.repository.owner}/{self.repository.repo}")
            self._run_git_command(["clone", "--no-checkout", self.clone_url, str(self.repo_path)])
        elif not (self.repo_path / ".git").exists():
            raise GitCommandError(f"Directory exists but is not a git repository: {self.repo_path}")
        return self.repo_path

    def _remove_worktree(self, worktree: Path) -> None:
        with contextlib.suppress(GitCommandError):
            self._run_git_command(
                ["worktree", "remove", "--force", str(worktree)], cwd=self.repo_path, check=False
            )
            self._run_git_command(["worktree", "prune"], cwd=self.repo_path, check=False)
        logger.debug(f"Removed worktree {worktree}")

    def _rebase_sync(self, pull_request: dict[str, Any]) -> None:
        number = pull_request["number"]
        base_ref = pull_request["base"]["ref"]
        head_ref = pull_request["head"]["ref"]
        head_sha = pull_request["head"]["sha"]

        head_repo = (pull_request["head"].get("repo") or {}).get("full_name")
        base_repo = f"{self.repository.owner}/{self.repository.repo}"
        if head_repo is not None and head_repo.lower() != base_repo.lower():
            raise GitCommandError(
                f"Cannot rebase #{number}: head branch lives in fork '{head_repo}'"
            )

        worktree = self.workspace_dir / f"pr-{number}"
        with self._repo_lock:
            repo_path = self._ensure_repo_cloned()
            self._run_git_command(
                [
                    "fetch",
                    "origin",
                    f"+refs/heads/{base_ref}:refs/remotes/origin/{base_ref}",
                    f"+refs/heads/{head_ref}:refs/remotes/origin/{head_ref}",
                ],
                cwd=repo_path,
            )
            if worktree.exists():
                self._remove_worktree(worktree)
            self._run_git_command(
                ["worktree", "add", "--detach", str(worktree), f"origin/{head_ref}"],
                cwd=repo_path,
            )

        try:
            try:
                self._run_git_command(
                    ["rebase", "--interactive", "--autosquash", f"origin/{base_ref}"],
                    cwd=worktree,
                )
            except GitCommandError:
                self._run_git_command(["rebase", "--abort"], cwd=worktree, check=False)
                raise

            # Refuse to overwrite commits pushed after the pull request was read
            self._run_git_command(
                [
                    "push",
                    f"--force-with-lease=refs/heads/{head_ref}:{head_sha}",
                    "origin",
                    f"HEAD:refs/heads/{head_ref}",
                ],
                cwd=worktree,
            )
        finally:
            with self._repo_lock:
                self._remove_worktree(worktree)

    async def rebase(self, number: int) -> None:
        """Rebase a pull request onto its base, folding fixup!/squash! commits.

        Raises:
            GitCommandError: If any git step fails (conflicts included)
        """
        pull_request = await self.repository.get_pull_request(number)
        await asyncio.to_thread(self._rebase_sync, pull_request)

    async def needs_autosquash(self, number: int) -> bool:
        """Whether the pull request has fixup!/squash!/amend! commits."""
        commits = await self.repository.list_pull_request_commits(number)
        return needs_autosquashing([commit["commit"]["message"] for commit in commits])
