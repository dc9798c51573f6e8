"""Exception hierarchy for autorebase.

Recoverable outcomes (lock contention, permission denial, nothing to do) are
encoded as actions, not exceptions. Everything raised from here is fatal for
the event being handled.
"""


class AutorebaseError(Exception):
    """Base exception for autorebase errors."""

    pass


class StateUnresolvedError(AutorebaseError):
    """Raised when a pull request's mergeable state never settles.

    GitHub computes mergeability asynchronously after most mutations. The
    resolver polls with backoff and gives up with this error once the retry
    budget is exhausted.
    """

    def __init__(self, pull_request_number: int, attempts: int):
        self.pull_request_number = pull_request_number
        self.attempts = attempts
        super().__init__(
            f"Mergeable state of pull request #{pull_request_number} still unknown "
            f"after {attempts} attempts"
        )


class RebaseFailedError(AutorebaseError):
    """Raised after a failed rebase has been reported on the pull request."""

    def __init__(self, pull_request_number: int):
        self.pull_request_number = pull_request_number
        super().__init__("rebase failed")


class NetworkError(AutorebaseError):
    """Raised when a GitHub API call fails due to network connectivity issues.

    Distinguishes transient transport failures (timeouts, refused connections,
    DNS errors) from errors the API itself returned.
    """

    pass


class GitHubAPIError(AutorebaseError):
    """Raised when the GitHub API answers with an error status."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        super().__init__(f"GitHub API error {status_code}: {message}")


class LabelNotFoundError(GitHubAPIError):
    """Raised when removing a label that is not on the pull request."""

    pass


class GitCommandError(AutorebaseError):
    """Raised when a git command run by the rebase executor fails."""

    pass
