"""Authorization for one-time rebase commands."""

import logging
from collections.abc import Callable, Iterable
from enum import Enum

logger = logging.getLogger(__name__)


class Permission(Enum):
    """Repository permission levels reported by GitHub for a collaborator.

    Ordered from most to least privileged:
    - ADMIN: full control of the repository
    - MAINTAIN: manage the repository without destructive access
    - WRITE: push to the repository
    - TRIAGE: manage issues and pull requests without write access
    - READ: read and clone
    - NONE: no access
    """

    ADMIN = "admin"
    MAINTAIN = "maintain"
    WRITE = "write"
    TRIAGE = "triage"
    READ = "read"
    NONE = "none"


DEFAULT_ONE_TIME_REBASE_PERMISSIONS = frozenset({Permission.ADMIN.value, Permission.WRITE.value})


def require_write_access_for_one_time_rebase(permission: str) -> bool:
    """Default predicate: only admins and writers may issue rebase commands.

    GitHub's legacy permission field reports maintainers as "write" and
    triagers as "read", so these two values cover every user who can push.
    """
    return permission in DEFAULT_ONE_TIME_REBASE_PERMISSIONS


def permission_predicate(allowed: Iterable[str]) -> Callable[[str], bool]:
    """Build a one-time rebase predicate from a set of allowed permission levels.

    Args:
        allowed: Permission level names, e.g. ["admin", "write"]

    Returns:
        Predicate accepting exactly those levels

    Raises:
        ValueError: If a name is not a GitHub permission level
    """
    allowed_set = frozenset(name.strip().lower() for name in allowed if name.strip())
    valid = {permission.value for permission in Permission}
    unknown = sorted(allowed_set - valid)
    if unknown:
        raise ValueError(
            f"Unknown permission level(s): {', '.join(unknown)}. "
            f"Valid levels: {', '.join(sorted(valid))}"
        )

    def can_rebase_one_time(permission: str) -> bool:
        allowed_here = permission in allowed_set
        if not allowed_here:
            logger.warning(
                f"BLOCKED - permission '{permission}' not in {sorted(allowed_set)} "
                "for one-time rebase"
            )
        return allowed_here

    return can_rebase_one_time
