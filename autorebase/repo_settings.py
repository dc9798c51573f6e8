"""Per-repository settings for autorebase.

This module loads optional per-repository overrides from
.autorebase/repositories.yaml, letting one deployment serve several
repositories with different labels or one-time rebase permissions.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import yaml

from autorebase.permissions import Permission

logger = logging.getLogger(__name__)

REPO_SETTINGS_PATH = ".autorebase/repositories.yaml"


class RepoSettingsError(Exception):
    """Base exception for repository settings errors."""

    pass


class RepoSettingsLoadError(RepoSettingsError):
    """Error loading the repository settings file."""

    pass


def parse_repo_url(url: str) -> str:
    """Parse a repository URL into owner/repo format.

    Accepts https://github.com/owner/repo, github.com/owner/repo (optionally
    with a trailing path or .git suffix) and a bare owner/repo.

    Raises:
        ValueError: If the URL does not contain owner/repo.
    """
    raw = url.strip()
    if not raw:
        raise ValueError("url cannot be empty")

    segments = [s for s in raw.split("/") if s]
    if "://" in raw:
        segments = [s for s in urlparse(raw).path.split("/") if s]
    elif len(segments) >= 3 and "." in segments[0]:
        # host/owner/repo without scheme
        segments = segments[1:]

    if len(segments) < 2:
        raise ValueError(f"url must contain owner/repo, got '{url}'")

    owner, repo = segments[0], segments[1]
    repo = repo.removesuffix(".git")
    return f"{owner}/{repo}"


@dataclass
class RepoSettingsEntry:
    """Settings for a single repository.

    Attributes:
        repo: Repository in owner/repo format.
        enabled: Whether events for this repository are handled at all.
        label: Automation label; None keeps the global setting, "" disables locking.
        one_time_permissions: Permission levels allowed to comment /rebase;
            None keeps the global setting.
    """

    repo: str
    enabled: bool = True
    label: str | None = None
    one_time_permissions: frozenset[str] | None = None


class RepoSettingsManager:
    """Loads and looks up per-repository settings.

    Attributes:
        config_path: Path to the YAML settings file.
    """

    def __init__(self, config_path: str | None = None):
        self.config_path = config_path or REPO_SETTINGS_PATH
        self._cached_entries: list[RepoSettingsEntry] | None = None

    def load(self) -> list[RepoSettingsEntry] | None:
        """Load settings from the YAML file.

        Returns:
            List of entries, or None if the file doesn't exist or is empty.

        Raises:
            RepoSettingsLoadError: If the file cannot be parsed or has invalid entries.
        """
        config_path = Path(self.config_path)

        if not config_path.exists():
            logger.debug(f"Repository settings file not found at {self.config_path}")
            return None

        try:
            with open(config_path, encoding="utf-8") as f:
                raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise RepoSettingsLoadError(
                f"Invalid YAML in repository settings file {self.config_path}: {e}"
            ) from e
        except OSError as e:
            raise RepoSettingsLoadError(
                f"Failed to read repository settings file {self.config_path}: {e}"
            ) from e

        if raw_config is None:
            return None

        if not isinstance(raw_config, dict):
            raise RepoSettingsLoadError(
                f"Repository settings must be a YAML mapping, got {type(raw_config).__name__}"
            )

        repos = raw_config.get("repos")
        if repos is None:
            return None
        if not isinstance(repos, list):
            raise RepoSettingsLoadError(f"'repos' must be a list, got {type(repos).__name__}")

        entries = [self._parse_entry(i, repo_entry) for i, repo_entry in enumerate(repos)]
        self._cached_entries = entries
        logger.debug(f"Loaded settings for {len(entries)} repository(ies)")
        return entries

    def _parse_entry(self, index: int, repo_entry: Any) -> RepoSettingsEntry:
        if not isinstance(repo_entry, dict):
            raise RepoSettingsLoadError(
                f"Repository entry {index} must be a mapping, got {type(repo_entry).__name__}"
            )

        if "url" not in repo_entry:
            raise RepoSettingsLoadError(f"Repository entry {index} is missing required field 'url'")
        try:
            repo_key = parse_repo_url(str(repo_entry["url"]))
        except ValueError as e:
            raise RepoSettingsLoadError(f"Repository entry {index} has invalid url: {e}") from e

        enabled = repo_entry.get("enabled", True)
        if not isinstance(enabled, bool):
            raise RepoSettingsLoadError(
                f"Repository entry {index} 'enabled' must be a boolean, "
                f"got {type(enabled).__name__}"
            )

        label = repo_entry.get("label")
        if label is not None:
            if not isinstance(label, str):
                raise RepoSettingsLoadError(
                    f"Repository entry {index} 'label' must be a string, got {type(label).__name__}"
                )
            label = label.strip()

        permissions = repo_entry.get("one_time_permissions")
        one_time_permissions = None
        if permissions is not None:
            if not isinstance(permissions, list) or not all(
                isinstance(p, str) for p in permissions
            ):
                raise RepoSettingsLoadError(
                    f"Repository entry {index} 'one_time_permissions' must be a list of strings"
                )
            valid = {p.value for p in Permission}
            unknown = sorted(p for p in permissions if p.lower() not in valid)
            if unknown:
                raise RepoSettingsLoadError(
                    f"Repository entry {index} has unknown permission(s): {', '.join(unknown)}"
                )
            one_time_permissions = frozenset(p.lower() for p in permissions)

        return RepoSettingsEntry(
            repo=repo_key,
            enabled=enabled,
            label=label,
            one_time_permissions=one_time_permissions,
        )

    def get(self, repo: str) -> RepoSettingsEntry | None:
        """Get the settings for a repository in owner/repo format, if any.

        Raises:
            RepoSettingsLoadError: If the settings file is invalid.
        """
        entries = self._cached_entries
        if entries is None:
            entries = self.load()
        if not entries:
            return None

        repo_key = repo.lower()
        for entry in entries:
            if entry.repo.lower() == repo_key:
                return entry

        logger.debug(f"No repository settings found for '{repo}'")
        return None

    def validate(self) -> list[str]:
        """Validate the settings file and return any warnings."""
        try:
            entries = self.load()
        except RepoSettingsError as e:
            return [str(e)]

        if not entries:
            return []

        warnings: list[str] = []
        seen_repos: set[str] = set()
        for entry in entries:
            repo_lower = entry.repo.lower()
            if repo_lower in seen_repos:
                warnings.append(f"Duplicate repository entry: {entry.repo}")
            seen_repos.add(repo_lower)
            if entry.one_time_permissions is not None and not entry.one_time_permissions:
                warnings.append(f"One-time rebases are disabled for {entry.repo}")

        return warnings
