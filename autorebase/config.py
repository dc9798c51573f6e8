"""Configuration module for autorebase.

This module provides configuration management for the application,
loading settings from .autorebase/config file (KEY=value format) with
fallback to environment variables.
"""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from autorebase.permissions import DEFAULT_ONE_TIME_REBASE_PERMISSIONS, permission_predicate

logger = logging.getLogger(__name__)

# Default paths relative to the working directory
AUTOREBASE_DIR = ".autorebase"
CONFIG_FILE = "config"

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_LABEL = "autorebase"


@dataclass
class Config:
    """Application configuration.

    Attributes:
        github_token: Token used for REST calls and git pushes
        repository: Repository in 'owner/repo' format
        github_api_url: REST API root (GitHub Enterprise: https://host/api/v3)
        label: Automation label; empty disables the label lock
        one_time_rebase_permissions: Permission levels allowed to comment /rebase
        state_max_attempts: Fetches before giving up on an unknown mergeable state
        state_min_delay: First backoff delay in seconds
        state_max_delay: Largest backoff delay in seconds
        search_delay: Seconds to let the search index catch up before searching
        workspace_dir: Directory for the clone and rebase worktrees
        git_user_name: Committer name for rebased commits
        git_user_email: Committer email for rebased commits
    """

    github_token: str
    repository: str
    github_api_url: str = DEFAULT_API_URL
    label: str = DEFAULT_LABEL
    one_time_rebase_permissions: list[str] = field(
        default_factory=lambda: sorted(DEFAULT_ONE_TIME_REBASE_PERMISSIONS)
    )
    state_max_attempts: int = 11
    state_min_delay: float = 0.5
    state_max_delay: float = 30.0
    search_delay: float = 1.0
    workspace_dir: str = ".autorebase/worktrees"
    git_user_name: str = "autorebase"
    git_user_email: str = "autorebase@users.noreply.github.com"
    log_file: str = ""
    log_size: int = 10 * 1024 * 1024  # 10MB default
    log_backups: int = 5
    otel_endpoint: str = ""
    otel_service_name: str = "autorebase"

    @property
    def owner_and_repo(self) -> tuple[str, str]:
        """Split the repository into owner and name."""
        owner, _, repo = self.repository.partition("/")
        return owner, repo

    @property
    def clone_url(self) -> str:
        """Authenticated HTTPS clone URL for the repository."""
        if self.github_api_url.rstrip("/") == DEFAULT_API_URL:
            host = "github.com"
        else:
            # https://ghes.example.com/api/v3 -> ghes.example.com
            host = self.github_api_url.split("://", 1)[-1].split("/", 1)[0]
        return f"https://x-access-token:{self.github_token}@{host}/{self.repository}.git"


def parse_config_file(config_path: Path) -> dict[str, str]:
    """Parse a KEY=value config file.

    Args:
        config_path: Path to the config file

    Returns:
        Mapping of keys to values; blank lines, comments and lines without
        '=' are ignored, and one pair of surrounding quotes is stripped
    """
    values: dict[str, str] = {}
    for raw_line in config_path.read_text().splitlines():
        entry = raw_line.strip()
        if entry.startswith("#") or "=" not in entry:
            continue
        key, _, value = entry.partition("=")
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
            value = value[1:-1]
        values[key.strip()] = value
    return values


def _parse_number(data: Mapping[str, str], key: str, default: str, kind: type) -> int | float:
    raw = data.get(key, default)
    try:
        return kind(raw)
    except ValueError as e:
        raise ValueError(f"{key} must be a {kind.__name__}, got '{raw}'") from e


def config_from_mapping(data: Mapping[str, str], source: str) -> Config:
    """Build a Config from KEY=value pairs.

    Args:
        data: Configuration values (file contents or os.environ)
        source: Description of where the values came from, for error messages

    Returns:
        Config: A validated Config instance

    Raises:
        ValueError: If required fields are missing or invalid
    """
    missing_vars: list[str] = []

    github_token = data.get("GITHUB_TOKEN", "").strip()
    if not github_token:
        missing_vars.append("GITHUB_TOKEN")

    repository = data.get("GITHUB_REPOSITORY", "").strip()
    if not repository:
        missing_vars.append("GITHUB_REPOSITORY")

    # Raise error listing all missing required vars
    if missing_vars:
        raise ValueError(f"Missing required configuration in {source}: {', '.join(missing_vars)}")

    owner, _, repo = repository.partition("/")
    if not owner or not repo or "/" in repo:
        raise ValueError(f"GITHUB_REPOSITORY must be in 'owner/repo' format, got '{repository}'")

    # An explicitly empty label disables the label lock
    label = data.get("AUTOREBASE_LABEL", DEFAULT_LABEL).strip()

    permissions_str = data.get("ONE_TIME_REBASE_PERMISSIONS", "")
    if permissions_str.strip():
        one_time_rebase_permissions = [
            p.strip().lower() for p in permissions_str.split(",") if p.strip()
        ]
    else:
        one_time_rebase_permissions = sorted(DEFAULT_ONE_TIME_REBASE_PERMISSIONS)
    # Validate permission names early
    permission_predicate(one_time_rebase_permissions)

    state_max_attempts = int(_parse_number(data, "STATE_MAX_ATTEMPTS", "11", int))
    if state_max_attempts < 1:
        raise ValueError(f"STATE_MAX_ATTEMPTS must be at least 1, got {state_max_attempts}")

    log_level = data.get("LOG_LEVEL")
    if log_level:
        os.environ["LOG_LEVEL"] = log_level  # Read by the logger module

    return Config(
        github_token=github_token,
        repository=repository,
        github_api_url=data.get("GITHUB_API_URL", DEFAULT_API_URL).strip() or DEFAULT_API_URL,
        label=label,
        one_time_rebase_permissions=one_time_rebase_permissions,
        state_max_attempts=state_max_attempts,
        state_min_delay=float(_parse_number(data, "STATE_MIN_DELAY", "0.5", float)),
        state_max_delay=float(_parse_number(data, "STATE_MAX_DELAY", "30", float)),
        search_delay=float(_parse_number(data, "SEARCH_DELAY", "1.0", float)),
        workspace_dir=data.get("WORKSPACE_DIR", ".autorebase/worktrees"),
        git_user_name=data.get("GIT_USER_NAME", "autorebase"),
        git_user_email=data.get("GIT_USER_EMAIL", "autorebase@users.noreply.github.com"),
        log_file=data.get("LOG_FILE", ""),
        log_size=int(_parse_number(data, "LOG_SIZE", str(10 * 1024 * 1024), int)),
        log_backups=int(_parse_number(data, "LOG_BACKUPS", "5", int)),
        otel_endpoint=data.get("OTEL_EXPORTER_OTLP_ENDPOINT", ""),
        otel_service_name=data.get("OTEL_SERVICE_NAME", "autorebase"),
    )


def load_config_from_file(config_path: Path) -> Config:
    """Load configuration from a KEY=value config file.

    Values missing from the file fall back to environment variables, so that
    secrets such as GITHUB_TOKEN can stay out of the file.

    Raises:
        ValueError: If required fields are missing or invalid
        FileNotFoundError: If the config file doesn't exist
    """
    data = {**os.environ, **parse_config_file(config_path)}
    return config_from_mapping(data, str(config_path))


def load_config_from_env() -> Config:
    """Load configuration from environment variables.

    Raises:
        ValueError: If required environment variables are missing
    """
    return config_from_mapping(os.environ, "environment variables")


def load_config() -> Config:
    """Load configuration from config file or environment variables.

    Priority:
    1. Config file at .autorebase/config
    2. Environment variables

    Raises:
        ValueError: If required configuration is missing
    """
    config_path = Path.cwd() / AUTOREBASE_DIR / CONFIG_FILE

    if config_path.exists():
        logger.debug(f"Loading configuration from {config_path}")
        return load_config_from_file(config_path)
    return load_config_from_env()
