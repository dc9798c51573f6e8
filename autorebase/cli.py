"""CLI entry point for autorebase.

Handles one webhook delivery per invocation, which makes it suitable as a
GitHub Actions workflow step: the event name, payload path and run id default
to the GITHUB_EVENT_NAME, GITHUB_EVENT_PATH and GITHUB_RUN_ID variables that
the runner provides.

Subcommands:
    autorebase handle        - Handle one webhook delivery
    autorebase check-config  - Validate configuration and repository settings
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from autorebase.app import Application
    from autorebase.config import Config
    from autorebase.repo_settings import RepoSettingsEntry

# Version is set during build
__version__ = "0.1.0"


def build_application(config: Config, settings: RepoSettingsEntry | None = None) -> Application:
    """Wire the GitHub binding, the git rebaser and the engine for one repository.

    Args:
        config: Loaded configuration
        settings: Optional per-repository overrides

    Returns:
        Application ready to handle events
    """
    from autorebase.app import Application
    from autorebase.github_client import GitHubRestClient
    from autorebase.permissions import permission_predicate
    from autorebase.rebaser import GitRebaser
    from autorebase.settle import BackoffPolicy

    owner, repo = config.owner_and_repo
    label = config.label
    permissions: frozenset[str] | list[str] = config.one_time_rebase_permissions
    if settings is not None:
        if settings.label is not None:
            label = settings.label
        if settings.one_time_permissions is not None:
            permissions = settings.one_time_permissions

    client = GitHubRestClient(owner, repo, config.github_token, api_url=config.github_api_url)
    rebaser = GitRebaser(
        client,
        workspace_dir=config.workspace_dir,
        clone_url=config.clone_url,
        user_name=config.git_user_name,
        user_email=config.git_user_email,
        secret=config.github_token,
    )

    return Application(
        client,
        rebaser,
        label=label,
        can_rebase_one_time=permission_predicate(permissions),
        backoff=BackoffPolicy(
            min_delay=config.state_min_delay,
            max_delay=config.state_max_delay,
            max_attempts=config.state_max_attempts,
        ),
        search_delay=config.search_delay,
    )


def read_payload(path: str) -> dict[str, Any]:
    """Read a webhook payload from a JSON file."""
    payload = json.loads(Path(path).read_text())
    if not isinstance(payload, dict):
        raise ValueError(f"Webhook payload in {path} must be a JSON object")
    return payload


def print_action(action_dict: dict[str, Any]) -> None:
    """Print an action as one line of JSON."""
    print(json.dumps(action_dict))


def cmd_handle(args: argparse.Namespace) -> None:
    """Handle the 'handle' subcommand."""
    from autorebase.config import load_config
    from autorebase.events import decode_event
    from autorebase.logger import get_logger, setup_logging
    from autorebase.models import Failed, Nop, action_to_dict
    from autorebase.repo_settings import RepoSettingsError, RepoSettingsManager
    from autorebase.telemetry import init_telemetry

    try:
        config = load_config()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(
        log_file=config.log_file or None,
        log_size=config.log_size,
        log_backups=config.log_backups,
    )
    logger = get_logger(__name__)
    init_telemetry(config.otel_endpoint, config.otel_service_name, service_version=__version__)

    if not args.event_name or not args.payload:
        print(
            "Missing event: pass --event-name and --payload, "
            "or set GITHUB_EVENT_NAME and GITHUB_EVENT_PATH",
            file=sys.stderr,
        )
        sys.exit(1)

    try:
        settings = RepoSettingsManager(args.settings).get(config.repository)
    except RepoSettingsError as e:
        print(f"Repository settings error: {e}", file=sys.stderr)
        sys.exit(1)

    if settings is not None and not settings.enabled:
        logger.info(f"Skipping event: autorebase is disabled for {config.repository}")
        print_action(action_to_dict(Nop()))
        return

    try:
        event = decode_event(args.event_id, args.event_name, read_payload(args.payload))
    except (OSError, ValueError) as e:
        print(f"Invalid event: {e}", file=sys.stderr)
        sys.exit(1)

    if event is None:
        logger.info(f"Skipping unsupported {args.event_name} delivery {args.event_id}")
        print_action(action_to_dict(Nop()))
        return

    app = build_application(config, settings)
    try:
        action = asyncio.run(app.handle(event))
    except Exception as e:
        # Already logged with its traceback by the application
        print_action(action_to_dict(Failed(error=e)))
        sys.exit(1)

    print_action(action_to_dict(action))


def cmd_check_config(args: argparse.Namespace) -> None:
    """Handle the 'check-config' subcommand."""
    from autorebase.config import load_config
    from autorebase.repo_settings import RepoSettingsManager

    try:
        config = load_config()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"Repository: {config.repository}")
    print(f"API: {config.github_api_url}")
    print(f"Label: {config.label!r}" + ("" if config.label else " (label lock disabled)"))
    print(f"One-time rebase permissions: {', '.join(config.one_time_rebase_permissions)}")

    warnings = RepoSettingsManager(args.settings).validate()
    for warning in warnings:
        print(f"Warning: {warning}", file=sys.stderr)
    if warnings:
        sys.exit(1)
    print("Configuration OK")


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the autorebase CLI."""
    parser = argparse.ArgumentParser(
        prog="autorebase",
        description="Keep labeled pull requests rebased and merge them once they are green",
    )
    parser.add_argument(
        "--version",
        "-v",
        action="version",
        version=f"autorebase {__version__}",
    )
    parser.add_argument(
        "--settings",
        default=None,
        metavar="PATH",
        help="Per-repository settings file (default: .autorebase/repositories.yaml)",
    )

    subparsers = parser.add_subparsers(dest="command")

    # 'handle' subcommand
    handle_parser = subparsers.add_parser(
        "handle",
        help="Handle one webhook delivery and print the resulting action",
    )
    handle_parser.add_argument(
        "--event-name",
        default=os.environ.get("GITHUB_EVENT_NAME"),
        help="Webhook name, e.g. pull_request (default: $GITHUB_EVENT_NAME)",
    )
    handle_parser.add_argument(
        "--payload",
        default=os.environ.get("GITHUB_EVENT_PATH"),
        metavar="PATH",
        help="Path to the webhook JSON payload (default: $GITHUB_EVENT_PATH)",
    )
    handle_parser.add_argument(
        "--event-id",
        default=os.environ.get("GITHUB_RUN_ID", "local"),
        help="Delivery identifier used in logs (default: $GITHUB_RUN_ID)",
    )

    # 'check-config' subcommand
    subparsers.add_parser(
        "check-config",
        help="Validate configuration and repository settings",
    )

    args = parser.parse_args(argv)

    if args.command == "handle":
        cmd_handle(args)
    elif args.command == "check-config":
        cmd_check_config(args)
    else:
        parser.print_help()
        sys.exit(2)


if __name__ == "__main__":
    main()
