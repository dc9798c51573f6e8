"""Pytest configuration and shared fixtures."""

import os

import pytest
from hypothesis import settings

from autorebase.context import AutorebaseContext
from autorebase.logger import clear_event_context
from autorebase.permissions import require_write_access_for_one_time_rebase
from autorebase.settle import BackoffPolicy
from fakes import LABEL, FakeGitHub, FakeRebaser

# Configure Hypothesis profiles for different environments
settings.register_profile("ci", max_examples=100, deadline=None)
settings.register_profile("dev", max_examples=50, deadline=None)
settings.load_profile(os.environ.get("HYPOTHESIS_PROFILE", "dev"))

# Polls without sleeping so tests never wait on real backoff delays
NO_WAIT = BackoffPolicy(min_delay=0, max_delay=0, max_attempts=3)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "unit: fast tests with no network or git access",
    )
    config.addinivalue_line(
        "markers",
        "hypothesis: marks property-based tests using Hypothesis",
    )


@pytest.fixture(autouse=True)
def reset_event_context():
    """Keep the logging event context from leaking between tests."""
    yield
    clear_event_context()


@pytest.fixture
def github():
    """Fixture providing an empty in-memory GitHub repository."""
    return FakeGitHub()


@pytest.fixture
def rebaser(github):
    """Fixture providing a rebaser bound to the fake repository."""
    return FakeRebaser(github)


@pytest.fixture
def no_wait():
    """Fixture providing a three-attempt backoff policy that never sleeps."""
    return NO_WAIT


@pytest.fixture
def context(github, rebaser):
    """Fixture providing an engine context with the default label and no delays."""
    return AutorebaseContext(
        repository=github,
        rebaser=rebaser,
        label=LABEL,
        can_rebase_one_time=require_write_access_for_one_time_rebase,
        backoff=NO_WAIT,
        search_delay=0,
    )


@pytest.fixture
def temp_workspace_dir(tmp_path):
    """Fixture providing a temporary workspace directory."""
    workspace = tmp_path / "worktrees"
    workspace.mkdir()
    return str(workspace)
