# tests/conftest.py
"""Shared fixtures for the pipewright test suite."""

import logging
from collections.abc import Iterator

import pytest
import structlog
from hypothesis import Phase, Verbosity, settings

from pipewright.core.config import SchedulerSettings
from pipewright.engine.scheduler import Scheduler
from pipewright.plugins.manager import FilterRegistry
from tests.helpers.processes import Collector

# =============================================================================
# Hypothesis profiles
# =============================================================================

settings.register_profile(
    "ci",
    max_examples=100,
    deadline=None,
    derandomize=True,
)
settings.register_profile(
    "dev",
    max_examples=20,
    deadline=None,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.target],
)
settings.register_profile(
    "debug",
    max_examples=10,
    deadline=None,
    verbosity=Verbosity.verbose,
)
settings.load_profile("dev")


# =============================================================================
# Logging isolation
# =============================================================================


@pytest.fixture(autouse=True)
def _reset_structlog() -> Iterator[None]:
    """Tests that configure logging must not leak that config into others."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    structlog.reset_defaults()
    root.handlers = handlers
    root.setLevel(level)


# =============================================================================
# Scheduler fixtures
# =============================================================================


@pytest.fixture
def scheduler_settings() -> SchedulerSettings:
    """Fast polling, with a timeout so a broken test fails instead of hanging."""
    return SchedulerSettings(poll_interval_seconds=0.001, timeout_seconds=30, terminate_grace_seconds=2.0)


@pytest.fixture
def scheduler(scheduler_settings: SchedulerSettings) -> Scheduler:
    return Scheduler(scheduler_settings)


@pytest.fixture
def registry() -> FilterRegistry:
    registry = FilterRegistry()
    registry.register_builtin_plugins()
    return registry


@pytest.fixture
def collector() -> Collector:
    return Collector()
