"""Core infrastructure: configuration loading and logging setup."""

from pipewright.core.config import (
    CommandSettings,
    FilterSettings,
    LoggingSettings,
    PipewrightSettings,
    SchedulerSettings,
    build_chain,
    load_settings,
)
from pipewright.core.logging import chain_context, configure_logging, get_logger

__all__ = [
    "CommandSettings",
    "FilterSettings",
    "LoggingSettings",
    "PipewrightSettings",
    "SchedulerSettings",
    "build_chain",
    "chain_context",
    "configure_logging",
    "get_logger",
    "load_settings",
]
