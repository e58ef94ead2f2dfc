"""Shared contracts for cross-boundary data types.

Enums, descriptor specs, errors and result records used by the engine,
config loader and CLI. This package is a LEAF MODULE: it never imports from
pipewright.engine or pipewright.core at runtime.

Import patterns:
    from pipewright.contracts import StdStream, PipeSpec, SpawnFailure
"""

from pipewright.contracts.descriptors import (
    ChainedInput,
    DescriptorSpec,
    FileSpec,
    HandleSpec,
    InheritSpec,
    PipeSpec,
    check_mode,
    default_descriptor,
    parse_descriptor,
)
from pipewright.contracts.enums import (
    DescriptorKind,
    Direction,
    Granularity,
    PipeMode,
    PumpState,
    StdStream,
)
from pipewright.contracts.errors import (
    ChainCycleError,
    ChainNotAllowedOnInput,
    CommandAlreadySpawned,
    ConfigError,
    FilterFailure,
    InvalidSpec,
    PipewrightError,
    PluginConfigError,
    SchedulerCancelled,
    SchedulerTimeout,
    SpawnFailure,
    UnknownFilter,
)
from pipewright.contracts.results import PumpOutcome, RunResult

__all__ = [
    # descriptors
    "ChainedInput",
    "DescriptorSpec",
    "FileSpec",
    "HandleSpec",
    "InheritSpec",
    "PipeSpec",
    "check_mode",
    "default_descriptor",
    "parse_descriptor",
    # enums
    "DescriptorKind",
    "Direction",
    "Granularity",
    "PipeMode",
    "PumpState",
    "StdStream",
    # errors
    "ChainCycleError",
    "ChainNotAllowedOnInput",
    "CommandAlreadySpawned",
    "ConfigError",
    "FilterFailure",
    "InvalidSpec",
    "PipewrightError",
    "PluginConfigError",
    "SchedulerCancelled",
    "SchedulerTimeout",
    "SpawnFailure",
    "UnknownFilter",
    # results
    "PumpOutcome",
    "RunResult",
]
