# src/pipewright/core/config.py
"""
Configuration schema and loading for pipewright pipelines.

Uses Pydantic for validation and Dynaconf for multi-source loading.
Settings are frozen (immutable) after construction.

Example YAML:
    commands:
      - name: producer
        program: python3
        args: ["-c", "print('hello'); print('world')"]
        stdout: {chain: upper}
        filters:
          stdout:
            - plugin: grep
              options: {patterns: ["hello"]}
      - name: upper
        program: tr
        args: ["a-z", "A-Z"]
    scheduler:
      timeout_seconds: 30
    logging:
      level: DEBUG
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from pipewright.contracts.descriptors import DescriptorSpec, FileSpec, InheritSpec, PipeSpec
from pipewright.contracts.enums import StdStream
from pipewright.contracts.errors import ChainCycleError, ConfigError

if TYPE_CHECKING:
    from pipewright.engine.command import CommandNode
    from pipewright.plugins.manager import FilterRegistry


class SchedulerSettings(BaseModel):
    """Scheduler loop tuning.

    Example YAML:
        scheduler:
          poll_interval_seconds: 0.005
          read_size: 65536
          timeout_seconds: 60
    """

    model_config = {"frozen": True, "extra": "forbid"}

    poll_interval_seconds: float = Field(
        default=0.005,
        gt=0,
        description="Sleep between ticks in which no pump made progress",
    )
    read_size: int = Field(
        default=65536,
        gt=0,
        description="Maximum bytes per non-blocking read",
    )
    timeout_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Tear the chain down after this many seconds (None = wait forever)",
    )
    terminate_grace_seconds: float = Field(
        default=1.0,
        gt=0,
        description="Time a child gets between SIGTERM and SIGKILL on teardown",
    )


class LoggingSettings(BaseModel):
    """Logging output configuration."""

    model_config = {"frozen": True, "extra": "forbid"}

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    json_output: bool = False

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.upper()
        return v


class FilterSettings(BaseModel):
    """One filter plugin applied to a stream.

    Example YAML:
        - plugin: truncate
          options:
            max_length: 80
    """

    model_config = {"frozen": True, "extra": "forbid"}

    plugin: str = Field(min_length=1, description="Registered filter plugin name")
    options: dict[str, Any] = Field(default_factory=dict, description="Plugin-specific options")


class FileTarget(BaseModel):
    """Connect a stream to a file. Mode follows the stream (stdin reads, others write)."""

    model_config = {"frozen": True, "extra": "forbid"}

    file: str = Field(min_length=1)


class ChainTarget(BaseModel):
    """Forward an output stream into the stdin of another named command."""

    model_config = {"frozen": True, "extra": "forbid"}

    chain: str = Field(min_length=1)


InputTarget = Literal["inherit", "pipe"] | FileTarget
OutputTarget = Literal["inherit", "pipe"] | FileTarget | ChainTarget


class CommandSettings(BaseModel):
    """One command of a pipeline."""

    model_config = {"frozen": True, "extra": "forbid"}

    name: str = Field(min_length=1, description="Unique name, used as chain target")
    program: str = Field(min_length=1, description="Executable name or path")
    args: list[str] = Field(default_factory=list)
    cwd: str | None = None
    env: dict[str, str] = Field(default_factory=dict)
    inherit_env: bool = Field(default=True, description="Merge env over the parent environment")
    stdin: InputTarget = "inherit"
    stdout: OutputTarget = "pipe"
    stderr: OutputTarget = "pipe"
    filters: dict[Literal["stdin", "stdout", "stderr"], list[FilterSettings]] = Field(default_factory=dict)

    def chain_targets(self) -> list[str]:
        return [t.chain for t in (self.stdout, self.stderr) if isinstance(t, ChainTarget)]


class PipewrightSettings(BaseModel):
    """Top-level pipewright configuration.

    The first command is the root of the chain; every other command must be
    reachable from it through chain targets.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    commands: list[CommandSettings] = Field(min_length=1)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @model_validator(mode="after")
    def validate_chain_references(self) -> PipewrightSettings:
        names = [c.name for c in self.commands]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"duplicate command names: {duplicates}")

        known = set(names)
        for command in self.commands:
            for target in command.chain_targets():
                if target not in known:
                    raise ValueError(f"command '{command.name}' chains into unknown command '{target}'")
                if target == self.commands[0].name:
                    raise ValueError(f"command '{command.name}' cannot chain into the root command '{target}'")

        reachable = {self.commands[0].name}
        by_name = {c.name: c for c in self.commands}
        frontier = [self.commands[0].name]
        while frontier:
            for target in by_name[frontier.pop()].chain_targets():
                if target not in reachable:
                    reachable.add(target)
                    frontier.append(target)
        orphans = [n for n in names if n not in reachable]
        if orphans:
            raise ValueError(f"commands not reachable from root '{names[0]}': {orphans}")
        return self

    @property
    def root(self) -> CommandSettings:
        return self.commands[0]


def load_settings(config_path: Path) -> PipewrightSettings:
    """Load settings from YAML file with environment variable overrides.

    Uses Dynaconf for multi-source loading with precedence:
    1. Environment variables (PIPEWRIGHT_*) - highest priority
    2. Config file
    3. Defaults from Pydantic schema - lowest priority

    Environment variable format: PIPEWRIGHT_SCHEDULER__TIMEOUT_SECONDS for nested keys.

    Raises:
        ValidationError: If configuration fails Pydantic validation
        FileNotFoundError: If config file doesn't exist
    """
    from dynaconf import Dynaconf

    # Dynaconf silently accepts missing files
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix="PIPEWRIGHT",
        settings_files=[str(config_path)],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )

    # Dynaconf returns uppercase keys; filter out its internal settings
    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
    raw_config = {k.lower(): v for k, v in dynaconf_settings.as_dict().items() if k not in internal_keys}

    return PipewrightSettings(**raw_config)


def _descriptor_for(stream: StdStream, target: Any) -> DescriptorSpec | None:
    """Translate a config stream target; None means chained (handled separately)."""
    if target == "inherit":
        return InheritSpec()
    if target == "pipe":
        return PipeSpec(mode=stream.child_mode)
    if isinstance(target, FileTarget):
        return FileSpec(path=Path(target.file), mode=stream.child_mode)
    return None


def build_chain(
    settings: PipewrightSettings,
    registry: FilterRegistry,
    *,
    sinks: Mapping[StdStream, Callable[[bytes], Any]] | None = None,
) -> CommandNode:
    """Build the CommandNode graph described by the settings.

    Args:
        settings: Validated settings
        registry: Filter registry used to resolve ``filters`` plugin names
        sinks: Callbacks for terminal piped stdout/stderr of every command

    Returns:
        The root CommandNode

    Raises:
        ConfigError: If a filter plugin is unknown, its options are invalid,
            or the links form a cycle
    """
    from pipewright.engine.command import CommandNode

    nodes: dict[str, CommandNode] = {}
    for command in settings.commands:
        node = CommandNode(
            command.program,
            command.args,
            cwd=command.cwd,
            env=command.env,
            inherit_env=command.inherit_env,
            name=command.name,
        )
        for stream in StdStream:
            spec = _descriptor_for(stream, getattr(command, stream.label))
            if spec is not None:
                node.set_pipe(stream, spec)
        for stream_name, filters in command.filters.items():
            stream = StdStream[stream_name.upper()]
            for filter_settings in filters:
                node.append_filter(stream, registry.create_stage(filter_settings.plugin, filter_settings.options))
        nodes[command.name] = node

    for command in settings.commands:
        node = nodes[command.name]
        for stream in (StdStream.STDOUT, StdStream.STDERR):
            target = getattr(command, stream.label)
            if isinstance(target, ChainTarget):
                try:
                    node.set_pipe(stream, nodes[target.chain])
                except ChainCycleError as e:
                    raise ConfigError(f"Invalid chain in command '{command.name}': {e}") from e

    if sinks:
        for command in settings.commands:
            node = nodes[command.name]
            for stream, sink in sinks.items():
                if isinstance(node.get_descriptor(stream), PipeSpec):
                    node.set_sink(stream, sink)

    return nodes[settings.root.name]
