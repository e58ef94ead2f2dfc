# src/pipewright/engine/command.py
"""CommandNode: the definition of one child process and its stream wiring.

A node is built by the caller, mutated only before spawn, and then handed
(directly or as the root of a chain) to the Scheduler. The ExecutionPump
records ``pid`` and ``exit_code`` on it while running; the exit code is
written at most once.

Chaining:
    ``producer.set_pipe(StdStream.STDOUT, consumer)`` forwards the producer's
    filtered stdout into the consumer's stdin. The link is metadata only;
    the producer does not own the consumer.

Example:
    grep = CommandNode("grep", ["error"])
    tail = CommandNode("tail", ["-n", "5"])
    grep.set_pipe(StdStream.STDOUT, tail)
    grep.append_filter(StdStream.STDOUT, FilterStage.line(lambda line: line.upper()))

    Scheduler().run(grep)
    grep.get_exit_code(), tail.get_exit_code()
"""

from __future__ import annotations

import itertools
import os
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from pipewright.contracts.descriptors import (
    ChainedInput,
    DescriptorSpec,
    PipeSpec,
    check_mode,
    default_descriptor,
    parse_descriptor,
)
from pipewright.contracts.enums import Direction, PipeMode, StdStream
from pipewright.contracts.errors import (
    ChainCycleError,
    ChainNotAllowedOnInput,
    CommandAlreadySpawned,
    UnknownFilter,
)
from pipewright.engine.filters import FilterStage

Sink = Callable[[bytes], Any]


@dataclass(frozen=True)
class BoundFilter:
    """A filter stage attached to one stream of one node."""

    filter_id: int
    direction: Direction
    stage: FilterStage


class CommandNode:
    """One process definition: program, arguments, environment and streams.

    Program and arguments must already be safe: no shell is involved, each
    argument is passed to the child verbatim.
    """

    def __init__(
        self,
        program: str,
        args: Sequence[str] = (),
        *,
        cwd: str | os.PathLike[str] | None = None,
        env: Mapping[str, str] | None = None,
        inherit_env: bool = True,
        name: str | None = None,
    ) -> None:
        if not isinstance(program, str) or not program:
            raise TypeError("program must be a non-empty string")
        self.program = program
        self.name = name or program
        self._args: list[str] = []
        self._cwd: str | None = None
        self._env: dict[str, str] = {}
        self.inherit_env = inherit_env
        self._descriptors: dict[StdStream, DescriptorSpec] = {s: default_descriptor(s) for s in StdStream}
        self._filters: dict[StdStream, list[BoundFilter]] = {s: [] for s in StdStream}
        self._sinks: dict[StdStream, Sink] = {}
        self._ids = itertools.count()
        self._pid: int | None = None
        self._exit_code: int | None = None
        self._spawned = False

        self.set_args(args, merge=False)
        if cwd is not None:
            self.set_cwd(cwd)
        if env is not None:
            self.set_env(env, merge=False)

    def __repr__(self) -> str:
        return f"CommandNode({self.program!r}, {self._args!r})"

    # === Value setters ===

    def set_cwd(self, path: str | os.PathLike[str]) -> CommandNode:
        """Set the child's working directory."""
        self._ensure_mutable()
        if not isinstance(path, (str, os.PathLike)):
            raise TypeError(f"cwd must be a path, got {type(path).__name__}")
        self._cwd = os.fspath(path)
        return self

    def set_env(self, env: Mapping[str, str], merge: bool = True) -> CommandNode:
        """Merge into (default) or replace the child's environment overrides."""
        self._ensure_mutable()
        if not isinstance(env, Mapping):
            raise TypeError(f"env must be a mapping, got {type(env).__name__}")
        for key, value in env.items():
            if not isinstance(key, str) or not isinstance(value, str):
                raise TypeError(f"env entries must be str -> str, got {key!r}: {value!r}")
        if merge:
            self._env.update(env)
        else:
            self._env = dict(env)
        return self

    def set_args(self, args: Sequence[str], merge: bool = True) -> CommandNode:
        """Append to (default) or replace the argument list."""
        self._ensure_mutable()
        if isinstance(args, (str, bytes)) or not isinstance(args, Sequence):
            raise TypeError(f"args must be a sequence of str, got {type(args).__name__}")
        for arg in args:
            if not isinstance(arg, str):
                raise TypeError(f"args must be str, got {type(arg).__name__}")
        if merge:
            self._args.extend(args)
        else:
            self._args = list(args)
        return self

    # === Descriptors ===

    def set_pipe(self, stream: StdStream, spec: Any) -> CommandNode:
        """Connect a standard stream.

        Args:
            stream: Stream to connect
            spec: None (inherit), raw handle, DescriptorSpec, mapping/sequence
                spec, or another CommandNode to chain into its stdin

        Raises:
            ChainNotAllowedOnInput: If a CommandNode is given for stdin
            ChainCycleError: If the link would make a node feed into itself
            InvalidSpec: If the spec is malformed or its mode does not fit the stream
        """
        self._ensure_mutable()
        stream = StdStream(stream)

        if isinstance(spec, CommandNode):
            self._link(stream, spec)
            return self

        parsed = parse_descriptor(spec)
        if isinstance(parsed, ChainedInput):
            self._link(stream, parsed.peer)
            return self
        check_mode(stream, parsed)
        self._descriptors[stream] = parsed
        return self

    def _link(self, stream: StdStream, peer: CommandNode) -> None:
        if stream is StdStream.STDIN:
            raise ChainNotAllowedOnInput(self.program)
        if peer is self or any(node is self for node in peer.get_chain()):
            raise ChainCycleError(f"Linking '{self.program}' {stream.label} to '{peer.program}' would create a cycle")
        peer._ensure_mutable()
        peer._descriptors[StdStream.STDIN] = PipeSpec(mode=PipeMode.READ)
        self._descriptors[stream] = ChainedInput(peer)

    def get_descriptor(self, stream: StdStream) -> DescriptorSpec:
        return self._descriptors[StdStream(stream)]

    @property
    def descriptors(self) -> dict[StdStream, DescriptorSpec]:
        """Copy of the descriptor table."""
        return dict(self._descriptors)

    def is_chained(self, stream: StdStream) -> bool:
        return isinstance(self._descriptors[StdStream(stream)], ChainedInput)

    def set_sink(self, stream: StdStream, sink: Sink | None) -> CommandNode:
        """Receive the filtered bytes of a terminal stdout/stderr.

        Only used when the stream is a pipe that is not chained; pass None
        to discard the output again.
        """
        self._ensure_mutable()
        stream = StdStream(stream)
        if stream is StdStream.STDIN:
            raise ValueError("stdin has no output to sink")
        if sink is None:
            self._sinks.pop(stream, None)
        else:
            if not callable(sink):
                raise TypeError(f"sink must be callable, got {type(sink).__name__}")
            self._sinks[stream] = sink
        return self

    def get_sink(self, stream: StdStream) -> Sink | None:
        return self._sinks.get(StdStream(stream))

    # === Filters ===

    def append_filter(self, stream: StdStream, stage: FilterStage) -> int:
        """Add a stage that runs after the existing ones. Returns its filter id."""
        return self._add_filter(stream, stage, prepend=False)

    def prepend_filter(self, stream: StdStream, stage: FilterStage) -> int:
        """Add a stage that runs before the existing ones. Returns its filter id."""
        return self._add_filter(stream, stage, prepend=True)

    def _add_filter(self, stream: StdStream, stage: FilterStage, *, prepend: bool) -> int:
        self._ensure_mutable()
        stream = StdStream(stream)
        if not isinstance(stage, FilterStage):
            raise TypeError(f"stage must be a FilterStage, got {type(stage).__name__}")
        bound = BoundFilter(next(self._ids), stream.direction, stage)
        if prepend:
            self._filters[stream].insert(0, bound)
        else:
            self._filters[stream].append(bound)
        return bound.filter_id

    def remove_filter(self, stream: StdStream, filter_id: int) -> CommandNode:
        """Remove a stage by the id returned when it was added.

        Raises:
            UnknownFilter: If no stage with that id is attached to the stream
        """
        self._ensure_mutable()
        stream = StdStream(stream)
        for index, bound in enumerate(self._filters[stream]):
            if bound.filter_id == filter_id:
                del self._filters[stream][index]
                return self
        raise UnknownFilter(stream, filter_id)

    def get_filters(self, stream: StdStream) -> list[FilterStage]:
        """Stages for a stream, in execution order."""
        return [bound.stage for bound in self._filters[StdStream(stream)]]

    # === Chain ===

    def get_chain(self) -> list[CommandNode]:
        """This node plus every node reachable through output chain links.

        Depth first, in link-discovery order, root first, without duplicates.
        """
        chain: list[CommandNode] = []
        seen: set[int] = set()
        stack: list[CommandNode] = [self]
        while stack:
            node = stack.pop()
            if id(node) in seen:
                continue
            seen.add(id(node))
            chain.append(node)
            # Pushed in reverse so stdout's subtree is walked before stderr's
            for stream in (StdStream.STDERR, StdStream.STDOUT):
                spec = node._descriptors[stream]
                if isinstance(spec, ChainedInput):
                    stack.append(spec.peer)
        return chain

    # === Process facts ===

    @property
    def args(self) -> list[str]:
        return list(self._args)

    @property
    def argv(self) -> list[str]:
        return [self.program, *self._args]

    @property
    def cwd(self) -> str | None:
        return self._cwd

    @property
    def env(self) -> dict[str, str]:
        return dict(self._env)

    def resolved_env(self) -> dict[str, str] | None:
        """Environment to hand to the OS; None means inherit unchanged."""
        if not self._env and self.inherit_env:
            return None
        if self.inherit_env:
            return {**os.environ, **self._env}
        return dict(self._env)

    @property
    def pid(self) -> int | None:
        return self._pid

    @property
    def spawned(self) -> bool:
        return self._spawned

    def get_exit_code(self) -> int | None:
        """Exit status of the last run, or None while not yet available."""
        return self._exit_code

    # === Pump-side bookkeeping ===

    def mark_spawned(self, pid: int) -> None:
        self._spawned = True
        self._pid = pid

    def record_exit_code(self, exit_code: int) -> bool:
        """Store the exit status if none was captured yet. Returns True if stored."""
        if self._exit_code is not None:
            return False
        self._exit_code = exit_code
        return True

    def _ensure_mutable(self) -> None:
        if self._spawned:
            raise CommandAlreadySpawned(self.program)
