# src/pipewright/contracts/enums.py
"""Status codes, stream identities, and kinds shared across the engine.

Every enum here crosses a module boundary (command model, pump, scheduler,
config, CLI output), which is why they live in contracts and not beside
their first user.
"""

from enum import IntEnum, StrEnum


class Direction(StrEnum):
    """Direction a filter stage operates in, seen from the parent process.

    READ stages transform bytes the parent reads from a child (stdout/stderr).
    WRITE stages transform bytes the parent writes into a child (stdin).
    """

    READ = "read"
    WRITE = "write"


class PipeMode(StrEnum):
    """Which end of a pipe or file the CHILD uses.

    Matches the ``("pipe", "r")`` / ``("pipe", "w")`` convention: stdin is a
    pipe the child reads, stdout and stderr are pipes the child writes.
    """

    READ = "read"
    WRITE = "write"


class StdStream(IntEnum):
    """The three standard streams of a child process.

    Values are the POSIX file descriptor numbers.
    """

    STDIN = 0
    STDOUT = 1
    STDERR = 2

    @property
    def direction(self) -> Direction:
        """Filter direction for stages bound to this stream."""
        if self is StdStream.STDIN:
            return Direction.WRITE
        return Direction.READ

    @property
    def child_mode(self) -> PipeMode:
        """How the child uses this stream (reads stdin, writes the others)."""
        if self is StdStream.STDIN:
            return PipeMode.READ
        return PipeMode.WRITE

    @property
    def label(self) -> str:
        """Lower-case name used in logs and config keys."""
        return self.name.lower()


class Granularity(StrEnum):
    """How a filter stage sees its input.

    CHUNK: exactly the bytes of each OS read, no reassembly.
    LINE: one invocation per complete newline-terminated line.
    """

    CHUNK = "chunk"
    LINE = "line"


class PumpState(StrEnum):
    """Lifecycle of an ExecutionPump.

    Happy path: CREATED -> SPAWNED -> PUMPING -> DRAINED -> CLOSED.
    FAILED is reachable from CREATED or SPAWNED when the child cannot be
    started.
    """

    CREATED = "created"
    SPAWNED = "spawned"
    PUMPING = "pumping"
    DRAINED = "drained"
    CLOSED = "closed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Whether no further step can change this state."""
        return self in (PumpState.CLOSED, PumpState.FAILED)


class DescriptorKind(StrEnum):
    """Discriminator for descriptor specs."""

    INHERIT = "inherit"
    PIPE = "pipe"
    FILE = "file"
    HANDLE = "handle"
    CHAIN = "chain"
