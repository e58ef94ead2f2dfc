# src/pipewright/contracts/errors.py
"""Exception taxonomy for pipewright.

Construction-time errors (InvalidSpec, ChainNotAllowedOnInput, UnknownFilter,
CommandAlreadySpawned) surface synchronously to the caller that made the
invalid call.

Runtime errors are scoped as narrowly as possible:
- SpawnFailure is fatal for the whole chain and never retried, since
  launching a process is not idempotent.
- FilterFailure is scoped to one stream of one node. The pump logs it,
  records it on the outcome and keeps pumping the sibling stream.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pipewright.contracts.enums import StdStream


class PipewrightError(Exception):
    """Base class for every error raised by pipewright."""


# =============================================================================
# Construction-time errors
# =============================================================================


class InvalidSpec(PipewrightError, ValueError):
    """Raised when a descriptor spec has the wrong shape or mode.

    Raised when the spec is built or assigned, never deferred to spawn time.
    """


class ChainCycleError(InvalidSpec):
    """Raised when a chain link would make a node feed into itself."""


class ChainNotAllowedOnInput(PipewrightError, ValueError):
    """Raised when a CommandNode is linked on the stdin descriptor.

    Chaining only originates from output streams (stdout/stderr) into the
    peer's stdin.
    """

    def __init__(self, program: str) -> None:
        self.program = program
        super().__init__(f"Command chaining is not allowed for stdin (command '{program}')")


class UnknownFilter(PipewrightError, KeyError):
    """Raised when removing a filter id that is not registered for a stream."""

    def __init__(self, stream: "StdStream", filter_id: int) -> None:
        self.stream = stream
        self.filter_id = filter_id
        super().__init__(f"No filter with id {filter_id} registered for stream '{stream.label}'")

    def __str__(self) -> str:
        # KeyError.__str__ would repr() the message
        return str(self.args[0])


class CommandAlreadySpawned(PipewrightError, RuntimeError):
    """Raised when a command is mutated after its process was started."""

    def __init__(self, program: str) -> None:
        self.program = program
        super().__init__(f"Command '{program}' has already been spawned and can no longer be changed")


# =============================================================================
# Runtime errors
# =============================================================================


class SpawnFailure(PipewrightError):
    """Raised when the OS refuses to start a child process.

    Fatal for the whole chain: an upstream or downstream stage cannot
    usefully run alone. Not retried.

    Attributes:
        program: Program that failed to start
        cause: Underlying OS error (also chained as __cause__)
    """

    def __init__(self, program: str, cause: BaseException) -> None:
        self.program = program
        self.cause = cause
        super().__init__(f"Failed to spawn '{program}': {cause}")


class FilterFailure(PipewrightError):
    """Raised when a filter stage's transform or finalize raises.

    Aborts processing of ONE stream of ONE node. The pump catches it, logs
    it, and records it on the pump outcome.

    Attributes:
        program: Program whose stream was being filtered
        stream: Stream the failing stage was bound to
        stage_name: Name of the failing stage
        cause: Exception raised by the stage (also chained as __cause__)
    """

    def __init__(
        self,
        stage_name: str,
        cause: BaseException,
        *,
        program: str | None = None,
        stream: "StdStream | None" = None,
    ) -> None:
        self.stage_name = stage_name
        self.cause = cause
        self.program = program
        self.stream = stream
        super().__init__(f"Filter '{stage_name}' failed: {type(cause).__name__}: {cause}")

    def bind(self, program: str, stream: "StdStream") -> "FilterFailure":
        """Attach the node/stream the failure happened on."""
        self.program = program
        self.stream = stream
        return self


class SchedulerTimeout(PipewrightError):
    """Raised after the scheduler tore down a chain that exceeded its timeout."""

    def __init__(self, timeout_seconds: float, pending: list[str]) -> None:
        self.timeout_seconds = timeout_seconds
        self.pending = pending
        super().__init__(f"Chain did not finish within {timeout_seconds}s (still active: {', '.join(pending)})")


class SchedulerCancelled(PipewrightError):
    """Raised by Scheduler.run() after a cooperative cancel finished every pump."""


# =============================================================================
# Configuration errors
# =============================================================================


class ConfigError(PipewrightError):
    """Raised when pipeline configuration cannot be turned into a chain."""


class PluginConfigError(ConfigError):
    """Raised when filter plugin options are invalid."""
