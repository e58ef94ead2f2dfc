# src/pipewright/contracts/results.py
"""Outcome records returned by the scheduler."""

from dataclasses import dataclass, field

from pipewright.contracts.enums import PumpState, StdStream
from pipewright.contracts.errors import FilterFailure


@dataclass(frozen=True)
class PumpOutcome:
    """Final state of one command in a chain.

    Attributes:
        program: Program that was run
        pid: Process id, or None if the process never started
        state: Terminal pump state (CLOSED or FAILED)
        exit_code: Exit status as reported by the OS (negative for signals),
            or None if it was never captured
        filter_failures: Stream-scoped filter failures, in the order they happened
    """

    program: str
    pid: int | None
    state: PumpState
    exit_code: int | None
    filter_failures: tuple[FilterFailure, ...] = ()

    @property
    def failed_streams(self) -> tuple[StdStream, ...]:
        return tuple(f.stream for f in self.filter_failures if f.stream is not None)


@dataclass(frozen=True)
class RunResult:
    """Result of running a chain, one outcome per node in chain order."""

    outcomes: list[PumpOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        """True when every command exited with status 0."""
        return all(o.exit_code == 0 for o in self.outcomes)

    @property
    def exit_code(self) -> int:
        """First non-zero exit status in chain order, 0 if all succeeded.

        A command without a captured status counts as 1.
        """
        for outcome in self.outcomes:
            if outcome.exit_code is None:
                return 1
            if outcome.exit_code != 0:
                return outcome.exit_code
        return 0
