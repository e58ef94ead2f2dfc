# tests/unit/contracts/test_errors.py
"""Tests for the exception taxonomy and outcome records."""

import pytest

from pipewright.contracts.enums import PumpState, StdStream
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


class TestErrorHierarchy:
    @pytest.mark.parametrize(
        "error",
        [
            InvalidSpec("bad"),
            ChainCycleError("cycle"),
            ChainNotAllowedOnInput("cat"),
            UnknownFilter(StdStream.STDOUT, 3),
            CommandAlreadySpawned("cat"),
            SpawnFailure("cat", FileNotFoundError("cat")),
            FilterFailure("upper", RuntimeError("boom")),
            SchedulerTimeout(1.0, ["cat"]),
            SchedulerCancelled("stop"),
            ConfigError("bad"),
            PluginConfigError("bad"),
        ],
    )
    def test_everything_is_a_pipewright_error(self, error: Exception) -> None:
        assert isinstance(error, PipewrightError)

    def test_construction_errors_keep_builtin_bases(self) -> None:
        """Callers catching ValueError/KeyError/RuntimeError still catch them."""
        assert isinstance(InvalidSpec("x"), ValueError)
        assert isinstance(ChainCycleError("x"), InvalidSpec)
        assert isinstance(ChainNotAllowedOnInput("cat"), ValueError)
        assert isinstance(UnknownFilter(StdStream.STDIN, 1), KeyError)
        assert isinstance(CommandAlreadySpawned("cat"), RuntimeError)

    def test_unknown_filter_message_is_not_repr_quoted(self) -> None:
        error = UnknownFilter(StdStream.STDERR, 7)
        assert str(error) == "No filter with id 7 registered for stream 'stderr'"
        assert error.filter_id == 7
        assert error.stream is StdStream.STDERR


class TestFilterFailure:
    def test_message_names_stage_and_cause(self) -> None:
        failure = FilterFailure("upper", ValueError("bad byte"))
        assert str(failure) == "Filter 'upper' failed: ValueError: bad byte"
        assert failure.program is None
        assert failure.stream is None

    def test_bind_attaches_location(self) -> None:
        failure = FilterFailure("upper", ValueError("bad byte"))
        assert failure.bind("cat", StdStream.STDOUT) is failure
        assert failure.program == "cat"
        assert failure.stream is StdStream.STDOUT


class TestSpawnFailure:
    def test_keeps_cause(self) -> None:
        cause = PermissionError("denied")
        failure = SpawnFailure("/bin/secret", cause)
        assert failure.cause is cause
        assert "/bin/secret" in str(failure)


class TestRunResult:
    def _outcome(self, exit_code: int | None, *failures: FilterFailure) -> PumpOutcome:
        return PumpOutcome("cmd", 100, PumpState.CLOSED, exit_code, tuple(failures))

    def test_all_zero_succeeds(self) -> None:
        result = RunResult([self._outcome(0), self._outcome(0)])
        assert result.succeeded
        assert result.exit_code == 0

    def test_first_nonzero_wins(self) -> None:
        result = RunResult([self._outcome(0), self._outcome(3), self._outcome(4)])
        assert not result.succeeded
        assert result.exit_code == 3

    def test_missing_exit_code_counts_as_failure(self) -> None:
        result = RunResult([self._outcome(None)])
        assert not result.succeeded
        assert result.exit_code == 1

    def test_empty_result_succeeds(self) -> None:
        assert RunResult().succeeded

    def test_failed_streams(self) -> None:
        failure = FilterFailure("upper", RuntimeError("x")).bind("cmd", StdStream.STDERR)
        assert self._outcome(0, failure).failed_streams == (StdStream.STDERR,)
