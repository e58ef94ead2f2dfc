# src/pipewright/engine/pump.py
"""ExecutionPump: drives one child process from launch to reap.

State machine::

    CREATED --spawn()--> SPAWNED --start()--> PUMPING --> DRAINED --> CLOSED
       |                    |
       +----> FAILED <------+   (spawn error)

Each ``step()`` is one scheduler tick. In PUMPING it flushes pending
chained input into the child's stdin and then polls stdout AND stderr,
one non-blocking read each. Polling both sides in every tick is what keeps
a child from blocking on a full, unread pipe while the other one is being
drained.

Ownership:
    The pump is the only reader of its child's stdout/stderr and the only
    writer of its child's stdin. Upstream pumps never touch that handle;
    they hand bytes to ``feed_input()``, which buffers them and writes
    non-blocking on the next flush.

Backpressure:
    A stream chained into a peer pump is not read while the peer holds
    INPUT_HIGH_WATER_READS reads or more of unwritten stdin bytes, so a
    slow consumer stalls its producer on a full OS pipe instead of growing
    a buffer in the parent. Once the peer's stdin is gone (the consumer
    exited, or a stdin filter failed), the upstream read end is closed and
    the producer gets EPIPE, as in a shell.

Errors:
    - Spawn errors move the pump to FAILED and raise SpawnFailure.
    - A FilterFailure ends pumping of that one stream: its handle is closed
      and downstream closure propagated. The sibling stream keeps going and
      the child is still reaped.
"""

from __future__ import annotations

import os
import subprocess
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import IO, Any

import structlog

from pipewright.contracts.descriptors import ChainedInput, DescriptorSpec, FileSpec, HandleSpec, PipeSpec
from pipewright.contracts.enums import PipeMode, PumpState, StdStream
from pipewright.contracts.errors import FilterFailure, SpawnFailure
from pipewright.contracts.results import PumpOutcome
from pipewright.engine.command import CommandNode
from pipewright.engine.filters import FilterChain

logger = structlog.get_logger(__name__)

WriteCallback = Callable[[bytes], Any]
CloseCallback = Callable[[], Any]

DEFAULT_READ_SIZE = 65536
DEFAULT_TERMINATE_GRACE_SECONDS = 1.0
INPUT_HIGH_WATER_READS = 4


def _discard(data: bytes) -> None:
    return None


def _noop() -> None:
    return None


@dataclass
class _OutputSide:
    """Read end of one stdout/stderr pipe plus where its bytes go."""

    stream: StdStream
    handle: IO[bytes]
    chain: FilterChain
    on_write: WriteCallback
    on_close: CloseCallback
    peer: ExecutionPump | None = None
    done: bool = False


@dataclass
class _InputSide:
    """Write end of the child's stdin, fed by upstream pumps."""

    handle: IO[bytes] | None
    chain: FilterChain
    feeders: int
    pending: bytearray = field(default_factory=bytearray)
    closing: bool = False

    @property
    def settled(self) -> bool:
        return self.handle is None


class ExecutionPump:
    """Runs one CommandNode as a child process.

    Usage (normally done by the Scheduler)::

        pump = ExecutionPump(node)
        pump.spawn()
        while pump.step():
            time.sleep(0.005)
        node.get_exit_code()
    """

    def __init__(
        self,
        node: CommandNode,
        *,
        read_size: int = DEFAULT_READ_SIZE,
        terminate_grace_seconds: float = DEFAULT_TERMINATE_GRACE_SECONDS,
    ) -> None:
        if read_size <= 0:
            raise ValueError("read_size must be positive")
        self.node = node
        self._read_size = read_size
        self._terminate_grace = terminate_grace_seconds
        self._input_high_water = read_size * INPUT_HIGH_WATER_READS
        self._state = PumpState.CREATED
        self._process: subprocess.Popen[bytes] | None = None
        self._targets: dict[StdStream, tuple[WriteCallback, CloseCallback, ExecutionPump | None]] = {}
        self._feeders = 0
        self._outputs: list[_OutputSide] = []
        self._input: _InputSide | None = None
        self._failures: list[FilterFailure] = []
        self._progressed = False
        self._log = logger.bind(program=node.program)

    def __repr__(self) -> str:
        return f"ExecutionPump({self.node.program!r}, state={self._state.value})"

    # === Introspection ===

    @property
    def state(self) -> PumpState:
        return self._state

    @property
    def active(self) -> bool:
        return not self._state.is_terminal

    @property
    def progressed(self) -> bool:
        """Whether the last step moved bytes or changed state."""
        return self._progressed

    @property
    def filter_failures(self) -> list[FilterFailure]:
        return list(self._failures)

    @property
    def pid(self) -> int | None:
        return self.node.pid

    @property
    def input_backlog(self) -> int:
        """Bytes accepted for the child's stdin and not yet written."""
        return 0 if self._input is None else len(self._input.pending)

    @property
    def input_backlogged(self) -> bool:
        return self.input_backlog >= self._input_high_water

    @property
    def input_abandoned(self) -> bool:
        """Whether stdin was closed while upstream feeders were still open."""
        side = self._input
        return side is not None and side.settled and side.feeders > 0

    def outcome(self) -> PumpOutcome:
        return PumpOutcome(
            program=self.node.program,
            pid=self.node.pid,
            state=self._state,
            exit_code=self.node.get_exit_code(),
            filter_failures=tuple(self._failures),
        )

    # === Wiring (before spawn) ===

    def connect_output(self, stream: StdStream, on_write: WriteCallback, on_close: CloseCallback = _noop) -> None:
        """Route the filtered bytes of stdout/stderr to plain callbacks.

        No backpressure applies. Chained streams go through ``connect_peer``.
        """
        self._set_target(stream, on_write, on_close, None)

    def connect_peer(self, stream: StdStream, peer: ExecutionPump) -> None:
        """Chain stdout/stderr into ``peer``'s stdin, with backpressure.

        The caller registers the feeder on the peer with ``add_feeder()``.
        """
        self._set_target(stream, peer.feed_input, peer.close_input, peer)

    def _set_target(
        self, stream: StdStream, on_write: WriteCallback, on_close: CloseCallback, peer: ExecutionPump | None
    ) -> None:
        stream = StdStream(stream)
        if stream is StdStream.STDIN:
            raise ValueError("stdin is not an output stream")
        self._targets[stream] = (on_write, on_close, peer)

    def add_feeder(self) -> None:
        """Register one upstream stream that will write into this child's stdin."""
        if self._state is not PumpState.CREATED:
            raise RuntimeError(f"Cannot add feeders to {self!r} after spawn")
        self._feeders += 1

    # === CREATED -> SPAWNED ===

    def spawn(self) -> None:
        """Launch the child with its descriptor specs resolved to OS handles.

        Raises:
            SpawnFailure: If the process cannot be started. The pump is FAILED.
            RuntimeError: If called in any state other than CREATED.
        """
        if self._state is not PumpState.CREATED:
            raise RuntimeError(f"Cannot spawn {self!r}")

        node = self.node
        opened: list[IO[bytes]] = []
        try:
            stdin = self._resolve(node.get_descriptor(StdStream.STDIN), opened)
            stdout = self._resolve(node.get_descriptor(StdStream.STDOUT), opened)
            stderr = self._resolve(node.get_descriptor(StdStream.STDERR), opened)
            self._process = subprocess.Popen(
                node.argv,
                stdin=stdin,
                stdout=stdout,
                stderr=stderr,
                cwd=node.cwd,
                env=node.resolved_env(),
                close_fds=True,
            )
        except (OSError, ValueError, subprocess.SubprocessError) as e:
            self._state = PumpState.FAILED
            self._log.error("Failed to spawn command", argv=node.argv, error=str(e), error_type=type(e).__name__)
            raise SpawnFailure(node.program, e) from e
        finally:
            # The child holds its own copies of file descriptors opened for it
            for handle in opened:
                handle.close()

        node.mark_spawned(self._process.pid)
        self._state = PumpState.SPAWNED
        self._log = self._log.bind(pid=self._process.pid)
        self._log.debug("Spawned command", argv=node.argv, cwd=node.cwd)

    @staticmethod
    def _resolve(spec: DescriptorSpec, opened: list[IO[bytes]]) -> int | IO[bytes] | None:
        if isinstance(spec, (PipeSpec, ChainedInput)):
            return subprocess.PIPE
        if isinstance(spec, FileSpec):
            handle = open(spec.path, "rb" if spec.mode is PipeMode.READ else "wb")  # noqa: SIM115
            opened.append(handle)
            return handle
        if isinstance(spec, HandleSpec):
            return spec.fileno()
        return None

    # === SPAWNED -> PUMPING ===

    def start(self) -> None:
        """Bind filter stages to the now-real handles and go non-blocking.

        A stdin pipe nobody feeds is closed right away so the child sees EOF.
        """
        if self._state is not PumpState.SPAWNED:
            raise RuntimeError(f"Cannot start {self!r}")
        assert self._process is not None

        node = self.node
        for stream, handle in ((StdStream.STDOUT, self._process.stdout), (StdStream.STDERR, self._process.stderr)):
            if handle is None:
                continue
            os.set_blocking(handle.fileno(), False)
            on_write, on_close, peer = self._targets.get(stream, (node.get_sink(stream) or _discard, _noop, None))
            chain = FilterChain(node.get_filters(stream))
            self._outputs.append(_OutputSide(stream, handle, chain, on_write, on_close, peer))

        stdin = self._process.stdin
        if stdin is not None:
            os.set_blocking(stdin.fileno(), False)
        self._input = _InputSide(stdin, FilterChain(node.get_filters(StdStream.STDIN)), self._feeders)
        if stdin is not None and self._feeders == 0:
            self._close_stdin()

        self._state = PumpState.PUMPING

    # === Chained input (called by upstream pumps) ===

    def feed_input(self, data: bytes) -> None:
        """Accept bytes for the child's stdin, filtered and buffered.

        Ignored unless the pump has started and its stdin is still open.
        """
        side = self._input
        if side is None or side.settled or side.closing or not data:
            return
        try:
            filtered = side.chain.feed(data)
        except FilterFailure as e:
            self._record_failure(StdStream.STDIN, e)
            side.pending.clear()
            self._close_stdin()
            return
        side.pending.extend(filtered)

    def close_input(self) -> None:
        """One upstream feeder reached end of stream.

        When the last feeder closes, stdin filters are finalized and the
        handle is closed once the pending bytes are written.
        """
        side = self._input
        if side is None or side.settled or side.closing:
            return
        side.feeders -= 1
        if side.feeders > 0:
            return
        try:
            side.pending.extend(side.chain.close())
        except FilterFailure as e:
            self._record_failure(StdStream.STDIN, e)
            side.pending.clear()
        side.closing = True

    def _flush_input(self) -> None:
        side = self._input
        if side is None or side.handle is None:
            return
        fd = side.handle.fileno()
        while side.pending:
            try:
                written = os.write(fd, side.pending)
            except BlockingIOError:
                break
            except BrokenPipeError:
                self._log.debug("Child closed stdin early, discarding input", discarded=len(side.pending))
                side.pending.clear()
                self._close_stdin()
                return
            del side.pending[:written]
            self._progressed = True
        if side.closing and not side.pending:
            self._close_stdin()

    def _close_stdin(self) -> None:
        side = self._input
        if side is None or side.handle is None:
            return
        handle, side.handle = side.handle, None
        side.closing = True
        handle.close()
        self._progressed = True

    # === PUMPING / DRAINED step ===

    def step(self) -> bool:
        """Advance by one tick.

        Returns:
            True while the pump is still active, False once CLOSED or FAILED.
        """
        self._progressed = False
        if self._state is PumpState.SPAWNED:
            self.start()
            self._progressed = True

        if self._state is PumpState.PUMPING:
            self._flush_input()
            for side in self._outputs:
                if not side.done:
                    self._pump_output(side)
            input_settled = self._input is None or self._input.settled
            if input_settled and all(side.done for side in self._outputs):
                self._state = PumpState.DRAINED
                self._progressed = True
                self._log.debug("Command drained")

        if self._state is PumpState.DRAINED:
            self._reap()

        return self.active

    def _pump_output(self, side: _OutputSide) -> None:
        peer = side.peer
        if peer is not None:
            if peer.input_abandoned:
                self._abandon_output(side)
                return
            if peer.input_backlogged:
                return

        try:
            data = os.read(side.handle.fileno(), self._read_size)
        except BlockingIOError:
            return

        if not data:
            self._close_output(side)
            return

        self._progressed = True
        try:
            filtered = side.chain.feed(data)
        except FilterFailure as e:
            self._fail_output(side, e)
            return
        if filtered:
            side.on_write(filtered)

    def _close_output(self, side: _OutputSide) -> None:
        """End of stream: flush filters, close the handle, notify downstream."""
        tail = b""
        try:
            tail = side.chain.close()
        except FilterFailure as e:
            self._record_failure(side.stream, e)
        try:
            if tail:
                side.on_write(tail)
        finally:
            self._finish_output(side)
        self._log.debug("Stream drained", stream=side.stream.label)

    def _abandon_output(self, side: _OutputSide) -> None:
        """The peer stopped taking input: close our read end so the child gets EPIPE."""
        try:
            side.chain.close()
        except FilterFailure as e:
            self._record_failure(side.stream, e)
        self._finish_output(side)
        self._log.debug("Downstream closed its input, stream abandoned", stream=side.stream.label)

    def _fail_output(self, side: _OutputSide, failure: FilterFailure) -> None:
        self._record_failure(side.stream, failure)
        self._finish_output(side)

    def _finish_output(self, side: _OutputSide) -> None:
        if side.done:
            return
        side.done = True
        side.handle.close()
        self._progressed = True
        side.on_close()

    def _record_failure(self, stream: StdStream, failure: FilterFailure) -> None:
        failure.bind(self.node.program, stream)
        self._failures.append(failure)
        self._log.warning(
            "Filter failed, stream processing halted",
            stream=stream.label,
            stage=failure.stage_name,
            error=str(failure.cause),
            error_type=type(failure.cause).__name__,
        )

    # === DRAINED -> CLOSED ===

    def _reap(self) -> None:
        assert self._process is not None
        returncode = self._process.poll()
        if returncode is None:
            return
        self._capture(returncode)

    def _capture(self, returncode: int) -> None:
        self.node.record_exit_code(returncode)
        self._state = PumpState.CLOSED
        self._progressed = True
        self._log.debug("Command reaped", exit_code=self.node.get_exit_code())

    # === Cancellation ===

    def finish(self) -> None:
        """Tear the pump down from any state.

        Closes every open handle (finalizing filters and propagating closure
        downstream), terminates a still-running child, reaps it and captures
        its exit status. Idempotent.

        The child is terminated and reaped even when a sink or close callback
        raises. Every handle is still closed, and the first such error is
        re-raised once the pump is CLOSED.
        """
        if self._state.is_terminal:
            return
        if self._state is PumpState.CREATED:
            self._state = PumpState.CLOSED
            return
        assert self._process is not None
        try:
            self._close_all()
        finally:
            self._terminate()

    def _close_all(self) -> None:
        assert self._process is not None
        if self._state is PumpState.SPAWNED:
            # Never started: no stage was bound, so there is nothing to finalize
            for handle in (self._process.stdin, self._process.stdout, self._process.stderr):
                if handle is not None:
                    handle.close()

        if self._input is not None:
            self._input.pending.clear()
            self._close_stdin()

        first_error: Exception | None = None
        for side in self._outputs:
            if side.done:
                continue
            try:
                self._close_output(side)
            except Exception as e:
                self._log.error("Closing stream failed during teardown", stream=side.stream.label, error=str(e))
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error

    def _terminate(self) -> None:
        assert self._process is not None
        if self._process.poll() is None:
            self._log.info("Terminating command", grace_seconds=self._terminate_grace)
            self._process.terminate()
            try:
                self._process.wait(timeout=self._terminate_grace)
            except subprocess.TimeoutExpired:
                self._log.warning("Command ignored SIGTERM, killing")
                self._process.kill()
                self._process.wait()
        self._capture(self._process.returncode)
