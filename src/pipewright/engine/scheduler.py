# src/pipewright/engine/scheduler.py
"""Scheduler: drives every pump of a chain cooperatively to completion.

Single loop, no threads. Every tick gives each still-active pump exactly one
``step()``, so a slow stage can never starve another stage's draining.
When a whole tick moves no bytes and changes no state, the loop sleeps for
``poll_interval_seconds`` before the next one.

Lifecycle of ``run(root)``:
1. Flatten the chain (root first).
2. Create one pump per node and wire chained outputs into the peer pump.
3. Spawn every node. A SpawnFailure finishes everything already spawned
   and propagates: the chain aborts as a whole.
4. Start every pump, then tick until the active set is empty.

Cancellation:
    ``cancel()`` is cooperative. On the next tick every active pump gets
    ``finish()`` instead of ``step()``, closing its handles and reaping its
    child, and ``run()`` raises SchedulerCancelled. Any exception escaping
    the loop (KeyboardInterrupt included) finishes all pumps the same way
    before propagating. Teardown keeps going when one pump fails to finish
    (a sink raising on the last bytes, say): every other member is still
    closed and reaped, and the failure is logged.

Liveness:
    Without ``timeout_seconds`` a child that never closes its streams keeps
    the loop alive forever, exactly like a shell pipeline would.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from pipewright.contracts.descriptors import ChainedInput
from pipewright.contracts.enums import StdStream
from pipewright.contracts.errors import SchedulerCancelled, SchedulerTimeout, SpawnFailure
from pipewright.contracts.results import RunResult
from pipewright.core.logging import chain_context
from pipewright.engine.clock import DEFAULT_CLOCK, Clock
from pipewright.engine.command import CommandNode
from pipewright.engine.pump import ExecutionPump

if TYPE_CHECKING:
    from pipewright.core.config import SchedulerSettings

logger = structlog.get_logger(__name__)


class Scheduler:
    """Runs a CommandNode chain to completion.

    Usage:
        scheduler = Scheduler()
        result = scheduler.run(root)
        if not result.succeeded:
            ...
    """

    def __init__(
        self,
        settings: SchedulerSettings | None = None,
        *,
        clock: Clock = DEFAULT_CLOCK,
    ) -> None:
        if settings is None:
            from pipewright.core.config import SchedulerSettings

            settings = SchedulerSettings()
        self._settings = settings
        self._clock = clock
        self._cancel_requested = False
        self._pumps: list[ExecutionPump] = []

    @property
    def settings(self) -> SchedulerSettings:
        return self._settings

    @property
    def pumps(self) -> list[ExecutionPump]:
        """Pumps of the current (or last) run, in chain order."""
        return list(self._pumps)

    def cancel(self) -> None:
        """Ask the running loop to finish every pump on its next tick.

        Safe to call from a filter stage or sink running inside the loop.
        """
        self._cancel_requested = True

    def prepare(self, root: CommandNode) -> list[ExecutionPump]:
        """Create and wire one pump per chain member, without spawning."""
        chain = root.get_chain()
        pumps = {id(node): self._create_pump(node) for node in chain}

        for node in chain:
            pump = pumps[id(node)]
            for stream in (StdStream.STDOUT, StdStream.STDERR):
                spec = node.get_descriptor(stream)
                if not isinstance(spec, ChainedInput):
                    continue
                peer = pumps[id(spec.peer)]
                peer.add_feeder()
                pump.connect_peer(stream, peer)

        return [pumps[id(node)] for node in chain]

    def _create_pump(self, node: CommandNode) -> ExecutionPump:
        return ExecutionPump(
            node,
            read_size=self._settings.read_size,
            terminate_grace_seconds=self._settings.terminate_grace_seconds,
        )

    def run(self, root: CommandNode) -> RunResult:
        """Spawn the chain rooted at ``root`` and pump it to completion.

        Returns:
            RunResult with one outcome per chain member, in chain order

        Raises:
            SpawnFailure: If any member cannot be started (nothing is left running)
            SchedulerTimeout: If ``timeout_seconds`` elapsed (everything was finished)
            SchedulerCancelled: If ``cancel()`` was called (everything was finished)
        """
        self._cancel_requested = False
        self._pumps = self.prepare(root)

        with chain_context(root.program, len(self._pumps)):
            self._spawn_all(self._pumps)
            try:
                for pump in self._pumps:
                    pump.start()
                logger.debug("Chain started", pids=[p.pid for p in self._pumps])
                self._loop(self._pumps)
            except BaseException:
                # Teardown errors are logged; the error that stopped the loop wins
                self._finish_all(self._pumps, reraise=False)
                raise
            self._finish_all(self._pumps)

            result = RunResult([pump.outcome() for pump in self._pumps])
            logger.debug("Chain finished", exit_codes=[o.exit_code for o in result.outcomes])
        return result

    def _spawn_all(self, pumps: list[ExecutionPump]) -> None:
        for pump in pumps:
            try:
                pump.spawn()
            except SpawnFailure:
                logger.error("Aborting chain, a member failed to spawn", failed=pump.node.program)
                self._finish_all(pumps, reraise=False)
                raise

    def _loop(self, pumps: list[ExecutionPump]) -> None:
        started = self._clock.monotonic()
        timeout = self._settings.timeout_seconds
        active = list(pumps)

        while active:
            if self._cancel_requested:
                logger.info("Chain cancelled", pending=[p.node.program for p in active])
                self._finish_all(active, reraise=False)
                raise SchedulerCancelled(f"Chain rooted at '{pumps[0].node.program}' was cancelled")

            if timeout is not None and self._clock.monotonic() - started >= timeout:
                pending = [p.node.program for p in active]
                logger.warning("Chain timed out", timeout_seconds=timeout, pending=pending)
                self._finish_all(active, reraise=False)
                raise SchedulerTimeout(timeout, pending)

            progressed = False
            still_active: list[ExecutionPump] = []
            for pump in active:
                if pump.step():
                    still_active.append(pump)
                progressed = progressed or pump.progressed
            active = still_active

            if active and not progressed:
                self._clock.sleep(self._settings.poll_interval_seconds)

    @staticmethod
    def _finish_all(pumps: list[ExecutionPump], *, reraise: bool = True) -> None:
        """Finish every pump, even when finishing one of them raises.

        The first error is re-raised after the last pump is done, unless
        ``reraise`` is False.
        """
        first_error: Exception | None = None
        for pump in pumps:
            try:
                pump.finish()
            except Exception as e:
                logger.error("Teardown of chain member failed", failed=pump.node.program, error=str(e))
                if first_error is None:
                    first_error = e
        if first_error is not None and reraise:
            raise first_error
