# src/pipewright/engine/__init__.py
"""Execution core: command model, filter stages, pumps and the scheduler.

Example:
    from pipewright.contracts import StdStream
    from pipewright.engine import CommandNode, FilterStage, Scheduler

    producer = CommandNode("printf", ["a\\nb\\n"])
    consumer = CommandNode("sort", ["-r"])
    producer.set_pipe(StdStream.STDOUT, consumer)
    consumer.append_filter(StdStream.STDOUT, FilterStage.line(bytes.upper))

    result = Scheduler().run(producer)
"""

from pipewright.engine.clock import DEFAULT_CLOCK, Clock, MockClock, SystemClock
from pipewright.engine.command import BoundFilter, CommandNode
from pipewright.engine.filters import FilterChain, FilterStage
from pipewright.engine.pump import ExecutionPump
from pipewright.engine.scheduler import Scheduler

__all__ = [
    "DEFAULT_CLOCK",
    "BoundFilter",
    "Clock",
    "CommandNode",
    "ExecutionPump",
    "FilterChain",
    "FilterStage",
    "MockClock",
    "Scheduler",
    "SystemClock",
]
