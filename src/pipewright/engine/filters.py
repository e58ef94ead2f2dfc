# src/pipewright/engine/filters.py
"""Stream filter stages and the per-stream filter chain.

A FilterStage is an immutable description of one transform step. It is
attached to a CommandNode before spawn; the ExecutionPump turns the
stages into fresh StageProcessors when the real OS handle exists, so
reassembly buffers never outlive a run.

Granularities:
- CHUNK: transform receives exactly the bytes of one OS read
- LINE: transform receives one newline-terminated line at a time; a
  trailing partial line is delivered once when the stream closes

Finalize:
    A stage built with a ``finalize`` callable supports close notification.
    The callable runs exactly once, when the stream closes, and whatever it
    returns flows through the remaining stages.

Failure:
    Any exception from a transform or finalize is raised as FilterFailure.
    The chain is then marked failed and processes nothing further.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from pipewright.contracts.enums import Granularity
from pipewright.contracts.errors import FilterFailure

Transform = Callable[[bytes], bytes | None]
Finalize = Callable[[], bytes | None]


@dataclass(frozen=True)
class FilterStage:
    """One named transform step for a stream.

    Attributes:
        transform: Called with input bytes, returns output bytes (None = nothing)
        granularity: CHUNK or LINE
        finalize: Optional close callback; its return value is emitted at close
        name: Label used in logs and FilterFailure (defaults to the transform's name)
        supports_finalize: True exactly when ``finalize`` was given
    """

    transform: Transform
    granularity: Granularity = Granularity.CHUNK
    finalize: Finalize | None = None
    name: str = ""
    supports_finalize: bool = field(init=False)

    def __post_init__(self) -> None:
        if not callable(self.transform):
            raise TypeError(f"transform must be callable, got {type(self.transform).__name__}")
        if self.finalize is not None and not callable(self.finalize):
            raise TypeError(f"finalize must be callable, got {type(self.finalize).__name__}")
        object.__setattr__(self, "granularity", Granularity(self.granularity))
        object.__setattr__(self, "supports_finalize", self.finalize is not None)
        if not self.name:
            object.__setattr__(self, "name", getattr(self.transform, "__name__", type(self.transform).__name__))

    @classmethod
    def chunk(cls, transform: Transform, finalize: Finalize | None = None, *, name: str = "") -> FilterStage:
        """Build a CHUNK stage."""
        return cls(transform, Granularity.CHUNK, finalize, name)

    @classmethod
    def line(cls, transform: Transform, finalize: Finalize | None = None, *, name: str = "") -> FilterStage:
        """Build a LINE stage."""
        return cls(transform, Granularity.LINE, finalize, name)


def _as_bytes(value: bytes | None) -> bytes:
    return b"" if value is None else bytes(value)


class StageProcessor(ABC):
    """Runtime state of one stage bound to one open stream."""

    def __init__(self, stage: FilterStage) -> None:
        self.stage = stage
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _call(self, data: bytes) -> bytes:
        try:
            return _as_bytes(self.stage.transform(data))
        except Exception as e:
            self._closed = True
            raise FilterFailure(self.stage.name, e) from e

    def _finalize(self) -> bytes:
        if self.stage.finalize is None:
            return b""
        try:
            return _as_bytes(self.stage.finalize())
        except Exception as e:
            raise FilterFailure(self.stage.name, e) from e

    @abstractmethod
    def feed(self, data: bytes) -> bytes: ...

    def close(self) -> bytes:
        """Flush buffered input and run finalize. Only the first call does anything."""
        if self._closed:
            return b""
        output = self._flush()
        self._closed = True
        return output + self._finalize()

    def _flush(self) -> bytes:
        return b""


class ChunkProcessor(StageProcessor):
    """Passes every read straight to the transform."""

    def feed(self, data: bytes) -> bytes:
        if self._closed or not data:
            return b""
        return self._call(data)


class LineProcessor(StageProcessor):
    """Reassembles lines across reads."""

    def __init__(self, stage: FilterStage) -> None:
        super().__init__(stage)
        self._row = b""

    def feed(self, data: bytes) -> bytes:
        if self._closed or not data:
            return b""
        buffered = self._row + data
        output: list[bytes] = []
        start = 0
        while (pos := buffered.find(b"\n", start)) != -1:
            line = buffered[start : pos + 1]
            start = pos + 1
            output.append(self._call(line))
        self._row = buffered[start:]
        return b"".join(output)

    def _flush(self) -> bytes:
        if not self._row:
            return b""
        row, self._row = self._row, b""
        return self._call(row)


def create_processor(stage: FilterStage) -> StageProcessor:
    if stage.granularity is Granularity.LINE:
        return LineProcessor(stage)
    return ChunkProcessor(stage)


class FilterChain:
    """Ordered stages for one stream of one running process.

    Bytes pass through the processors in order. Once any stage fails the
    chain is failed and closed; nothing further runs.
    """

    def __init__(self, stages: Sequence[FilterStage] = ()) -> None:
        self._processors = [create_processor(stage) for stage in stages]
        self._closed = False
        self._failure: FilterFailure | None = None

    def __len__(self) -> int:
        return len(self._processors)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def failure(self) -> FilterFailure | None:
        return self._failure

    def feed(self, data: bytes) -> bytes:
        """Run bytes through every stage.

        Raises:
            FilterFailure: If a stage raises. The chain is closed afterwards.
        """
        if self._closed:
            return b""
        try:
            for processor in self._processors:
                if not data:
                    break
                data = processor.feed(data)
        except FilterFailure as e:
            self._fail(e)
            raise
        return data

    def close(self) -> bytes:
        """Close every stage in order, feeding flushed output downstream.

        A stage's trailing output still passes through later stages before
        those stages are closed. Idempotent.

        Raises:
            FilterFailure: If a stage raises while flushing or finalizing.
        """
        if self._closed:
            return b""
        self._closed = True
        carry = b""
        try:
            for processor in self._processors:
                output = processor.feed(carry) if carry else b""
                carry = output + processor.close()
        except FilterFailure as e:
            self._fail(e)
            raise
        return carry

    def _fail(self, failure: FilterFailure) -> None:
        self._closed = True
        self._failure = failure
