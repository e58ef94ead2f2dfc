# tests/unit/engine/test_filters.py
"""Tests for FilterStage, stage processors and FilterChain."""

import pytest

from pipewright.contracts.enums import Granularity
from pipewright.contracts.errors import FilterFailure
from pipewright.engine.filters import (
    ChunkProcessor,
    FilterChain,
    FilterStage,
    LineProcessor,
    StageProcessor,
    create_processor,
)
from tests.helpers.processes import Recorder


class TestFilterStage:
    def test_defaults(self) -> None:
        stage = FilterStage(bytes.upper)
        assert stage.granularity is Granularity.CHUNK
        assert stage.finalize is None
        assert stage.supports_finalize is False
        assert stage.name == "upper"

    def test_supports_finalize_follows_finalize(self) -> None:
        stage = FilterStage.line(bytes.upper, lambda: b"done\n", name="upper")
        assert stage.supports_finalize is True
        assert stage.granularity is Granularity.LINE

    def test_granularity_string_coerced(self) -> None:
        assert FilterStage(bytes.upper, "line").granularity is Granularity.LINE  # type: ignore[arg-type]

    def test_rejects_non_callable_transform(self) -> None:
        with pytest.raises(TypeError, match="transform"):
            FilterStage(b"upper")  # type: ignore[arg-type]

    def test_rejects_non_callable_finalize(self) -> None:
        with pytest.raises(TypeError, match="finalize"):
            FilterStage(bytes.upper, finalize="done")  # type: ignore[arg-type]

    def test_name_falls_back_to_type_for_callable_objects(self) -> None:
        assert FilterStage(Recorder()).name == "Recorder"

    def test_create_processor_by_granularity(self) -> None:
        assert isinstance(create_processor(FilterStage.chunk(bytes.upper)), ChunkProcessor)
        assert isinstance(create_processor(FilterStage.line(bytes.upper)), LineProcessor)

    def test_processor_without_feed_cannot_be_built(self) -> None:
        class NoFeed(StageProcessor):
            pass

        with pytest.raises(TypeError, match="abstract"):
            NoFeed(FilterStage(bytes.upper))  # type: ignore[abstract]


class TestChunkProcessor:
    def test_transform_sees_exact_reads(self) -> None:
        recorder = Recorder()
        processor = ChunkProcessor(FilterStage.chunk(recorder))

        assert processor.feed(b"ab\nc") == b"ab\nc"
        assert processor.feed(b"d\n") == b"d\n"
        assert recorder.calls == [b"ab\nc", b"d\n"]

    def test_none_result_means_no_output(self) -> None:
        processor = ChunkProcessor(FilterStage.chunk(lambda data: None))
        assert processor.feed(b"abc") == b""

    def test_empty_input_not_passed_to_transform(self) -> None:
        recorder = Recorder()
        ChunkProcessor(FilterStage.chunk(recorder)).feed(b"")
        assert recorder.calls == []


class TestLineProcessor:
    def test_two_full_lines_in_one_read(self) -> None:
        """A read of b"ab\\ncd\\n" gives exactly two calls, newlines included."""
        recorder = Recorder()
        processor = LineProcessor(FilterStage.line(recorder))

        assert processor.feed(b"ab\ncd\n") == b"ab\ncd\n"
        assert recorder.calls == [b"ab\n", b"cd\n"]
        assert processor.close() == b""
        assert recorder.calls == [b"ab\n", b"cd\n"]

    def test_partial_line_delivered_once_at_close(self) -> None:
        recorder = Recorder()
        processor = LineProcessor(FilterStage.line(recorder))

        processor.feed(b"ab\ncd")
        assert recorder.calls == [b"ab\n"]
        assert processor.close() == b"cd"
        assert recorder.calls == [b"ab\n", b"cd"]

    def test_line_reassembled_across_reads(self) -> None:
        recorder = Recorder()
        processor = LineProcessor(FilterStage.line(recorder))

        assert processor.feed(b"he") == b""
        assert processor.feed(b"llo\nwor") == b"hello\n"
        assert processor.feed(b"ld\n") == b"world\n"
        assert recorder.calls == [b"hello\n", b"world\n"]

    def test_empty_lines_are_lines(self) -> None:
        recorder = Recorder()
        LineProcessor(FilterStage.line(recorder)).feed(b"\n\n")
        assert recorder.calls == [b"\n", b"\n"]

    def test_close_is_idempotent(self) -> None:
        finalized: list[int] = []
        processor = LineProcessor(FilterStage.line(bytes.upper, lambda: finalized.append(1) or b"end"))

        processor.feed(b"tail")
        assert processor.close() == b"TAILend"
        assert processor.close() == b""
        assert finalized == [1]

    def test_feed_after_close_ignored(self) -> None:
        recorder = Recorder()
        processor = LineProcessor(FilterStage.line(recorder))
        processor.close()
        assert processor.feed(b"late\n") == b""
        assert recorder.calls == []


class TestStageFailure:
    def test_transform_exception_wrapped(self) -> None:
        def explode(data: bytes) -> bytes:
            raise ValueError("bad data")

        processor = ChunkProcessor(FilterStage.chunk(explode, name="exploder"))
        with pytest.raises(FilterFailure) as exc_info:
            processor.feed(b"x")

        assert exc_info.value.stage_name == "exploder"
        assert isinstance(exc_info.value.cause, ValueError)
        assert exc_info.value.__cause__ is exc_info.value.cause
        assert processor.closed

    def test_finalize_exception_wrapped(self) -> None:
        def bad_finalize() -> bytes:
            raise RuntimeError("cannot finish")

        processor = ChunkProcessor(FilterStage.chunk(bytes.upper, bad_finalize, name="upper"))
        with pytest.raises(FilterFailure, match="cannot finish"):
            processor.close()


class TestFilterChain:
    def test_empty_chain_passes_bytes_through(self) -> None:
        chain = FilterChain()
        assert len(chain) == 0
        assert chain.feed(b"abc") == b"abc"
        assert chain.close() == b""

    def test_stages_run_in_order(self) -> None:
        chain = FilterChain([FilterStage.chunk(lambda d: d + b"1"), FilterStage.chunk(lambda d: d + b"2")])
        assert chain.feed(b"x") == b"x12"

    def test_empty_output_short_circuits(self) -> None:
        later = Recorder()
        chain = FilterChain([FilterStage.chunk(lambda d: b""), FilterStage.chunk(later)])
        assert chain.feed(b"x") == b""
        assert later.calls == []

    def test_close_carries_flushed_bytes_through_later_stages(self) -> None:
        """A partial line flushed at close still runs through the stages after it."""
        chain = FilterChain([FilterStage.line(lambda d: d), FilterStage.chunk(bytes.upper)])
        assert chain.feed(b"ab\ncd") == b"AB\n"
        assert chain.close() == b"CD"

    def test_finalize_output_flows_downstream(self) -> None:
        count = {"lines": 0}

        def counting(data: bytes) -> None:
            count["lines"] += 1

        chain = FilterChain(
            [
                FilterStage.line(counting, lambda: f"{count['lines']}\n".encode(), name="count"),
                FilterStage.line(lambda d: b"total: " + d, name="label"),
            ]
        )
        assert chain.feed(b"a\nb\nc\n") == b""
        assert chain.close() == b"total: 3\n"

    def test_failure_on_second_chunk_closes_chain(self) -> None:
        calls: list[bytes] = []

        def second_fails(data: bytes) -> bytes:
            calls.append(data)
            if len(calls) == 2:
                raise RuntimeError("second chunk")
            return data

        chain = FilterChain([FilterStage.chunk(second_fails, name="picky")])
        assert chain.feed(b"one") == b"one"
        with pytest.raises(FilterFailure):
            chain.feed(b"two")

        assert chain.closed
        assert chain.failure is not None
        assert chain.failure.stage_name == "picky"
        assert chain.feed(b"three") == b""
        assert chain.close() == b""
        assert calls == [b"one", b"two"]

    def test_close_is_idempotent(self) -> None:
        finalized: list[int] = []
        chain = FilterChain([FilterStage.chunk(bytes.upper, lambda: finalized.append(1) or b"!")])
        assert chain.close() == b"!"
        assert chain.close() == b""
        assert finalized == [1]

    def test_failure_during_close_marks_chain_failed(self) -> None:
        def bad_finalize() -> bytes:
            raise RuntimeError("no")

        chain = FilterChain([FilterStage.chunk(bytes.upper, bad_finalize, name="bad")])
        with pytest.raises(FilterFailure):
            chain.close()
        assert chain.failure is not None
