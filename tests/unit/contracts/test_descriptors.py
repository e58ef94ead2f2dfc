# tests/unit/contracts/test_descriptors.py
"""Tests for descriptor spec parsing and mode checks."""

import os
from pathlib import Path

import pytest

from pipewright.contracts.descriptors import (
    ChainedInput,
    FileSpec,
    HandleSpec,
    InheritSpec,
    PipeSpec,
    check_mode,
    default_descriptor,
    parse_descriptor,
)
from pipewright.contracts.enums import DescriptorKind, PipeMode, StdStream
from pipewright.contracts.errors import InvalidSpec


class TestParseDescriptor:
    """parse_descriptor normalises every accepted input shape."""

    def test_none_means_inherit(self) -> None:
        assert parse_descriptor(None) == InheritSpec()

    def test_spec_instances_returned_unchanged(self) -> None:
        spec = PipeSpec(mode=PipeMode.WRITE)
        assert parse_descriptor(spec) is spec

    def test_pipe_sequence(self) -> None:
        """("pipe", "w") is the short form of a write pipe."""
        spec = parse_descriptor(("pipe", "w"))
        assert isinstance(spec, PipeSpec)
        assert spec.mode is PipeMode.WRITE

    def test_pipe_sequence_accepts_long_mode(self) -> None:
        spec = parse_descriptor(["pipe", "read"])
        assert isinstance(spec, PipeSpec)
        assert spec.mode is PipeMode.READ

    def test_file_sequence(self, tmp_path: Path) -> None:
        spec = parse_descriptor(("file", str(tmp_path / "out.txt"), "w"))
        assert isinstance(spec, FileSpec)
        assert spec.path == tmp_path / "out.txt"
        assert spec.mode is PipeMode.WRITE

    def test_inherit_sequence(self) -> None:
        assert parse_descriptor(("inherit",)) == InheritSpec()

    def test_mapping_form(self) -> None:
        spec = parse_descriptor({"kind": "pipe", "mode": "r"})
        assert spec == PipeSpec(mode=PipeMode.READ)

    def test_raw_fd_becomes_handle(self) -> None:
        spec = parse_descriptor(2)
        assert isinstance(spec, HandleSpec)
        assert spec.fileno() == 2
        assert spec.kind is DescriptorKind.HANDLE

    def test_object_with_fileno_becomes_handle(self) -> None:
        read_fd, write_fd = os.pipe()
        try:
            with os.fdopen(write_fd, "wb", closefd=False) as handle:
                spec = parse_descriptor(handle)
                assert isinstance(spec, HandleSpec)
                assert spec.fileno() == write_fd
        finally:
            os.close(read_fd)
            os.close(write_fd)

    @pytest.mark.parametrize(
        "value",
        [
            ("pipe",),
            ("pipe", "w", "extra"),
            ("file", "out.txt"),
            ("socket", "w"),
            (),
            ("pipe", "x"),
            {"kind": "pipe", "mode": "w", "buffer": 10},
            {"kind": "pipe"},
            {"kind": "file", "path": "", "mode": "w"},
            {"kind": "fifo", "mode": "w"},
            "pipe",
            b"pipe",
            -1,
            True,
            3.5,
        ],
    )
    def test_malformed_specs_rejected(self, value: object) -> None:
        """Every malformed shape fails at parse time with InvalidSpec."""
        with pytest.raises(InvalidSpec):
            parse_descriptor(value)

    def test_invalid_spec_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            parse_descriptor(("pipe", "sideways"))

    def test_structural_specs_are_frozen(self) -> None:
        from pydantic import ValidationError

        spec = PipeSpec(mode=PipeMode.WRITE)
        with pytest.raises(ValidationError):
            spec.mode = PipeMode.READ  # type: ignore[misc]


class TestCheckMode:
    """A pipe or file mode must match how the child uses the stream."""

    @pytest.mark.parametrize(
        ("stream", "mode"),
        [
            (StdStream.STDIN, PipeMode.READ),
            (StdStream.STDOUT, PipeMode.WRITE),
            (StdStream.STDERR, PipeMode.WRITE),
        ],
    )
    def test_matching_mode_accepted(self, stream: StdStream, mode: PipeMode) -> None:
        check_mode(stream, PipeSpec(mode=mode))

    @pytest.mark.parametrize(
        ("stream", "mode"),
        [
            (StdStream.STDIN, PipeMode.WRITE),
            (StdStream.STDOUT, PipeMode.READ),
            (StdStream.STDERR, PipeMode.READ),
        ],
    )
    def test_contradicting_mode_rejected(self, stream: StdStream, mode: PipeMode) -> None:
        with pytest.raises(InvalidSpec, match=stream.label):
            check_mode(stream, PipeSpec(mode=mode))

    def test_file_mode_checked_too(self, tmp_path: Path) -> None:
        with pytest.raises(InvalidSpec):
            check_mode(StdStream.STDIN, FileSpec(path=tmp_path / "in.txt", mode=PipeMode.WRITE))

    def test_modeless_specs_fit_any_stream(self) -> None:
        for stream in StdStream:
            check_mode(stream, InheritSpec())
            check_mode(stream, HandleSpec(1))


class TestDefaults:
    def test_stdin_inherits(self) -> None:
        assert default_descriptor(StdStream.STDIN) == InheritSpec()

    @pytest.mark.parametrize("stream", [StdStream.STDOUT, StdStream.STDERR])
    def test_outputs_are_write_pipes(self, stream: StdStream) -> None:
        assert default_descriptor(stream) == PipeSpec(mode=PipeMode.WRITE)

    def test_chained_input_is_write_side(self) -> None:
        from pipewright.engine.command import CommandNode

        link = ChainedInput(CommandNode("cat"))
        assert link.mode is PipeMode.WRITE
        assert link.kind is DescriptorKind.CHAIN
