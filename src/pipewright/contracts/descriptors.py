# src/pipewright/contracts/descriptors.py
"""Descriptor specifications: what a child's standard stream connects to.

A descriptor spec is a tagged variant:

- InheritSpec: the child inherits the parent's stream
- PipeSpec(mode): an anonymous pipe
- FileSpec(path, mode): a file opened for reading or writing
- HandleSpec(handle): a raw OS handle supplied by the caller
- ChainedInput(peer): the stdin of another CommandNode

Structural specs (inherit/pipe/file) are pydantic models with
``extra="forbid"`` so a malformed mapping fails when it is parsed, never
later at spawn time. Mappings and the positional ``("pipe", "w")`` /
``("file", path, "r")`` forms both go through the same validation.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any, Literal, Protocol, runtime_checkable

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator

from pipewright.contracts.enums import DescriptorKind, PipeMode, StdStream
from pipewright.contracts.errors import InvalidSpec

if TYPE_CHECKING:
    from pipewright.engine.command import CommandNode

_MODE_ALIASES: dict[str, str] = {"r": "read", "w": "write"}


@runtime_checkable
class SupportsFileno(Protocol):
    """Anything that exposes an OS file descriptor (files, sockets, pipes)."""

    def fileno(self) -> int: ...


def _normalise_mode(value: Any) -> Any:
    if isinstance(value, str):
        return _MODE_ALIASES.get(value.lower(), value.lower())
    return value


class InheritSpec(BaseModel):
    """The child inherits the parent's stream."""

    model_config = {"extra": "forbid", "frozen": True}

    kind: Literal["inherit"] = "inherit"

    @property
    def mode(self) -> None:
        return None


class PipeSpec(BaseModel):
    """An anonymous pipe between parent and child.

    ``mode`` is the end the CHILD uses: stdin pipes are ``read``,
    stdout/stderr pipes are ``write``.
    """

    model_config = {"extra": "forbid", "frozen": True}

    kind: Literal["pipe"] = "pipe"
    mode: PipeMode

    @field_validator("mode", mode="before")
    @classmethod
    def normalise_mode(cls, v: Any) -> Any:
        return _normalise_mode(v)


class FileSpec(BaseModel):
    """A file the child reads from (stdin) or writes to (stdout/stderr).

    Write mode truncates the file, matching shell ``>`` redirection.
    """

    model_config = {"extra": "forbid", "frozen": True}

    kind: Literal["file"] = "file"
    path: Path
    mode: PipeMode

    @field_validator("mode", mode="before")
    @classmethod
    def normalise_mode(cls, v: Any) -> Any:
        return _normalise_mode(v)

    @field_validator("path")
    @classmethod
    def validate_path_not_empty(cls, v: Path) -> Path:
        if str(v) in ("", "."):
            raise ValueError("file path must not be empty")
        return v


@dataclass(frozen=True, eq=False)
class HandleSpec:
    """A raw OS handle the caller already owns.

    The pump passes the handle straight to the child and never closes it;
    the caller keeps ownership.
    """

    handle: int | SupportsFileno

    kind = DescriptorKind.HANDLE
    mode = None

    def fileno(self) -> int:
        if isinstance(self.handle, int):
            return self.handle
        return self.handle.fileno()


@dataclass(frozen=True, eq=False)
class ChainedInput:
    """Link to the stdin of a peer command.

    Non-owning: the peer belongs to whoever created it. Only valid on
    stdout/stderr.
    """

    peer: CommandNode

    kind = DescriptorKind.CHAIN
    mode = PipeMode.WRITE


StructuralSpec = InheritSpec | PipeSpec | FileSpec
DescriptorSpec = InheritSpec | PipeSpec | FileSpec | HandleSpec | ChainedInput

_structural_adapter: TypeAdapter[StructuralSpec] = TypeAdapter(
    Annotated[InheritSpec | PipeSpec | FileSpec, Field(discriminator="kind")]
)


def _from_sequence(value: Sequence[Any]) -> dict[str, Any]:
    """Convert ``("pipe", "w")`` / ``("file", path, "r")`` to mapping form."""
    if len(value) == 0:
        raise InvalidSpec("Descriptor spec sequence must not be empty")
    kind = value[0]
    if kind == DescriptorKind.PIPE:
        if len(value) != 2:
            raise InvalidSpec(f"Pipe spec requires exactly (kind, mode), got {list(value)!r}")
        return {"kind": kind, "mode": value[1]}
    if kind == DescriptorKind.FILE:
        if len(value) != 3:
            raise InvalidSpec(f"File spec requires exactly (kind, path, mode), got {list(value)!r}")
        return {"kind": kind, "path": value[1], "mode": value[2]}
    if kind == DescriptorKind.INHERIT and len(value) == 1:
        return {"kind": kind}
    raise InvalidSpec(f"Unknown descriptor spec {list(value)!r}")


def parse_descriptor(value: Any) -> DescriptorSpec:
    """Normalise a caller-supplied descriptor value into a DescriptorSpec.

    Accepts:
        None: inherit
        int / object with fileno(): raw handle
        DescriptorSpec instance: returned unchanged
        Mapping: ``{"kind": "pipe", "mode": ...}`` or
            ``{"kind": "file", "path": ..., "mode": ...}`` or ``{"kind": "inherit"}``
        Sequence: ``("pipe", mode)`` or ``("file", path, mode)``

    Raises:
        InvalidSpec: For any other shape, unknown keys, or invalid mode.
    """
    if value is None:
        return InheritSpec()
    if isinstance(value, (InheritSpec, PipeSpec, FileSpec, HandleSpec, ChainedInput)):
        return value
    if isinstance(value, bool):
        raise InvalidSpec("Descriptor spec must not be a bool")
    if isinstance(value, int):
        if value < 0:
            raise InvalidSpec(f"File descriptor must be non-negative, got {value}")
        return HandleSpec(value)
    if isinstance(value, SupportsFileno):
        return HandleSpec(value)
    if isinstance(value, Mapping):
        raw: Any = dict(value)
    elif isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
        raw = _from_sequence(value)
    else:
        raise InvalidSpec(f"Descriptor spec must be a handle, mapping, sequence or command, got {type(value).__name__}")

    try:
        return _structural_adapter.validate_python(raw)
    except ValidationError as e:
        raise InvalidSpec(f"Invalid descriptor spec {raw!r}: {e}") from e


def check_mode(stream: StdStream, spec: DescriptorSpec) -> None:
    """Reject a pipe/file whose mode contradicts how the child uses the stream.

    Raises:
        InvalidSpec: e.g. a write-mode pipe on stdin.
    """
    mode = spec.mode
    if mode is not None and mode != stream.child_mode:
        raise InvalidSpec(
            f"{spec.kind} spec with mode '{mode}' cannot be used for {stream.label} "
            f"(the child {stream.child_mode}s this stream)"
        )


def default_descriptor(stream: StdStream) -> DescriptorSpec:
    """Descriptor a fresh command uses: inherited stdin, piped stdout/stderr."""
    if stream is StdStream.STDIN:
        return InheritSpec()
    return PipeSpec(mode=PipeMode.WRITE)
