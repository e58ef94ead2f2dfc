"""Truncate filter plugin: cap line length."""

from pydantic import Field, model_validator

from pipewright.contracts.enums import Granularity
from pipewright.plugins.base import BaseFilter, FilterConfig


class TruncateConfig(FilterConfig):
    """Configuration for truncate filter."""

    max_length: int = Field(
        ...,
        gt=0,
        description="Maximum line length in bytes, excluding the newline",
    )
    suffix: str = Field(
        default="",
        description="Suffix to append when truncating (e.g., '...'). Counts toward max length.",
    )

    @model_validator(mode="after")
    def validate_suffix_fits(self) -> "TruncateConfig":
        if len(self.suffix.encode("utf-8")) >= self.max_length:
            raise ValueError(f"Suffix length must be less than max_length ({self.max_length})")
        return self


class Truncate(BaseFilter):
    """Truncate each line to ``max_length`` bytes, keeping its newline.

    Example config:
        - plugin: truncate
          options:
            max_length: 120
            suffix: "..."
    """

    name = "truncate"
    granularity = Granularity.LINE
    config_model = TruncateConfig
    description = "Cap line length"

    def __init__(self, options: dict | None = None) -> None:
        super().__init__(options)
        cfg: TruncateConfig = self.config  # type: ignore[assignment]
        self._max_length = cfg.max_length
        self._suffix = cfg.suffix.encode("utf-8")

    def transform(self, data: bytes) -> bytes:
        body, newline = (data[:-1], b"\n") if data.endswith(b"\n") else (data, b"")
        if len(body) <= self._max_length:
            return data
        keep = self._max_length - len(self._suffix)
        return body[:keep] + self._suffix + newline
