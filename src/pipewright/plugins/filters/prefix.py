"""Prefix filter plugin: tag every line, e.g. to tell stderr from stdout."""

from pydantic import Field

from pipewright.contracts.enums import Granularity
from pipewright.plugins.base import BaseFilter, FilterConfig


class PrefixConfig(FilterConfig):
    text: str = Field(..., min_length=1, description="Text prepended to every line")


class Prefix(BaseFilter):
    """Prepend ``text`` to every line.

    Example config:
        - plugin: prefix
          options:
            text: "[build] "
    """

    name = "prefix"
    granularity = Granularity.LINE
    config_model = PrefixConfig
    description = "Prepend text to every line"

    def __init__(self, options: dict | None = None) -> None:
        super().__init__(options)
        cfg: PrefixConfig = self.config  # type: ignore[assignment]
        self._prefix = cfg.text.encode("utf-8")

    def transform(self, data: bytes) -> bytes:
        return self._prefix + data
