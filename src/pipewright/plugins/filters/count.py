"""Count filter plugin: replace a stream by its line count, like ``wc -l``."""

from pipewright.contracts.enums import Granularity
from pipewright.plugins.base import BaseFilter, FilterConfig


class Count(BaseFilter):
    """Swallow every line and emit ``"<n>\\n"`` when the stream closes.

    A trailing line without newline counts as a line.

    Example config:
        - plugin: count
    """

    name = "count"
    granularity = Granularity.LINE
    config_model = FilterConfig
    description = "Emit the number of lines at end of stream"

    def __init__(self, options: dict | None = None) -> None:
        super().__init__(options)
        self._lines = 0

    def transform(self, data: bytes) -> None:
        self._lines += 1

    def finalize(self) -> bytes:
        return f"{self._lines}\n".encode()
