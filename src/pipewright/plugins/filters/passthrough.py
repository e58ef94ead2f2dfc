"""PassThrough filter plugin.

Passes chunks through unchanged. Useful for testing filter wiring.
"""

from pipewright.contracts.enums import Granularity
from pipewright.plugins.base import BaseFilter, FilterConfig


class PassThrough(BaseFilter):
    """Pass bytes through unchanged.

    Example config:
        - plugin: passthrough
    """

    name = "passthrough"
    granularity = Granularity.CHUNK
    config_model = FilterConfig
    description = "Pass bytes through unchanged"

    def transform(self, data: bytes) -> bytes:
        return data
