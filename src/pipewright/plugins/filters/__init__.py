"""Built-in filter plugins.

Registered with a FilterRegistry through the BuiltinFilters hook
implementation.
"""

from pipewright.plugins.base import BaseFilter
from pipewright.plugins.filters.count import Count
from pipewright.plugins.filters.grep import Grep
from pipewright.plugins.filters.passthrough import PassThrough
from pipewright.plugins.filters.prefix import Prefix
from pipewright.plugins.filters.truncate import Truncate
from pipewright.plugins.hookspecs import hookimpl

BUILTIN_FILTERS: list[type[BaseFilter]] = [PassThrough, Grep, Truncate, Prefix, Count]


class BuiltinFilters:
    """Hook implementation contributing the built-in filters."""

    @hookimpl
    def pipewright_get_filters(self) -> list[type[BaseFilter]]:
        return list(BUILTIN_FILTERS)


__all__ = ["BUILTIN_FILTERS", "BuiltinFilters", "Count", "Grep", "PassThrough", "Prefix", "Truncate"]
