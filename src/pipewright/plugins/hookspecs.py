# src/pipewright/plugins/hookspecs.py
"""pluggy hook specifications for pipewright filter plugins.

Plugins implement these hooks to register filter classes with a
FilterRegistry.

Usage (implementing a plugin):
    from pipewright.plugins.hookspecs import hookimpl

    class MyFilters:
        @hookimpl  # NOT @hookspec - that's for defining specs
        def pipewright_get_filters(self):
            return [MyFilter]

    registry.register(MyFilters())
"""

from typing import TYPE_CHECKING

import pluggy

if TYPE_CHECKING:
    from pipewright.plugins.base import BaseFilter

# Project name for pluggy
PROJECT_NAME = "pipewright"

# Hook specification marker
hookspec = pluggy.HookspecMarker(PROJECT_NAME)

# Hook implementation marker (for plugins to use)
hookimpl = pluggy.HookimplMarker(PROJECT_NAME)


class PipewrightFilterSpec:
    """Hook specifications for stream filter plugins."""

    @hookspec
    def pipewright_get_filters(self) -> list[type["BaseFilter"]]:  # type: ignore[empty-body]
        """Return filter plugin classes.

        Returns:
            List of BaseFilter subclasses (not instances)
        """
