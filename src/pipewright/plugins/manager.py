# src/pipewright/plugins/manager.py
"""Filter registry: discovery, registration and stage creation.

Uses pluggy for hook-based plugin registration. A registry is an explicit
object the caller creates (the CLI builds one per invocation); there is no
process-wide registration cache.
"""

from typing import Any

import pluggy

from pipewright.contracts.errors import ConfigError
from pipewright.engine.filters import FilterStage
from pipewright.plugins.base import BaseFilter
from pipewright.plugins.hookspecs import PROJECT_NAME, PipewrightFilterSpec


class UnknownPluginError(ConfigError, KeyError):
    """Raised when a filter plugin name is not registered."""

    def __init__(self, name: str, available: list[str]) -> None:
        self.name = name
        self.available = available
        super().__init__(f"Unknown filter plugin '{name}'. Available: {', '.join(available) or '(none)'}")

    def __str__(self) -> str:
        return str(self.args[0])


class FilterRegistry:
    """Manages filter plugin registration and lookup.

    Usage:
        registry = FilterRegistry()
        registry.register_builtin_plugins()

        stage = registry.create_stage("grep", {"patterns": ["ERROR"]})
        node.append_filter(StdStream.STDOUT, stage)
    """

    def __init__(self) -> None:
        self._pm = pluggy.PluginManager(PROJECT_NAME)
        self._pm.add_hookspecs(PipewrightFilterSpec)
        self._filters: dict[str, type[BaseFilter]] = {}

    def register_builtin_plugins(self) -> None:
        """Register the filters shipped with pipewright."""
        from pipewright.plugins.filters import BuiltinFilters

        self.register(BuiltinFilters())

    def register(self, plugin: Any) -> None:
        """Register an object implementing ``pipewright_get_filters``.

        Raises:
            ValueError: If a filter name is already registered. The registry
                is left unchanged.
        """
        self._pm.register(plugin)
        try:
            self._refresh_cache()
        except ValueError:
            self._pm.unregister(plugin)
            raise

    def _refresh_cache(self) -> None:
        new_filters: dict[str, type[BaseFilter]] = {}
        for filters in self._pm.hook.pipewright_get_filters():
            for cls in filters:
                name = cls.name
                if name in new_filters:
                    raise ValueError(f"Duplicate filter plugin name: '{name}'. Already registered by {new_filters[name].__name__}")
                new_filters[name] = cls
        self._filters = new_filters

    # === Lookup ===

    def get_filters(self) -> list[type[BaseFilter]]:
        """All registered filter classes, sorted by name."""
        return [self._filters[name] for name in sorted(self._filters)]

    def get_filter_by_name(self, name: str) -> type[BaseFilter] | None:
        return self._filters.get(name)

    def create_stage(self, name: str, options: dict[str, Any] | None = None) -> FilterStage:
        """Instantiate a filter plugin and wrap it in a FilterStage.

        Raises:
            UnknownPluginError: If no filter with that name is registered
            PluginConfigError: If the options are invalid for the plugin
        """
        cls = self._filters.get(name)
        if cls is None:
            raise UnknownPluginError(name, sorted(self._filters))
        return cls(options).create_stage()
