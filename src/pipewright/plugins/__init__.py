"""Filter plugin system: hookspecs, base classes, registry and built-ins.

Example:
    from pipewright.plugins import FilterRegistry

    registry = FilterRegistry()
    registry.register_builtin_plugins()
    stage = registry.create_stage("prefix", {"text": "[err] "})
"""

from pipewright.plugins.base import BaseFilter, FilterConfig
from pipewright.plugins.hookspecs import hookimpl
from pipewright.plugins.manager import FilterRegistry, UnknownPluginError

__all__ = [
    "BaseFilter",
    "FilterConfig",
    "FilterRegistry",
    "UnknownPluginError",
    "hookimpl",
]
