# src/pipewright/plugins/base.py
"""Base classes for filter plugins.

A filter plugin is a named, configurable factory for FilterStages. The
registry instantiates the plugin class once per stage, so per-stage state
(counters, buffers) never leaks between streams or runs.

Example:
    class UpperConfig(FilterConfig):
        only_ascii: bool = True

    class Upper(BaseFilter):
        name = "upper"
        granularity = Granularity.CHUNK
        config_model = UpperConfig

        def transform(self, data: bytes) -> bytes:
            return data.upper()
"""

from abc import ABC, abstractmethod
from typing import Any, ClassVar, Self

from pydantic import BaseModel, ValidationError

from pipewright.contracts.enums import Granularity
from pipewright.contracts.errors import PluginConfigError
from pipewright.engine.filters import FilterStage


class FilterConfig(BaseModel):
    """Base class for typed filter plugin options.

    Unknown fields are rejected.
    """

    model_config = {"extra": "forbid", "frozen": True}

    @classmethod
    def from_dict(cls, config: dict[str, Any]) -> Self:
        """Create config from dict with clear error on validation failure.

        Raises:
            PluginConfigError: If configuration is invalid.
        """
        if not isinstance(config, dict):
            raise PluginConfigError(f"Invalid configuration for {cls.__name__}: config must be a dict, got {type(config).__name__}.")
        try:
            return cls.model_validate(config)
        except ValidationError as e:
            raise PluginConfigError(f"Invalid configuration for {cls.__name__}: {e}") from e


class BaseFilter(ABC):
    """Base class for filter plugins.

    Subclasses set ``name``, ``granularity`` and ``config_model`` and
    implement ``transform``. Override ``finalize`` to emit bytes when the
    stream closes; stages only get a finalize callback when the subclass
    overrides it.
    """

    name: ClassVar[str]
    granularity: ClassVar[Granularity] = Granularity.CHUNK
    config_model: ClassVar[type[FilterConfig]] = FilterConfig
    description: ClassVar[str] = ""

    def __init__(self, options: dict[str, Any] | None = None) -> None:
        self.config = self.config_model.from_dict(options if options is not None else {})

    @abstractmethod
    def transform(self, data: bytes) -> bytes | None:
        """Process one chunk or line, depending on ``granularity``."""
        ...

    def finalize(self) -> bytes | None:
        return None

    @classmethod
    def supports_finalize(cls) -> bool:
        return cls.finalize is not BaseFilter.finalize

    def create_stage(self) -> FilterStage:
        """Wrap this plugin instance in a FilterStage."""
        return FilterStage(
            self.transform,
            self.granularity,
            self.finalize if self.supports_finalize() else None,
            self.name,
        )
