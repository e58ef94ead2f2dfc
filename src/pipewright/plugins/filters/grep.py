"""Grep filter plugin: keep (or drop) lines matching regex patterns."""

import re

from pydantic import Field, field_validator

from pipewright.contracts.enums import Granularity
from pipewright.plugins.base import BaseFilter, FilterConfig

# Nested quantifiers such as (a+)+ backtrack catastrophically on adversarial
# input. Patterns come from operator-authored config, so this check plus a
# length cap is enough.
_NESTED_QUANTIFIER_RE = re.compile(r"[+*]\)[+*{]|\([^)]*[+*][^)]*\)[+*{]")

_MAX_PATTERN_LENGTH = 1000


def _validate_regex_safety(pattern: str) -> None:
    """Reject regex patterns with known ReDoS-prone constructs.

    Raises:
        ValueError: If pattern is too long or contains nested quantifiers
    """
    if len(pattern) > _MAX_PATTERN_LENGTH:
        raise ValueError(f"Regex pattern exceeds maximum length ({_MAX_PATTERN_LENGTH} chars): {pattern[:50]}...")
    if _NESTED_QUANTIFIER_RE.search(pattern):
        raise ValueError(f"Regex pattern contains nested quantifiers (ReDoS risk): {pattern}")


class GrepConfig(FilterConfig):
    """Configuration for grep filter.

    Requires:
        patterns: Regex patterns; a line matches if ANY pattern is found
    """

    patterns: list[str] = Field(
        ...,
        description="Regex patterns searched in each line",
    )
    invert: bool = Field(
        default=False,
        description="Drop matching lines instead of keeping them",
    )
    ignore_case: bool = Field(default=False)

    @field_validator("patterns")
    @classmethod
    def validate_patterns(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("patterns cannot be empty")
        for pattern in v:
            _validate_regex_safety(pattern)
            re.compile(pattern)
        return v


class Grep(BaseFilter):
    """Keep lines matching any pattern (or drop them with ``invert``).

    Lines are decoded as UTF-8 with replacement for matching only; the
    bytes passed on are the original line.

    Example config:
        - plugin: grep
          options:
            patterns: ["ERROR", "WARN(ING)?"]
            invert: false
    """

    name = "grep"
    granularity = Granularity.LINE
    config_model = GrepConfig
    description = "Keep or drop lines matching regex patterns"

    def __init__(self, options: dict | None = None) -> None:
        super().__init__(options)
        cfg: GrepConfig = self.config  # type: ignore[assignment]
        flags = re.IGNORECASE if cfg.ignore_case else 0
        self._patterns = [re.compile(p, flags) for p in cfg.patterns]
        self._invert = cfg.invert

    def transform(self, data: bytes) -> bytes:
        text = data.decode("utf-8", errors="replace")
        matched = any(p.search(text) for p in self._patterns)
        if matched != self._invert:
            return data
        return b""
