# src/pipewright/core/logging.py
"""Logging for pipewright runs.

Every record, whether it comes from structlog (the engine) or from a plain
``logging.getLogger()`` user, is rendered by one structlog processor chain
attached to a single stderr handler. stdout belongs to the pipeline output
the CLI forwards and never receives log lines.

Context:
    The scheduler wraps each run in ``chain_context()``, so records emitted
    by any pump of that run carry ``chain`` (the root program) without the
    pumps knowing about each other. Pumps bind ``program`` and, once
    spawned, ``pid`` themselves.

Exit statuses:
    A record carrying a negative ``exit_code`` (child killed by a signal)
    also gets the signal name, e.g. ``exit_signal="SIGTERM"``.
"""

import logging
import signal
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, TextIO

import structlog
from structlog.stdlib import ProcessorFormatter


def _drop_formatter_fields(
    logger: logging.Logger | None,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    # ProcessorFormatter always injects these two keys
    del event_dict["_record"]
    del event_dict["_from_structlog"]
    return event_dict


def _name_exit_signal(
    logger: logging.Logger | None,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    exit_code = event_dict.get("exit_code")
    if isinstance(exit_code, int) and exit_code < 0:
        try:
            event_dict["exit_signal"] = signal.Signals(-exit_code).name
        except ValueError:
            event_dict["exit_signal"] = f"signal {-exit_code}"
    return event_dict


def _parse_level(level: str) -> int:
    levels = logging.getLevelNamesMapping()
    try:
        return levels[level.upper()]
    except KeyError:
        raise ValueError(f"Unknown log level {level!r}, expected one of DEBUG, INFO, WARNING, ERROR") from None


def configure_logging(
    *,
    json_output: bool = False,
    level: str = "INFO",
    stream: TextIO | None = None,
) -> None:
    """Route structlog and stdlib logging through one stderr handler.

    Calling it again replaces the previous handler.

    Args:
        json_output: One JSON object per line instead of console text.
        level: DEBUG, INFO, WARNING or ERROR.
        stream: Where records are written (default: sys.stderr at call time).

    Raises:
        ValueError: If ``level`` is not a logging level name.
    """
    log_level = _parse_level(level)

    pre_chain: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        _name_exit_signal,
        structlog.processors.StackInfoRenderer(),
    ]
    renderer: Any = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(colors=False)
    render_chain: list[Any] = [_drop_formatter_fields]
    if json_output:
        render_chain.append(structlog.processors.format_exc_info)
    render_chain.append(renderer)

    structlog.configure(
        processors=[*pre_chain, ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        # Tests reconfigure logging; cached loggers would keep the old config
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(ProcessorFormatter(processors=render_chain, foreign_pre_chain=pre_chain))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level)


@contextmanager
def chain_context(root: str, members: int) -> Iterator[None]:
    """Tag every record logged inside the block with the chain it belongs to."""
    with structlog.contextvars.bound_contextvars(chain=root, members=members):
        yield


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Structlog logger for a module (pass ``__name__``)."""
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger
