# src/pipewright/cli.py
"""pipewright Command Line Interface.

Entry point for the pipewright CLI tool. The pipeline's own stdout/stderr
are written to the CLI's stdout/stderr; logs and summaries go to stderr.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import typer
from dynaconf.vendor.ruamel.yaml.parser import ParserError as YamlParserError
from dynaconf.vendor.ruamel.yaml.scanner import ScannerError as YamlScannerError
from pydantic import ValidationError

from pipewright import __version__
from pipewright.contracts.enums import StdStream
from pipewright.contracts.errors import ConfigError, SchedulerTimeout, SpawnFailure
from pipewright.core.config import PipewrightSettings, build_chain, load_settings

if TYPE_CHECKING:
    from pipewright.contracts.results import RunResult
    from pipewright.plugins.manager import FilterRegistry

__all__ = ["app"]

# Exit statuses follow shell conventions
EXIT_CONFIG_ERROR = 2
EXIT_TIMEOUT = 124
EXIT_SPAWN_FAILURE = 127
EXIT_INTERRUPTED = 130

app = typer.Typer(
    name="pipewright",
    help="pipewright: programmable process pipelines with stream filters.",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"pipewright version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """pipewright: programmable process pipelines with stream filters."""


def _get_registry() -> FilterRegistry:
    from pipewright.plugins.manager import FilterRegistry

    registry = FilterRegistry()
    registry.register_builtin_plugins()
    return registry


def _format_error(title: str, message: str, details: list[str] | None = None) -> None:
    typer.secho(f"{title}: {message}", fg=typer.colors.RED, err=True)
    for detail in details or []:
        typer.secho(f"  - {detail}", fg=typer.colors.RED, err=True)


def _load(settings: str) -> PipewrightSettings:
    """Load settings or exit with a readable error."""
    settings_path = Path(settings).expanduser()
    try:
        return load_settings(settings_path)
    except FileNotFoundError:
        _format_error("Error", f"Settings file not found: {settings_path}")
        raise typer.Exit(EXIT_CONFIG_ERROR) from None
    except (YamlParserError, YamlScannerError) as e:
        details = [str(e.problem)] if hasattr(e, "problem") else None
        _format_error("YAML Syntax Error", f"Failed to parse {settings_path.name}", details)
        raise typer.Exit(EXIT_CONFIG_ERROR) from None
    except ValidationError as e:
        details = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
        _format_error("Configuration Error", f"{settings_path.name} is invalid", details)
        raise typer.Exit(EXIT_CONFIG_ERROR) from None


def _write_stdout(data: bytes) -> None:
    typer.echo(data, nl=False)


def _write_stderr(data: bytes) -> None:
    typer.echo(data, nl=False, err=True)


def _shell_status(code: int) -> int:
    """Map a negative (signal) status to the shell's 128+N convention."""
    return 128 - code if code < 0 else code


def _print_summary(result: RunResult) -> None:
    for outcome in result.outcomes:
        color = typer.colors.GREEN if outcome.exit_code == 0 else typer.colors.YELLOW
        line = f"{outcome.program} (pid {outcome.pid}): exit {outcome.exit_code}"
        if outcome.failed_streams:
            line += f", filter failed on {', '.join(s.label for s in outcome.failed_streams)}"
        typer.secho(line, fg=color, err=True)


@app.command()
def run(
    settings: str = typer.Option(
        ...,
        "--settings",
        "-s",
        help="Path to settings YAML file.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log at DEBUG level and print a per-command summary.",
    ),
) -> None:
    """Run the pipeline described by a settings file."""
    from pipewright.core.logging import configure_logging
    from pipewright.engine.scheduler import Scheduler

    config = _load(settings)
    configure_logging(
        json_output=config.logging.json_output,
        level="DEBUG" if verbose else config.logging.level,
    )

    try:
        root = build_chain(
            config,
            _get_registry(),
            sinks={StdStream.STDOUT: _write_stdout, StdStream.STDERR: _write_stderr},
        )
    except ConfigError as e:
        _format_error("Configuration Error", str(e))
        raise typer.Exit(EXIT_CONFIG_ERROR) from None

    scheduler = Scheduler(config.scheduler)
    try:
        result = scheduler.run(root)
    except SpawnFailure as e:
        _format_error("Spawn Error", str(e))
        raise typer.Exit(EXIT_SPAWN_FAILURE) from None
    except SchedulerTimeout as e:
        _format_error("Timeout", str(e))
        raise typer.Exit(EXIT_TIMEOUT) from None
    except KeyboardInterrupt:
        _format_error("Interrupted", "pipeline stopped, all commands were terminated")
        raise typer.Exit(EXIT_INTERRUPTED) from None

    if verbose:
        _print_summary(result)
    raise typer.Exit(_shell_status(result.exit_code))


@app.command()
def validate(
    settings: str = typer.Option(
        ...,
        "--settings",
        "-s",
        help="Path to settings YAML file.",
    ),
) -> None:
    """Validate pipeline configuration without running."""
    config = _load(settings)
    try:
        root = build_chain(config, _get_registry())
    except ConfigError as e:
        _format_error("Configuration Error", str(e))
        raise typer.Exit(EXIT_CONFIG_ERROR) from None

    typer.secho("Configuration valid", fg=typer.colors.GREEN)
    typer.echo("  " + " | ".join(node.name for node in root.get_chain()))


@app.command("filters")
def list_filters() -> None:
    """List available filter plugins."""
    for cls in _get_registry().get_filters():
        typer.echo(f"{cls.name:<12} {cls.granularity.value:<6} {cls.description}")


if __name__ == "__main__":
    app()
