from __future__ import annotations

import threading
from typing import Any

import pytest
import typer

from ..config.loader import load_settings
from ..emulator.lifecycle import LocalStackManager
from ..errors import StackRunnerError

# Create a CLI application using Typer
app = typer.Typer(add_completion=False)


@app.command()
def run(
    config: str = typer.Option(None, help="Path to the YAML configuration file"),
    tests_path: str = typer.Option("tests", help="Path to the tests to run"),
    startup_timeout: float = typer.Option(
        None, help="Seconds to wait for LocalStack to become ready"
    ),
    extra: str = typer.Option("", help="Additional arguments for pytest (space-separated)"),
) -> Any:
    """
    Run pytest with the stackrunner plugin options filled in.

    Example usage:
        stackrunner run --config configs/localstack.yaml --extra "-m localstack"
    """
    args = [tests_path]
    if config:
        args += ["--stackrunner-config", config]
    if startup_timeout is not None:
        args += ["--localstack-startup-timeout", str(startup_timeout)]
    if extra:
        args += extra.split()

    # Exit with pytest's return code
    raise SystemExit(pytest.main(args))


@app.command()
def up(
    config: str = typer.Option(None, help="Path to the YAML configuration file"),
) -> None:
    """
    Start LocalStack, print the service endpoints, and keep it running until Ctrl+C.
    """
    manager = LocalStackManager(load_settings(config))
    try:
        endpoints = manager.endpoints()
    except StackRunnerError as e:
        manager.teardown()
        typer.echo(f"LocalStack failed to start: {e}", err=True)
        raise typer.Exit(code=1) from e

    for name, url in sorted(endpoints.items()):
        typer.echo(f"{name:<20} {url}")
    typer.echo("LocalStack is running, press Ctrl+C to stop.")

    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        pass
    finally:
        manager.teardown()


if __name__ == "__main__":
    app()
