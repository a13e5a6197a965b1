"""Main CLI entry point using Typer."""

from __future__ import annotations

import shlex

import typer
from rich.console import Console

from kube_runner import __version__
from kube_runner.logging.config import configure_logging

app = typer.Typer(
    name="kr",
    help="Interactive terminal client for Kubernetes pods, deployments and secrets.",
    add_completion=False,
)

console = Console()
err_console = Console(stderr=True)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"kr version {__version__}")
        raise typer.Exit()


def run_passthrough(command: str) -> int:
    """Run ``kubectl <command>`` with inherited stdio.

    Returns:
        The exit code kr should finish with.
    """
    from kube_runner.integrations.kubernetes.kubectl_client import KubectlClient, KubectlError

    try:
        args = shlex.split(command)
    except ValueError:
        err_console.print("[red]Failed to parse command: unmatched quotes[/red]")
        return 1

    try:
        status = KubectlClient().passthrough(args)
    except KubectlError as e:
        err_console.print(f"[red]Failed to execute kubectl: {e}[/red]")
        return 1

    if status != 0:
        err_console.print(f"[red]Command failed with status: {status}[/red]")
    return status


def run_interactive() -> int:
    """Start the full-screen client; returns the exit code."""
    from pydantic import ValidationError

    from kube_runner.core.settings_store import SettingsStore
    from kube_runner.integrations.kubernetes import (
        KubernetesClient,
        KubernetesError,
        KubeRunnerConfig,
    )
    from kube_runner.tui import KubeRunnerApp

    err_console.print("Connecting to cluster...")
    try:
        config = KubeRunnerConfig.from_env()
    except (ValidationError, ValueError) as e:
        err_console.print(f"[red]Error:[/red] Invalid configuration: {e}")
        return 1

    try:
        client = KubernetesClient(config)
    except KubernetesError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        return 1

    settings = SettingsStore(config.state_path)
    settings.load()

    tui = KubeRunnerApp(client, settings, namespace=config.namespace)
    try:
        tui.run()
    finally:
        client.close()
    return tui.return_code or 0


@app.command()
def main(
    command: str | None = typer.Option(
        None,
        "--command",
        "-c",
        help="Run a kubectl command instead of the interactive client.",
    ),
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose output.",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug mode.",
    ),
) -> None:
    """kr - browse and operate on a Kubernetes namespace from the terminal."""
    if command is not None:
        configure_logging(verbose=verbose, debug=debug)
        code = run_passthrough(command)
    else:
        # The full-screen interface owns the terminal; log to file only
        configure_logging(verbose=verbose, debug=debug, console=False)
        code = run_interactive()
    if code:
        raise typer.Exit(code)


if __name__ == "__main__":
    app()
