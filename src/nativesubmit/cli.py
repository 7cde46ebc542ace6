"""nativesubmit CLI."""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Annotated

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from nativesubmit import __version__
from nativesubmit.config import (
    ConfigError,
    ConfigFileNotFoundError,
    ConfigValidationError,
    SparkApplication,
    load_application,
)
from nativesubmit.k8s import K8sConnectionError, get_k8s_client
from nativesubmit.submit import SparkSubmitter, SubmissionError, synthesize

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="nativesubmit",
    help="Submit SparkApplications to Kubernetes without spark-submit",
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()


class RenderFormat(str, Enum):
    YAML = "yaml"
    PROPERTIES = "properties"


# =============================================================================
# Helper Functions
# =============================================================================


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]OK[/green] {message}")


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[red]ERROR[/red] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow]WARN[/yellow] {message}")


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def load_or_exit(app_file: Path) -> SparkApplication:
    """Load a manifest, printing the problem and exiting on failure."""
    try:
        return load_application(app_file)
    except ConfigFileNotFoundError as e:
        print_error(str(e))
        raise typer.Exit(1)  # noqa: B904
    except ConfigValidationError as e:
        print_error(str(e))
        raise typer.Exit(1)  # noqa: B904
    except ConfigError as e:
        print_error(f"Could not load {app_file}: {e}")
        raise typer.Exit(1)  # noqa: B904


AppFileArg = Annotated[
    Path,
    typer.Argument(help="Path to a SparkApplication YAML manifest"),
]
VerboseOpt = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Enable debug logging"),
]


# =============================================================================
# Commands
# =============================================================================


@app.command()
def version() -> None:
    """Show version information."""
    console.print(f"nativesubmit version {__version__}")


@app.command()
def validate(app_file: AppFileArg, verbose: VerboseOpt = False) -> None:
    """Validate a manifest and show the names a submission would use."""
    configure_logging(verbose)
    spark_app = load_or_exit(app_file)
    try:
        manifests = synthesize(spark_app)
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(1)  # noqa: B904

    ctx = manifests.context
    table = Table(title=f"SparkApplication {spark_app.name}")
    table.add_column("Object", style="cyan")
    table.add_column("Name", style="bold")
    table.add_row("Namespace", ctx.namespace)
    table.add_row("ConfigMap", ctx.config_map_name)
    table.add_row("Pod", ctx.driver_pod_name)
    table.add_row("Service", ctx.service_name)
    console.print(table)
    print_success(f"{app_file} is valid")


@app.command()
def render(
    app_file: AppFileArg,
    output_format: Annotated[
        RenderFormat,
        typer.Option("--format", "-f", help="yaml: all manifests; properties: spark.properties"),
    ] = RenderFormat.YAML,
    verbose: VerboseOpt = False,
) -> None:
    """Print the manifests a submission would create, without contacting the cluster."""
    configure_logging(verbose)
    spark_app = load_or_exit(app_file)
    try:
        manifests = synthesize(spark_app)
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(1)  # noqa: B904

    if output_format == RenderFormat.PROPERTIES:
        typer.echo(manifests.config_map["data"]["spark.properties"], nl=False)
        return
    typer.echo(
        yaml.safe_dump_all(manifests.ordered(), default_flow_style=False, sort_keys=False),
        nl=False,
    )


@app.command()
def submit(
    app_file: AppFileArg,
    context: Annotated[
        str,
        typer.Option("--context", help="Kubeconfig context (default: in-cluster, then current)"),
    ] = "",
    timeout: Annotated[
        float | None,
        typer.Option("--timeout", "-t", help="Overall time budget in seconds"),
    ] = None,
    verbose: VerboseOpt = False,
) -> None:
    """Create the driver ConfigMap, Pod and Service for a SparkApplication."""
    configure_logging(verbose)
    spark_app = load_or_exit(app_file)
    console.print(Panel(f"Submitting: [bold]{spark_app.name}[/bold]", expand=False))

    try:
        k8s = get_k8s_client(context=context)
    except K8sConnectionError as e:
        print_error(str(e))
        raise typer.Exit(1)  # noqa: B904

    try:
        result = SparkSubmitter(k8s).submit(spark_app, timeout=timeout)
    except SubmissionError as e:
        for done in e.results:
            print_warning(f"{done.kind} {done.name} was {done.outcome.value} before the failure")
        print_error(str(e))
        raise typer.Exit(1)  # noqa: B904

    table = Table(title=f"Application {result.application_id}")
    table.add_column("Kind", style="cyan")
    table.add_column("Name", style="bold")
    table.add_column("Outcome")
    table.add_column("Attempts", justify="center")
    for r in result.results:
        outcome = r.outcome.value
        if r.verified is False:
            outcome += " (unverified)"
        table.add_row(r.kind, f"{r.namespace}/{r.name}", outcome, str(r.attempts))
    console.print(table)
    print_success(f"Submitted {spark_app.name} (submission {result.submission_id})")


# =============================================================================
# Entry Point
# =============================================================================


def main() -> None:
    """Main entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
