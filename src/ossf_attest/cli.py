# src/ossf_attest/cli.py
import logging
import os
from dataclasses import replace
from typing import Optional

import typer
from dotenv import load_dotenv
from rich.markup import escape
from rich.table import Table

from ossf_attest.core.command_gate import run_command
from ossf_attest.core.config import (
    AttestSettings,
    VersionsConfig,
    console,
    load_settings,
    load_versions_config,
)
from ossf_attest.core.exceptions import (
    ConfigurationError,
    InstallationError,
    PersistenceError,
)
from ossf_attest.core.input_validator import sanitize_output_path
from ossf_attest.core.report import exit_code, write_report
from ossf_attest.core.tool_orchestrator import ToolOrchestrator
from ossf_attest.core.types import AttestationReport

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

EXIT_SETUP_FAILURE = 2
EXIT_CONFIG_ERROR = 3
EXIT_PERSISTENCE_FAILURE = 4

app = typer.Typer(
    name="ossf-attest",
    help="OSSF Security Baseline attestation for Go projects.",
    add_completion=False,
)

module_logger = logging.getLogger("ossf_attest.cli")


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("ossf_attest").setLevel(level)


def git_version() -> Optional[str]:
    """Most recent tag reachable from HEAD, or None outside a tagged repo."""
    output, err = run_command("git", ["describe", "--tags", "--abbrev=0"], timeout=30)
    if err is not None:
        module_logger.debug(f"git describe failed: {err}")
        return None
    return output.strip() or None


def print_help(versions: VersionsConfig) -> None:
    app_info = versions.app
    console.print(f"[bold]{escape(app_info.name)}[/bold] v{escape(app_info.version)}")
    if app_info.description:
        console.print(escape(app_info.description))
    console.print()
    console.print("Usage: ossf-attest [OPTIONS]")
    console.print()
    console.print("[bold]Options:[/bold]")
    console.print("  -v, --verbose      Enable verbose output")
    console.print("  -s, --sequential   Run tools sequentially instead of in parallel")
    console.print("  -o, --output DIR   Output directory for reports and tool output")
    console.print("  -c, --config FILE  Path to the versions.yml configuration")
    console.print("  -h, --help         Show this help message")
    console.print()
    console.print("[bold]Configured tools:[/bold]")
    for spec in versions.tools:
        console.print(
            f"  {escape(spec.name):<15} {escape(spec.version):<12} {escape(spec.description)}"
        )
    console.print()

    env = versions.environment
    console.print("[bold]Environment variables:[/bold]")
    console.print(f"  {env.project_name:<20} Override project name")
    console.print(f"  {env.project_version:<20} Override project version")
    console.print(f"  {env.output_dir:<20} Output directory")
    console.print(f"  {env.verbose:<20} Enable verbose output (true/false)")
    console.print(f"  {env.parallel:<20} Enable parallel execution (true/false)")
    if versions.features.enable_semgrep_auth:
        console.print(f"  {env.semgrep_token:<20} Semgrep authentication token")


def print_results(report: AttestationReport) -> None:
    table = Table(title="Attestation Results", show_header=True, header_style="bold magenta")
    table.add_column("Tool", style="cyan", no_wrap=True)
    table.add_column("Status", style="bold")
    table.add_column("Duration", justify="right")
    table.add_column("Output", style="dim")

    for name in sorted(report.results):
        result = report.results[name]
        status = "[green]PASS[/green]" if result.success else "[red]FAIL[/red]"
        table.add_row(name, status, f"{result.duration:.2f}s", escape(result.output_file))
    console.print(table)

    summary = report.summary
    console.print(
        f"Total: {summary.total_tools}  Passed: {summary.success_count}  "
        f"Failed: {summary.failure_count}  Duration: {summary.total_duration:.2f}s"
    )


def build_settings(
    versions: VersionsConfig, verbose: bool, sequential: bool, output: Optional[str]
) -> AttestSettings:
    settings = load_settings(versions, version_lookup=git_version)
    if output:
        settings = replace(settings, output_dir=sanitize_output_path(output))
    if verbose:
        settings = replace(settings, verbose=True)
    if sequential:
        settings = replace(settings, parallel=False)
    return settings


@app.command(
    add_help_option=False,
    context_settings={"allow_extra_args": True, "ignore_unknown_options": True},
)
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output."),
    sequential: bool = typer.Option(
        False, "--sequential", "-s", help="Run tools sequentially."
    ),
    output: Optional[str] = typer.Option(
        None, "--output", "-o", help="Output directory for reports."
    ),
    config: Optional[str] = typer.Option(
        None, "--config", "-c", help="Path to versions.yml."
    ),
    show_help: bool = typer.Option(False, "--help", "-h", help="Show help and exit."),
):
    """Install, run and report on the configured security analysis tools."""
    load_dotenv()
    configure_logging(verbose)

    try:
        versions = load_versions_config(config)
    except ConfigurationError as e:
        console.print(f"[bold red]Configuration error:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=EXIT_CONFIG_ERROR)

    if show_help:
        print_help(versions)
        raise typer.Exit(code=0)

    try:
        settings = build_settings(versions, verbose, sequential, output)
    except ConfigurationError as e:
        console.print(f"[bold red]Configuration error:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=EXIT_CONFIG_ERROR)

    if settings.verbose:
        logging.getLogger("ossf_attest").setLevel(logging.DEBUG)

    mode = "parallel" if settings.run_parallel else "sequential"
    console.print(
        f"[bold cyan]Running OSSF attestation for {escape(settings.project_name)} "
        f"{escape(settings.project_version)} ({mode})[/bold cyan]"
    )
    module_logger.debug(f"Output directory: {os.path.abspath(settings.output_dir)}")

    orchestrator = ToolOrchestrator(settings)
    try:
        report = orchestrator.run()
    except InstallationError as e:
        console.print(f"[bold red]Tool setup failed:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=EXIT_SETUP_FAILURE)

    for unit_error in orchestrator.run_errors:
        module_logger.error(f"Tool execution error: {unit_error}")

    try:
        json_path, text_path = write_report(report, settings.output_dir)
    except PersistenceError as e:
        console.print(f"[bold red]Failed to write report:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=EXIT_PERSISTENCE_FAILURE)

    print_results(report)
    console.print(f"[green]Report written to {escape(str(json_path))}[/green]")
    console.print(f"[green]Summary written to {escape(str(text_path))}[/green]")

    code = exit_code(report)
    if code != 0:
        console.print("[yellow]One or more tools reported failures.[/yellow]")
    raise typer.Exit(code=code)


if __name__ == "__main__":
    app()
