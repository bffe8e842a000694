"""CLI application entrypoint built with Typer."""

from __future__ import annotations

import json
from pathlib import Path
from typing import List, Optional

import typer

from PassGate.orchestrator.config import RunConfiguration, load_toolchain_config, toolchain_path
from PassGate.orchestrator.exceptions import OrchestratorError, PassFailure, ToolchainConfigError
from PassGate.orchestrator.invoker import Invoker
from PassGate.orchestrator.passes import PassContext
from PassGate.orchestrator.registry import default_registry, parse_pass_names
from PassGate.orchestrator.reporter import Reporter
from PassGate.orchestrator.runner import PassRunner

from .logging import configure_logging

CLI_VERSION = "0.1.0"

app = typer.Typer(help="PassGate CI pass orchestrator")


# ---------------------------------------------------------------------------
# Typer callback
# ---------------------------------------------------------------------------


@app.callback()
def main_callback(
    ctx: typer.Context,
    log_format: str = typer.Option("text", "--log-format", help="Log format (text or json)."),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Also write logs to this file."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging."),
) -> None:
    """Read the run configuration from the environment and configure logging."""

    try:
        logger = configure_logging(log_format, verbose, log_file)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    ctx.obj = {"config": RunConfiguration.from_env(), "logger": logger}


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def run(
    ctx: typer.Context,
    passes: Optional[List[str]] = typer.Argument(
        None, help="Passes to run in order; defaults to $PASSES or fmt build e2e e2eslow unit."
    ),
    workdir: Path = typer.Option(Path("."), "--workdir", help="Project checkout to verify."),
    toolchain: Optional[Path] = typer.Option(
        None, "--toolchain", help="YAML file overriding tool command lines."
    ),
    report: Optional[Path] = typer.Option(None, "--report", help="Write a JSON run summary here."),
    forward: bool = typer.Option(
        True, "--forward/--no-forward", help="Echo tool output to the console."
    ),
) -> None:
    """Run the requested passes, stopping at the first failure."""

    config: RunConfiguration = ctx.obj["config"]
    reporter = Reporter()
    try:
        toolchain_config = load_toolchain_config(toolchain_path(config, toolchain))
    except ToolchainConfigError as exc:
        typer.secho(f"[error] {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=int(exc.exit_code)) from exc

    invoker = Invoker(
        workdir=workdir.resolve(),
        forward_output=forward,
        timeout_seconds=toolchain_config.command_timeout_seconds,
    )
    context = PassContext(
        config=config,
        toolchain=toolchain_config,
        invoker=invoker,
        reporter=reporter,
    )
    runner = PassRunner(context, summary_path=report)
    try:
        runner.execute(passes or None)
    except PassFailure as exc:
        raise typer.Exit(code=reporter.failure(exc)) from exc
    except OrchestratorError as exc:
        raise typer.Exit(code=reporter.failure(exc)) from exc
    reporter.success()


@app.command("passes")
def list_passes() -> None:
    """List registered passes and the configuration each one requires."""

    for spec in default_registry().values():
        required = ", ".join(key.value for key in spec.required) or "-"
        typer.echo(f"{spec.name.value:<8} {required:<32} {spec.description}")


@app.command("config")
def show_config(
    ctx: typer.Context,
    passes: Optional[List[str]] = typer.Argument(None, help="Passes to check; defaults to $PASSES."),
) -> None:
    """Show the resolved configuration and what each selected pass is missing."""

    config: RunConfiguration = ctx.obj["config"]
    registry = default_registry()
    try:
        names = parse_pass_names(passes or config.pass_names, registry)
    except OrchestratorError as exc:
        typer.secho(f"[error] {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=int(exc.exit_code)) from exc
    payload = {
        "values": config.redacted(),
        "selector": config.selector,
        "passes": {
            name.value: [key.value for key in config.missing(registry[name].required)]
            for name in names
        },
    }
    typer.echo(json.dumps(payload, indent=2, sort_keys=True))


@app.command()
def version() -> None:
    """Print the CLI version."""

    typer.echo(CLI_VERSION)


def main() -> None:
    """Entrypoint for the CLI."""

    app()
