"""Console reporting and exit-code mapping."""

from __future__ import annotations

import logging
from typing import Optional

from rich.console import Console
from rich.markup import escape

from .exceptions import OrchestratorError, PassFailure, PolicyViolation, SubprocessFailure
from .ledger import FailureLedger
from .models import ExitCode, PassResult, PassStatus, RunReport, StepResult, StepStatus

logger = logging.getLogger(__name__)

SUCCESS_MARKER = "test success ==="

# tool exit codes that collide with orchestrator failure classes
RESERVED_EXIT_CODES = frozenset({ExitCode.CONFIGURATION, ExitCode.POLICY_VIOLATION})


def exit_code_for(exc: BaseException) -> int:
    """Map a failure to the process exit code of the run."""

    if isinstance(exc, PassFailure):
        return exit_code_for(exc.cause)
    if isinstance(exc, PolicyViolation):
        return ExitCode.POLICY_VIOLATION
    if isinstance(exc, SubprocessFailure):
        code = exc.returncode
        if 0 < code < ExitCode.POLICY_VIOLATION and code not in RESERVED_EXIT_CODES:
            return code
        return ExitCode.FAILURE
    if isinstance(exc, OrchestratorError):
        return int(exc.exit_code)
    return ExitCode.FAILURE


class Reporter:
    """Prints per-pass status lines, violation ledgers and the final verdict."""

    def __init__(self, console: Optional[Console] = None) -> None:
        self.console = console or Console(highlight=False, soft_wrap=True)

    def pass_started(self, name: str) -> None:
        self.console.print(f"[bold cyan]==> {escape(name)}[/bold cyan]")

    def pass_finished(self, result: PassResult) -> None:
        duration = result.duration_seconds
        timing = f" ({duration:.1f}s)" if duration is not None else ""
        if result.status is PassStatus.SUCCEEDED:
            self.console.print(f"[green]{result.name.value} ok{timing}[/green]")
        else:
            self.console.print(
                f"[bold red]{result.name.value} FAILED{timing}: {escape(result.error)}[/bold red]"
            )

    def step(self, message: str) -> None:
        self.console.print(escape(message))

    def step_result(self, result: StepResult) -> None:
        if result.status is StepStatus.BEST_EFFORT_FAILURE:
            logger.warning("Best-effort step failed", extra={"step": result.label})
            self.console.print(f"[yellow]warning: {escape(result.label)} reported issues[/yellow]")
            if result.detail:
                self.console.print(escape(result.detail))
        elif result.status is StepStatus.SKIPPED:
            self.console.print(f"[yellow]{escape(result.detail or result.label + ' skipped')}[/yellow]")

    def ledger(self, ledger: FailureLedger) -> None:
        self.console.print(f"[red]{escape(ledger.render())}[/red]")

    def failure(self, exc: BaseException) -> int:
        code = int(exit_code_for(exc))
        cause = exc.cause if isinstance(exc, PassFailure) else exc
        if isinstance(cause, PolicyViolation):
            for ledger in cause.ledgers:
                self.ledger(ledger)
        if isinstance(exc, PassFailure) and exc.report is not None:
            self.summary(exc.report)
        self.console.print(f"[bold red]{escape(str(exc))} (exit code {code})[/bold red]")
        return code

    def summary(self, report: RunReport) -> None:
        executed = ", ".join(name.value for name in report.executed()) or "none"
        failed = ", ".join(result.name.value for result in report.failures()) or "none"
        self.console.print(f"passes run: {executed}; failed: {failed}")

    def success(self) -> int:
        self.console.print(f"[bold green]{SUCCESS_MARKER}[/bold green]")
        return int(ExitCode.SUCCESS)
