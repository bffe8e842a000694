"""Exception types raised by the pass orchestrator."""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, Optional, Sequence

from .models import CommandResult, ConfigKey, ExitCode

if TYPE_CHECKING:  # pragma: no cover
    from .ledger import FailureLedger
    from .models import RunReport


class OrchestratorError(RuntimeError):
    """Base class for orchestration failures."""

    exit_code: int = ExitCode.FAILURE


class MissingConfiguration(OrchestratorError):
    """Raised when a selected pass lacks a required configuration key."""

    exit_code = ExitCode.CONFIGURATION

    def __init__(self, keys: Iterable[ConfigKey], *, pass_name: Optional[str] = None) -> None:
        self.keys: tuple[ConfigKey, ...] = tuple(keys)
        self.pass_name = pass_name
        names = ", ".join(key.value for key in self.keys)
        prefix = f"Pass '{pass_name}' needs" if pass_name else "Need to set"
        super().__init__(f"{prefix} {names}")


class UnknownPass(OrchestratorError):
    """Raised when a requested pass name is not registered."""

    exit_code = ExitCode.CONFIGURATION

    def __init__(self, names: Sequence[str]) -> None:
        self.names = tuple(names)
        super().__init__(f"Unknown pass: {', '.join(self.names)}")


class SubprocessFailure(OrchestratorError):
    """Raised when a mandatory external command exits non-zero."""

    def __init__(self, result: CommandResult, *, label: Optional[str] = None) -> None:
        self.result = result
        self.label = label or " ".join(result.command)
        super().__init__(f"{self.label} failed with exit code {result.returncode}")

    @property
    def returncode(self) -> int:
        return self.result.returncode


class PolicyViolation(OrchestratorError):
    """Raised when a lint-style check collected violations."""

    exit_code = ExitCode.POLICY_VIOLATION

    def __init__(self, *ledgers: "FailureLedger") -> None:
        self.ledgers = tuple(ledger for ledger in ledgers if ledger)
        summary = ", ".join(f"{ledger.title} ({len(ledger)})" for ledger in self.ledgers)
        super().__init__(f"Policy checks failed: {summary}")

    def subjects(self) -> list[str]:
        return [subject for ledger in self.ledgers for subject in ledger.subjects()]


class ToolchainConfigError(OrchestratorError):
    """Raised when the toolchain configuration file is invalid."""

    exit_code = ExitCode.CONFIGURATION


class PassFailure(OrchestratorError):
    """Raised by the runner when a pass fails; stops the run."""

    def __init__(
        self,
        name: str,
        *,
        exit_code: int,
        cause: BaseException,
        report: Optional["RunReport"] = None,
    ) -> None:
        self.name = name
        self.exit_code = exit_code
        self.cause = cause
        self.report = report
        super().__init__(f"Pass '{name}' failed: {cause}")
