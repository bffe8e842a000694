"""Data models for CI pass orchestration."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any, Dict, Optional, Sequence


class PassName(str, Enum):
    """Verification passes known to the orchestrator."""

    FMT = "fmt"
    BUILD = "build"
    E2E = "e2e"
    E2E_SLOW = "e2eslow"
    E2E_SH = "e2esh"
    UPGRADE = "upgrade"
    UNIT = "unit"


DEFAULT_PASSES: tuple[PassName, ...] = (
    PassName.FMT,
    PassName.BUILD,
    PassName.E2E,
    PassName.E2E_SLOW,
    PassName.UNIT,
)


class ConfigKey(str, Enum):
    """Run configuration keys; the value is the environment variable name."""

    KUBECONFIG = "KUBECONFIG"
    TEST_NAMESPACE = "TEST_NAMESPACE"
    OPERATOR_IMAGE = "OPERATOR_IMAGE"
    E2E_TEST_SELECTOR = "E2E_TEST_SELECTOR"
    UPGRADE_TEST_SELECTOR = "UPGRADE_TEST_SELECTOR"
    TEST_S3_BUCKET = "TEST_S3_BUCKET"
    TEST_AWS_SECRET = "TEST_AWS_SECRET"
    UPGRADE_FROM = "UPGRADE_FROM"
    UPGRADE_TO = "UPGRADE_TO"
    PASSES = "PASSES"
    TOOLCHAIN = "PASSGATE_TOOLCHAIN"


class ExitCode(IntEnum):
    """Process exit codes emitted by a run."""

    SUCCESS = 0
    FAILURE = 1
    CONFIGURATION = 2
    POLICY_VIOLATION = 255


@dataclass(frozen=True)
class CommandResult:
    """Outcome of a single external command."""

    command: Sequence[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        return "".join(part for part in (self.stdout, self.stderr) if part)


class StepStatus(str, Enum):
    """Verdict for a sub-step inside a pass."""

    SUCCEEDED = "succeeded"
    SUBPROCESS_FAILURE = "subprocess_failure"
    BEST_EFFORT_FAILURE = "best_effort_failure"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class StepResult:
    """Recorded outcome of a pass sub-step."""

    label: str
    status: StepStatus
    detail: str = ""

    @property
    def fatal(self) -> bool:
        return self.status is StepStatus.SUBPROCESS_FAILURE


class PassStatus(str, Enum):
    """Lifecycle of a single pass."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class PassResult:
    """Mutable record of one pass while the run progresses."""

    name: PassName
    status: PassStatus = PassStatus.NOT_STARTED
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    steps: list[StepResult] = field(default_factory=list)
    error: str = ""
    exit_code: int = ExitCode.SUCCESS

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at is None or self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def start(self) -> None:
        if self.status is not PassStatus.NOT_STARTED:
            raise ValueError(f"Pass '{self.name.value}' already {self.status.value}")
        self.status = PassStatus.RUNNING
        self.started_at = datetime.now(timezone.utc)

    def finish(self, *, error: str = "", exit_code: int = ExitCode.SUCCESS) -> None:
        if self.status is not PassStatus.RUNNING:
            raise ValueError(f"Pass '{self.name.value}' is not running")
        self.finished_at = datetime.now(timezone.utc)
        self.error = error
        self.exit_code = exit_code
        self.status = PassStatus.FAILED if error else PassStatus.SUCCEEDED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pass": self.name.value,
            "status": self.status.value,
            "duration_seconds": self.duration_seconds,
            "exit_code": int(self.exit_code),
            "error": self.error,
            "steps": [
                {"label": step.label, "status": step.status.value, "detail": step.detail}
                for step in self.steps
            ],
        }


@dataclass(frozen=True)
class RunReport:
    """Aggregated results for one orchestrator run."""

    run_id: str
    passes: Sequence[PassResult] = field(default_factory=tuple)
    exit_code: int = ExitCode.SUCCESS
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    coverage_path: Optional[str] = None

    @property
    def overall_passed(self) -> bool:
        return self.exit_code == ExitCode.SUCCESS and all(
            result.status is PassStatus.SUCCEEDED for result in self.passes
        )

    def executed(self) -> Sequence[PassName]:
        return tuple(
            result.name for result in self.passes if result.status is not PassStatus.NOT_STARTED
        )

    def failures(self) -> Sequence[PassResult]:
        return tuple(result for result in self.passes if result.status is PassStatus.FAILED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "generated_at": self.generated_at.isoformat(),
            "overall_passed": self.overall_passed,
            "exit_code": int(self.exit_code),
            "coverage_path": self.coverage_path,
            "passes": [result.to_dict() for result in self.passes],
        }
