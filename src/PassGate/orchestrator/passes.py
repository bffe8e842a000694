"""Operations behind each verification pass."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from .config import RunConfiguration, ToolchainConfig
from .coverage import CoverageAggregator
from .exceptions import PolicyViolation, SubprocessFailure
from .invoker import Invoker
from .ledger import FailureLedger
from .models import CommandResult, ConfigKey, StepResult, StepStatus
from .reporter import Reporter
from .retry import CommandBuilder, RetryableRunner

logger = logging.getLogger(__name__)


@dataclass
class PassContext:
    """Shared collaborators handed to every pass operation."""

    config: RunConfiguration
    toolchain: ToolchainConfig
    invoker: Invoker
    reporter: Reporter
    steps: List[StepResult] = field(default_factory=list)
    coverage_path: Optional[Path] = None

    @property
    def workdir(self) -> Path:
        return self.invoker.workdir

    @property
    def retry(self) -> RetryableRunner:
        return RetryableRunner(self.invoker)

    def record(self, step: StepResult) -> None:
        self.steps.append(step)
        self.reporter.step_result(step)

    def checked(self, label: str, command: Sequence[str], **kwargs) -> CommandResult:
        try:
            result = self.invoker.check(command, label=label, **kwargs)
        except SubprocessFailure as exc:
            self.failed(label, exc)
            raise
        self.steps.append(StepResult(label=label, status=StepStatus.SUCCEEDED))
        return result

    def retried(self, label: str, builder: CommandBuilder) -> CommandResult:
        """Run the warm and real attempts, recording a failed step on error."""

        try:
            return self.retry.run_twice(builder, label=label)
        except SubprocessFailure as exc:
            self.failed(label, exc)
            raise

    def failed(self, label: str, exc: SubprocessFailure) -> None:
        self.steps.append(
            StepResult(label=label, status=StepStatus.SUBPROCESS_FAILURE, detail=str(exc))
        )


def _optional_flags(config: RunConfiguration, flags: Iterable[tuple[str, ConfigKey]]) -> list[str]:
    args: list[str] = []
    for flag, key in flags:
        value = config.get(key)
        if value:
            args.append(f"{flag}={value}")
    return args


def list_source_files(root: Path, suffix: str, exclude_dirs: Iterable[str]) -> list[Path]:
    """Source files under ``root`` in sorted order, skipping excluded directories."""

    excluded = set(exclude_dirs)
    files = []
    for path in sorted(root.rglob(f"*{suffix}")):
        relative = path.relative_to(root)
        if any(part in excluded for part in relative.parts[:-1]):
            continue
        if path.is_file():
            files.append(path)
    return files


def _display(root: Path, path: Path) -> str:
    return f"./{path.relative_to(root).as_posix()}"


def scan_license_headers(
    root: Path,
    files: Iterable[Path],
    *,
    pattern: str,
    header_lines: int,
) -> FailureLedger:
    ledger = FailureLedger(title="license header checking")
    matcher = re.compile(pattern)
    for path in files:
        try:
            with path.open(encoding="utf-8", errors="replace") as handle:
                head = [line for _, line in zip(range(header_lines), handle)]
        except OSError as exc:
            ledger.record(_display(root, path), str(exc))
            continue
        if not any(matcher.search(line) for line in head):
            ledger.record(_display(root, path))
    return ledger


# ---------------------------------------------------------------------------
# fmt
# ---------------------------------------------------------------------------


def fmt_pass(ctx: PassContext) -> None:
    checks = ctx.toolchain.fmt
    ctx.reporter.step("Verifying generated code...")
    ctx.checked("generated code verification", checks.codegen_verify)

    files = list_source_files(ctx.workdir, checks.source_suffix, checks.exclude_dirs)
    formatter_name = Path(checks.formatter[0]).name
    ctx.reporter.step(f"Checking {formatter_name}...")
    fmt_ledger = FailureLedger(title=f"{formatter_name} checking")
    for path in files:
        result = ctx.invoker.run([*checks.formatter, _display(ctx.workdir, path)])
        if not result.ok or result.output.strip():
            fmt_ledger.record(_display(ctx.workdir, path), result.output)

    ctx.reporter.step("Checking vet...")
    vet_ledger = FailureLedger(title="vet checking")
    for path in files:
        result = ctx.invoker.run([*checks.vet, _display(ctx.workdir, path)])
        if not result.ok or result.output.strip():
            vet_ledger.record(_display(ctx.workdir, path), result.output)

    for analyzer in checks.analyzers:
        ctx.reporter.step(f"Checking {analyzer.name}...")
        ctx.record(ctx.invoker.best_effort(analyzer.name, analyzer.command))

    ctx.reporter.step("Checking for license header...")
    license_ledger = scan_license_headers(
        ctx.workdir,
        files,
        pattern=checks.license_pattern,
        header_lines=checks.license_header_lines,
    )

    violations = [ledger for ledger in (fmt_ledger, vet_ledger, license_ledger) if ledger]
    if violations:
        raise PolicyViolation(*violations)
    logger.info("Format checks passed", extra={"files": len(files)})


# ---------------------------------------------------------------------------
# build
# ---------------------------------------------------------------------------


def build_pass(ctx: PassContext) -> None:
    steps = ctx.toolchain.build
    image = ctx.config.get(ConfigKey.OPERATOR_IMAGE) or ""
    ctx.reporter.step("Building operator binary...")
    ctx.checked("operator build", steps.primary)
    for command in steps.auxiliary:
        label = f"{Path(command[0]).parent.name or command[0]} build"
        ctx.reporter.step(f"Running {label}...")
        ctx.checked(label, command)
    ctx.reporter.step(f"Building and pushing image {image}...")
    ctx.checked("image build and push", steps.image, env={steps.image_env: image})


# ---------------------------------------------------------------------------
# end-to-end tiers
# ---------------------------------------------------------------------------


def _test_prefix(ctx: PassContext, warm: bool) -> list[str]:
    settings = ctx.toolchain.test
    prefix = list(settings.go_test)
    if warm and settings.warm_flag:
        prefix.append(settings.warm_flag)
    return prefix


def e2e_command(ctx: PassContext, package: str, warm: bool) -> list[str]:
    settings = ctx.toolchain.test
    command = _test_prefix(ctx, warm)
    command += [package, "-run", ctx.config.selector, "-timeout", settings.timeout]
    if settings.race:
        command.append("--race")
    command += _optional_flags(
        ctx.config,
        (
            ("--kubeconfig", ConfigKey.KUBECONFIG),
            ("--operator-image", ConfigKey.OPERATOR_IMAGE),
            ("--namespace", ConfigKey.TEST_NAMESPACE),
        ),
    )
    return command


def upgrade_command(ctx: PassContext, warm: bool) -> list[str]:
    settings = ctx.toolchain.test
    command = _test_prefix(ctx, warm)
    command += [
        ctx.toolchain.e2e.upgrade,
        "-run",
        ctx.config.upgrade_selector,
        "-timeout",
        settings.timeout,
    ]
    command += _optional_flags(
        ctx.config,
        (
            ("--kubeconfig", ConfigKey.KUBECONFIG),
            ("--kube-ns", ConfigKey.TEST_NAMESPACE),
            ("--old-image", ConfigKey.UPGRADE_FROM),
            ("--new-image", ConfigKey.UPGRADE_TO),
        ),
    )
    return command


def _run_e2e_package(ctx: PassContext, package: str) -> None:
    ctx.reporter.step(f"Running end-to-end tests in {package} (selector {ctx.config.selector})")
    ctx.retried(f"go test {package}", lambda warm: e2e_command(ctx, package, warm))
    ctx.steps.append(StepResult(label=f"go test {package}", status=StepStatus.SUCCEEDED))


def e2e_pass(ctx: PassContext) -> None:
    _run_e2e_package(ctx, ctx.toolchain.e2e.e2e)


def e2eslow_pass(ctx: PassContext) -> None:
    _run_e2e_package(ctx, ctx.toolchain.e2e.e2eslow)


def e2esh_pass(ctx: PassContext) -> None:
    _run_e2e_package(ctx, ctx.toolchain.e2e.e2esh)


def upgrade_pass(ctx: PassContext) -> None:
    package = ctx.toolchain.e2e.upgrade
    ctx.reporter.step(
        f"Running upgrade tests {ctx.config.get(ConfigKey.UPGRADE_FROM)} -> "
        f"{ctx.config.get(ConfigKey.UPGRADE_TO)}"
    )
    ctx.retried(f"go test {package}", lambda warm: upgrade_command(ctx, warm))
    ctx.steps.append(StepResult(label=f"go test {package}", status=StepStatus.SUCCEEDED))


# ---------------------------------------------------------------------------
# unit
# ---------------------------------------------------------------------------


def unit_packages(ctx: PassContext) -> list[str]:
    settings = ctx.toolchain.unit
    listing = ctx.checked("package listing", settings.list_packages)
    packages = [line.strip() for line in listing.stdout.splitlines() if line.strip()]
    if settings.exclude_pattern:
        excluded = re.compile(settings.exclude_pattern)
        packages = [package for package in packages if not excluded.search(package)]
    return packages


def unit_command(ctx: PassContext, package: str, fragment: Path, warm: bool) -> list[str]:
    settings = ctx.toolchain.unit
    command = _test_prefix(ctx, warm)
    command += [*settings.coverage_flags, f"-coverprofile={fragment}", package]
    return command


def _resolve(root: Path, path: Path) -> Path:
    return path if path.is_absolute() else root / path


def unit_pass(ctx: PassContext) -> None:
    settings = ctx.toolchain.unit
    report_path = _resolve(ctx.workdir, settings.report)
    fragment = _resolve(ctx.workdir, settings.fragment)
    aggregator = CoverageAggregator(report_path, fragment, header=settings.header)
    aggregator.reset()
    ctx.coverage_path = report_path

    packages = unit_packages(ctx)
    ctx.reporter.step(f"Running unit tests for {len(packages)} package(s)...")
    for package in packages:
        label = f"go test {package}"
        try:
            ctx.retried(label, lambda warm: unit_command(ctx, package, fragment, warm))
        except SubprocessFailure:
            aggregator.discard()
            raise
        added = aggregator.merge()
        ctx.steps.append(
            StepResult(label=label, status=StepStatus.SUCCEEDED, detail=f"{added} coverage record(s)")
        )

    ctx.record(aggregator.upload(ctx.invoker, settings.upload))
    logger.info(
        "Unit tests finished",
        extra={"packages": len(packages), "records": len(aggregator.report.records)},
    )
