"""Tests for the individual pass operations."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Mapping, Optional, Sequence

import pytest

from conftest import FakeInvoker
from PassGate.orchestrator.config import RunConfiguration, ToolchainConfig
from PassGate.orchestrator.exceptions import PolicyViolation, SubprocessFailure
from PassGate.orchestrator.models import CommandResult, StepStatus
from PassGate.orchestrator.passes import (
    PassContext,
    build_pass,
    e2e_pass,
    e2esh_pass,
    e2eslow_pass,
    fmt_pass,
    list_source_files,
    scan_license_headers,
    unit_pass,
    upgrade_pass,
)

ContextFactory = Callable[..., PassContext]


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture
def go_tree(tmp_path: Path) -> Path:
    _write(tmp_path / "main.go", "// Copyright 2024 The Authors\npackage main\n")
    _write(tmp_path / "pkg" / "gen" / "zz.go", "// Code generated by tool. DO NOT EDIT.\npackage gen\n")
    _write(tmp_path / "vendor" / "lib" / "lib.go", "package lib\n")
    _write(tmp_path / "README.md", "docs\n")
    return tmp_path


# ---------------------------------------------------------------------------
# fmt
# ---------------------------------------------------------------------------


def test_list_source_files_skips_excluded_dirs(go_tree: Path) -> None:
    files = list_source_files(go_tree, ".go", ["vendor"])

    assert [path.relative_to(go_tree).as_posix() for path in files] == ["main.go", "pkg/gen/zz.go"]


def test_fmt_passes_on_clean_tree(go_tree: Path, fake_invoker: FakeInvoker, make_context: ContextFactory) -> None:
    ctx = make_context()

    fmt_pass(ctx)

    calls = fake_invoker.joined()
    assert calls[0] == "hack/k8s/codegen/verify-generated.sh"
    assert "gofmt -l -s -d ./main.go" in calls
    assert "go vet ./pkg/gen/zz.go" in calls
    assert not any("vendor" in call for call in calls)
    skipped = [step.label for step in ctx.steps if step.status is StepStatus.SKIPPED]
    assert skipped == ["gosimple", "unused"]


def test_fmt_reports_missing_license_header(
    go_tree: Path, fake_invoker: FakeInvoker, make_context: ContextFactory
) -> None:
    _write(go_tree / "pkg" / "util" / "util.go", "package util\n\nfunc A() {}\n")

    with pytest.raises(PolicyViolation) as excinfo:
        fmt_pass(make_context())

    assert excinfo.value.subjects() == ["./pkg/util/util.go"]
    assert excinfo.value.ledgers[0].title == "license header checking"


def test_fmt_collects_every_formatting_violation(
    go_tree: Path, fake_invoker: FakeInvoker, make_context: ContextFactory
) -> None:
    fake_invoker.fail_when("gofmt", returncode=0, output="diff -u\n")
    fake_invoker.fail_when("go vet ./main.go", returncode=1, output="main.go:2: unreachable code\n")

    with pytest.raises(PolicyViolation) as excinfo:
        fmt_pass(make_context())

    titles = [ledger.title for ledger in excinfo.value.ledgers]
    assert titles == ["gofmt checking", "vet checking"]
    assert excinfo.value.ledgers[0].subjects() == ["./main.go", "./pkg/gen/zz.go"]
    assert excinfo.value.ledgers[1].entries == [("./main.go", "main.go:2: unreachable code")]
    assert any(call.startswith("go vet ./pkg/gen/zz.go") for call in fake_invoker.joined())


def test_fmt_codegen_failure_stops_before_scanning(
    go_tree: Path, fake_invoker: FakeInvoker, make_context: ContextFactory
) -> None:
    fake_invoker.fail_when("verify-generated", returncode=1)

    with pytest.raises(SubprocessFailure):
        fmt_pass(make_context())

    assert fake_invoker.joined() == ["hack/k8s/codegen/verify-generated.sh"]


def test_fmt_best_effort_analyzer_never_fails(go_tree: Path, make_context: ContextFactory) -> None:
    invoker = FakeInvoker(go_tree, installed=["gosimple", "unused"])
    invoker.fail_when("gosimple", returncode=1, output="pkg/gen/zz.go:1: should use S1000\n")
    ctx = make_context()
    ctx.invoker = invoker

    fmt_pass(ctx)

    statuses = {step.label: step.status for step in ctx.steps}
    assert statuses["gosimple"] is StepStatus.BEST_EFFORT_FAILURE
    assert statuses["unused"] is StepStatus.SUCCEEDED


# ---------------------------------------------------------------------------
# build
# ---------------------------------------------------------------------------


def test_build_runs_sub_steps_in_order(fake_invoker: FakeInvoker, make_context: ContextFactory) -> None:
    build_pass(make_context())

    assert fake_invoker.joined() == [
        "hack/build/operator/build",
        "hack/build/backup-operator/build",
        "hack/build/restore-operator/build",
        "hack/build/docker_push",
    ]
    assert fake_invoker.envs[-1] == {"IMAGE": "quay.io/example/operator:dev"}


def test_build_stops_at_failed_sub_step(fake_invoker: FakeInvoker, make_context: ContextFactory) -> None:
    fake_invoker.fail_when("backup-operator", returncode=2)

    with pytest.raises(SubprocessFailure) as excinfo:
        build_pass(make_context())

    assert excinfo.value.returncode == 2
    assert "docker_push" not in " ".join(fake_invoker.joined())


# ---------------------------------------------------------------------------
# end-to-end tiers
# ---------------------------------------------------------------------------


def test_e2e_runs_twice_with_warm_flag_first(fake_invoker: FakeInvoker, make_context: ContextFactory) -> None:
    e2e_pass(make_context())

    tail = [
        "./test/e2e/",
        "-run",
        ".*",
        "-timeout",
        "30m",
        "--race",
        "--kubeconfig=/tmp/kubeconfig",
        "--operator-image=quay.io/example/operator:dev",
        "--namespace=e2e-ns",
    ]
    assert fake_invoker.calls == [["go", "test", "-i", *tail], ["go", "test", *tail]]


@pytest.mark.parametrize(
    "operation, package",
    [(e2eslow_pass, "./test/e2e/e2eslow"), (e2esh_pass, "./test/e2e/e2esh")],
)
def test_e2e_tiers_target_their_packages(
    fake_invoker: FakeInvoker, make_context: ContextFactory, operation, package: str
) -> None:
    config = RunConfiguration.from_env({"TEST_S3_BUCKET": "b", "TEST_AWS_SECRET": "s", "E2E_TEST_SELECTOR": "TestX"})

    operation(make_context(config=config))

    assert len(fake_invoker.calls) == 2
    for call in fake_invoker.calls:
        assert package in call
        assert call[call.index("-run") + 1] == "TestX"
        assert not any(arg.startswith("--kubeconfig") for arg in call)


def test_e2e_failure_on_second_attempt(fake_invoker: FakeInvoker, make_context: ContextFactory) -> None:
    fake_invoker.respond(
        lambda command, env: None if "-i" in command else CommandResult(command=list(command), returncode=1)
    )

    with pytest.raises(SubprocessFailure):
        e2e_pass(make_context())


def test_upgrade_command(fake_invoker: FakeInvoker, make_context: ContextFactory) -> None:
    config = RunConfiguration.from_env(
        {"UPGRADE_FROM": "op:0.8", "UPGRADE_TO": "op:0.9", "TEST_NAMESPACE": "ns"}
    )

    upgrade_pass(make_context(config=config))

    assert fake_invoker.calls[1] == [
        "go",
        "test",
        "./test/e2e/upgradetest/",
        "-run",
        ".*",
        "-timeout",
        "30m",
        "--kube-ns=ns",
        "--old-image=op:0.8",
        "--new-image=op:0.9",
    ]
    assert fake_invoker.calls[0][2] == "-i"


# ---------------------------------------------------------------------------
# unit
# ---------------------------------------------------------------------------


def _coverprofile(command: Sequence[str]) -> Optional[Path]:
    for arg in command:
        if arg.startswith("-coverprofile="):
            return Path(arg.split("=", 1)[1])
    return None


def _unit_responder(packages: str, fragments: Mapping[str, str], fail: Sequence[str] = ()):
    def responder(command: Sequence[str], env: Mapping[str, str]) -> Optional[CommandResult]:
        if list(command[:2]) == ["go", "list"]:
            return CommandResult(command=list(command), returncode=0, stdout=packages)
        if "-i" in command or _coverprofile(command) is None:
            return None
        package = command[-1]
        if package in fragments:
            _coverprofile(command).write_text(fragments[package], encoding="utf-8")
        if package in fail:
            return CommandResult(command=list(command), returncode=1)
        return None

    return responder


def test_unit_merges_fragments_with_single_header(
    tmp_path: Path, fake_invoker: FakeInvoker, make_context: ContextFactory
) -> None:
    fake_invoker.respond(
        _unit_responder(
            "example.com/op/pkg/p1\nexample.com/op/pkg/p2\nexample.com/op/pkg/test/framework\n",
            {"example.com/op/pkg/p1": "mode: atomic\nexample.com/op/pkg/p1/a.go:1.1,2.2 1 1\n"},
        )
    )
    fake_invoker.fail_when("codecov", returncode=7)
    ctx = make_context()

    unit_pass(ctx)

    report = tmp_path / "coverage.txt"
    assert report.read_text(encoding="utf-8") == (
        "mode: atomic\nexample.com/op/pkg/p1/a.go:1.1,2.2 1 1\n"
    )
    assert not (tmp_path / "profile.out").exists()
    assert ctx.coverage_path == report
    assert not any("framework" in call for call in fake_invoker.joined())
    tested = [call for call in fake_invoker.calls if call[:2] == ["go", "test"]]
    assert len(tested) == 4
    assert tested[0][2] == "-i" and tested[1][2] != "-i"
    assert ctx.steps[-1].status is StepStatus.BEST_EFFORT_FAILURE


def test_unit_failure_leaves_no_fragment(
    tmp_path: Path, fake_invoker: FakeInvoker, make_context: ContextFactory
) -> None:
    fake_invoker.respond(
        _unit_responder(
            "pkg/p1\npkg/p2\n",
            {"pkg/p1": "mode: atomic\npkg/p1/a.go:1.1,2.2 1 0\n"},
            fail=["pkg/p1"],
        )
    )

    with pytest.raises(SubprocessFailure):
        unit_pass(make_context())

    assert not (tmp_path / "profile.out").exists()
    assert not any(call[-1] == "pkg/p2" for call in fake_invoker.calls)


def test_unit_rerun_ignores_leftover_fragments(
    tmp_path: Path, fake_invoker: FakeInvoker, make_context: ContextFactory
) -> None:
    _write(tmp_path / "profile.out", "mode: atomic\nstale.go:1.1,1.2 1 1\n")
    _write(tmp_path / "coverage.txt", "mode: atomic\nold.go:1.1,1.2 1 1\n")
    fake_invoker.respond(_unit_responder("pkg/p1\n", {}))

    unit_pass(make_context())

    assert (tmp_path / "coverage.txt").read_text(encoding="utf-8") == "mode: atomic\n"
    assert not (tmp_path / "profile.out").exists()


def test_unit_honours_toolchain_paths(tmp_path: Path, fake_invoker: FakeInvoker, make_context: ContextFactory) -> None:
    toolchain = ToolchainConfig.model_validate(
        {"unit": {"report": "out/cover.txt", "header": "mode: set", "upload": None, "exclude_pattern": None}}
    )
    fake_invoker.respond(
        _unit_responder("pkg/framework\n", {"pkg/framework": "mode: set\npkg/framework/f.go:1.1,1.2 1 1\n"})
    )

    unit_pass(make_context(toolchain=toolchain))

    assert (tmp_path / "out" / "cover.txt").read_text(encoding="utf-8") == (
        "mode: set\npkg/framework/f.go:1.1,1.2 1 1\n"
    )
    assert not any("codecov" in call for call in fake_invoker.joined())


def test_license_scan_records_unreadable_files(
    go_tree: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    locked = _write(go_tree / "pkg" / "locked.go", "// Copyright 2024\npackage pkg\n")
    original_open = Path.open

    def guarded_open(self: Path, *args, **kwargs):
        if self == locked:
            raise PermissionError(13, "Permission denied", str(self))
        return original_open(self, *args, **kwargs)

    monkeypatch.setattr(Path, "open", guarded_open)
    files = list_source_files(go_tree, ".go", ["vendor"])

    ledger = scan_license_headers(go_tree, files, pattern="Copyright|generated", header_lines=3)

    assert ledger.subjects() == ["./pkg/locked.go"]
    assert "Permission denied" in ledger.entries[0][1]


def test_failed_mandatory_steps_are_recorded(fake_invoker: FakeInvoker, make_context: ContextFactory) -> None:
    fake_invoker.fail_when("restore-operator", returncode=3)
    ctx = make_context()

    with pytest.raises(SubprocessFailure):
        build_pass(ctx)

    assert [step.status for step in ctx.steps] == [
        StepStatus.SUCCEEDED,
        StepStatus.SUCCEEDED,
        StepStatus.SUBPROCESS_FAILURE,
    ]
    assert ctx.steps[-1].fatal
    assert "exit code 3" in ctx.steps[-1].detail


def test_failed_e2e_run_is_recorded(fake_invoker: FakeInvoker, make_context: ContextFactory) -> None:
    fake_invoker.fail_when("-i", returncode=1)
    ctx = make_context()

    with pytest.raises(SubprocessFailure):
        e2e_pass(ctx)

    assert [(step.label, step.status) for step in ctx.steps] == [
        ("go test ./test/e2e/", StepStatus.SUBPROCESS_FAILURE)
    ]
