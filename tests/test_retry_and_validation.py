from __future__ import annotations

from pathlib import Path

import pytest

from conftest import FakeInvoker
from PassGate.orchestrator.config import RunConfiguration
from PassGate.orchestrator.exceptions import MissingConfiguration, SubprocessFailure
from PassGate.orchestrator.models import CommandResult, ConfigKey, ExitCode
from PassGate.orchestrator.retry import RetryableRunner
from PassGate.orchestrator.validation import RequiredInputValidator, require


def _builder(warm: bool) -> list[str]:
    return ["go", "test", *(["-i"] if warm else []), "./pkg/a"]


def _failed(command) -> CommandResult:
    return CommandResult(command=list(command), returncode=1)


def test_run_twice_passes_warm_flag_only_first(fake_invoker: FakeInvoker) -> None:
    result = RetryableRunner(fake_invoker).run_twice(_builder)

    assert fake_invoker.calls == [["go", "test", "-i", "./pkg/a"], ["go", "test", "./pkg/a"]]
    assert result.command == ["go", "test", "./pkg/a"]


def test_run_twice_stops_after_failed_first_attempt(fake_invoker: FakeInvoker) -> None:
    fake_invoker.fail_when("-i", returncode=2)

    with pytest.raises(SubprocessFailure) as excinfo:
        RetryableRunner(fake_invoker).run_twice(_builder, label="go test ./pkg/a")

    assert len(fake_invoker.calls) == 1
    assert excinfo.value.returncode == 2


def test_run_twice_requires_second_attempt_success(tmp_path: Path) -> None:
    invoker = FakeInvoker(tmp_path)
    invoker.respond(
        lambda command, env: None if "-i" in command else _failed(command)
    )

    with pytest.raises(SubprocessFailure):
        RetryableRunner(invoker).run_twice(_builder)

    assert len(invoker.calls) == 2


def test_require_names_every_missing_key() -> None:
    config = RunConfiguration.from_env({"TEST_AWS_SECRET": "secret"})

    with pytest.raises(MissingConfiguration) as excinfo:
        require(
            config,
            [ConfigKey.TEST_S3_BUCKET, ConfigKey.TEST_AWS_SECRET, ConfigKey.UPGRADE_FROM],
            pass_name="e2e",
        )

    assert excinfo.value.keys == (ConfigKey.TEST_S3_BUCKET, ConfigKey.UPGRADE_FROM)
    assert excinfo.value.exit_code == ExitCode.CONFIGURATION
    assert "TEST_S3_BUCKET" in str(excinfo.value)


def test_require_accepts_present_keys_and_empty_set() -> None:
    validator = RequiredInputValidator(RunConfiguration.from_env({"UPGRADE_FROM": "a", "UPGRADE_TO": "b"}))

    validator.require([ConfigKey.UPGRADE_FROM, ConfigKey.UPGRADE_TO])
    validator.require([])
    assert validator.missing([ConfigKey.OPERATOR_IMAGE]) == (ConfigKey.OPERATOR_IMAGE,)
