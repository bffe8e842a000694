"""Synchronous execution of external tools."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import sys
from pathlib import Path
from typing import Mapping, Optional, Sequence

from .exceptions import SubprocessFailure
from .models import CommandResult, StepResult, StepStatus

logger = logging.getLogger(__name__)

COMMAND_NOT_FOUND = 127
COMMAND_NOT_EXECUTABLE = 126


class Invoker:
    """Runs external commands, capturing and optionally forwarding their output."""

    def __init__(
        self,
        *,
        workdir: Optional[Path] = None,
        env: Optional[Mapping[str, str]] = None,
        forward_output: bool = True,
        timeout_seconds: Optional[int] = None,
    ) -> None:
        self._workdir = workdir or Path.cwd()
        self._env = dict(env or {})
        self._forward = forward_output
        self._timeout = timeout_seconds

    @property
    def workdir(self) -> Path:
        return self._workdir

    def run(
        self,
        command: Sequence[str],
        *,
        env: Optional[Mapping[str, str]] = None,
        cwd: Optional[Path] = None,
        timeout: Optional[int] = None,
    ) -> CommandResult:
        command = [str(part) for part in command]
        proc_env = os.environ.copy()
        proc_env.update(self._env)
        if env:
            proc_env.update(env)
        logger.info("Running command", extra={"command": command})
        try:
            process = subprocess.run(
                command,
                cwd=cwd or self._workdir,
                env=proc_env,
                text=True,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=timeout or self._timeout,
                check=False,
            )
        except FileNotFoundError as exc:
            result = CommandResult(command=command, returncode=COMMAND_NOT_FOUND, stderr=f"{exc}\n")
        except OSError as exc:
            # not executable, bad working directory, exec format errors
            result = CommandResult(command=command, returncode=COMMAND_NOT_EXECUTABLE, stderr=f"{exc}\n")
        except subprocess.TimeoutExpired as exc:
            result = CommandResult(
                command=command,
                returncode=1,
                stdout=_decode(exc.stdout),
                stderr=_decode(exc.stderr) + f"timeout: {exc.timeout}s\n",
            )
        else:
            result = CommandResult(
                command=command,
                returncode=process.returncode,
                stdout=process.stdout or "",
                stderr=process.stderr or "",
            )
        self._forward_result(result)
        logger.debug(
            "Command finished",
            extra={"command": command, "returncode": result.returncode, "output": result.output},
        )
        return result

    def check(
        self,
        command: Sequence[str],
        *,
        label: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> CommandResult:
        """Run a mandatory command, raising on a non-zero exit."""

        result = self.run(command, env=env)
        if not result.ok:
            raise SubprocessFailure(result, label=label)
        return result

    def available(self, executable: str) -> bool:
        if os.sep in executable:
            candidate = Path(executable)
            if not candidate.is_absolute():
                candidate = self._workdir / candidate
            return candidate.exists()
        return shutil.which(executable) is not None

    def best_effort(self, label: str, command: Sequence[str]) -> StepResult:
        """Run an optional tool whose failure never fails the pass."""

        if not command or not self.available(command[0]):
            logger.warning("Optional tool not installed", extra={"step": label})
            return StepResult(label=label, status=StepStatus.SKIPPED, detail=f"{label} not installed")
        result = self.run(command)
        if not result.ok or result.output.strip():
            logger.warning(
                "Optional tool reported issues",
                extra={"step": label, "returncode": result.returncode},
            )
            return StepResult(
                label=label,
                status=StepStatus.BEST_EFFORT_FAILURE,
                detail=result.output.strip() or f"exit code {result.returncode}",
            )
        return StepResult(label=label, status=StepStatus.SUCCEEDED)

    def _forward_result(self, result: CommandResult) -> None:
        if not self._forward:
            return
        if result.stdout:
            sys.stdout.write(result.stdout)
            sys.stdout.flush()
        if result.stderr:
            sys.stderr.write(result.stderr)
            sys.stderr.flush()


def _decode(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)
