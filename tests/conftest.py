from __future__ import annotations

import io
import logging
import sys
from pathlib import Path
from typing import Callable, Iterator, Mapping, Optional, Sequence

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

import pytest  # noqa: E402
from rich.console import Console  # noqa: E402

from PassGate.orchestrator.config import RunConfiguration, ToolchainConfig  # noqa: E402
from PassGate.orchestrator.invoker import Invoker  # noqa: E402
from PassGate.orchestrator.models import CommandResult  # noqa: E402
from PassGate.orchestrator.passes import PassContext  # noqa: E402
from PassGate.orchestrator.reporter import Reporter  # noqa: E402

Responder = Callable[[Sequence[str], Mapping[str, str]], Optional[CommandResult]]


class FakeInvoker(Invoker):
    """Records commands instead of spawning them.

    ``responders`` are consulted in order; the first non-None result wins and
    everything else succeeds with empty output.
    """

    def __init__(self, workdir: Path, installed: Sequence[str] = ()) -> None:
        super().__init__(workdir=workdir, forward_output=False)
        self.calls: list[list[str]] = []
        self.envs: list[dict[str, str]] = []
        self.responders: list[Responder] = []
        self.installed = set(installed)

    def respond(self, responder: Responder) -> None:
        self.responders.append(responder)

    def fail_when(self, fragment: str, returncode: int = 1, output: str = "") -> None:
        def responder(command: Sequence[str], env: Mapping[str, str]) -> Optional[CommandResult]:
            if fragment in " ".join(command):
                return CommandResult(command=list(command), returncode=returncode, stdout=output)
            return None

        self.respond(responder)

    def run(self, command, *, env=None, cwd=None, timeout=None) -> CommandResult:
        command = [str(part) for part in command]
        self.calls.append(command)
        self.envs.append(dict(env or {}))
        for responder in self.responders:
            result = responder(command, env or {})
            if result is not None:
                return result
        return CommandResult(command=command, returncode=0)

    def available(self, executable: str) -> bool:
        return executable in self.installed

    def joined(self) -> list[str]:
        return [" ".join(call) for call in self.calls]


@pytest.fixture
def console_buffer() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def reporter(console_buffer: io.StringIO) -> Reporter:
    console = Console(file=console_buffer, force_terminal=False, highlight=False, soft_wrap=True, width=200)
    return Reporter(console)


@pytest.fixture
def fake_invoker(tmp_path: Path) -> FakeInvoker:
    return FakeInvoker(tmp_path)


@pytest.fixture
def run_config() -> RunConfiguration:
    return RunConfiguration.from_env(
        {
            "KUBECONFIG": "/tmp/kubeconfig",
            "TEST_NAMESPACE": "e2e-ns",
            "OPERATOR_IMAGE": "quay.io/example/operator:dev",
            "TEST_S3_BUCKET": "bucket",
            "TEST_AWS_SECRET": "aws-secret",
        }
    )


@pytest.fixture
def make_context(
    fake_invoker: FakeInvoker,
    reporter: Reporter,
    run_config: RunConfiguration,
) -> Callable[..., PassContext]:
    def factory(
        config: Optional[RunConfiguration] = None,
        toolchain: Optional[ToolchainConfig] = None,
    ) -> PassContext:
        return PassContext(
            config=config or run_config,
            toolchain=toolchain or ToolchainConfig(),
            invoker=fake_invoker,
            reporter=reporter,
        )

    return factory


@pytest.fixture(autouse=True)
def reset_passgate_logger() -> Iterator[None]:
    yield
    logger = logging.getLogger("PassGate")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
