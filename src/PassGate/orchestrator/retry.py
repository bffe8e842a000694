"""Warm-cache double run for test commands."""

from __future__ import annotations

import logging
from typing import Callable, Optional, Sequence

from .exceptions import SubprocessFailure
from .invoker import Invoker
from .models import CommandResult

logger = logging.getLogger(__name__)

CommandBuilder = Callable[[bool], Sequence[str]]


class RetryableRunner:
    """Runs a test command twice: once priming the build cache, once for real.

    Both attempts must succeed; the second is skipped when the first fails.
    """

    def __init__(self, invoker: Invoker) -> None:
        self._invoker = invoker

    def run_twice(self, builder: CommandBuilder, *, label: Optional[str] = None) -> CommandResult:
        self._attempt(builder, warm=True, label=label)
        return self._attempt(builder, warm=False, label=label)

    def _attempt(self, builder: CommandBuilder, *, warm: bool, label: Optional[str]) -> CommandResult:
        command = list(builder(warm))
        logger.debug("Test attempt", extra={"warm": warm, "command": command})
        result = self._invoker.run(command)
        if not result.ok:
            raise SubprocessFailure(result, label=label)
        return result
