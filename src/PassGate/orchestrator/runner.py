"""Sequential execution of requested passes."""

from __future__ import annotations

import json
import logging
import uuid
from pathlib import Path
from typing import Optional, Sequence, Union

from .exceptions import OrchestratorError, PassFailure
from .models import ExitCode, PassResult, RunReport
from .passes import PassContext
from .registry import PassRegistry, default_registry, parse_pass_names
from .reporter import exit_code_for
from .validation import require

logger = logging.getLogger(__name__)


class PassRunner:
    """Runs passes one at a time and stops at the first failure."""

    def __init__(
        self,
        context: PassContext,
        *,
        registry: Optional[PassRegistry] = None,
        summary_path: Optional[Path] = None,
    ) -> None:
        self._context = context
        self._registry = registry or default_registry()
        self._summary_path = summary_path

    @property
    def registry(self) -> PassRegistry:
        return self._registry

    def execute(self, requested: Union[str, Sequence[str], None] = None) -> RunReport:
        """Run ``requested`` passes in order.

        Raises :class:`UnknownPass` before anything runs and :class:`PassFailure`
        for the first failing pass; later passes are never attempted.
        """

        if requested is None:
            requested = self._context.config.pass_names
        names = parse_pass_names(requested, self._registry)
        if not names:
            names = parse_pass_names(self._context.config.pass_names, self._registry)
        run_id = uuid.uuid4().hex
        results = [PassResult(name=name) for name in names]
        logger.info(
            "Starting run",
            extra={"run_id": run_id, "passes": [name.value for name in names]},
        )
        reporter = self._context.reporter
        for result in results:
            spec = self._registry[result.name]
            reporter.pass_started(spec.name.value)
            result.start()
            self._context.steps = result.steps
            try:
                require(self._context.config, spec.required, pass_name=spec.name.value)
                spec.operation(self._context)
            except OrchestratorError as exc:
                raise self._fail(run_id, results, result, exc) from exc
            except Exception as exc:
                logger.exception(
                    "Pass raised an unexpected error",
                    extra={"run_id": run_id, "pass": spec.name.value},
                )
                raise self._fail(run_id, results, result, exc) from exc
            result.finish()
            reporter.pass_finished(result)
            logger.info(
                "Pass succeeded",
                extra={"run_id": run_id, "pass": spec.name.value, "seconds": result.duration_seconds},
            )
        return self._report(run_id, results, ExitCode.SUCCESS)

    def _fail(
        self,
        run_id: str,
        results: Sequence[PassResult],
        result: PassResult,
        exc: Exception,
    ) -> PassFailure:
        code = int(exit_code_for(exc))
        message = str(exc) if isinstance(exc, OrchestratorError) else f"{type(exc).__name__}: {exc}"
        result.finish(error=message, exit_code=code)
        self._context.reporter.pass_finished(result)
        logger.error(
            "Pass failed",
            extra={"run_id": run_id, "pass": result.name.value, "exit_code": code},
        )
        report = self._report(run_id, results, code)
        return PassFailure(result.name.value, exit_code=code, cause=exc, report=report)

    def _report(self, run_id: str, results: Sequence[PassResult], exit_code: int) -> RunReport:
        coverage = self._context.coverage_path
        report = RunReport(
            run_id=run_id,
            passes=tuple(results),
            exit_code=exit_code,
            coverage_path=str(coverage) if coverage else None,
        )
        if self._summary_path is not None:
            self._summary_path.parent.mkdir(parents=True, exist_ok=True)
            self._summary_path.write_text(json.dumps(report.to_dict(), indent=2), encoding="utf-8")
        return report
