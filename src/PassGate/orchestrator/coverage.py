"""Merging of per-package coverage fragments into one report."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from .invoker import Invoker
from .models import StepResult, StepStatus

logger = logging.getLogger(__name__)

DEFAULT_HEADER = "mode: atomic"


@dataclass
class CoverageReport:
    """Single header line followed by append-only coverage records."""

    header: str = DEFAULT_HEADER
    records: List[str] = field(default_factory=list)

    def extend(self, lines: Iterable[str]) -> int:
        added = 0
        for line in lines:
            if not line.strip():
                continue
            self.records.append(line)
            added += 1
        return added

    def render(self) -> str:
        return "\n".join([self.header, *self.records]) + "\n"


def fragment_records(text: str) -> list[str]:
    """Return every line after the fragment's own header."""

    lines = text.splitlines()
    return [line for line in lines[1:] if line.strip()]


def merge_fragments(header: str, fragments: Iterable[str]) -> CoverageReport:
    report = CoverageReport(header=header)
    for fragment in fragments:
        report.extend(fragment_records(fragment))
    return report


class CoverageAggregator:
    """Folds fragment files into a report file as packages finish."""

    def __init__(
        self,
        report_path: Path,
        fragment_path: Path,
        *,
        header: str = DEFAULT_HEADER,
    ) -> None:
        self.report_path = report_path
        self.fragment_path = fragment_path
        self.report = CoverageReport(header=header)

    def reset(self) -> None:
        """Drop leftovers of a previous run and start a fresh report."""

        self.discard()
        self.report = CoverageReport(header=self.report.header)
        self.report_path.parent.mkdir(parents=True, exist_ok=True)
        self.report_path.write_text(self.report.render(), encoding="utf-8")

    def merge(self, fragment_path: Optional[Path] = None) -> int:
        fragment = fragment_path or self.fragment_path
        if not fragment.exists():
            logger.debug("No coverage fragment produced", extra={"fragment": str(fragment)})
            return 0
        records = fragment_records(fragment.read_text(encoding="utf-8"))
        added = self.report.extend(records)
        if records:
            with self.report_path.open("a", encoding="utf-8") as handle:
                handle.write("\n".join(records) + "\n")
        fragment.unlink()
        logger.debug("Merged coverage fragment", extra={"fragment": str(fragment), "records": added})
        return added

    def discard(self, fragment_path: Optional[Path] = None) -> None:
        (fragment_path or self.fragment_path).unlink(missing_ok=True)

    def upload(self, invoker: Invoker, command: Optional[Sequence[str]]) -> StepResult:
        """Hand the finished report to the upload service; never raises."""

        label = "coverage upload"
        if not command:
            return StepResult(label=label, status=StepStatus.SKIPPED, detail="no upload command")
        result = invoker.run(command)
        if not result.ok:
            logger.warning(
                "Reports uploading failed",
                extra={"report": str(self.report_path), "returncode": result.returncode},
            )
            return StepResult(
                label=label,
                status=StepStatus.BEST_EFFORT_FAILURE,
                detail=f"Reports uploading failed (exit code {result.returncode})",
            )
        return StepResult(label=label, status=StepStatus.SUCCEEDED)
