"""Collected violations for lint-style checks."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, List, Tuple


@dataclass
class FailureLedger:
    """Ordered (subject, diagnostic) pairs gathered over a full scan."""

    title: str
    entries: List[Tuple[str, str]] = field(default_factory=list)

    def record(self, subject: str, diagnostic: str = "") -> None:
        self.entries.append((subject, diagnostic.rstrip()))

    def subjects(self) -> list[str]:
        return [subject for subject, _ in self.entries]

    def __len__(self) -> int:
        return len(self.entries)

    def __bool__(self) -> bool:
        return bool(self.entries)

    def __iter__(self) -> Iterator[Tuple[str, str]]:
        return iter(self.entries)

    def render(self) -> str:
        lines = [f"{self.title} failed:"]
        for subject, diagnostic in self.entries:
            lines.append(f"  {subject}")
            for detail in diagnostic.splitlines():
                lines.append(f"    {detail}")
        return "\n".join(lines)
