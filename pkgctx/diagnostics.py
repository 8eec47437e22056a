"""Run-level warning aggregation.

Warnings from every stage are collected here and reported once at the end
of a run, as a count plus a few representative samples.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

SAMPLE_LIMIT = 5


@dataclass
class Diagnostics:
    """Warnings collected over one run, in the order they were raised."""

    warnings: list[str] = field(default_factory=list)

    def warn(self, message: str) -> None:
        self.warnings.append(message)

    def extend(self, messages: list[str]) -> None:
        self.warnings.extend(messages)

    @property
    def count(self) -> int:
        return len(self.warnings)

    def samples(self, limit: int = SAMPLE_LIMIT) -> list[str]:
        return self.warnings[:limit]

    def summary(self, limit: int = SAMPLE_LIMIT) -> str:
        if not self.warnings:
            return "0 warnings"
        lines = [f"{self.count} warning(s)"]
        lines.extend(f"  - {w}" for w in self.samples(limit))
        if self.count > limit:
            lines.append(f"  ... and {self.count - limit} more")
        return "\n".join(lines)

    def report(self, logger: logging.Logger) -> None:
        """Log the aggregated warnings once; nothing when there are none."""
        if self.warnings:
            logger.warning(self.summary())
