"""
Per-scrape state.

A PassContext is created at the start of every collection pass and
handed down explicitly to the correlator and the Kubernetes clients.
Nothing about a pass is stored on the long-lived exporter, so two
scrapes running at once never see each other's data.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Optional

from amdexporter.errors import CorrelationError


@dataclass(frozen=True)
class PassContext:
    """Deadline and flags for one collection pass."""

    deadline: Optional[float] = None  # time.monotonic() value, None = no limit
    with_kubernetes: bool = True
    started: float = field(default_factory=time.monotonic)

    @classmethod
    def start(cls, timeout: Optional[float] = None, with_kubernetes: bool = True) -> "PassContext":
        now = time.monotonic()
        deadline = now + timeout if timeout is not None else None
        return cls(deadline=deadline, with_kubernetes=with_kubernetes, started=now)

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None when the pass is unbounded."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    def check(self, step: str):
        """Raise CorrelationError if the deadline already passed."""
        if self.expired():
            raise CorrelationError(f"scrape deadline exceeded before {step}")

    def elapsed(self) -> float:
        return time.monotonic() - self.started
