from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional


class StepOutcome(str, Enum):
    APPLIED = "applied"
    SKIPPED = "skipped"
    FAILED = "failed"
    # Only produced by dry runs: the step would have been applied.
    PENDING = "pending"


class RunStatus(str, Enum):
    NOT_STARTED = "not-started"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass(frozen=True)
class StepResult:
    step: str
    outcome: StepOutcome
    details: str = ""
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.outcome is StepOutcome.FAILED


@dataclass(frozen=True)
class RenderedFile:
    path: Path
    content: str
    owner: Optional[str] = None
    group: Optional[str] = None
    mode: Optional[int] = None
