from __future__ import annotations

from typing import Callable, Iterable, Optional, Sequence
import logging
import subprocess

from .host import HostState
from .report import GENERIC_MANUAL_STEPS, Report
from .steps import Step, StepRegistry
from .types import RunStatus, StepOutcome, StepResult

logger = logging.getLogger(__name__)


class ProvisioningRunner:
    """Runs steps one at a time, stopping at the first failed apply.

    Nothing is retried and nothing is rolled back: whatever earlier steps
    changed stays in place when a later one fails.
    """

    def __init__(
        self,
        host: HostState,
        *,
        dry_run: bool = False,
        manual_steps: Sequence[str] = (),
        progress_callback: Optional[Callable[[Step], None]] = None,
    ):
        self.host = host
        self.dry_run = dry_run
        self.manual_steps = list(manual_steps) or list(GENERIC_MANUAL_STEPS)
        self.progress_callback = progress_callback
        self.status = RunStatus.NOT_STARTED

    def run(self, steps: Iterable[Step]) -> Report:
        registry = steps if isinstance(steps, StepRegistry) else StepRegistry(steps)
        ordered = registry.ordered()

        self.status = RunStatus.RUNNING
        results: list[StepResult] = []
        for step in ordered:
            if self.progress_callback:
                self.progress_callback(step)
            result = self._run_step(step)
            logger.debug("step=%s outcome=%s details=%s", step.name, result.outcome.value, result.details)
            results.append(result)
            if result.failed:
                self.status = RunStatus.ABORTED
                break
        else:
            self.status = RunStatus.COMPLETED

        return Report(
            results=results,
            status=self.status,
            manual_steps=self.manual_steps,
            dry_run=self.dry_run,
        )

    def _run_step(self, step: Step) -> StepResult:
        if self._satisfied(step):
            return StepResult(step.name, StepOutcome.SKIPPED, step.skip_detail(self.host))
        if self.dry_run:
            return StepResult(step.name, StepOutcome.PENDING, "would apply")

        logger.info("applying %s: %s", step.name, step.description)
        try:
            detail = step.apply(self.host)
        except Exception as exc:  # noqa: BLE001
            logger.error("step=%s failed: %s", step.name, exc, exc_info=logger.isEnabledFor(logging.DEBUG))
            return StepResult(step.name, StepOutcome.FAILED, "failed", error=describe_error(exc))
        return StepResult(step.name, StepOutcome.APPLIED, detail or "applied")

    def _satisfied(self, step: Step) -> bool:
        try:
            return bool(step.is_satisfied(self.host))
        except Exception as exc:  # noqa: BLE001
            # An unanswerable check (tool not installed yet, file missing) means "apply".
            logger.debug("step=%s precondition check raised %s; treating as unsatisfied", step.name, exc)
            return False


def describe_error(exc: BaseException) -> str:
    if isinstance(exc, subprocess.CalledProcessError):
        command = exc.cmd if isinstance(exc.cmd, str) else " ".join(str(part) for part in exc.cmd)
        message = _first_line(exc.stderr) or _first_line(exc.output)
        prefix = f"`{command}` exited with rc={exc.returncode}"
        return f"{prefix}: {message}" if message else prefix
    text = str(exc).strip()
    return f"{type(exc).__name__}: {text}" if text else type(exc).__name__


def _first_line(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    if isinstance(text, bytes):
        text = text.decode(errors="replace")
    stripped = text.strip()
    if not stripped:
        return None
    line = stripped.splitlines()[0]
    return (line[:157] + "...") if len(line) > 160 else line
