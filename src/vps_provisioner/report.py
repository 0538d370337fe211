from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from .config import ProvisioningConfig
from .types import RunStatus, StepOutcome, StepResult

GENERIC_MANUAL_STEPS = (
    "Upload the application code and start it under PM2 (pm2 start, pm2 save, pm2 startup).",
    "Replace SESSION_SECRET in the application's .env with a random value.",
    "Set the real server_name in the Nginx site configuration.",
    "Obtain a TLS certificate: certbot --nginx -d your-domain.com",
    "Change default application passwords after the first login.",
)


def manual_steps(config: ProvisioningConfig) -> list[str]:
    """Follow-ups that need operator supplied values (domain, code, secrets)."""
    run_as = f"sudo -u {config.app_user}"
    return [
        f"Upload the application code to {config.app_dir}.",
        f"Build and start it: cd {config.app_dir} && npm install && npm run build"
        f" && {run_as} pm2 start ecosystem.config.js && {run_as} pm2 save && {run_as} pm2 startup",
        f"Replace SESSION_SECRET in {config.app_dir}/.env with a random value.",
        f"Set the real server_name in /etc/nginx/sites-available/{config.site_name}.",
        "Obtain a TLS certificate: certbot --nginx -d your-domain.com",
        "Change default application passwords after the first login.",
        f"Check the host with {config.home}/system-status.sh and logs with `{run_as} pm2 logs`.",
    ]


@dataclass
class Report:
    results: list[StepResult] = field(default_factory=list)
    status: RunStatus = RunStatus.NOT_STARTED
    manual_steps: list[str] = field(default_factory=list)
    dry_run: bool = False

    def _count(self, outcome: StepOutcome) -> int:
        return sum(1 for r in self.results if r.outcome is outcome)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def applied(self) -> int:
        return self._count(StepOutcome.APPLIED)

    @property
    def skipped(self) -> int:
        return self._count(StepOutcome.SKIPPED)

    @property
    def pending(self) -> int:
        return self._count(StepOutcome.PENDING)

    @property
    def failure(self) -> Optional[StepResult]:
        return next((r for r in self.results if r.failed), None)

    @property
    def succeeded(self) -> bool:
        return self.status is RunStatus.COMPLETED

    def failure_message(self) -> Optional[str]:
        failure = self.failure
        if failure is None:
            return None
        applied = [r.step for r in self.results if r.outcome is StepOutcome.APPLIED]
        message = f"step '{failure.step}' failed: {failure.error or failure.details}"
        if applied:
            message += (
                f". Steps already applied were not rolled back ({', '.join(applied)});"
                " fix the cause and re-run, satisfied steps will be skipped."
            )
        else:
            message += ". No changes were applied before the failure; fix the cause and re-run."
        return message

    def summary(self) -> str:
        parts = [
            f"Steps: {self.total}",
            f"Applied: {self.applied}",
            f"Skipped: {self.skipped}",
        ]
        if self.dry_run:
            parts.append(f"Pending: {self.pending}")
        parts.append(f"Status: {self.status.value}")
        return " | ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "dry_run": self.dry_run,
            "total": self.total,
            "applied": self.applied,
            "skipped": self.skipped,
            "pending": self.pending,
            "failure": self.failure_message(),
            "results": [
                {
                    "step": r.step,
                    "outcome": r.outcome.value,
                    "details": r.details,
                    "error": r.error,
                }
                for r in self.results
            ],
            "manual_steps": list(self.manual_steps),
        }
