from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional
import json
import logging
import os

from .report import Report

logger = logging.getLogger(__name__)


class RunJournal:
    """Keeps the report of the most recent provisioning run on disk."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> Optional[dict[str, Any]]:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text())
        except json.JSONDecodeError:
            data = None
        if not isinstance(data, dict):
            logger.warning("Run journal %s is corrupt; it will be replaced", self.path)
            return None
        return data

    def record(self, report: Report, *, config_source: Optional[Path] = None) -> dict[str, Any]:
        previous = self.load()
        data = report.to_dict()
        data["finished_at"] = datetime.now(timezone.utc).isoformat(timespec="seconds")
        data["config"] = str(config_source) if config_source else None
        if previous and previous.get("status") == "aborted":
            data["previous_failure"] = previous.get("failure")
        self._write(data)
        return data

    def _write(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2))
        try:
            os.chmod(self.path, 0o600)
        except OSError:
            logger.debug("Unable to chmod run journal %s", self.path, exc_info=True)
