from pathlib import Path
import json
import stat

from vps_provisioner.report import Report
from vps_provisioner.state import RunJournal
from vps_provisioner.types import RunStatus, StepOutcome, StepResult


def aborted_report() -> Report:
    return Report(
        results=[StepResult("nginx", StepOutcome.FAILED, "failed", error="apt-get failed")],
        status=RunStatus.ABORTED,
    )


def test_record_writes_private_file(tmp_path: Path) -> None:
    journal = RunJournal(tmp_path / "state" / "last-run.json")

    data = journal.record(Report(status=RunStatus.COMPLETED), config_source=Path("/etc/provision.toml"))

    assert journal.path.exists()
    assert stat.S_IMODE(journal.path.stat().st_mode) == 0o600
    assert json.loads(journal.path.read_text()) == data
    assert data["config"] == "/etc/provision.toml"
    assert data["finished_at"]


def test_previous_failure_is_carried_forward(tmp_path: Path) -> None:
    journal = RunJournal(tmp_path / "last-run.json")
    journal.record(aborted_report())

    data = journal.record(Report(status=RunStatus.COMPLETED))

    assert data["status"] == "completed"
    assert "apt-get failed" in data["previous_failure"]


def test_corrupt_journal_is_replaced(tmp_path: Path, caplog) -> None:
    path = tmp_path / "last-run.json"
    path.write_text("{not json")
    journal = RunJournal(path)

    assert journal.load() is None
    assert "corrupt" in caplog.text
    journal.record(Report(status=RunStatus.COMPLETED))
    assert journal.load()["status"] == "completed"


def test_journal_of_wrong_shape_is_replaced(tmp_path: Path, caplog) -> None:
    path = tmp_path / "last-run.json"
    path.write_text('["not", "a", "report"]')
    journal = RunJournal(path)

    assert journal.load() is None
    assert "corrupt" in caplog.text

    data = journal.record(Report(status=RunStatus.COMPLETED))
    assert data["status"] == "completed"
    assert "previous_failure" not in data
