from pathlib import Path
import os
import subprocess
import time

import pytest

from vps_provisioner.executors import CommandResult, Executor
from vps_provisioner.host import LiveHost
from vps_provisioner.runner import ProvisioningRunner
from vps_provisioner.steps import PackageStep, SystemUpgradeStep
from vps_provisioner.system import (
    PASSWORD_ENV,
    AptPackageManager,
    DpkgQuery,
    NodeSource,
    PostgresAdmin,
    SystemCtl,
    Ufw,
)


class FakeExecutor(Executor):
    """Returns canned results keyed by the first words of a command."""

    def __init__(self, responses=None, *, commands=("ufw", "node")):
        self.responses = responses or {}
        self.commands = set(commands)
        self.calls: list[dict] = []

    def run(self, command, *, check=True, env=None, cwd=None, input=None, timeout=None):  # noqa: ARG002
        command = [str(part) for part in command]
        self.calls.append({"command": command, "env": env, "input": input})
        for prefix, (returncode, stdout) in self.responses.items():
            if " ".join(command).startswith(prefix):
                if check and returncode != 0:
                    raise subprocess.CalledProcessError(returncode, command, stdout, "")
                return CommandResult(command, stdout, "", returncode)
        return CommandResult(command, "", "", 0)

    def which(self, name):
        return f"/usr/bin/{name}" if name in self.commands else None


@pytest.mark.parametrize(
    "returncode, stdout, expected",
    [
        (0, "install ok installed", True),
        (0, "deinstall ok config-files", False),
        (0, "unknown ok not-installed", False),
        (1, "", False),
    ],
)
def test_dpkg_query(returncode: int, stdout: str, expected: bool) -> None:
    executor = FakeExecutor({"dpkg-query": (returncode, stdout)})
    assert DpkgQuery().check(executor, "nginx") is expected
    assert executor.calls[0]["command"] == ["dpkg-query", "-W", "-f", "${Status}", "nginx"]


def test_apt_upgradable_parses_simulation() -> None:
    output = (
        "Reading package lists...\n"
        "Inst libc6 [2.39-0ubuntu8] (2.39-0ubuntu8.3 Ubuntu:24.04/noble-updates [amd64])\n"
        "Inst openssl [3.0.13-0ubuntu3] (3.0.13-0ubuntu3.4 Ubuntu:24.04/noble-updates [amd64])\n"
        "Conf libc6 (2.39-0ubuntu8.3 Ubuntu:24.04/noble-updates [amd64])\n"
    )
    executor = FakeExecutor({"apt-get -s": (0, output)})
    assert AptPackageManager().upgradable(executor) == ["libc6", "openssl"]


def test_apt_install_is_noninteractive() -> None:
    executor = FakeExecutor()
    AptPackageManager().install(executor, ["nginx", "fail2ban"])
    call = executor.calls[0]
    assert call["command"] == ["apt-get", "install", "-y", "nginx", "fail2ban"]
    assert call["env"] == {"DEBIAN_FRONTEND": "noninteractive"}


def test_systemctl_state_from_returncode() -> None:
    executor = FakeExecutor({"systemctl is-enabled": (1, "disabled"), "systemctl is-active": (0, "active")})
    assert SystemCtl().is_enabled(executor, "nginx") is False
    assert SystemCtl().is_active(executor, "nginx") is True


def test_postgres_queries_use_variables() -> None:
    executor = FakeExecutor({"sudo -n -u postgres psql": (0, "1\n")})
    assert PostgresAdmin().database_exists(executor, "app_db")

    call = executor.calls[0]
    assert call["command"][:4] == ["sudo", "-n", "-u", "postgres"]
    assert "db=app_db" in call["command"]
    assert "app_db" not in call["input"]
    assert ":'db'" in call["input"]


def test_postgres_privileges_need_all_three() -> None:
    executor = FakeExecutor({"sudo -n -u postgres psql": (0, "f\n")})
    assert not PostgresAdmin().has_database_privileges(executor, "app", "app_db")


def test_create_role_keeps_password_off_the_command_line() -> None:
    executor = FakeExecutor()
    PostgresAdmin().create_role(executor, "app", "s3cr'et")

    call = executor.calls[0]
    assert call["command"][:3] == ["sudo", "-n", f"--preserve-env={PASSWORD_ENV}"]
    assert not any("s3cr'et" in part for part in call["command"])
    assert "s3cr'et" not in call["input"]
    assert call["env"] == {PASSWORD_ENV: "s3cr'et"}
    assert "CREATEDB" in call["input"]
    assert "role=app" in call["command"]


def test_hba_path_picks_newest_version(tmp_path: Path) -> None:
    for version in ("9.6", "14", "16"):
        main = tmp_path / version / "main"
        main.mkdir(parents=True)
        (main / "pg_hba.conf").write_text("")
    (tmp_path / "17").mkdir()

    assert PostgresAdmin(config_root=tmp_path).hba_path() == tmp_path / "16" / "main" / "pg_hba.conf"


def test_hba_path_without_postgres(tmp_path: Path) -> None:
    assert PostgresAdmin(config_root=tmp_path / "missing").hba_path() is None


def test_ufw_commands() -> None:
    executor = FakeExecutor({"ufw status": (0, "Status: inactive\n")})
    ufw = Ufw()
    assert ufw.available(executor)
    assert ufw.status(executor) == "Status: inactive\n"
    ufw.enable(executor)
    assert executor.calls[-1]["command"] == ["ufw", "--force", "enable"]


def test_nodesource_downloads_then_runs(tmp_path: Path) -> None:
    executor = FakeExecutor()
    NodeSource(scratch_dir=str(tmp_path)).setup(executor, 20)

    download, install = (call["command"] for call in executor.calls)
    assert download[:3] == ["curl", "-fsSL", "https://deb.nodesource.com/setup_20.x"]
    assert install == ["bash", download[-1]]
    assert not list(tmp_path.iterdir())


def test_live_host_command_version() -> None:
    executor = FakeExecutor({"node --version": (0, "v20.11.1\n")})
    host = LiveHost(executor)
    assert host.command_version("node") == "v20.11.1"
    assert host.command_version("pm2") is None


def test_live_host_firewall_unavailable() -> None:
    host = LiveHost(FakeExecutor(commands=()))
    assert not host.firewall_available()


def test_create_database_does_not_prompt() -> None:
    executor = FakeExecutor()
    PostgresAdmin().create_database(executor, "app_db")
    assert executor.calls[0]["command"] == ["sudo", "-n", "-u", "postgres", "createdb", "app_db"]


def test_index_age_missing_lists(tmp_path: Path) -> None:
    apt = AptPackageManager(stamp=tmp_path / "update-success-stamp", lists_dir=tmp_path / "lists")
    assert apt.index_age() is None

    (tmp_path / "lists").mkdir()
    (tmp_path / "lists" / "lock").write_text("")
    assert apt.index_age() is None


def test_index_age_uses_newest_list(tmp_path: Path) -> None:
    lists = tmp_path / "lists"
    lists.mkdir()
    old = lists / "archive.ubuntu.com_ubuntu_dists_noble_InRelease"
    old.write_text("")
    two_days_ago = time.time() - 2 * 24 * 3600
    os.utime(old, (two_days_ago, two_days_ago))
    apt = AptPackageManager(stamp=tmp_path / "update-success-stamp", lists_dir=lists)

    assert apt.index_age() > 24 * 3600

    (tmp_path / "update-success-stamp").write_text("")
    assert apt.index_age() < 60


def test_upgrade_refreshes_index_before_installing(tmp_path: Path) -> None:
    executor = FakeExecutor({"apt-get -s": (0, "Reading package lists...\n")})
    host = LiveHost(executor)
    host.packages = AptPackageManager(stamp=tmp_path / "stamp", lists_dir=tmp_path / "lists")

    report = ProvisioningRunner(host).run([SystemUpgradeStep(), PackageStep("nginx", ["nginx"])])

    assert [(r.step, r.outcome.value) for r in report.results] == [
        ("system-upgrade", "applied"),
        ("nginx", "applied"),
    ]
    commands = [" ".join(call["command"]) for call in executor.calls]
    assert commands.index("apt-get update") < commands.index("apt-get install -y nginx")
