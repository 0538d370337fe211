"""Thin wrappers around the system tools the live host drives."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional
import grp
import logging
import os
import pwd
import tempfile
import time

from .executors import Executor

logger = logging.getLogger(__name__)

APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}
NODESOURCE_URL = "https://deb.nodesource.com/setup_{version}.x"
PASSWORD_ENV = "VPS_PROVISIONER_ROLE_PASSWORD"
APT_UPDATE_STAMP = Path("/var/lib/apt/periodic/update-success-stamp")
APT_LISTS_DIR = Path("/var/lib/apt/lists")


@dataclass
class DpkgQuery:
    executable: str = "dpkg-query"

    def check(self, executor: Executor, package: str) -> bool:
        result = executor.run(
            [self.executable, "-W", "-f", "${Status}", package],
            check=False,
        )
        # "install ok installed"; "unknown ok not-installed" must not match.
        words = result.stdout.split()
        return result.returncode == 0 and bool(words) and words[-1] == "installed"


class AptPackageManager:
    name = "apt"

    def __init__(self, *, stamp: Path = APT_UPDATE_STAMP, lists_dir: Path = APT_LISTS_DIR) -> None:
        self.query = DpkgQuery()
        self.stamp = stamp
        self.lists_dir = lists_dir

    def is_installed(self, executor: Executor, package: str) -> bool:
        return self.query.check(executor, package)

    def update(self, executor: Executor) -> None:
        executor.run(["apt-get", "update"], env=APT_ENV)

    def upgrade(self, executor: Executor) -> None:
        executor.run(["apt-get", "upgrade", "-y"], env=APT_ENV)

    def install(self, executor: Executor, packages: Iterable[str]) -> None:
        executor.run(["apt-get", "install", "-y", *packages], env=APT_ENV)

    def index_age(self) -> Optional[float]:
        """Seconds since the package lists were last refreshed, None if never."""
        mtimes = []
        if self.stamp.is_file():
            mtimes.append(self.stamp.stat().st_mtime)
        if self.lists_dir.is_dir():
            # Skip "lock" and the "partial/" download directory.
            mtimes += [
                p.stat().st_mtime for p in self.lists_dir.iterdir() if p.is_file() and p.name != "lock"
            ]
        if not mtimes:
            return None
        return max(0.0, time.time() - max(mtimes))

    def upgradable(self, executor: Executor) -> list[str]:
        # Simulated upgrade; each "Inst <pkg> ..." line is one pending upgrade.
        result = executor.run(
            ["apt-get", "-s", "-o", "Debug::NoLocking=1", "upgrade"],
            env=APT_ENV,
        )
        return [
            line.split()[1]
            for line in result.stdout.splitlines()
            if line.startswith("Inst ") and len(line.split()) > 1
        ]


@dataclass
class SystemCtl:
    executable: str = "systemctl"

    def is_enabled(self, executor: Executor, service: str) -> bool:
        result = executor.run([self.executable, "is-enabled", service], check=False)
        return result.returncode == 0

    def is_active(self, executor: Executor, service: str) -> bool:
        result = executor.run([self.executable, "is-active", service], check=False)
        return result.returncode == 0

    def enable(self, executor: Executor, service: str) -> None:
        executor.run([self.executable, "enable", service])

    def start(self, executor: Executor, service: str) -> None:
        executor.run([self.executable, "start", service])

    def restart(self, executor: Executor, service: str) -> None:
        executor.run([self.executable, "restart", service])

    def reload(self, executor: Executor, service: str) -> None:
        executor.run([self.executable, "reload", service])


class UserManager:
    def exists(self, username: str) -> bool:
        try:
            pwd.getpwnam(username)
        except KeyError:
            return False
        return True

    def groups(self, username: str) -> set[str]:
        try:
            entry = pwd.getpwnam(username)
        except KeyError:
            return set()
        names = {g.gr_name for g in grp.getgrall() if username in g.gr_mem}
        try:
            names.add(grp.getgrgid(entry.pw_gid).gr_name)
        except KeyError:
            pass
        return names

    def add(self, executor: Executor, name: str) -> None:
        executor.run(["adduser", "--disabled-password", "--gecos", "", name])

    def add_to_group(self, executor: Executor, name: str, group: str) -> None:
        executor.run(["usermod", "-aG", group, name])


@dataclass
class PostgresAdmin:
    """Runs administrative SQL as the ``postgres`` superuser.

    Identifiers and literals never get spliced into SQL text: they travel as
    psql variables and are quoted by psql itself (``:"name"`` / ``:'name'``).
    """

    config_root: Path = Path("/etc/postgresql")
    superuser: str = "postgres"

    def _psql(
        self,
        executor: Executor,
        sql: str,
        variables: dict[str, str],
        *,
        env: Optional[dict[str, str]] = None,
    ) -> str:
        # -n: fail instead of prompting when run without root (dry runs).
        command = ["sudo", "-n"]
        if env:
            command.append("--preserve-env=" + ",".join(env))
        command += ["-u", self.superuser, "psql", "-X", "-q", "-tA", "-v", "ON_ERROR_STOP=1"]
        for key, value in variables.items():
            command += ["-v", f"{key}={value}"]
        result = executor.run(command, input=sql, env=env)
        return result.stdout.strip()

    def database_exists(self, executor: Executor, name: str) -> bool:
        out = self._psql(executor, "SELECT 1 FROM pg_database WHERE datname = :'db';\n", {"db": name})
        return out == "1"

    def role_exists(self, executor: Executor, name: str) -> bool:
        out = self._psql(executor, "SELECT 1 FROM pg_roles WHERE rolname = :'role';\n", {"role": name})
        return out == "1"

    def has_database_privileges(self, executor: Executor, role: str, database: str) -> bool:
        sql = (
            "SELECT has_database_privilege(:'role', :'db', 'CREATE')"
            " AND has_database_privilege(:'role', :'db', 'CONNECT')"
            " AND has_database_privilege(:'role', :'db', 'TEMPORARY');\n"
        )
        return self._psql(executor, sql, {"role": role, "db": database}) == "t"

    def create_database(self, executor: Executor, name: str) -> None:
        executor.run(["sudo", "-n", "-u", self.superuser, "createdb", name])

    def create_role(self, executor: Executor, name: str, password: str) -> None:
        sql = (
            f"\\getenv pw {PASSWORD_ENV}\n"
            "CREATE ROLE :\"role\" WITH LOGIN ENCRYPTED PASSWORD :'pw';\n"
            "ALTER ROLE :\"role\" CREATEDB;\n"
        )
        self._psql(executor, sql, {"role": name}, env={PASSWORD_ENV: password})

    def grant_all(self, executor: Executor, database: str, role: str) -> None:
        sql = "GRANT ALL PRIVILEGES ON DATABASE :\"db\" TO :\"role\";\n"
        self._psql(executor, sql, {"db": database, "role": role})

    def hba_path(self) -> Optional[Path]:
        if not self.config_root.is_dir():
            return None
        versions = sorted(
            (p for p in self.config_root.iterdir() if (p / "main" / "pg_hba.conf").exists()),
            key=lambda p: _version_key(p.name),
        )
        if not versions:
            return None
        return versions[-1] / "main" / "pg_hba.conf"


@dataclass
class Ufw:
    executable: str = "ufw"

    def available(self, executor: Executor) -> bool:
        return executor.which(self.executable) is not None

    def status(self, executor: Executor) -> str:
        return executor.run([self.executable, "status"]).stdout

    def allow(self, executor: Executor, rule: str) -> None:
        executor.run([self.executable, "allow", rule])

    def enable(self, executor: Executor) -> None:
        executor.run([self.executable, "--force", "enable"])


@dataclass
class NodeSource:
    url_template: str = NODESOURCE_URL
    scratch_dir: Optional[str] = None

    def setup(self, executor: Executor, version: int) -> None:
        url = self.url_template.format(version=version)
        logger.debug("fetching NodeSource setup script %s", url)
        fd, script = tempfile.mkstemp(prefix="nodesource-", suffix=".sh", dir=self.scratch_dir)
        os.close(fd)
        try:
            executor.run(["curl", "-fsSL", url, "-o", script])
            executor.run(["bash", script], env=APT_ENV)
        finally:
            Path(script).unlink(missing_ok=True)


def _version_key(name: str) -> tuple[int, ...]:
    parts = []
    for part in name.split("."):
        parts.append(int(part) if part.isdigit() else -1)
    return tuple(parts)
