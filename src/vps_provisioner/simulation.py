"""In-memory host used for rehearsals and tests.

:class:`SimulatedHost` models just enough of an Ubuntu 24 machine for the
provisioning steps: installed packages and the commands/services they bring,
users, PostgreSQL objects, files, directories, symlinks and UFW. Mutations
that would fail on a real host (creating a database twice, chowning to an
unknown user) raise the same kind of error the live host would.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional
import subprocess

from .host import HostState
from .types import RenderedFile

DISTRO_NODE_MAJOR = 18
PG_VERSION = "16"
DEFAULT_PG_HBA = """\
# Database administrative login by Unix domain socket
local   all             postgres                                peer

# TYPE  DATABASE        USER            ADDRESS                 METHOD
local   all             all                                     peer
host    all             all             127.0.0.1/32            scram-sha-256
host    all             all             ::1/128                 scram-sha-256
"""

PACKAGE_COMMANDS = {
    "curl": ("curl",),
    "wget": ("wget",),
    "git": ("git",),
    "nano": ("nano",),
    "htop": ("htop",),
    "unzip": ("unzip",),
    "nodejs": ("node", "npm"),
    "postgresql": ("psql", "createdb", "pg_dump"),
    "nginx": ("nginx",),
    "fail2ban": ("fail2ban-server", "fail2ban-client"),
    "ufw": ("ufw",),
}
PACKAGE_SERVICES = {"postgresql": "postgresql", "nginx": "nginx", "fail2ban": "fail2ban"}


@dataclass
class SimulatedFile:
    content: str
    mode: Optional[int] = None
    owner: Optional[str] = "root"
    group: Optional[str] = "root"


@dataclass
class SimulatedService:
    enabled: bool = False
    active: bool = False


class SimulatedHost(HostState):
    def __init__(
        self,
        *,
        packages: Iterable[str] = (),
        upgradable: Iterable[str] = (),
        firewall: bool = True,
        index_age: Optional[float] = 0.0,
    ):
        self.packages: set[str] = set()
        self.upgradable: list[str] = list(upgradable)
        # None: the package lists were never downloaded.
        self.index_age = index_age
        self.commands: dict[str, str] = {}
        self.services: dict[str, SimulatedService] = {}
        self.users: dict[str, set[str]] = {"root": {"root"}, "postgres": {"postgres"}}
        self.databases: set[str] = set()
        self.roles: dict[str, str] = {"postgres": ""}
        self.grants: set[tuple[str, str]] = set()
        self.files: dict[Path, SimulatedFile] = {}
        self.directories: dict[Path, SimulatedFile] = {Path("/home"): SimulatedFile("")}
        self.symlinks: dict[Path, str] = {}
        self.firewall_rules: list[str] = []
        self.firewall_active = False
        self.nodesource_major: Optional[int] = None
        self.nginx_config_valid = True
        self.fail_on: dict[str, Exception] = {}
        self.calls: list[str] = []
        for name in packages:
            self._install(name)
        if firewall:
            self._install("ufw")

    @classmethod
    def fresh_ubuntu(cls) -> "SimulatedHost":
        return cls(packages=("curl", "sudo"), upgradable=("libc6", "openssl"), index_age=None)

    # Queries -------------------------------------------------------------
    def command_exists(self, name: str) -> bool:
        return name in self.commands

    def command_version(self, name: str) -> Optional[str]:
        return self.commands.get(name) or None

    def package_installed(self, name: str) -> bool:
        return name in self.packages

    def upgradable_packages(self) -> list[str]:
        return list(self.upgradable)

    def package_index_age(self) -> Optional[float]:
        return self.index_age

    def service_enabled(self, name: str) -> bool:
        return name in self.services and self.services[name].enabled

    def service_active(self, name: str) -> bool:
        return name in self.services and self.services[name].active

    def user_exists(self, name: str) -> bool:
        return name in self.users

    def user_groups(self, name: str) -> set[str]:
        return set(self.users.get(name, set()))

    def database_exists(self, name: str) -> bool:
        self._require_command("psql")
        return name in self.databases

    def role_exists(self, name: str) -> bool:
        self._require_command("psql")
        return name in self.roles

    def role_has_database_privileges(self, role: str, database: str) -> bool:
        self._require_command("psql")
        return (database, role) in self.grants

    def pg_hba_path(self) -> Optional[Path]:
        path = Path(f"/etc/postgresql/{PG_VERSION}/main/pg_hba.conf")
        return path if path in self.files else None

    def read_file(self, path: Path) -> Optional[str]:
        entry = self.files.get(Path(path))
        return entry.content if entry else None

    def file_mode(self, path: Path) -> Optional[int]:
        entry = self.files.get(Path(path)) or self.directories.get(Path(path))
        return entry.mode if entry else None

    def file_owner(self, path: Path) -> tuple[Optional[str], Optional[str]]:
        entry = self.files.get(Path(path)) or self.directories.get(Path(path))
        return (entry.owner, entry.group) if entry else (None, None)

    def is_directory(self, path: Path) -> bool:
        return Path(path) in self.directories

    def exists(self, path: Path) -> bool:
        path = Path(path)
        return path in self.files or path in self.directories or path in self.symlinks

    def symlink_target(self, path: Path) -> Optional[str]:
        return self.symlinks.get(Path(path))

    def firewall_available(self) -> bool:
        return "ufw" in self.commands

    def firewall_status(self) -> str:
        self._require_command("ufw")
        if not self.firewall_active:
            return "Status: inactive\n"
        lines = ["Status: active", "", "To                         Action      From", "--                         ------      ----"]
        lines += [f"{rule:<27}ALLOW       Anywhere" for rule in self.firewall_rules]
        return "\n".join(lines) + "\n"

    # Mutations -----------------------------------------------------------
    def refresh_package_index(self) -> None:
        self._record("refresh_package_index")
        self.index_age = 0.0

    def upgrade_packages(self) -> None:
        self._record("upgrade_packages")
        self.upgradable.clear()

    def install_packages(self, names: Iterable[str]) -> None:
        names = list(names)
        self._record("install_packages", " ".join(names))
        for name in names:
            self._install(name)

    def add_nodesource_repository(self, version: int) -> None:
        self._record("add_nodesource_repository", str(version))
        self._require_command("curl")
        self.nodesource_major = version

    def npm_install_global(self, package: str) -> None:
        self._record("npm_install_global", package)
        self._require_command("npm")
        self.commands[package] = f"{package} 5.4.3"

    def start_service(self, name: str) -> None:
        self._record("start_service", name)
        self._service(name).active = True

    def enable_service(self, name: str) -> None:
        self._record("enable_service", name)
        self._service(name).enabled = True

    def restart_service(self, name: str) -> None:
        self._record("restart_service", name)
        self._service(name).active = True

    def reload_service(self, name: str) -> None:
        self._record("reload_service", name)
        service = self._service(name)
        if not service.active:
            _fail(["systemctl", "reload", name], f"{name}.service is not active, cannot reload.")

    def create_user(self, name: str) -> None:
        self._record("create_user", name)
        if name in self.users:
            _fail(["adduser", name], f"adduser: The user `{name}' already exists.")
        self.users[name] = {name}
        self.directories[Path("/home") / name] = SimulatedFile("", 0o750, name, name)

    def add_user_to_group(self, name: str, group: str) -> None:
        self._record("add_user_to_group", f"{name} {group}")
        if name not in self.users:
            _fail(["usermod", "-aG", group, name], f"usermod: user '{name}' does not exist")
        self.users[name].add(group)

    def create_database(self, name: str) -> None:
        self._record("create_database", name)
        self._require_command("createdb")
        if name in self.databases:
            _fail(["createdb", name], f'createdb: error: database "{name}" already exists')
        self.databases.add(name)

    def create_role(self, name: str, password: str) -> None:
        self._record("create_role", name)
        self._require_command("psql")
        if name in self.roles:
            _fail(["psql"], f'ERROR:  role "{name}" already exists')
        self.roles[name] = password

    def grant_database(self, database: str, role: str) -> None:
        self._record("grant_database", f"{database} {role}")
        if database not in self.databases or role not in self.roles:
            _fail(["psql"], f'ERROR:  database "{database}" or role "{role}" does not exist')
        self.grants.add((database, role))

    def write_file(self, rendered: RenderedFile) -> bool:
        path = Path(rendered.path)
        self._record("write_file", str(path))
        self._require_owner(rendered.owner, rendered.group)
        if path.parent not in self.directories:
            self.directories[path.parent] = SimulatedFile("", 0o755)
        current = self.files.get(path)
        new = SimulatedFile(
            rendered.content,
            rendered.mode if rendered.mode is not None else (current.mode if current else 0o644),
            rendered.owner or (current.owner if current else "root"),
            rendered.group or (current.group if current else "root"),
        )
        self.files[path] = new
        return current != new

    def ensure_directory(
        self, path: Path, *, owner: Optional[str], group: Optional[str], mode: Optional[int] = None
    ) -> bool:
        path = Path(path)
        self._record("ensure_directory", str(path))
        self._require_owner(owner, group)
        current = self.directories.get(path)
        new = SimulatedFile("", mode or (current.mode if current else 0o755), owner or "root", group or "root")
        self.directories[path] = new
        return current != new

    def symlink(self, path: Path, target: Path) -> bool:
        path = Path(path)
        self._record("symlink", f"{path} -> {target}")
        if self.symlinks.get(path) == str(target):
            return False
        self.symlinks[path] = str(target)
        return True

    def remove_path(self, path: Path) -> bool:
        path = Path(path)
        self._record("remove_path", str(path))
        removed = False
        for table in (self.files, self.directories, self.symlinks):
            if path in table:
                del table[path]
                removed = True
        return removed

    def firewall_allow(self, rule: str) -> None:
        self._record("firewall_allow", rule)
        self._require_command("ufw")
        if rule not in self.firewall_rules:
            self.firewall_rules.append(rule)

    def firewall_enable(self) -> None:
        self._record("firewall_enable")
        self._require_command("ufw")
        self.firewall_active = True

    def check_nginx_config(self) -> None:
        self._record("check_nginx_config")
        self._require_command("nginx")
        if not self.nginx_config_valid:
            _fail(["nginx", "-t"], "nginx: configuration file /etc/nginx/nginx.conf test failed")

    # Helpers -------------------------------------------------------------
    def _record(self, name: str, detail: str = "") -> None:
        self.calls.append(f"{name} {detail}".strip())
        exc = self.fail_on.get(name)
        if exc is not None:
            raise exc

    def _install(self, name: str) -> None:
        self.packages.add(name)
        for command in PACKAGE_COMMANDS.get(name, ()):
            self.commands[command] = f"{command} (simulated)"
        if name == "nodejs":
            major = self.nodesource_major or DISTRO_NODE_MAJOR
            self.commands["node"] = f"v{major}.0.0"
        if name in PACKAGE_SERVICES:
            self.services.setdefault(PACKAGE_SERVICES[name], SimulatedService())
        if name == "postgresql":
            hba = Path(f"/etc/postgresql/{PG_VERSION}/main/pg_hba.conf")
            self.files.setdefault(hba, SimulatedFile(DEFAULT_PG_HBA, 0o640, "postgres", "postgres"))
        if name == "nginx":
            for sub in ("sites-available", "sites-enabled"):
                self.directories.setdefault(Path("/etc/nginx") / sub, SimulatedFile("", 0o755))
            self.files.setdefault(Path("/etc/nginx/sites-available/default"), SimulatedFile("server {}\n"))
            self.symlinks.setdefault(
                Path("/etc/nginx/sites-enabled/default"), "/etc/nginx/sites-available/default"
            )
        if name == "fail2ban":
            self.directories.setdefault(Path("/etc/fail2ban"), SimulatedFile("", 0o755))

    def _service(self, name: str) -> SimulatedService:
        if name not in self.services:
            _fail(["systemctl", "start", name], f"Unit {name}.service not found.")
        return self.services[name]

    def _require_command(self, name: str) -> None:
        if name not in self.commands:
            _fail([name], f"{name}: command not found", returncode=127)

    def _require_owner(self, owner: Optional[str], group: Optional[str]) -> None:
        for name in (owner, group):
            if name and name not in self.users:
                raise LookupError(f"no such user or group: '{name}'")


def _fail(command: list[str], stderr: str, *, returncode: int = 1) -> None:
    raise subprocess.CalledProcessError(returncode, command, "", stderr)
