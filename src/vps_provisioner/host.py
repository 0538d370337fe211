"""The host as seen by provisioning steps.

Steps never reach for ambient system state directly; every query and every
mutation goes through a :class:`HostState`. :class:`LiveHost` drives the real
machine, :class:`~vps_provisioner.simulation.SimulatedHost` keeps the same
state in memory.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, Optional
import logging
import os

from .executors import Executor, LocalExecutor
from .system import AptPackageManager, NodeSource, PostgresAdmin, SystemCtl, Ufw, UserManager
from .types import RenderedFile

logger = logging.getLogger(__name__)


class HostState(ABC):
    # Queries -------------------------------------------------------------
    @abstractmethod
    def command_exists(self, name: str) -> bool:
        """True when ``name`` resolves on PATH."""

    @abstractmethod
    def command_version(self, name: str) -> Optional[str]:
        """Output of ``name --version`` or None if it cannot be run."""

    @abstractmethod
    def package_installed(self, name: str) -> bool: ...

    @abstractmethod
    def upgradable_packages(self) -> list[str]: ...

    @abstractmethod
    def package_index_age(self) -> Optional[float]:
        """Seconds since the package index was refreshed, None if it never was."""

    @abstractmethod
    def service_enabled(self, name: str) -> bool: ...

    @abstractmethod
    def service_active(self, name: str) -> bool: ...

    @abstractmethod
    def user_exists(self, name: str) -> bool: ...

    @abstractmethod
    def user_groups(self, name: str) -> set[str]: ...

    @abstractmethod
    def database_exists(self, name: str) -> bool: ...

    @abstractmethod
    def role_exists(self, name: str) -> bool: ...

    @abstractmethod
    def role_has_database_privileges(self, role: str, database: str) -> bool: ...

    @abstractmethod
    def pg_hba_path(self) -> Optional[Path]: ...

    @abstractmethod
    def read_file(self, path: Path) -> Optional[str]: ...

    @abstractmethod
    def file_mode(self, path: Path) -> Optional[int]: ...

    @abstractmethod
    def file_owner(self, path: Path) -> tuple[Optional[str], Optional[str]]: ...

    @abstractmethod
    def is_directory(self, path: Path) -> bool: ...

    @abstractmethod
    def exists(self, path: Path) -> bool: ...

    @abstractmethod
    def symlink_target(self, path: Path) -> Optional[str]: ...

    @abstractmethod
    def firewall_available(self) -> bool: ...

    @abstractmethod
    def firewall_status(self) -> str:
        """Raw ``ufw status`` output."""

    # Mutations -----------------------------------------------------------
    @abstractmethod
    def refresh_package_index(self) -> None: ...

    @abstractmethod
    def upgrade_packages(self) -> None: ...

    @abstractmethod
    def install_packages(self, names: Iterable[str]) -> None: ...

    @abstractmethod
    def add_nodesource_repository(self, version: int) -> None: ...

    @abstractmethod
    def npm_install_global(self, package: str) -> None: ...

    @abstractmethod
    def start_service(self, name: str) -> None: ...

    @abstractmethod
    def enable_service(self, name: str) -> None: ...

    @abstractmethod
    def restart_service(self, name: str) -> None: ...

    @abstractmethod
    def reload_service(self, name: str) -> None: ...

    @abstractmethod
    def create_user(self, name: str) -> None: ...

    @abstractmethod
    def add_user_to_group(self, name: str, group: str) -> None: ...

    @abstractmethod
    def create_database(self, name: str) -> None: ...

    @abstractmethod
    def create_role(self, name: str, password: str) -> None: ...

    @abstractmethod
    def grant_database(self, database: str, role: str) -> None: ...

    @abstractmethod
    def write_file(self, rendered: RenderedFile) -> bool:
        """Install ``rendered``; True when content, mode or ownership changed."""

    @abstractmethod
    def ensure_directory(
        self, path: Path, *, owner: Optional[str], group: Optional[str], mode: Optional[int] = None
    ) -> bool: ...

    @abstractmethod
    def symlink(self, path: Path, target: Path) -> bool: ...

    @abstractmethod
    def remove_path(self, path: Path) -> bool: ...

    @abstractmethod
    def firewall_allow(self, rule: str) -> None: ...

    @abstractmethod
    def firewall_enable(self) -> None: ...

    @abstractmethod
    def check_nginx_config(self) -> None:
        """Raise if ``nginx -t`` rejects the installed configuration."""


class LiveHost(HostState):
    """HostState backed by the local machine."""

    def __init__(self, executor: Optional[Executor] = None):
        self.executor = executor or LocalExecutor()
        self.packages = AptPackageManager()
        self.systemctl = SystemCtl()
        self.users = UserManager()
        self.postgres = PostgresAdmin()
        self.ufw = Ufw()
        self.nodesource = NodeSource()

    def command_exists(self, name: str) -> bool:
        return self.executor.which(name) is not None

    def command_version(self, name: str) -> Optional[str]:
        if not self.command_exists(name):
            return None
        result = self.executor.run([name, "--version"], check=False)
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def package_installed(self, name: str) -> bool:
        return self.packages.is_installed(self.executor, name)

    def upgradable_packages(self) -> list[str]:
        return self.packages.upgradable(self.executor)

    def package_index_age(self) -> Optional[float]:
        return self.packages.index_age()

    def service_enabled(self, name: str) -> bool:
        return self.systemctl.is_enabled(self.executor, name)

    def service_active(self, name: str) -> bool:
        return self.systemctl.is_active(self.executor, name)

    def user_exists(self, name: str) -> bool:
        return self.users.exists(name)

    def user_groups(self, name: str) -> set[str]:
        return self.users.groups(name)

    def database_exists(self, name: str) -> bool:
        return self.postgres.database_exists(self.executor, name)

    def role_exists(self, name: str) -> bool:
        return self.postgres.role_exists(self.executor, name)

    def role_has_database_privileges(self, role: str, database: str) -> bool:
        return self.postgres.has_database_privileges(self.executor, role, database)

    def pg_hba_path(self) -> Optional[Path]:
        return self.postgres.hba_path()

    def read_file(self, path: Path) -> Optional[str]:
        return self.executor.read_file(Path(path))

    def file_mode(self, path: Path) -> Optional[int]:
        return LocalExecutor.file_mode(Path(path))

    def file_owner(self, path: Path) -> tuple[Optional[str], Optional[str]]:
        return LocalExecutor.ownership(Path(path))

    def is_directory(self, path: Path) -> bool:
        return Path(path).is_dir()

    def exists(self, path: Path) -> bool:
        return Path(path).exists()

    def symlink_target(self, path: Path) -> Optional[str]:
        try:
            return os.readlink(path)
        except OSError:
            return None

    def firewall_available(self) -> bool:
        return self.ufw.available(self.executor)

    def firewall_status(self) -> str:
        return self.ufw.status(self.executor)

    def refresh_package_index(self) -> None:
        self.packages.update(self.executor)

    def upgrade_packages(self) -> None:
        self.packages.upgrade(self.executor)

    def install_packages(self, names: Iterable[str]) -> None:
        self.packages.install(self.executor, list(names))

    def add_nodesource_repository(self, version: int) -> None:
        self.nodesource.setup(self.executor, version)

    def npm_install_global(self, package: str) -> None:
        self.executor.run(["npm", "install", "-g", package])

    def start_service(self, name: str) -> None:
        self.systemctl.start(self.executor, name)

    def enable_service(self, name: str) -> None:
        self.systemctl.enable(self.executor, name)

    def restart_service(self, name: str) -> None:
        self.systemctl.restart(self.executor, name)

    def reload_service(self, name: str) -> None:
        self.systemctl.reload(self.executor, name)

    def create_user(self, name: str) -> None:
        self.users.add(self.executor, name)

    def add_user_to_group(self, name: str, group: str) -> None:
        self.users.add_to_group(self.executor, name, group)

    def create_database(self, name: str) -> None:
        self.postgres.create_database(self.executor, name)

    def create_role(self, name: str, password: str) -> None:
        self.postgres.create_role(self.executor, name, password)

    def grant_database(self, database: str, role: str) -> None:
        self.postgres.grant_all(self.executor, database, role)

    def write_file(self, rendered: RenderedFile) -> bool:
        path = Path(rendered.path)
        changed, detail = self.executor.write_file(path, content=rendered.content, mode=rendered.mode)
        owned, owner_detail = self.executor.set_ownership(
            path, user=rendered.owner, group=rendered.group
        )
        logger.debug("write %s: %s, %s", path, detail, owner_detail)
        return changed or owned

    def ensure_directory(
        self, path: Path, *, owner: Optional[str], group: Optional[str], mode: Optional[int] = None
    ) -> bool:
        path = Path(path)
        changed, _ = self.executor.ensure_directory(path, mode=mode)
        owned, _ = self.executor.set_ownership(path, user=owner, group=group)
        return changed or owned

    def symlink(self, path: Path, target: Path) -> bool:
        return self.executor.symlink(Path(path), Path(target))

    def remove_path(self, path: Path) -> bool:
        return self.executor.remove_path(Path(path))

    def firewall_allow(self, rule: str) -> None:
        self.ufw.allow(self.executor, rule)

    def firewall_enable(self) -> None:
        self.ufw.enable(self.executor)

    def check_nginx_config(self) -> None:
        self.executor.run(["nginx", "-t"])
