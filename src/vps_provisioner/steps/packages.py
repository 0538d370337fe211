from __future__ import annotations

from typing import Sequence
import logging

from .base import Step
from ..host import HostState

logger = logging.getLogger(__name__)

MAX_INDEX_AGE = 24 * 3600


class SystemUpgradeStep(Step):
    """Refresh the package index and upgrade installed packages.

    Pending upgrades are computed from the lists already on disk, so a
    missing or stale index makes the step unsatisfied on its own.
    """

    name = "system-upgrade"
    description = "Update the package index and upgrade installed packages"

    def __init__(self, *, max_index_age: float = MAX_INDEX_AGE, depends_on: Sequence[str] = ()):
        super().__init__(depends_on=depends_on)
        self.max_index_age = max_index_age

    def is_satisfied(self, host: HostState) -> bool:
        age = host.package_index_age()
        if age is None or age > self.max_index_age:
            return False
        return not host.upgradable_packages()

    def apply(self, host: HostState) -> str:
        host.refresh_package_index()
        pending = host.upgradable_packages()
        host.upgrade_packages()
        return f"upgraded {len(pending)} package(s)" if pending else "index refreshed"


class PackageStep(Step):
    """Ensure apt packages are installed and their services enabled and running."""

    def __init__(
        self,
        name: str,
        packages: Sequence[str],
        *,
        services: Sequence[str] = (),
        description: str = "",
        depends_on: Sequence[str] = (),
    ):
        if not packages:
            raise ValueError(f"step '{name}' requires at least one package")
        super().__init__(
            name=name,
            description=description or f"Install {', '.join(packages)}",
            depends_on=depends_on,
        )
        self.packages = list(packages)
        self.services = list(services)

    def is_satisfied(self, host: HostState) -> bool:
        if any(not host.package_installed(pkg) for pkg in self.packages):
            return False
        return all(host.service_enabled(svc) and host.service_active(svc) for svc in self.services)

    def apply(self, host: HostState) -> str:
        changes: list[str] = []
        missing = [pkg for pkg in self.packages if not host.package_installed(pkg)]
        if missing:
            logger.debug("installing %s", ", ".join(missing))
            host.install_packages(missing)
            changes.append(f"installed={','.join(missing)}")
        for service in self.services:
            if not host.service_active(service):
                host.start_service(service)
                changes.append(f"started={service}")
            if not host.service_enabled(service):
                host.enable_service(service)
                changes.append(f"enabled={service}")
        return ", ".join(changes) if changes else "noop"


class NodeRuntimeStep(Step):
    name = "nodejs"

    def __init__(self, version: int, *, depends_on: Sequence[str] = ()):
        super().__init__(description=f"Install Node.js {version}.x from NodeSource", depends_on=depends_on)
        self.version = version

    def is_satisfied(self, host: HostState) -> bool:
        reported = host.command_version("node")
        return bool(reported) and reported.startswith(f"v{self.version}.")

    def apply(self, host: HostState) -> str:
        host.add_nodesource_repository(self.version)
        host.install_packages(["nodejs"])
        return f"node {host.command_version('node') or 'installed'}"


class GlobalNpmStep(Step):
    """Install a global npm package that provides ``command``."""

    def __init__(
        self,
        name: str,
        package: str,
        *,
        command: str = "",
        depends_on: Sequence[str] = (),
    ):
        super().__init__(name=name, description=f"Install {package} globally with npm", depends_on=depends_on)
        self.package = package
        self.command = command or package

    def is_satisfied(self, host: HostState) -> bool:
        return host.command_exists(self.command)

    def apply(self, host: HostState) -> str:
        host.npm_install_global(self.package)
        return f"installed={self.package}"
