from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence

from .base import Step
from ..config import ProvisioningConfig
from ..host import HostState
from ..renderer import Template, render


class TemplateFileStep(Step):
    """Install a rendered template.

    ``create_only`` files are written once and then left to the operator.
    ``validate_nginx`` runs ``nginx -t`` after writing; ``notify`` names a
    service to reload (or start) once the file changed.
    """

    def __init__(
        self,
        template: Template,
        config: ProvisioningConfig,
        *,
        create_only: bool = False,
        validate_nginx: bool = False,
        notify: Optional[str] = None,
        restart: bool = False,
        depends_on: Sequence[str] = (),
    ):
        self.rendered = render(template, config)
        super().__init__(
            name=template.name,
            description=f"Write {self.rendered.path}",
            depends_on=depends_on,
        )
        self.create_only = create_only
        self.validate_nginx = validate_nginx
        self.notify = notify
        self.restart = restart

    def is_satisfied(self, host: HostState) -> bool:
        path = self.rendered.path
        if self.create_only:
            return host.exists(path)
        if host.read_file(path) != self.rendered.content:
            return False
        if self.rendered.mode is not None and host.file_mode(path) != self.rendered.mode:
            return False
        owner, group = host.file_owner(path)
        if self.rendered.owner is not None and owner != self.rendered.owner:
            return False
        if self.rendered.group is not None and group != self.rendered.group:
            return False
        return True

    def apply(self, host: HostState) -> str:
        host.write_file(self.rendered)
        parts = [f"wrote {self.rendered.path}"]
        if self.validate_nginx:
            host.check_nginx_config()
        if self.notify:
            parts.append(_notify(host, self.notify, restart=self.restart))
        return "; ".join(parts)


class SiteEnableStep(Step):
    """Link the Nginx site into sites-enabled and drop the stock default site."""

    name = "nginx-site-enabled"

    def __init__(self, site_name: str, *, nginx_root: Path = Path("/etc/nginx"), depends_on: Sequence[str] = ()):
        super().__init__(description=f"Enable Nginx site {site_name}", depends_on=depends_on)
        self.available = nginx_root / "sites-available" / site_name
        self.enabled = nginx_root / "sites-enabled" / site_name
        self.default = nginx_root / "sites-enabled" / "default"

    def is_satisfied(self, host: HostState) -> bool:
        return host.symlink_target(self.enabled) == str(self.available) and not host.exists(self.default)

    def apply(self, host: HostState) -> str:
        host.symlink(self.enabled, self.available)
        host.remove_path(self.default)
        host.check_nginx_config()
        return f"linked {self.enabled}; {_notify(host, 'nginx')}"


def _notify(host: HostState, service: str, *, restart: bool = False) -> str:
    if restart:
        host.restart_service(service)
        return f"restarted {service}"
    if host.service_active(service):
        host.reload_service(service)
        return f"reloaded {service}"
    host.start_service(service)
    return f"started {service}"
