"""Rendering of the configuration artifacts written to the host.

Rendering is a pure function of a :class:`Template` and a
:class:`~vps_provisioner.config.ProvisioningConfig`; nothing here touches the
filesystem of the target host. Values are inserted literally, shell scripts
quote them through the ``shquote`` filter.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional
import shlex

import jinja2

from .config import ProvisioningConfig
from .types import RenderedFile

SESSION_SECRET_PLACEHOLDER = "change-this-to-a-random-secret-key-in-production"

JAIL_DEFAULTS = {"bantime": 3600, "findtime": 600, "maxretry": 3}


@dataclass(frozen=True)
class Template:
    """A packaged Jinja2 template plus where and how its output is installed.

    ``target``, ``owner`` and ``group`` are themselves template strings so they
    can refer to the configuration (``{{ config.app_dir }}/.env``).
    """

    name: str
    source: str
    target: str
    owner: Optional[str] = None
    group: Optional[str] = None
    mode: Optional[int] = 0o644


@lru_cache(maxsize=1)
def environment() -> jinja2.Environment:
    env = jinja2.Environment(
        loader=jinja2.PackageLoader("vps_provisioner", "templates"),
        undefined=jinja2.StrictUndefined,
        autoescape=False,
        keep_trailing_newline=True,
    )
    env.filters["shquote"] = lambda value: shlex.quote(str(value))
    env.filters["pgpass"] = _pgpass_escape
    return env


def render(template: Template, config: ProvisioningConfig) -> RenderedFile:
    env = environment()
    context = _context(config)
    content = env.get_template(template.source).render(**context)
    return RenderedFile(
        path=Path(_render_string(env, template.target, context)),
        content=content,
        owner=_render_string(env, template.owner, context) if template.owner else None,
        group=_render_string(env, template.group, context) if template.group else None,
        mode=template.mode,
    )


def _pgpass_escape(value: Any) -> str:
    return str(value).replace("\\", "\\\\").replace(":", "\\:")


def _render_string(env: jinja2.Environment, text: str, context: dict[str, Any]) -> str:
    return env.from_string(text).render(**context)


def _context(config: ProvisioningConfig) -> dict[str, Any]:
    return {
        "config": config,
        "session_secret_placeholder": SESSION_SECRET_PLACEHOLDER,
        **JAIL_DEFAULTS,
    }


APP_OWNER = "{{ config.app_user }}"

ENV_FILE = Template(
    name="env-file",
    source="env.j2",
    target="{{ config.app_dir }}/.env",
    owner=APP_OWNER,
    group=APP_OWNER,
    mode=0o600,
)
PM2_ECOSYSTEM = Template(
    name="pm2-ecosystem",
    source="ecosystem.config.js.j2",
    target="{{ config.app_dir }}/ecosystem.config.js",
    owner=APP_OWNER,
    group=APP_OWNER,
)
NGINX_SITE = Template(
    name="nginx-site",
    source="nginx-site.conf.j2",
    target="/etc/nginx/sites-available/{{ config.site_name }}",
)
BACKUP_SCRIPT = Template(
    name="backup-script",
    source="backup-db.sh.j2",
    target="{{ config.home }}/backup-db.sh",
    owner=APP_OWNER,
    group=APP_OWNER,
    mode=0o755,
)
STATUS_SCRIPT = Template(
    name="status-script",
    source="system-status.sh.j2",
    target="{{ config.home }}/system-status.sh",
    owner=APP_OWNER,
    group=APP_OWNER,
    mode=0o755,
)
PGPASS = Template(
    name="pgpass",
    source="pgpass.j2",
    target="{{ config.home }}/.pgpass",
    owner=APP_OWNER,
    group=APP_OWNER,
    mode=0o600,
)
UPDATE_SCRIPT = Template(
    name="update-script",
    source="update-app.sh.j2",
    target="{{ config.home }}/update-app.sh",
    owner=APP_OWNER,
    group=APP_OWNER,
    mode=0o755,
)
LOGROTATE = Template(
    name="logrotate",
    source="logrotate.j2",
    target="/etc/logrotate.d/{{ config.site_name }}",
)
FAIL2BAN_JAIL = Template(
    name="fail2ban-jail",
    source="jail.local.j2",
    target="/etc/fail2ban/jail.local",
)

TEMPLATES = {
    template.name: template
    for template in (
        ENV_FILE,
        PM2_ECOSYSTEM,
        NGINX_SITE,
        PGPASS,
        BACKUP_SCRIPT,
        STATUS_SCRIPT,
        UPDATE_SCRIPT,
        LOGROTATE,
        FAIL2BAN_JAIL,
    )
}
