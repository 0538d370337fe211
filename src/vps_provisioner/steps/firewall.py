from __future__ import annotations

from typing import Sequence
import re

from .base import Step
from ..host import HostState

DEFAULT_RULES = ("OpenSSH", "Nginx Full")


class FirewallStep(Step):
    """Allow SSH and HTTP(S) through UFW and switch it on.

    Hosts without UFW are left alone; that is a capability check, so the step
    counts as satisfied there.
    """

    name = "firewall"
    description = "Allow SSH and Nginx through UFW and enable it"

    def __init__(self, rules: Sequence[str] = DEFAULT_RULES, *, depends_on: Sequence[str] = ()):
        super().__init__(depends_on=depends_on)
        self.rules = list(rules)

    def is_satisfied(self, host: HostState) -> bool:
        if not host.firewall_available():
            return True
        status = host.firewall_status()
        if not re.search(r"^Status:\s+active\b", status, re.MULTILINE):
            return False
        return all(self._allowed(status, rule) for rule in self.rules)

    def skip_detail(self, host: HostState) -> str:
        if not host.firewall_available():
            return "ufw not installed"
        return super().skip_detail(host)

    def apply(self, host: HostState) -> str:
        # Rules go in before enabling so the SSH session survives.
        for rule in self.rules:
            host.firewall_allow(rule)
        host.firewall_enable()
        return f"allowed {', '.join(self.rules)}; enabled"

    @staticmethod
    def _allowed(status: str, rule: str) -> bool:
        return bool(re.search(rf"^{re.escape(rule)}\s+ALLOW\b", status, re.MULTILINE))
