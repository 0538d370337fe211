from __future__ import annotations

from pathlib import Path
from typing import Sequence

from .base import Step
from ..host import HostState


class AppUserStep(Step):
    name = "app-user"

    def __init__(self, user: str, *, groups: Sequence[str] = ("sudo",), depends_on: Sequence[str] = ()):
        super().__init__(description=f"Create application user {user}", depends_on=depends_on)
        self.user = user
        self.groups = list(groups)

    def is_satisfied(self, host: HostState) -> bool:
        if not host.user_exists(self.user):
            return False
        return set(self.groups) <= host.user_groups(self.user)

    def apply(self, host: HostState) -> str:
        changes: list[str] = []
        if not host.user_exists(self.user):
            host.create_user(self.user)
            changes.append("created")
        current = host.user_groups(self.user)
        for group in self.groups:
            if group not in current:
                host.add_user_to_group(self.user, group)
                changes.append(f"group+{group}")
        return ", ".join(changes) if changes else "noop"


class DirectoryLayoutStep(Step):
    """Create directories owned by the application user."""

    name = "app-directories"

    def __init__(self, owner: str, directories: Sequence[Path], *, depends_on: Sequence[str] = ()):
        super().__init__(description="Create application directory layout", depends_on=depends_on)
        self.owner = owner
        self.directories = [Path(str(d)) for d in directories]

    def is_satisfied(self, host: HostState) -> bool:
        return all(
            host.is_directory(path) and host.file_owner(path) == (self.owner, self.owner)
            for path in self.directories
        )

    def apply(self, host: HostState) -> str:
        changed = [
            str(path)
            for path in self.directories
            if host.ensure_directory(path, owner=self.owner, group=self.owner)
        ]
        return f"ensured {', '.join(changed)}" if changed else "noop"
