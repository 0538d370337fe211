from __future__ import annotations

from typing import Sequence
import re

from .base import Step
from ..host import HostState
from ..types import RenderedFile


class DatabaseStep(Step):
    name = "postgres-database"

    def __init__(self, database: str, *, depends_on: Sequence[str] = ()):
        super().__init__(description=f"Create database {database}", depends_on=depends_on)
        self.database = database

    def is_satisfied(self, host: HostState) -> bool:
        return host.database_exists(self.database)

    def apply(self, host: HostState) -> str:
        host.create_database(self.database)
        return f"created database {self.database}"


class RoleStep(Step):
    """Create the application login role.

    Checked independently of the database so a run interrupted between the
    two still converges.
    """

    name = "postgres-role"

    def __init__(self, role: str, password: str, *, depends_on: Sequence[str] = ()):
        super().__init__(description=f"Create login role {role}", depends_on=depends_on)
        self.role = role
        self.password = password

    def is_satisfied(self, host: HostState) -> bool:
        return host.role_exists(self.role)

    def apply(self, host: HostState) -> str:
        host.create_role(self.role, self.password)
        return f"created role {self.role} (CREATEDB)"


class GrantStep(Step):
    name = "postgres-grants"

    def __init__(self, database: str, role: str, *, depends_on: Sequence[str] = ()):
        super().__init__(description=f"Grant all privileges on {database} to {role}", depends_on=depends_on)
        self.database = database
        self.role = role

    def is_satisfied(self, host: HostState) -> bool:
        return host.role_has_database_privileges(self.role, self.database)

    def apply(self, host: HostState) -> str:
        host.grant_database(self.database, self.role)
        return f"granted all on {self.database} to {self.role}"


class ClientAuthStep(Step):
    """Allow the role to log in over the local socket with a password."""

    name = "postgres-client-auth"
    method = "md5"

    def __init__(self, role: str, *, depends_on: Sequence[str] = ()):
        super().__init__(description=f"Allow {self.method} socket logins for {role}", depends_on=depends_on)
        self.role = role
        self._pattern = re.compile(
            rf"^\s*local\s+all\s+{re.escape(role)}\s+{self.method}\b", re.MULTILINE
        )

    @property
    def rule(self) -> str:
        return f"local   all             {self.role:<39} {self.method}"

    def is_satisfied(self, host: HostState) -> bool:
        path = host.pg_hba_path()
        content = host.read_file(path) if path else None
        return content is not None and bool(self._pattern.search(content))

    def apply(self, host: HostState) -> str:
        path = host.pg_hba_path()
        content = host.read_file(path) if path else None
        if path is None or content is None:
            raise FileNotFoundError("pg_hba.conf not found under /etc/postgresql")
        owner, group = host.file_owner(path)
        host.write_file(
            RenderedFile(
                path=path,
                content=self.insert_rule(content),
                owner=owner,
                group=group,
                mode=host.file_mode(path),
            )
        )
        host.restart_service("postgresql")
        return f"added {self.method} rule for {self.role} to {path}"

    def insert_rule(self, content: str) -> str:
        # pg_hba.conf is first-match: the rule must precede the catch-all "local all all".
        lines = content.splitlines()
        for index, line in enumerate(lines):
            if line.split()[:1] == ["local"]:
                lines.insert(index, self.rule)
                break
        else:
            lines.append(self.rule)
        return "\n".join(lines) + "\n"
