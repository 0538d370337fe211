from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Union
import logging
import os
import shutil
import stat
import subprocess

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    command: list[str]
    stdout: str
    stderr: str
    returncode: int


class Executor:
    """Base executor abstraction used by the live host."""

    def run(
        self,
        command: Sequence[str],
        *,
        check: bool = True,
        env: Optional[dict[str, str]] = None,
        cwd: Optional[Union[str, Path]] = None,
        input: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        raise NotImplementedError

    def which(self, name: str) -> Optional[str]:
        raise NotImplementedError

    # File primitives -----------------------------------------------------
    def read_file(self, path: Path) -> Optional[str]:
        raise NotImplementedError

    def write_file(self, path: Path, *, content: str, mode: Optional[int]) -> tuple[bool, str]:
        raise NotImplementedError

    def ensure_directory(self, path: Path, *, mode: Optional[int]) -> tuple[bool, str]:
        raise NotImplementedError

    def set_ownership(
        self, path: Path, *, user: Optional[str], group: Optional[str]
    ) -> tuple[bool, str]:
        raise NotImplementedError

    def symlink(self, path: Path, target: Path) -> bool:
        raise NotImplementedError

    def remove_path(self, path: Path) -> bool:
        raise NotImplementedError


class LocalExecutor(Executor):
    """Executor that acts directly on the local host."""

    def run(
        self,
        command: Sequence[str],
        *,
        check: bool = True,
        env: Optional[dict[str, str]] = None,
        cwd: Optional[Union[str, Path]] = None,
        input: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        cmd_list = [str(part) for part in command]
        exec_env = None
        if env:
            exec_env = os.environ.copy()
            exec_env.update(env)

        logger.debug("run: %s", " ".join(cmd_list))
        proc = subprocess.run(
            cmd_list,
            capture_output=True,
            text=True,
            check=False,
            env=exec_env,
            cwd=str(cwd) if cwd is not None else None,
            input=input,
            timeout=timeout,
        )
        if check and proc.returncode != 0:
            raise subprocess.CalledProcessError(
                proc.returncode,
                cmd_list,
                proc.stdout,
                proc.stderr,
            )
        return CommandResult(cmd_list, proc.stdout, proc.stderr, proc.returncode)

    def which(self, name: str) -> Optional[str]:
        return shutil.which(name)

    def read_file(self, path: Path) -> Optional[str]:
        try:
            return path.read_text()
        except FileNotFoundError:
            return None

    def write_file(self, path: Path, *, content: str, mode: Optional[int]) -> tuple[bool, str]:
        current = self.read_file(path)
        changed = False
        reasons: list[str] = []

        if current != content:
            changed = True
            reasons.append("content")
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content)

        if mode is not None:
            existing_mode = self.file_mode(path)
            if existing_mode != mode:
                changed = True
                reasons.append(f"mode->{mode:04o}")
                os.chmod(path, mode)
        detail = ", ".join(reasons) if reasons else "noop"
        return changed, detail

    def ensure_directory(self, path: Path, *, mode: Optional[int]) -> tuple[bool, str]:
        changed = False
        reasons: list[str] = []

        if not path.exists():
            changed = True
            reasons.append("created")
            path.mkdir(parents=True, exist_ok=True)
        elif not path.is_dir():
            changed = True
            reasons.append("replaced-non-dir")
            self.remove_path(path)
            path.mkdir(parents=True, exist_ok=True)

        if mode is not None:
            existing_mode = self.file_mode(path)
            if existing_mode != mode:
                changed = True
                reasons.append(f"mode->{mode:04o}")
                os.chmod(path, mode)
        detail = ", ".join(reasons) if reasons else "noop"
        return changed, detail

    def set_ownership(
        self, path: Path, *, user: Optional[str], group: Optional[str]
    ) -> tuple[bool, str]:
        if user is None and group is None:
            return False, "noop"
        current_user, current_group = self.ownership(path)
        if (user is None or user == current_user) and (group is None or group == current_group):
            return False, "noop"
        shutil.chown(path, user=user, group=group)
        return True, f"owner->{user or current_user}:{group or current_group}"

    def symlink(self, path: Path, target: Path) -> bool:
        try:
            if path.is_symlink() and os.readlink(path) == str(target):
                return False
        except OSError:
            pass
        if path.exists() or path.is_symlink():
            self.remove_path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        os.symlink(target, path)
        return True

    def remove_path(self, path: Path) -> bool:
        if path.is_symlink():
            path.unlink()
            return True
        if not path.exists():
            return False
        if path.is_dir():
            shutil.rmtree(path)
        else:
            path.unlink()
        return True

    @staticmethod
    def file_mode(path: Path) -> Optional[int]:
        try:
            return stat.S_IMODE(path.stat().st_mode)
        except FileNotFoundError:
            return None

    @staticmethod
    def ownership(path: Path) -> tuple[Optional[str], Optional[str]]:
        try:
            return path.owner(), path.group()
        except (FileNotFoundError, KeyError):
            return None, None
