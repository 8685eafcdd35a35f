"""
Git Driver - Create and update bare mirrors with the git command line.

Every operation is a blocking call to git or the filesystem. Failures of
any kind (non-zero exit, timeout, missing git binary, I/O error) are raised
as MirrorOpFailed. Nothing here retries; that decision belongs to the
reconciliation engine.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from ..errors import MirrorOpFailed

logger = logging.getLogger(__name__)

DESCRIPTION_FILE = "description"
HOST_CONFIG_FILE = "cgitrc"


class MirrorDriver(ABC):
    """
    Interface to the local mirror operations.

    The engine only talks to this, so tests can substitute a fake that
    records calls instead of running git.
    """

    @abstractmethod
    def clone_mirror(self, clone_url: str, destination: Path) -> None:
        """Create a bare, fully mirrored copy of `clone_url` at `destination`."""

    @abstractmethod
    def fetch_updates(self, destination: Path) -> None:
        """Bring an existing mirror up to date with all remote refs."""

    @abstractmethod
    def set_default_branch(self, destination: Path, branch: str) -> None:
        """Point HEAD at `branch`."""

    @abstractmethod
    def set_description(self, destination: Path, text: str) -> None:
        """Write the description file read by the web frontend."""

    @abstractmethod
    def set_modification_time(
        self, destination: Path, timestamp: datetime, branch: Optional[str] = None
    ) -> None:
        """Stamp the mirror with the repository's latest activity time."""

    @abstractmethod
    def write_host_config(self, destination: Path, template: Path) -> None:
        """Copy the frontend configuration template into the mirror."""


class GitMirrorDriver(MirrorDriver):
    """MirrorDriver backed by the `git` executable."""

    def __init__(self, git: str = "git", timeout: float = 3600.0):
        self.git = git
        self.timeout = timeout

    def _run(self, operation: str, destination: Path, args: List[str], cwd: Optional[Path] = None) -> str:
        cmd = [self.git] + args
        env = dict(os.environ, GIT_TERMINAL_PROMPT="0")
        logger.debug(f"[mirror-git] {' '.join(cmd)}")

        try:
            result = subprocess.run(
                cmd,
                cwd=str(cwd) if cwd else None,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                env=env,
            )
        except subprocess.TimeoutExpired as e:
            raise MirrorOpFailed(operation, str(destination), f"timed out after {self.timeout:.0f}s", cause=e)
        except OSError as e:
            raise MirrorOpFailed(operation, str(destination), "could not run git", cause=e)

        if result.returncode != 0:
            error = result.stderr.strip() or result.stdout.strip() or f"exit status {result.returncode}"
            raise MirrorOpFailed(operation, str(destination), error)

        return result.stdout

    def clone_mirror(self, clone_url: str, destination: Path) -> None:
        destination = Path(destination)
        if destination.exists():
            raise MirrorOpFailed("clone", str(destination), "destination already exists")

        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise MirrorOpFailed("clone", str(destination), "cannot create parent directory", cause=e)

        logger.info(f"[mirror-git] Cloning {clone_url} → {destination}")
        try:
            self._run("clone", destination, ["clone", "--mirror", "--quiet", clone_url, str(destination)])
        except MirrorOpFailed:
            # Leave nothing behind so the next attempt starts clean
            if destination.exists():
                shutil.rmtree(destination, ignore_errors=True)
            raise

    def fetch_updates(self, destination: Path) -> None:
        destination = Path(destination)
        if not destination.is_dir():
            raise MirrorOpFailed("fetch", str(destination), "mirror directory is missing")

        logger.info(f"[mirror-git] Fetching {destination}")
        self._run("fetch", destination, ["remote", "update", "--prune"], cwd=destination)

    def set_default_branch(self, destination: Path, branch: str) -> None:
        self._run(
            "set-default-branch",
            destination,
            ["symbolic-ref", "HEAD", f"refs/heads/{branch}"],
            cwd=Path(destination),
        )

    def set_description(self, destination: Path, text: str) -> None:
        path = Path(destination) / DESCRIPTION_FILE
        try:
            with path.open("w", encoding="utf-8") as f:
                if text:
                    f.write(text)
                    f.write("\n")
        except OSError as e:
            raise MirrorOpFailed("set-description", str(destination), "cannot write description", cause=e)

    def set_modification_time(
        self, destination: Path, timestamp: datetime, branch: Optional[str] = None
    ) -> None:
        """
        Set atime/mtime on the mirror directory and on the default branch ref.

        cgit sorts by the ref's mtime. A freshly cloned mirror usually has its
        refs in packed-refs, and a repository without commits has neither,
        which is fine: the directory is always stamped.
        """
        destination = Path(destination)
        ts = timestamp.timestamp()

        targets = []
        if branch:
            ref = destination / "refs" / "heads" / branch
            packed = destination / "packed-refs"
            if ref.is_file():
                targets.append(ref)
            elif packed.is_file():
                targets.append(packed)
        targets.append(destination)

        for target in targets:
            try:
                os.utime(target, (ts, ts))
            except OSError as e:
                raise MirrorOpFailed("set-mtime", str(destination), f"cannot stamp {target}", cause=e)

    def write_host_config(self, destination: Path, template: Path) -> None:
        target = Path(destination) / HOST_CONFIG_FILE
        try:
            shutil.copyfile(template, target)
        except OSError as e:
            raise MirrorOpFailed(
                "write-host-config", str(destination), f"unable to copy '{template}' to '{target}'", cause=e
            )
