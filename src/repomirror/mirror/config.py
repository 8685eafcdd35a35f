"""
Mirror Configuration - Run settings from CLI values and environment.

Everything a run needs is gathered into one MirrorSettings value that is
passed explicitly to the engine and the manager. Nothing reads global
state after startup.

Environment variables:
    GITHUB_TOKEN               optional API token (raises the rate limit)
    REPOMIRROR_API_URL         API base URL (default https://api.github.com)
    REPOMIRROR_HTTP_TIMEOUT    seconds per API request (default 30)
    REPOMIRROR_GIT_TIMEOUT     seconds per git command (default 3600)
    REPOMIRROR_FETCH_ATTEMPTS  clone/fetch attempts per repository (default 1)
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from ..errors import ConfigInvalid

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_HTTP_TIMEOUT = 30.0
DEFAULT_GIT_TIMEOUT = 3600.0
DEFAULT_FETCH_ATTEMPTS = 1

_SIZE_RE = re.compile(r"^\s*(\d+)\s*([kmg]?)(i?)(b?)\s*$", re.IGNORECASE)
_SIZE_EXPONENT = {"": 0, "k": 1, "m": 2, "g": 3}


def parse_size(value: str) -> int:
    """
    Parse a size such as "500K", "2M", "1GiB" or "123456" into bytes.

    K/M/G are decimal (1000), KiB/MiB/GiB are binary (1024).
    """
    match = _SIZE_RE.match(value or "")
    if not match:
        raise ConfigInvalid(f"unable to parse size '{value}'", field="--skip-larger-than")

    number, unit, binary, _ = match.groups()
    if binary and not unit:
        raise ConfigInvalid(f"unable to parse size '{value}'", field="--skip-larger-than")

    base = 1024 if binary else 1000
    return int(number) * base ** _SIZE_EXPONENT[unit.lower()]


def _env_number(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigInvalid(f"expected a number, got '{raw}'", field=name)
    if value <= 0:
        raise ConfigInvalid(f"must be positive, got '{raw}'", field=name)
    return value


@dataclass(frozen=True)
class MirrorSettings:
    """Settings for one mirroring run."""

    database_path: Path
    mirror_root: Path
    cgitrc: Optional[Path] = None
    max_repo_size_bytes: Optional[int] = None
    github_token: Optional[str] = None
    api_url: str = DEFAULT_API_URL
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    git_timeout: float = DEFAULT_GIT_TIMEOUT
    fetch_attempts: int = DEFAULT_FETCH_ATTEMPTS

    @classmethod
    def build(
        cls,
        database: str,
        mirror_root: str,
        cgitrc: Optional[str] = None,
        skip_larger_than: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> "MirrorSettings":
        """Validate CLI values plus environment. Raises ConfigInvalid."""
        if env is None:
            env = os.environ

        if not database:
            raise ConfigInvalid("missing required argument", field="--database")

        root = Path(mirror_root)
        if root.exists() and not root.is_dir():
            raise ConfigInvalid(f"not a directory: {root}", field="REPO_PARENT_DIR")

        template: Optional[Path] = None
        if cgitrc:
            template = Path(cgitrc)
            if not template.is_file():
                raise ConfigInvalid(f"file does not exist: {template}", field="--cgitrc")

        max_size = parse_size(skip_larger_than) if skip_larger_than else None

        attempts = _env_number(env, "REPOMIRROR_FETCH_ATTEMPTS", DEFAULT_FETCH_ATTEMPTS)
        if attempts != int(attempts):
            raise ConfigInvalid(f"expected an integer, got '{attempts}'", field="REPOMIRROR_FETCH_ATTEMPTS")

        settings = cls(
            database_path=Path(database),
            mirror_root=root,
            cgitrc=template,
            max_repo_size_bytes=max_size,
            github_token=env.get("GITHUB_TOKEN") or None,
            api_url=(env.get("REPOMIRROR_API_URL") or DEFAULT_API_URL).rstrip("/"),
            http_timeout=_env_number(env, "REPOMIRROR_HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT),
            git_timeout=_env_number(env, "REPOMIRROR_GIT_TIMEOUT", DEFAULT_GIT_TIMEOUT),
            fetch_attempts=int(attempts),
        )

        logger.debug(
            f"Settings: root={settings.mirror_root}, db={settings.database_path}, "
            f"ceiling={settings.max_repo_size_bytes}, attempts={settings.fetch_attempts}"
        )
        return settings

    def mirror_path(self, name: str, fork: bool = False) -> Path:
        """Where a repository's bare mirror lives. Forks go under fork/."""
        git_dir = f"{name}.git"
        if fork:
            return self.mirror_root / "fork" / git_dir
        return self.mirror_root / git_dir
