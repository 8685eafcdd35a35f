"""
Repository Models - Pydantic schemas for remote descriptors and mirror records.

A RepositoryDescriptor is what the hosting platform reports about one
repository at listing time. A MirrorRecord is what we remember about the
last successful mirror of it.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional
from urllib.parse import urlsplit, urlunsplit

from pydantic import BaseModel, ConfigDict, field_validator


def normalize_clone_url(url: str) -> str:
    """
    Rewrite a clone URL to use https.

    Handles git://, http://, ssh:// and scp-style git@host:owner/repo.git
    forms. Anything else is returned unchanged if it already uses https.
    """
    url = url.strip()

    # scp-style: git@github.com:owner/repo.git
    if "://" not in url and "@" in url and ":" in url:
        host_part, path = url.split(":", 1)
        host = host_part.split("@", 1)[1]
        return f"https://{host}/{path.lstrip('/')}"

    parts = urlsplit(url)
    if parts.scheme in ("git", "http", "ssh", "git+ssh"):
        host = parts.hostname or ""
        if parts.port and parts.scheme == "http":
            host = f"{host}:{parts.port}"
        return urlunsplit(("https", host, parts.path, parts.query, parts.fragment))

    return url


class RepositoryDescriptor(BaseModel):
    """Remote metadata for one repository, immutable per fetch."""

    model_config = ConfigDict(frozen=True)

    name: str
    clone_url: str
    description: str = ""
    size: int = 0  # KiB, as reported by the API
    default_branch: str = "master"
    updated_at: datetime
    pushed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    fork: bool = False

    @field_validator("clone_url")
    @classmethod
    def _https_only(cls, v: str) -> str:
        return normalize_clone_url(v)

    @field_validator("description", mode="before")
    @classmethod
    def _empty_description(cls, v: Any) -> Any:
        return "" if v is None else v

    @property
    def size_bytes(self) -> int:
        return self.size * 1024

    def latest_activity(self) -> datetime:
        """
        The most recent of updated_at and pushed_at.

        A repository that never received a push has no pushed_at (or one
        equal to its creation time), so updated_at alone is used then.
        """
        if self.pushed_at is None:
            return self.updated_at
        return max(self.updated_at, self.pushed_at)

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "RepositoryDescriptor":
        """Translate a GitHub REST repository object."""
        clone_url = (
            payload.get("clone_url")
            or payload.get("git_url")
            or payload.get("ssh_url")
        )
        return cls(
            name=payload["name"],
            clone_url=clone_url,
            description=payload.get("description"),
            size=payload.get("size") or 0,
            default_branch=payload.get("default_branch") or "master",
            updated_at=payload["updated_at"],
            pushed_at=payload.get("pushed_at"),
            created_at=payload.get("created_at"),
            fork=bool(payload.get("fork", False)),
        )


class MirrorRecord(BaseModel):
    """What was observed at the last successful mirror of a repository."""

    name: str
    last_updated_at: datetime
    last_pushed_at: Optional[datetime] = None
    local_path: str

    @classmethod
    def observed(cls, descriptor: RepositoryDescriptor, local_path: str) -> "MirrorRecord":
        return cls(
            name=descriptor.name,
            last_updated_at=descriptor.updated_at,
            last_pushed_at=descriptor.pushed_at,
            local_path=local_path,
        )

    def is_stale(self, descriptor: RepositoryDescriptor) -> bool:
        """
        True if either remote timestamp moved strictly past what we stored.

        The two are checked independently: a push advances pushed_at
        without touching updated_at, and a metadata edit does the reverse.
        Equal timestamps count as unchanged.
        """
        if descriptor.updated_at > self.last_updated_at:
            return True
        if descriptor.pushed_at is None:
            return False
        if self.last_pushed_at is None:
            return True
        return descriptor.pushed_at > self.last_pushed_at
