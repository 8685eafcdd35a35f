"""
Shared fixtures for mirror tests.

Provides a fake driver that records calls instead of running git, a
descriptor factory, and settings/store rooted in a temporary directory.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Set, Tuple

import pytest

from repomirror.errors import MirrorOpFailed
from repomirror.mirror.config import MirrorSettings
from repomirror.mirror.git_driver import MirrorDriver
from repomirror.models.repository import RepositoryDescriptor
from repomirror.persistence.store import MirrorStore

T0 = datetime(2021, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
T1 = datetime(2021, 6, 1, 12, 0, 0, tzinfo=timezone.utc)
T2 = datetime(2021, 9, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeDriver(MirrorDriver):
    """Records every call. Operations named in `fail` raise MirrorOpFailed."""

    def __init__(self, fail: Optional[Set[str]] = None, fail_times: int = -1):
        self.calls: List[Tuple] = []
        self.fail = fail or set()
        self.fail_times = fail_times  # -1 = always

    def _record(self, op: str, *args) -> None:
        self.calls.append((op,) + args)
        if op in self.fail and self.fail_times != 0:
            if self.fail_times > 0:
                self.fail_times -= 1
            raise MirrorOpFailed(op, str(args[0]), "simulated failure")

    def clone_mirror(self, clone_url, destination):
        self._record("clone", clone_url, Path(destination))

    def fetch_updates(self, destination):
        self._record("fetch", Path(destination))

    def set_default_branch(self, destination, branch):
        self._record("set_default_branch", Path(destination), branch)

    def set_description(self, destination, text):
        self._record("set_description", Path(destination), text)

    def set_modification_time(self, destination, timestamp, branch=None):
        self._record("set_mtime", Path(destination), timestamp)

    def write_host_config(self, destination, template):
        self._record("write_host_config", Path(destination), Path(template))

    def ops(self) -> List[str]:
        return [c[0] for c in self.calls]


def make_descriptor(
    name: str = "foo",
    updated_at: datetime = T0,
    pushed_at: Optional[datetime] = T0,
    size: int = 10,
    **kwargs,
) -> RepositoryDescriptor:
    return RepositoryDescriptor(
        name=name,
        clone_url=kwargs.pop("clone_url", f"https://github.com/octocat/{name}.git"),
        description=kwargs.pop("description", f"The {name} project"),
        size=size,
        default_branch=kwargs.pop("default_branch", "main"),
        updated_at=updated_at,
        pushed_at=pushed_at,
        **kwargs,
    )


@pytest.fixture
def driver() -> FakeDriver:
    return FakeDriver()


@pytest.fixture
def settings(tmp_path: Path) -> MirrorSettings:
    return MirrorSettings(
        database_path=tmp_path / "mirrors.db",
        mirror_root=tmp_path / "repos",
    )


@pytest.fixture
def store(settings: MirrorSettings):
    s = MirrorStore.open(settings.database_path)
    yield s
    s.close()
