"""
Reconciliation Engine - Decide and apply the action for one repository.

For each descriptor, in this order:

1. Too large for the configured ceiling → skipped, nothing touched.
2. No record → clone, apply metadata, then write the record.
3. Record present, neither timestamp newer → unchanged, nothing touched.
4. Record present, either timestamp newer → fetch, apply metadata, then
   update the record.

A record is only written after its whole sequence succeeded, so a record
always means a fully mirrored repository. A failed step ends processing of
that repository with a `failed` result; the run carries on.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from ..errors import MirrorOpFailed
from ..mirror.config import MirrorSettings
from ..mirror.git_driver import MirrorDriver
from ..models.repository import MirrorRecord, RepositoryDescriptor
from ..persistence.store import MirrorStore

logger = logging.getLogger(__name__)

# Outcomes
OUTCOME_NEW = "new"
OUTCOME_UPDATED = "updated"
OUTCOME_UNCHANGED = "unchanged"
OUTCOME_SKIPPED = "skipped"
OUTCOME_FAILED = "failed"


@dataclass
class RepoResult:
    """Outcome of reconciling one repository."""

    name: str
    outcome: str
    local_path: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome != OUTCOME_FAILED


class ReconciliationEngine:
    """Brings one local mirror in line with its remote descriptor."""

    def __init__(self, store: MirrorStore, driver: MirrorDriver, settings: MirrorSettings):
        self.store = store
        self.driver = driver
        self.settings = settings

    def is_oversize(self, descriptor: RepositoryDescriptor) -> bool:
        ceiling = self.settings.max_repo_size_bytes
        return ceiling is not None and descriptor.size_bytes > ceiling

    def reconcile(self, descriptor: RepositoryDescriptor) -> RepoResult:
        name = descriptor.name

        if self.is_oversize(descriptor):
            logger.info(
                f"[engine] {name}: skipped, {descriptor.size_bytes} bytes exceeds "
                f"{self.settings.max_repo_size_bytes}",
                extra={"repo": name, "outcome": OUTCOME_SKIPPED},
            )
            return RepoResult(name, OUTCOME_SKIPPED)

        record = self.store.get(name)

        if record is not None and not record.is_stale(descriptor):
            logger.debug(f"[engine] {name}: unchanged", extra={"repo": name, "outcome": OUTCOME_UNCHANGED})
            return RepoResult(name, OUTCOME_UNCHANGED, local_path=record.local_path)

        if record is None:
            path = self.settings.mirror_path(name, fork=descriptor.fork)
            outcome = OUTCOME_NEW
            step = self._mirror_new
        else:
            path = Path(record.local_path)
            outcome = OUTCOME_UPDATED
            step = self._mirror_update

        try:
            step(descriptor, path)
        except MirrorOpFailed as e:
            logger.error(f"[engine] {name}: {e}", extra={"repo": name, "outcome": OUTCOME_FAILED})
            return RepoResult(name, OUTCOME_FAILED, local_path=str(path), error=str(e))

        self.store.put(MirrorRecord.observed(descriptor, str(path)))
        logger.info(f"[engine] {name}: {outcome} → {path}", extra={"repo": name, "outcome": outcome})
        return RepoResult(name, outcome, local_path=str(path))

    def _mirror_new(self, descriptor: RepositoryDescriptor, path: Path) -> None:
        self._attempt(lambda: self.driver.clone_mirror(descriptor.clone_url, path), descriptor.name, "clone")
        try:
            self._apply_metadata(descriptor, path, new=True)
        except MirrorOpFailed:
            # No record will be written, so the clone must go too or the
            # next run would find the destination taken
            if path.exists():
                logger.warning(f"[engine] {descriptor.name}: removing incomplete mirror {path}")
                shutil.rmtree(path, ignore_errors=True)
            raise

    def _mirror_update(self, descriptor: RepositoryDescriptor, path: Path) -> None:
        self._attempt(lambda: self.driver.fetch_updates(path), descriptor.name, "fetch")
        self._apply_metadata(descriptor, path, new=False)

    def _apply_metadata(self, descriptor: RepositoryDescriptor, path: Path, new: bool) -> None:
        self.driver.set_default_branch(path, descriptor.default_branch)
        self.driver.set_description(path, descriptor.description)
        if new and self.settings.cgitrc is not None:
            self.driver.write_host_config(path, self.settings.cgitrc)
        # Last, so later writes into the directory don't bump its mtime
        self.driver.set_modification_time(
            path, descriptor.latest_activity(), branch=descriptor.default_branch
        )

    def _attempt(self, operation: Callable[[], None], name: str, label: str) -> None:
        attempts = max(1, self.settings.fetch_attempts)
        for attempt in range(1, attempts + 1):
            try:
                operation()
                return
            except MirrorOpFailed as e:
                if attempt >= attempts:
                    raise
                logger.warning(f"[engine] {name}: {label} failed (try #{attempt}/{attempts}): {e}")
