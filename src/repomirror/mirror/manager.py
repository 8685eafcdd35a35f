"""
Mirror Manager - Run a full account scan.

Pulls descriptors from the repository source one at a time and hands each
to the reconciliation engine, in the order the source yields them. A
failed repository is recorded and the scan moves on; a failed listing
stops the scan, but everything reconciled before it stays recorded.

## Usage

    from repomirror.mirror.manager import MirrorManager

    manager = MirrorManager(source, engine)
    report = manager.run("octocat")
    if not report.ok:
        raise SystemExit(1)
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterator, List, Optional, Protocol

from ..engine.reconcile import (
    OUTCOME_FAILED,
    OUTCOME_NEW,
    OUTCOME_SKIPPED,
    OUTCOME_UNCHANGED,
    OUTCOME_UPDATED,
    ReconciliationEngine,
    RepoResult,
)
from ..errors import RemoteUnavailable
from ..models.repository import RepositoryDescriptor

logger = logging.getLogger(__name__)


class RepositorySource(Protocol):
    def list_repositories(self, account: str) -> Iterator[RepositoryDescriptor]: ...


@dataclass
class RunReport:
    """Summary of one mirroring run."""

    account: str
    started_at: str
    duration_ms: int = 0
    counts: Dict[str, int] = field(
        default_factory=lambda: {
            OUTCOME_NEW: 0,
            OUTCOME_UPDATED: 0,
            OUTCOME_UNCHANGED: 0,
            OUTCOME_SKIPPED: 0,
            OUTCOME_FAILED: 0,
        }
    )
    failures: List[RepoResult] = field(default_factory=list)
    remote_error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.remote_error is None and not self.failures

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    def add(self, result: RepoResult) -> None:
        self.counts[result.outcome] += 1
        if not result.ok:
            self.failures.append(result)

    def to_dict(self) -> dict:
        return {
            "account": self.account,
            "started_at": self.started_at,
            "duration_ms": self.duration_ms,
            "ok": self.ok,
            "counts": dict(self.counts),
            "failures": [{"name": f.name, "error": f.error} for f in self.failures],
            "remote_error": self.remote_error,
        }


class MirrorManager:
    """Sequences the whole scan and aggregates per-repository outcomes."""

    def __init__(self, source: RepositorySource, engine: ReconciliationEngine):
        self.source = source
        self.engine = engine

    def run(self, account: str) -> RunReport:
        start = time.time()
        report = RunReport(
            account=account,
            started_at=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        )
        logger.info(f"[mirror] Mirroring repositories of {account}")

        try:
            for descriptor in self.source.list_repositories(account):
                report.add(self.engine.reconcile(descriptor))
        except RemoteUnavailable as e:
            logger.error(f"[mirror] Listing failed: {e}")
            report.remote_error = str(e)

        report.duration_ms = int((time.time() - start) * 1000)

        c = report.counts
        logger.info(
            f"[mirror] Done in {report.duration_ms}ms: "
            f"{c[OUTCOME_NEW]} new, {c[OUTCOME_UPDATED]} updated, "
            f"{c[OUTCOME_UNCHANGED]} unchanged, {c[OUTCOME_SKIPPED]} skipped, "
            f"{c[OUTCOME_FAILED]} failed"
        )
        return report
