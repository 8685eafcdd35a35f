"""
Errors - Exception types raised across repomirror.

Only genuine failures are exceptions. A repository that is unchanged or
skipped for size is an ordinary outcome of reconciliation, not an error.
"""

from __future__ import annotations

from typing import Optional


class RepomirrorError(Exception):
    """Base class for all repomirror errors."""

    def __init__(
        self,
        message: str,
        repo: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        self.message = message
        self.repo = repo
        self.cause = cause
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        msg = f"{self.repo}: {self.message}" if self.repo else self.message
        if self.cause is not None:
            msg += f": {self.cause}"
        return msg


class RemoteUnavailable(RepomirrorError):
    """Listing the account's repositories failed. Fatal for the run."""


class MirrorOpFailed(RepomirrorError):
    """A clone, fetch or metadata step failed for one repository."""

    def __init__(
        self,
        operation: str,
        destination: str,
        message: str,
        repo: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        self.operation = operation
        self.destination = destination
        super().__init__(f"{operation} failed in {destination}: {message}", repo, cause)


class ConfigInvalid(RepomirrorError):
    """Raised when configuration is missing or invalid."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(f"{field}: {message}" if field else message)


class StoreError(RepomirrorError):
    """The mirror state database could not be read or written."""
