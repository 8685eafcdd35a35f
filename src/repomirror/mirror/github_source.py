"""
GitHub Source - List an account's repositories through the REST API.

    GET /users/{account}/repos?type=owner&sort=updated&per_page=100&page=N

Pages are followed until the response carries no rel="next" link (or an
empty page comes back). The listing is a lazy generator: callers never see
page boundaries, and calling list_repositories() again starts over from
page 1.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterator, Optional

import httpx
from pydantic import ValidationError

from .. import __version__
from ..errors import RemoteUnavailable
from ..models.repository import RepositoryDescriptor
from .config import DEFAULT_API_URL, DEFAULT_HTTP_TIMEOUT

logger = logging.getLogger(__name__)

PAGE_SIZE = 100
USER_AGENT = f"repomirror/{__version__}"


def _get_headers(token: Optional[str]) -> Dict[str, str]:
    """Get GitHub API headers."""
    headers = {
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": "2022-11-28",
        "User-Agent": USER_AGENT,
    }
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


class GitHubRepositorySource:
    """
    Paginated client over the GitHub repository listing.

    The httpx.Client can be injected (tests pass one built on
    httpx.MockTransport); otherwise one is created and owned here.
    """

    def __init__(
        self,
        token: Optional[str] = None,
        api_url: str = DEFAULT_API_URL,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        client: Optional[httpx.Client] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)
        self._headers = _get_headers(token)

    def list_repositories(self, account: str) -> Iterator[RepositoryDescriptor]:
        url = f"{self.api_url}/users/{account}/repos"
        page = 1

        while True:
            payload, has_next = self._fetch_page(account, url, page)
            if not payload:
                break

            for node in payload:
                descriptor = self._parse_node(node)
                if descriptor is not None:
                    yield descriptor

            if not has_next:
                break
            page += 1

    def _fetch_page(self, account: str, url: str, page: int):
        params = {
            "type": "owner",
            "sort": "updated",
            "per_page": PAGE_SIZE,
            "page": page,
        }
        logger.debug(f"[github] GET {url} page={page}")

        try:
            resp = self._client.get(url, headers=self._headers, params=params)
        except httpx.HTTPError as e:
            raise RemoteUnavailable(f"listing page {page} failed", repo=account, cause=e)

        if resp.status_code != 200:
            raise RemoteUnavailable(
                f"listing page {page} failed: HTTP {resp.status_code}: {resp.text[:200]}",
                repo=account,
            )

        try:
            payload = resp.json()
        except ValueError as e:
            raise RemoteUnavailable(f"listing page {page} returned invalid JSON", repo=account, cause=e)

        if not isinstance(payload, list):
            raise RemoteUnavailable(f"listing page {page} returned {type(payload).__name__}, expected a list", repo=account)

        logger.info(f"[github] {account}: page {page}, {len(payload)} repositories")
        return payload, "next" in resp.links

    @staticmethod
    def _parse_node(node) -> Optional[RepositoryDescriptor]:
        try:
            return RepositoryDescriptor.from_api(node)
        except (KeyError, TypeError, ValidationError) as e:
            name = node.get("name") if isinstance(node, dict) else None
            logger.warning(f"[github] Skipping malformed repository entry {name!r}: {e}")
            return None

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "GitHubRepositorySource":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
