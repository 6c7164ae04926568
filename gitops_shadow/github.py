"""Client for looking up pull request state with the GitHub REST API."""

import asyncio
from enum import Enum
import logging
import os
from types import TracebackType

import aiohttp

from .exceptions import GitHubException

__all__ = [
    "PRState",
    "GitHubClient",
]

_LOGGER = logging.getLogger(__name__)

API_URL = "https://api.github.com"
TOKEN_ENV = "GH_TOKEN"
USER_AGENT = "gitops-shadow"
_TIMEOUT = aiohttp.ClientTimeout(total=30)


class PRState(str, Enum):
    """State of a pull request in the source repository."""

    OPEN = "open"
    CLOSED = "closed"
    MERGED = "merged"
    NOT_FOUND = "not_found"
    """The pull request does not exist, which is treated like closed."""


class GitHubClient:
    """Looks up pull request state, used as an async context manager.

    ```python
    async with GitHubClient() as client:
        state = await client.pr_state("erauner/homelab-k8s", 950)
    ```
    """

    def __init__(self, token: str | None = None, api_url: str = API_URL) -> None:
        """Initialize GitHubClient, with the token defaulting to `GH_TOKEN`."""
        self._token = token if token is not None else os.environ.get(TOKEN_ENV)
        self._api_url = api_url.rstrip("/")
        self._session: aiohttp.ClientSession | None = None

    @property
    def headers(self) -> dict[str, str]:
        """Request headers including authentication when a token is set."""
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": USER_AGENT,
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def __aenter__(self) -> "GitHubClient":
        self._session = aiohttp.ClientSession(timeout=_TIMEOUT, headers=self.headers)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def pr_state(self, repo: str, number: int | str) -> PRState:
        """Return the state of a pull request in the `owner/repo` repository."""
        if self._session is None:
            raise GitHubException("GitHubClient used outside of its context")
        url = f"{self._api_url}/repos/{repo}/pulls/{number}"
        _LOGGER.debug("Fetching %s", url)
        try:
            async with self._session.get(url) as response:
                if response.status == 404:
                    return PRState.NOT_FOUND
                if response.status != 200:
                    raise GitHubException(
                        f"GitHub API returned {response.status} for {repo}#{number}"
                    )
                data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as err:
            raise GitHubException(f"GitHub API request failed: {err}") from err
        except ValueError as err:
            raise GitHubException(
                f"Invalid GitHub API response for {repo}#{number}: {err}"
            ) from err
        if not isinstance(data, dict):
            raise GitHubException(
                f"Unexpected GitHub API response for {repo}#{number}: {data!r}"
            )
        if data.get("merged_at"):
            return PRState.MERGED
        if data.get("state") == PRState.OPEN.value:
            return PRState.OPEN
        return PRState.CLOSED
