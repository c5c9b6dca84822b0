"""GitHub repository collaborators API client.

Wraps the three REST calls Gatekeeper needs:
- GET    /repos/{owner}/{repo}/collaborators/{username}  (204 member, 404 not)
- PUT    /repos/{owner}/{repo}/collaborators/{username}  (201 invited, 204 already)
- DELETE /repos/{owner}/{repo}/collaborators/{username}  (204 removed, 404 absent)

Grant and revoke are idempotent on the GitHub side. Any other status is an
AccessControlError. There is no automatic retry: a failed webhook delivery
returns 500 and the provider redelivers.
"""

from __future__ import annotations

import logging
from urllib.parse import quote

import httpx

from gatekeeper.config import GITHUB_API_URL, RepoConfig
from gatekeeper.exceptions import AccessControlError

logger = logging.getLogger(__name__)

GITHUB_API_VERSION = "2022-11-28"

# Cap on the error body echoed into exceptions and logs
_MAX_ERROR_BODY = 500


def github_headers(token: str) -> dict[str, str]:
    return {
        "Accept": "application/vnd.github+json",
        "Authorization": f"Bearer {token}",
        "X-GitHub-Api-Version": GITHUB_API_VERSION,
    }


def build_http_client(
    base_url: str = GITHUB_API_URL,
    timeout: float = 30.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Shared connection pool for collaborator calls (one per app)."""
    return httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)


class CollaboratorClient:
    """Collaborator operations for one repository."""

    def __init__(
        self,
        token: str,
        owner: str,
        repo: str,
        *,
        http: httpx.AsyncClient | None = None,
        base_url: str = GITHUB_API_URL,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.owner = owner
        self.repo = repo
        self._headers = github_headers(token)
        self._owns_http = http is None
        self._http = http or build_http_client(base_url, timeout, transport)

    @classmethod
    def from_config(cls, config: RepoConfig, http: httpx.AsyncClient | None = None) -> CollaboratorClient:
        return cls(config.token, config.owner, config.repo, http=http)

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> CollaboratorClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def _path(self, username: str) -> str:
        return (
            f"/repos/{quote(self.owner, safe='')}/{quote(self.repo, safe='')}"
            f"/collaborators/{quote(username, safe='')}"
        )

    async def _request(self, operation: str, method: str, username: str, **kwargs) -> httpx.Response:
        try:
            return await self._http.request(
                method, self._path(username), headers=self._headers, **kwargs
            )
        except httpx.HTTPError as e:
            logger.warning("GitHub %s transport error for %s: %s", operation, username, e)
            raise AccessControlError(operation, body=f"{type(e).__name__}: {e}") from e

    @staticmethod
    def _error(operation: str, response: httpx.Response) -> AccessControlError:
        return AccessControlError(operation, response.status_code, response.text[:_MAX_ERROR_BODY])

    async def is_member(self, username: str) -> bool:
        """True if ``username`` is a collaborator, False if not."""
        response = await self._request("isCollaborator", "GET", username)
        if response.status_code == 204:
            return True
        if response.status_code == 404:
            return False
        raise self._error("isCollaborator", response)

    async def grant(self, username: str, permission: str | None = None) -> None:
        """Add ``username`` with ``permission``; "already granted" is success."""
        response = await self._request(
            "addCollaborator",
            "PUT",
            username,
            json={"permission": permission} if permission else {},
        )
        if response.status_code in (201, 204):
            logger.info(
                "Collaborator added: %s to %s/%s (permission=%s, status=%d)",
                username,
                self.owner,
                self.repo,
                permission,
                response.status_code,
            )
            return
        raise self._error("addCollaborator", response)

    async def revoke(self, username: str) -> None:
        """Remove ``username``; "already absent" (404) is success."""
        response = await self._request("removeCollaborator", "DELETE", username)
        if response.status_code == 204:
            logger.info("Collaborator removed: %s from %s/%s", username, self.owner, self.repo)
            return
        if response.status_code == 404:
            logger.info("Collaborator already absent: %s from %s/%s", username, self.owner, self.repo)
            return
        raise self._error("removeCollaborator", response)
