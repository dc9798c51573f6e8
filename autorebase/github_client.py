"""GitHub REST binding for the pull request repository protocol.

Uses a `requests` session for the REST calls. Each blocking call runs in a
worker thread through `asyncio.to_thread` so that concurrent events keep being
served cooperatively on the event loop.
"""

import asyncio
from typing import Any
from urllib.parse import quote

import requests

from autorebase.errors import GitHubAPIError, LabelNotFoundError, NetworkError
from autorebase.logger import get_logger

logger = get_logger(__name__)

DEFAULT_API_URL = "https://api.github.com"
API_VERSION = "2022-11-28"
PER_PAGE = 100
REQUEST_TIMEOUT = 30


class GitHubRestClient:
    """Pull request API for one GitHub repository."""

    def __init__(
        self,
        owner: str,
        repo: str,
        token: str,
        api_url: str = DEFAULT_API_URL,
        session: requests.Session | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            owner: Repository owner
            repo: Repository name
            token: Token with pull request, issue and contents write access
            api_url: REST API root (GitHub Enterprise: https://host/api/v3)
            session: Optional pre-configured session
        """
        self.owner = owner
        self.repo = repo
        self.api_url = api_url.rstrip("/")
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Accept": "application/vnd.github+json",
                "Authorization": f"Bearer {token}",
                "X-GitHub-Api-Version": API_VERSION,
            }
        )
        logger.debug(f"GitHubRestClient initialized for {owner}/{repo} at {self.api_url}")

    @property
    def repo_path(self) -> str:
        """REST path prefix for the repository."""
        return f"/repos/{self.owner}/{self.repo}"

    def _request(
        self,
        method: str,
        path_or_url: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> requests.Response:
        """Send a request and classify failures.

        Raises:
            NetworkError: On connection failures and timeouts
            GitHubAPIError: On any error status
        """
        url = path_or_url if path_or_url.startswith("http") else f"{self.api_url}{path_or_url}"
        logger.debug(f"{method} {url}")

        try:
            response = self.session.request(
                method, url, params=params, json=json, timeout=REQUEST_TIMEOUT
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            raise NetworkError(f"GitHub API network error: {e}") from e

        if response.status_code >= 400:
            try:
                message = response.json().get("message", response.text)
            except ValueError:
                message = response.text
            logger.debug(f"{method} {url} failed with {response.status_code}: {message}")
            raise GitHubAPIError(response.status_code, message)

        return response

    def _paginate(self, path: str, params: dict[str, Any]) -> list[Any]:
        """Collect every page of a list or search endpoint, in order."""
        results: list[Any] = []
        url: str | None = path
        page_params: dict[str, Any] | None = {**params, "per_page": PER_PAGE}

        while url:
            response = self._request("GET", url, params=page_params)
            data = response.json()
            results.extend(data["items"] if isinstance(data, dict) else data)
            url = response.links.get("next", {}).get("url")
            # The next link already carries the query string
            page_params = None

        return results

    # Synchronous implementations

    def _get_pull_request(self, number: int) -> dict[str, Any]:
        return self._request("GET", f"{self.repo_path}/pulls/{number}").json()

    def _merge_pull_request(self, number: int, merge_method: str) -> None:
        self._request(
            "PUT", f"{self.repo_path}/pulls/{number}/merge", json={"merge_method": merge_method}
        )
        logger.debug(f"Merged #{number} in {self.owner}/{self.repo} ({merge_method})")

    def _delete_ref(self, ref: str) -> None:
        self._request("DELETE", f"{self.repo_path}/git/refs/{quote(ref, safe='/')}")

    def _add_labels(self, number: int, labels: list[str]) -> None:
        self._request("POST", f"{self.repo_path}/issues/{number}/labels", json={"labels": labels})

    def _remove_label(self, number: int, name: str) -> None:
        try:
            self._request(
                "DELETE", f"{self.repo_path}/issues/{number}/labels/{quote(name, safe='')}"
            )
        except GitHubAPIError as e:
            if e.status_code == 404:
                raise LabelNotFoundError(e.status_code, f"Label '{name}' not on #{number}") from e
            raise

    def _create_comment(self, number: int, body: str) -> None:
        self._request("POST", f"{self.repo_path}/issues/{number}/comments", json={"body": body})

    def _get_collaborator_permission(self, username: str) -> str:
        response = self._request(
            "GET", f"{self.repo_path}/collaborators/{quote(username, safe='')}/permission"
        )
        return response.json()["permission"]

    def _search_open_labeled(self, query: str) -> list[int]:
        items = self._paginate("/search/issues", {"q": query, "sort": "created", "order": "asc"})
        return [item["number"] for item in items]

    def _list_pull_request_commits(self, number: int) -> list[dict[str, Any]]:
        return self._paginate(f"{self.repo_path}/pulls/{number}/commits", {})

    # PullRequestRepository protocol

    async def get_pull_request(self, number: int) -> dict[str, Any]:
        return await asyncio.to_thread(self._get_pull_request, number)

    async def merge_pull_request(self, number: int, merge_method: str = "merge") -> None:
        await asyncio.to_thread(self._merge_pull_request, number, merge_method)

    async def delete_ref(self, ref: str) -> None:
        await asyncio.to_thread(self._delete_ref, ref)

    async def add_labels(self, number: int, labels: list[str]) -> None:
        await asyncio.to_thread(self._add_labels, number, labels)

    async def remove_label(self, number: int, name: str) -> None:
        await asyncio.to_thread(self._remove_label, number, name)

    async def create_comment(self, number: int, body: str) -> None:
        await asyncio.to_thread(self._create_comment, number, body)

    async def get_collaborator_permission(self, username: str) -> str:
        return await asyncio.to_thread(self._get_collaborator_permission, username)

    async def search_open_labeled(self, query: str) -> list[int]:
        return await asyncio.to_thread(self._search_open_labeled, query)

    async def list_pull_request_commits(self, number: int) -> list[dict[str, Any]]:
        return await asyncio.to_thread(self._list_pull_request_commits, number)
