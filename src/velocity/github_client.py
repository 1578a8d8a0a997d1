"""GitHub REST API client for velocity data extraction."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, List, Optional

import requests

from .dates import format_datetime, parse_datetime
from .errors import ApiError, AuthenticationError

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"


class GitHubClient:
    """Small client for the GitHub REST endpoints used by extraction.

    Methods return raw JSON records; :mod:`velocity.normalizers` turns them
    into models.
    """

    _PAGE_SIZE = 100
    _MAX_RETRIES = 5
    _MAX_BACKOFF_SECONDS = 60

    def __init__(self, token: str, api_url: str = DEFAULT_API_URL, timeout_seconds: int = 30) -> None:
        """Initialize an authenticated GitHub API client.

        Args:
            token: GitHub personal access or app token.
            api_url: Base REST API URL, overridable for GitHub Enterprise.
            timeout_seconds: Per-request timeout in seconds.
        """
        self._base_url = api_url.rstrip("/")
        self._timeout_seconds = timeout_seconds

        self._session = requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            }
        )

    def _build_url(self, path: str) -> str:
        return f"{self._base_url}/{path.lstrip('/')}"

    def _is_rate_limited(self, response: requests.Response) -> bool:
        if response.status_code == 429:
            return True
        return response.status_code == 403 and response.headers.get("X-RateLimit-Remaining") == "0"

    def _extract_backoff_seconds(self, response: requests.Response, attempt: int) -> int:
        """Compute backoff seconds, honoring Retry-After and X-RateLimit-Reset when present."""
        retry_after_header = response.headers.get("Retry-After")
        if retry_after_header:
            try:
                return min(self._MAX_BACKOFF_SECONDS, max(1, int(retry_after_header)))
            except ValueError:
                pass

        reset_header = response.headers.get("X-RateLimit-Reset")
        if reset_header:
            try:
                wait = int(reset_header) - int(time.time())
                return min(self._MAX_BACKOFF_SECONDS, max(1, wait))
            except ValueError:
                pass

        return min(self._MAX_BACKOFF_SECONDS, 2 ** (attempt - 1))

    def _request(self, url: str, params: Optional[Dict[str, Any]] = None) -> requests.Response:
        """Execute a GET request with retry logic for rate limits and 5xx responses.

        Raises:
            AuthenticationError: If GitHub rejects the token (HTTP 401).
            ApiError: If the request repeatedly fails or returns HTTP >= 400.
        """
        last_error: Optional[Exception] = None

        for attempt in range(1, self._MAX_RETRIES + 1):
            try:
                response = self._session.get(url, params=params, timeout=self._timeout_seconds)
            except requests.RequestException as exc:
                last_error = exc
                if attempt == self._MAX_RETRIES:
                    raise ApiError(f"GitHub request failed after retries: GET {url}") from exc
                logger.warning(
                    "Network error, retrying",
                    extra={"url": url, "attempt": attempt, "max_retries": self._MAX_RETRIES},
                )
                time.sleep(min(self._MAX_BACKOFF_SECONDS, 2 ** (attempt - 1)))
                continue

            status_code = response.status_code
            is_retryable = self._is_rate_limited(response) or 500 <= status_code <= 599

            if is_retryable and attempt < self._MAX_RETRIES:
                backoff = self._extract_backoff_seconds(response, attempt)
                logger.warning(
                    "Retryable GitHub response, backing off",
                    extra={"url": url, "status_code": status_code, "attempt": attempt, "backoff_seconds": backoff},
                )
                time.sleep(backoff)
                continue

            if status_code == 401:
                raise AuthenticationError(
                    "GitHub rejected the configured token. Check the 'GITHUB_TOKEN' environment variable."
                )

            if status_code >= 400:
                raise ApiError(f"GitHub API request failed: GET {url} returned {status_code} - {response.text}")

            return response

        raise ApiError(f"GitHub request failed after retries: GET {url}") from last_error

    def _decode(self, response: requests.Response, url: str) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise ApiError(f"GitHub API returned invalid JSON: GET {url}") from exc

    def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        url = self._build_url(path)
        return self._decode(self._request(url, params=params), url)

    def _paginate(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        stop: Optional[Callable[[Dict[str, Any]], bool]] = None,
    ) -> Iterator[Dict[str, Any]]:
        """Yield items across pages by following ``Link: rel="next"`` headers.

        When ``stop`` returns ``True`` for an item, iteration ends before that
        item is yielded.
        """
        url: Optional[str] = self._build_url(path)
        query: Optional[Dict[str, Any]] = {"per_page": self._PAGE_SIZE, **(params or {})}

        while url:
            response = self._request(url, params=query)
            payload = self._decode(response, url)
            if not isinstance(payload, list):
                raise ApiError(f"GitHub API returned unexpected payload shape: GET {url}")

            for item in payload:
                if stop is not None and stop(item):
                    return
                yield item

            url = response.links.get("next", {}).get("url")
            query = None

    def get_repository(self, repo: str) -> Dict[str, Any]:
        payload = self._get_json(f"repos/{repo}")
        if not isinstance(payload, dict):
            raise ApiError(f"GitHub API returned unexpected payload shape for repository '{repo}'")
        return payload

    def check_repo_access(self, repo: str) -> bool:
        """Return whether the repository exists and the token can read it."""
        try:
            self.get_repository(repo)
        except ApiError as exc:
            logger.debug("Repository is not accessible", extra={"repo": repo, "error": str(exc)})
            return False
        return True

    def get_default_branch(self, repo: str) -> str:
        """Return the repository's default branch, falling back to ``main``."""
        try:
            return str(self.get_repository(repo).get("default_branch") or "main")
        except ApiError:
            logger.debug("Falling back to 'main' as default branch", extra={"repo": repo})
            return "main"

    def list_pull_requests(self, repo: str, since: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """List pull requests in any state, most recently updated first.

        Paging stops at the first pull request last updated before ``since``.
        """
        def _older_than_since(item: Dict[str, Any]) -> bool:
            if since is None:
                return False
            updated_at = parse_datetime(item.get("updated_at"))
            return updated_at is not None and updated_at < since

        params = {"state": "all", "sort": "updated", "direction": "desc"}
        return list(self._paginate(f"repos/{repo}/pulls", params=params, stop=_older_than_since))

    def get_pull_request(self, repo: str, number: int) -> Dict[str, Any]:
        """Fetch a single pull request, including size and commit/comment counts."""
        payload = self._get_json(f"repos/{repo}/pulls/{number}")
        if not isinstance(payload, dict):
            raise ApiError(f"GitHub API returned unexpected payload shape for {repo}#{number}")
        return payload

    def list_reviews(self, repo: str, number: int) -> List[Dict[str, Any]]:
        return list(self._paginate(f"repos/{repo}/pulls/{number}/reviews"))

    def list_commits(self, repo: str, branch: str, since: Optional[datetime] = None) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"sha": branch}
        if since is not None:
            params["since"] = format_datetime(since.astimezone(timezone.utc))
        return list(self._paginate(f"repos/{repo}/commits", params=params))

    def list_deployments(self, repo: str, environment: Optional[str] = None) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {}
        if environment:
            params["environment"] = environment
        return list(self._paginate(f"repos/{repo}/deployments", params=params))

    def get_deployment_state(self, repo: str, deployment_id: Any) -> Optional[str]:
        """Return the state of the most recent status of a deployment, if any."""
        payload = self._get_json(f"repos/{repo}/deployments/{deployment_id}/statuses", params={"per_page": 1})
        if isinstance(payload, list) and payload:
            state = payload[0].get("state")
            return str(state) if state else None
        return None

    def list_releases(self, repo: str) -> List[Dict[str, Any]]:
        return list(self._paginate(f"repos/{repo}/releases"))

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> GitHubClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
