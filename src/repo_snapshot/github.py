import asyncio
import base64
import binascii
import logging
import math
import re
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, NamedTuple
from urllib.parse import quote

import httpx

from repo_snapshot import config, models

logger = logging.getLogger(__name__)

DEFAULT_REMAINING = 5000


class GitHubError(Exception):
    def __init__(self, message: str, status_code: int = 502):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class InvalidReferenceError(GitHubError):
    def __init__(self, message: str):
        super().__init__(message, status_code=400)


class InvalidCredentialsError(GitHubError):
    def __init__(self, message: str):
        super().__init__(message, status_code=401)


class AccessForbiddenError(GitHubError):
    def __init__(self, message: str):
        super().__init__(message, status_code=403)


class NotFoundOrPrivateError(GitHubError):
    def __init__(self, message: str):
        super().__init__(message, status_code=404)


class RateLimitExceededError(GitHubError):
    def __init__(self, message: str):
        super().__init__(message, status_code=429)


class UpstreamError(GitHubError):
    def __init__(self, message: str, upstream_status: int | None = None):
        self.upstream_status = upstream_status
        super().__init__(message, status_code=502)


_URL_PATTERNS = (
    re.compile(r"^https?://(?:www\.)?github\.com/([^/\s]+)/([^/\s]+?)(?:/.*)?(?:\.git)?$"),
    re.compile(r"^git@github\.com:([^/\s]+)/([^/\s]+?)(?:\.git)?$"),
    re.compile(r"^(?:www\.)?github\.com/([^/\s]+)/([^/\s]+?)(?:/.*)?(?:\.git)?$"),
)

# An owner in one of these positions means the URL points below a repository root
_RESERVED_OWNERS = {"tree", "blob", "commit"}


def parse_github_url(url: str) -> models.RepoReference:
    url = url.strip().rstrip("/")

    for pattern in _URL_PATTERNS:
        m = pattern.match(url)
        if not m:
            continue
        owner, repo = m.group(1), m.group(2)
        if owner and repo and owner not in _RESERVED_OWNERS:
            return models.RepoReference(owner, repo)

    raise InvalidReferenceError(
        "Invalid GitHub URL. Supported formats: https://github.com/owner/repo, git@github.com:owner/repo.git"
    )


_LINK_ENTRY = re.compile(r'<([^>]+)>;\s*rel="([^"]+)"')


def parse_link_header(value: str | None) -> dict[str, str]:
    links: dict[str, str] = {}
    if not value:
        return links

    for part in value.split(","):
        m = _LINK_ENTRY.search(part)
        if not m:
            continue
        url, rels = m.groups()
        for rel in rels.split():
            links[rel] = url
    return links


def next_page_url(value: str | None) -> str | None:
    return parse_link_header(value).get("next")


def _parse_int(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


@dataclass
class RateLimitState:
    """Remaining API quota as last reported by GitHub.

    One instance is shared by every request that should count against the
    same quota, so updates are serialized with a lock.
    """

    remaining: int = DEFAULT_REMAINING
    reset_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def update(self, headers: Mapping[str, str]) -> None:
        remaining = _parse_int(headers.get("X-RateLimit-Remaining"))
        reset = _parse_int(headers.get("X-RateLimit-Reset"))
        with self._lock:
            if remaining is not None:
                self.remaining = remaining
            if reset is not None:
                self.reset_at = datetime.fromtimestamp(reset, tz=timezone.utc)

    def minutes_until_reset(self) -> int:
        seconds = (self.reset_at - datetime.now(timezone.utc)).total_seconds()
        return max(0, math.ceil(seconds / 60))

    def exhausted(self) -> bool:
        with self._lock:
            return self.remaining <= 0 and self.reset_at > datetime.now(timezone.utc)

    def snapshot(self) -> models.RateLimitInfo:
        with self._lock:
            return models.RateLimitInfo(
                remaining=self.remaining,
                reset_time=self.reset_at,
                reset_in=self.minutes_until_reset(),
            )


def _make_headers(token: str | None, user_agent: str) -> dict[str, str]:
    headers = {
        "Accept": "application/vnd.github.v3+json",
        "User-Agent": user_agent,
    }
    if token:
        headers["Authorization"] = f"token {token}"
    return headers


def _rate_limit_message(rate_limit: RateLimitState) -> str:
    return (
        f"Rate limit exceeded. Try again in {rate_limit.minutes_until_reset()} minutes "
        "or add a GitHub token."
    )


def _handle_error(resp: httpx.Response, rate_limit: RateLimitState) -> None:
    if resp.is_success:
        return
    if resp.status_code == 404:
        raise NotFoundOrPrivateError("Repository not found or is private")
    if resp.status_code == 403:
        if rate_limit.remaining <= 0:
            raise RateLimitExceededError(_rate_limit_message(rate_limit))
        raise AccessForbiddenError("Access forbidden. Repository may be private or require authentication.")
    if resp.status_code == 401:
        raise InvalidCredentialsError(
            "Invalid GitHub token. Please check your GITHUB_API_TOKEN environment variable."
        )
    raise UpstreamError(
        f"GitHub API error: {resp.status_code} {resp.reason_phrase}",
        upstream_status=resp.status_code,
    )


class APIResponse(NamedTuple):
    data: Any
    headers: httpx.Headers


class GitHubClient:
    """Rate-limit aware client for the GitHub REST API.

    Every response refreshes the shared RateLimitState. When the remaining
    quota drops below ``rate_limit_threshold`` a warning is logged, and below
    ``rate_limit_floor`` the request additionally waits ``throttle_delay``
    seconds before returning. Requests are never retried.
    """

    def __init__(
        self,
        token: str | None = None,
        rate_limit: RateLimitState | None = None,
        settings: config.CrawlConfig | None = None,
    ):
        self.settings = settings or config.get_config().crawl
        self.rate_limit = rate_limit if rate_limit is not None else RateLimitState()
        self._semaphore = asyncio.Semaphore(self.settings.max_concurrency)
        self._client = httpx.AsyncClient(
            headers=_make_headers(token, self.settings.user_agent),
            timeout=self.settings.request_timeout,
            follow_redirects=True,
        )

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def repo_url(self, owner: str, repo: str) -> str:
        return f"{self.settings.api_base}/repos/{owner}/{repo}"

    def contents_url(self, owner: str, repo: str, path: str = "") -> str:
        base = f"{self.repo_url(owner, repo)}/contents"
        return f"{base}/{quote(path)}" if path else base

    async def request(self, url: str) -> APIResponse:
        if self.rate_limit.exhausted():
            raise RateLimitExceededError(_rate_limit_message(self.rate_limit))

        async with self._semaphore:
            try:
                resp = await self._client.get(url)
            except httpx.HTTPError as exc:
                raise UpstreamError(f"Failed to connect to GitHub: {exc}") from exc

            self.rate_limit.update(resp.headers)
            await self._throttle()

        _handle_error(resp, self.rate_limit)

        try:
            data = resp.json()
        except ValueError as exc:
            raise UpstreamError(
                f"GitHub returned an invalid JSON body for {url}",
                upstream_status=resp.status_code,
            ) from exc
        return APIResponse(data, resp.headers)

    async def _throttle(self) -> None:
        remaining = self.rate_limit.remaining
        if remaining >= self.settings.rate_limit_threshold:
            return

        logger.warning(
            f"Rate limit running low: {remaining} requests remaining. "
            f"Resets in {self.rate_limit.minutes_until_reset()} minutes."
        )
        if remaining < self.settings.rate_limit_floor:
            await asyncio.sleep(self.settings.throttle_delay)


async def fetch_repo_info(client: GitHubClient, owner: str, repo: str) -> models.RepoInfo:
    resp = await client.request(client.repo_url(owner, repo))
    data = resp.data
    return models.RepoInfo(
        owner=owner,
        name=repo,
        description=data.get("description") or "",
        language=data.get("language") or "",
        stars=data.get("stargazers_count") or 0,
        forks=data.get("forks_count") or 0,
        url=data.get("html_url"),
    )


async def fetch_file_content(client: GitHubClient, owner: str, repo: str, path: str) -> str:
    resp = await client.request(client.contents_url(owner, repo, path))
    data = resp.data

    if not isinstance(data, dict) or data.get("type") != "file" or not data.get("content"):
        return ""

    try:
        return base64.b64decode(data["content"]).decode("utf-8", errors="replace")
    except (binascii.Error, ValueError) as exc:
        raise UpstreamError(f"Failed to decode '{path}': {exc}") from exc


async def fetch_file_content_or_empty(client: GitHubClient, owner: str, repo: str, path: str) -> str:
    """Like fetch_file_content, but a failed fetch is logged and yields ""."""
    try:
        return await fetch_file_content(client, owner, repo, path)
    except GitHubError as exc:
        logger.warning(f"Failed to get content for {path}: {exc.message}")
        return ""
