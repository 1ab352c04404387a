import asyncio
import logging
import threading
from collections.abc import Awaitable, Iterable
from pathlib import PurePosixPath
from typing import Any

from repo_snapshot import config, github, languages, models

logger = logging.getLogger(__name__)


class TraversalBudget:
    """Byte count of file content collected so far by one traversal.

    Shared by every concurrent branch of the walk. The aggregate cap is soft:
    branches check it before starting new work, so branches that cross it at
    the same time can each add one more file.
    """

    def __init__(self) -> None:
        self._accumulated_size = 0
        self._lock = threading.Lock()

    @property
    def accumulated_size(self) -> int:
        with self._lock:
            return self._accumulated_size

    def add(self, size: int) -> int:
        with self._lock:
            self._accumulated_size += size
            return self._accumulated_size

    def exceeded(self, cap: int) -> bool:
        return self.accumulated_size > cap


def should_include_file(
    path: str,
    size: int,
    max_file_size: int,
    include_extensions: Iterable[str],
    exclude_patterns: Iterable[str],
) -> bool:
    if size > max_file_size:
        return False

    if any(pattern in path for pattern in exclude_patterns):
        return False

    return languages.file_extension(path) in include_extensions


async def gather_or_cancel(*aws: Awaitable[Any]) -> list[Any]:
    """asyncio.gather that cancels the remaining tasks when one of them fails."""
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


def _entries(data: Any) -> list[dict]:
    # A contents request for a file path returns a single object, not a list
    if isinstance(data, list):
        return [e for e in data if isinstance(e, dict)]
    if isinstance(data, dict):
        return [data]
    return []


async def walk_tree(
    client: github.GitHubClient,
    owner: str,
    repo: str,
    path: str = "",
    budget: TraversalBudget | None = None,
    depth: int = 0,
    *,
    settings: config.CrawlConfig | None = None,
) -> list[models.IncludedFile]:
    settings = settings or client.settings
    if budget is None:
        budget = TraversalBudget()
    url = client.contents_url(owner, repo, path)
    return await _walk_page(client, url, owner, repo, budget, depth, settings)


async def _walk_page(
    client: github.GitHubClient,
    url: str,
    owner: str,
    repo: str,
    budget: TraversalBudget,
    depth: int,
    settings: config.CrawlConfig,
) -> list[models.IncludedFile]:
    if depth > settings.max_depth:
        logger.warning(f"Maximum depth ({settings.max_depth}) reached at {url}, stopping recursion")
        return []

    resp = await client.request(url)

    files: list[models.IncludedFile] = []
    subdirs: list[asyncio.Task] = []
    try:
        for entry in _entries(resp.data):
            if budget.exceeded(settings.max_total_size):
                logger.warning(
                    f"Total size limit ({settings.max_total_size} bytes) reached, stopping at {url}"
                )
                break

            entry_type = entry.get("type")
            entry_path = entry.get("path") or ""

            if entry_type == "file":
                size = entry.get("size") or 0
                if not should_include_file(
                    entry_path,
                    size,
                    settings.max_file_size,
                    settings.include_extensions,
                    settings.exclude_patterns,
                ):
                    continue

                content = await github.fetch_file_content_or_empty(client, owner, repo, entry_path)
                if not content:
                    continue

                budget.add(size)
                files.append(
                    models.IncludedFile(
                        name=entry.get("name") or PurePosixPath(entry_path).name,
                        path=entry_path,
                        content=content,
                        size=size,
                        extension=languages.file_extension(entry_path),
                    )
                )
            elif entry_type == "dir":
                subdirs.append(
                    asyncio.ensure_future(
                        walk_tree(client, owner, repo, entry_path, budget, depth + 1, settings=settings)
                    )
                )
    except BaseException:
        for task in subdirs:
            task.cancel()
        await asyncio.gather(*subdirs, return_exceptions=True)
        raise

    for subdir_files in await gather_or_cancel(*subdirs):
        files.extend(subdir_files)

    next_url = github.next_page_url(resp.headers.get("Link"))
    if next_url:
        files.extend(await _walk_page(client, next_url, owner, repo, budget, depth, settings))

    return files
