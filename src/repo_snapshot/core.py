import asyncio
import logging
import time

from repo_snapshot import config, github, languages, models, tree

logger = logging.getLogger(__name__)


class AnalysisFailedError(github.GitHubError):
    """Any failure of a repository analysis; ``cause`` is the underlying error."""

    def __init__(
        self,
        message: str,
        cause: github.GitHubError | None = None,
        status_code: int | None = None,
    ):
        self.cause = cause
        if status_code is None:
            status_code = cause.status_code if cause else 502
        super().__init__(message, status_code=status_code)


class AnalysisTimeoutError(AnalysisFailedError):
    def __init__(self, message: str):
        super().__init__(message, status_code=504)


async def _analyze(
    github_url: str,
    token: str | None,
    rate_limit: github.RateLimitState | None,
    settings: config.CrawlConfig,
) -> models.RepositoryData:
    owner, repo = github.parse_github_url(github_url)
    logger.info(f"Analyzing repository: {owner}/{repo}")

    t0 = time.monotonic()
    async with github.GitHubClient(token, rate_limit=rate_limit, settings=settings) as client:
        repo_info, files = await tree.gather_or_cancel(
            github.fetch_repo_info(client, owner, repo),
            tree.walk_tree(client, owner, repo, "", tree.TraversalBudget(), 0, settings=settings),
        )
        remaining = client.rate_limit.remaining

    langs = languages.language_breakdown(files)
    logger.info(
        f"Analysis complete: {len(files)} files, {len(langs)} languages "
        f"in {time.monotonic() - t0:.1f}s"
    )

    return models.RepositoryData(
        repo=repo_info,
        files=files,
        total_files=len(files),
        total_size=sum(f.size for f in files),
        languages=langs,
        rate_limit_remaining=remaining,
    )


async def analyze_repository(
    github_url: str,
    *,
    rate_limit: github.RateLimitState | None = None,
    settings: config.CrawlConfig | None = None,
) -> models.RepositoryData:
    cfg = config.get_config()
    settings = settings or cfg.crawl
    analysis = _analyze(github_url, cfg.github_token, rate_limit, settings)

    try:
        if settings.analysis_timeout is None:
            return await analysis
        return await asyncio.wait_for(analysis, timeout=settings.analysis_timeout)
    except asyncio.TimeoutError as exc:
        logger.error(f"Repository analysis timed out after {settings.analysis_timeout}s: {github_url}")
        raise AnalysisTimeoutError(
            f"Failed to analyze repository: timed out after {settings.analysis_timeout}s"
        ) from exc
    except github.GitHubError as exc:
        logger.error(f"Repository analysis failed: {exc.message}")
        raise AnalysisFailedError(f"Failed to analyze repository: {exc.message}", cause=exc) from exc
    except Exception as exc:
        logger.exception(f"Repository analysis failed unexpectedly: {github_url}")
        raise AnalysisFailedError(f"Failed to analyze repository: {str(exc) or 'Unknown error'}") from exc
