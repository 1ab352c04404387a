from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


INCLUDE_EXTENSIONS = {
    ".js",
    ".ts",
    ".jsx",
    ".tsx",
    ".py",
    ".java",
    ".cpp",
    ".c",
    ".cs",
    ".php",
    ".rb",
    ".go",
    ".rs",
    ".swift",
    ".kt",
    ".html",
    ".css",
    ".vue",
    ".scss",
    ".sass",
    ".less",
    ".json",
    ".yaml",
    ".yml",
    ".xml",
    ".sql",
    ".sh",
}

# Matched as plain substrings of the entry path
EXCLUDE_PATTERNS = {
    "node_modules/",
    "dist/",
    "build/",
    ".git/",
    "coverage/",
    "vendor/",
    "target/",
    "__pycache__/",
    ".venv/",
    "venv/",
    ".DS_Store",
    ".gradle/",
    ".mvn/",
    "Thumbs.db",
    ".env",
}

MB = 1024 * 1024


class CrawlConfig(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")
    max_file_size: int = 1 * MB  # bytes per file
    max_total_size: int = 50 * MB  # bytes per analysis, soft cap
    max_depth: int = 10
    rate_limit_threshold: int = 100  # warn below this many remaining requests
    rate_limit_floor: int = 50  # also throttle below this
    throttle_delay: float = 1.0
    max_concurrency: int = 10
    request_timeout: float = 30.0
    analysis_timeout: float | None = None
    api_base: str = "https://api.github.com"
    user_agent: str = "GitHub-Analyzer/1.0"
    include_extensions: set[str] = Field(default_factory=lambda: set(INCLUDE_EXTENSIONS))
    exclude_patterns: set[str] = Field(default_factory=lambda: set(EXCLUDE_PATTERNS))


class Config(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")
    crawl: CrawlConfig = CrawlConfig()
    github_token: str | None = Field(
        default=None,
        validation_alias=AliasChoices("github_api_token", "github_token"),
    )


@lru_cache
def get_config() -> Config:
    return Config()
