from datetime import datetime
from typing import Literal, NamedTuple

from pydantic import BaseModel, ConfigDict


class RepoReference(NamedTuple):
    owner: str
    repo: str


class AnalyzeRequest(BaseModel):
    repo_url: str


class RepoInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    owner: str
    name: str
    description: str = ""
    language: str = ""
    stars: int = 0
    forks: int = 0
    url: str | None = None


class IncludedFile(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    path: str
    content: str
    size: int
    extension: str


class RepositoryData(BaseModel):
    model_config = ConfigDict(frozen=True)

    repo: RepoInfo
    files: list[IncludedFile]
    total_files: int
    total_size: int
    languages: dict[str, int]
    rate_limit_remaining: int


class RateLimitInfo(BaseModel):
    remaining: int
    reset_time: datetime
    reset_in: int  # minutes, never negative


class ErrorResponse(BaseModel):
    status: Literal["error"] = "error"
    message: str
