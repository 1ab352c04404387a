import base64
from pathlib import PurePosixPath

import httpx
import pytest

from repo_snapshot import config

API = "https://api.github.com"
OWNER = "psf"
REPO = "requests"
REPO_API = f"{API}/repos/{OWNER}/{REPO}"
CONTENTS_API = f"{REPO_API}/contents"


def file_entry(path: str, size: int) -> dict:
    return {"name": PurePosixPath(path).name, "path": path, "type": "file", "size": size}


def dir_entry(path: str) -> dict:
    return {"name": PurePosixPath(path).name, "path": path, "type": "dir", "size": 0}


def content_response(text: str, **headers) -> httpx.Response:
    return httpx.Response(
        200,
        json={
            "type": "file",
            "encoding": "base64",
            "content": base64.b64encode(text.encode()).decode(),
        },
        headers=headers,
    )


REPO_METADATA = {
    "description": "A simple, yet elegant, HTTP library.",
    "language": "Python",
    "stargazers_count": 52000,
    "forks_count": 9300,
    "html_url": "https://github.com/psf/requests",
}


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch):
    monkeypatch.delenv("GITHUB_API_TOKEN", raising=False)
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    config.get_config.cache_clear()
    yield
    config.get_config.cache_clear()


@pytest.fixture
def settings():
    return config.CrawlConfig(throttle_delay=0.0)
