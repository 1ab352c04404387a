from collections.abc import Iterable
from pathlib import PurePosixPath

from repo_snapshot import models


LANGUAGES = {
    ".js": "JavaScript",
    ".ts": "TypeScript",
    ".jsx": "JavaScript",
    ".tsx": "TypeScript",
    ".py": "Python",
    ".java": "Java",
    ".cpp": "C++",
    ".c": "C",
    ".cs": "C#",
    ".php": "PHP",
    ".rb": "Ruby",
    ".go": "Go",
    ".rs": "Rust",
    ".swift": "Swift",
    ".kt": "Kotlin",
    ".html": "HTML",
    ".css": "CSS",
    ".vue": "Vue",
    ".scss": "SCSS",
    ".sass": "Sass",
    ".less": "Less",
    ".json": "JSON",
    ".yaml": "YAML",
    ".yml": "YAML",
    ".xml": "XML",
    ".sql": "SQL",
    ".sh": "Shell",
}

OTHER = "Other"


def file_extension(path: str) -> str:
    # Dotfiles like ".env" have no suffix, "archive.tar.gz" yields ".gz"
    return PurePosixPath(path).suffix


def get_language(extension: str) -> str:
    return LANGUAGES.get(extension, OTHER)


def language_breakdown(files: Iterable[models.IncludedFile]) -> dict[str, int]:
    """Sum file sizes per language, keyed by display name."""
    languages: dict[str, int] = {}
    for f in files:
        lang = get_language(f.extension)
        languages[lang] = languages.get(lang, 0) + f.size
    return languages
