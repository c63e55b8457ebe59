"""
Per-file admission rules and language labels.

A file is indexable when it is non-empty, under the byte cap, has no NUL
byte, and still has visible text once control characters are stripped.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import PurePath
from typing import Optional

from ..logger import get_logger
from ..settings import settings

log = get_logger(__name__)

SKIP_DIRS = frozenset(
    {
        ".git",
        "vv",
        "node_modules",
        "target",
        "dist",
        "build",
        ".next",
        ".venv",
        "venv",
        "__pycache__",
    }
)

_LANGUAGES = {
    "rs": "rust",
    "ts": "typescript",
    "tsx": "typescript",
    "js": "javascript",
    "jsx": "javascript",
    "py": "python",
    "go": "go",
    "java": "java",
    "rb": "ruby",
    "md": "markdown",
    "json": "json",
    "yml": "yaml",
    "yaml": "yaml",
    "c": "c",
    "h": "c",
    "cpp": "cpp",
    "cc": "cpp",
    "hpp": "cpp",
    "cs": "csharp",
    "php": "php",
    "swift": "swift",
    "kt": "kotlin",
    "scala": "scala",
    "sh": "shell",
    "toml": "toml",
    "html": "html",
    "css": "css",
    "sql": "sql",
}

# C0 and C1 controls plus DEL, except tab, newline and carriage return.
_CONTROL_CHARS = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]")


def guess_language(path: str | PurePath) -> str:
    suffix = PurePath(path).suffix.lstrip(".")
    return _LANGUAGES.get(suffix, "unknown")


def sanitize(text: str) -> str:
    return _CONTROL_CHARS.sub("", text)


def rejection_reason(data: bytes, max_bytes: int) -> Optional[str]:
    if not data:
        return "empty"
    if len(data) > max_bytes:
        return "too_large"
    if b"\x00" in data:
        return "binary"
    return None


@dataclass
class ClassifiedFile:
    path: str
    content: str
    language: str
    line_count: int


class ContentClassifier:
    """Decides whether a file is indexable and labels its language."""

    def __init__(self, max_bytes: Optional[int] = None) -> None:
        self.max_bytes = max_bytes or settings.max_file_bytes

    def classify(self, path: str, data: bytes) -> Optional[ClassifiedFile]:
        reason = rejection_reason(data, self.max_bytes)
        if reason:
            log.debug("file_skipped", path=path, reason=reason, size=len(data))
            return None

        content = sanitize(data.decode("utf-8", errors="replace"))
        if not content.strip():
            log.debug("file_skipped", path=path, reason="blank")
            return None

        return ClassifiedFile(
            path=path,
            content=content,
            language=guess_language(path),
            line_count=max(1, len(content.splitlines())),
        )
