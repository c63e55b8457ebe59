"""Async wrappers around the ``git`` command line."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from ..errors import IngestionError
from ..logger import get_logger

log = get_logger(__name__)


@dataclass
class GitResult:
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


async def run_git(*args: str, cwd: Optional[Path] = None) -> GitResult:
    """Run ``git`` with ``args``; a missing executable raises :class:`IngestionError`."""
    try:
        process = await asyncio.create_subprocess_exec(
            "git",
            *args,
            cwd=str(cwd) if cwd else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise IngestionError(f"failed to run git: {exc}") from exc
    stdout, stderr = await process.communicate()
    return GitResult(
        returncode=process.returncode if process.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )


async def clone(repo_url: str, destination: Path) -> None:
    result = await run_git("clone", repo_url, str(destination))
    if not result.ok:
        log.error("git_clone_failed", repo_url=repo_url, stderr=result.stderr.strip())
        raise IngestionError(f"git clone failed: {result.stderr.strip()}")


async def ls_files(repo: Path) -> Optional[List[str]]:
    """Tracked files relative to ``repo``, or ``None`` when git cannot list them."""
    try:
        result = await run_git("-C", str(repo), "ls-files", "-z")
    except IngestionError as exc:
        log.warning("git_ls_files_failed", repo=str(repo), error=str(exc))
        return None
    if not result.ok:
        log.warning("git_ls_files_failed", repo=str(repo), error=result.stderr.strip())
        return None
    # -z keeps non-ASCII paths unquoted
    return [path for path in result.stdout.split("\0") if path]


async def head_commit(repo: Path) -> str:
    result = await run_git("-C", str(repo), "rev-parse", "HEAD")
    return result.stdout.strip() if result.ok and result.stdout.strip() else "unknown"


async def current_branch(repo: Path) -> str:
    result = await run_git("-C", str(repo), "rev-parse", "--abbrev-ref", "HEAD")
    branch = result.stdout.strip()
    if not result.ok or not branch or branch == "HEAD":
        return "main"
    return branch


async def push_mirror(repo: Path, url: str, auth_header: Optional[str] = None) -> None:
    """Mirror-push to ``url``; the auth header is passed per command, never stored."""
    options = ["-c", f"http.extraHeader={auth_header}"] if auth_header else []
    result = await run_git(*options, "-C", str(repo), "push", "--mirror", url)
    if not result.ok:
        raise IngestionError(f"git mirror push failed: {result.stderr.strip()}")
