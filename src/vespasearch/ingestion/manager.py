"""
Repository checkout preparation and file discovery.

The manager owns the deterministic on-disk location of each checkout, the
guard rails that stop ingestion from cloning over a directory it does not
recognise, and enumeration of the files to feed.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import List, Optional

from ..errors import IngestionError
from ..logger import get_logger
from ..settings import settings
from ..storage.artifacts import ARTIFACT_DIR_NAME, RepoPaths
from ..storage.registry import RepoRecord
from . import git
from .classifier import SKIP_DIRS

log = get_logger(__name__)


def _is_dir_empty(path: Path) -> bool:
    return not any(path.iterdir())


def _contains_only_artifacts(path: Path) -> bool:
    entries = list(path.iterdir())
    return bool(entries) and all(entry.name == ARTIFACT_DIR_NAME for entry in entries)


def walk_repo_files(root: Path) -> List[str]:
    """Recursive listing relative to ``root`` that skips non-source directories."""
    files: List[str] = []
    for current, dirs, filenames in os.walk(root):
        dirs[:] = [d for d in dirs if d not in SKIP_DIRS]
        current_path = Path(current)
        for filename in filenames:
            relative = (current_path / filename).relative_to(root)
            files.append(relative.as_posix())
    return sorted(files)


class RepositoryIngestionManager:
    """High-level checkout controller."""

    def __init__(self, repos_root: Optional[Path] = None) -> None:
        self.repos_root = repos_root or settings.repos_path
        self.repos_root.mkdir(parents=True, exist_ok=True)
        log.info("workspace_initialized", workspace=str(self.repos_root))

    def paths_for(self, record: RepoRecord) -> RepoPaths:
        return RepoPaths.for_record(record, self.repos_root)

    async def prepare_checkout(self, record: RepoRecord, paths: RepoPaths) -> bool:
        """
        Make sure ``paths.checkout`` holds a git working copy of the repository.

        Returns ``True`` when a fresh clone was made. A directory that exists
        without ``.git`` is only cleared when it is empty or holds nothing but
        ingestion artifacts; anything else is left untouched and reported.
        """
        checkout = paths.checkout
        if checkout.exists() and not (checkout / ".git").exists():
            if _is_dir_empty(checkout):
                checkout.rmdir()
            elif _contains_only_artifacts(checkout):
                log.warning(
                    "checkout_contains_only_artifacts",
                    path=str(checkout),
                    action="removing for re-clone",
                )
                paths.remove_artifacts()
                if _is_dir_empty(checkout):
                    checkout.rmdir()

            if checkout.exists():
                raise IngestionError("repo path exists but is not a git repository")

        if checkout.exists():
            log.info("checkout_exists", path=str(checkout))
            return False

        checkout.parent.mkdir(parents=True, exist_ok=True)
        log.info("cloning_repository", repo_url=record.repo_url, path=str(checkout))
        await git.clone(record.repo_url, checkout)
        return True

    async def list_files(self, checkout: Path) -> List[str]:
        """Prefer git's tracked-file listing, fall back to a directory walk."""
        tracked = await git.ls_files(checkout)
        if tracked is not None:
            return tracked
        files = walk_repo_files(checkout)
        log.info("repository_walked", path=str(checkout), files=len(files))
        return files
