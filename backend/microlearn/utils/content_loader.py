"""Helpers to discover lesson pack files under a content folder.

The loader scans supported extensions recursively and returns a list
of `Path` objects suitable for feeding to the import service.
"""

from pathlib import Path
from typing import Iterable, List, Optional

SUPPORTED_EXT = {'.csv', '.json'}
DEFAULT_SKIP_KEYWORDS = ('draft', 'template')


def _should_skip(file_path: Path, skip_keywords: Iterable[str]) -> bool:
    """Return True if filename contains any skip keyword (case-insensitive)."""
    name = file_path.name.lower()
    for kw in skip_keywords:
        if kw and kw.lower() in name:
            return True
    return False


def find_lesson_files(root: Path, category: Optional[str] = None, skip_keywords: Optional[Iterable[str]] = None) -> List[Path]:
    """Return file paths for supported lesson packs.

    If `category` is provided only `root/<category>` is searched. Files
    whose names contain any of `skip_keywords` (drafts and templates by
    default) are ignored.
    """
    skip_keywords = list(skip_keywords) if skip_keywords is not None else list(DEFAULT_SKIP_KEYWORDS)
    if category:
        search_root = root / category
        if not search_root.exists():
            return []
    else:
        search_root = root

    files = set()
    for f in search_root.rglob('*'):
        if f.is_file() and f.suffix.lower() in SUPPORTED_EXT and not _should_skip(f, skip_keywords):
            files.add(f)
    # sort for deterministic order
    return sorted(files)
