import os
import logging
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Set

from .. import config


class DiskScanner:
    """Finds media files under one or more directory trees."""

    def __init__(self, extensions: Optional[Set[str]] = None):
        self.extensions = extensions if extensions is not None else config.MEDIA_EXTS

    def collect(self,
                roots: Iterable[Path],
                limit: int = 0,
                skip_dirs: Optional[Set[Path]] = None) -> List[Path]:
        """
        Returns the de-duplicated, sorted list of media files under `roots`.
        A positive `limit` caps the number of files returned.
        """
        skip_dirs = {Path(os.path.abspath(d)) for d in (skip_dirs or set())}
        found: Set[Path] = set()

        for root in roots:
            root = Path(os.path.abspath(root))
            logging.info(f"Scanning directory: {root}")
            before = len(found)
            found.update(self._iter_files(root, skip_dirs))
            logging.info(f"Found {len(found) - before} files in {root}")

        files = sorted(found)
        if 0 < limit < len(files):
            logging.info(f"Limiting to {limit} files (found {len(files)})")
            files = files[:limit]
        return files

    def is_media(self, path: Path) -> bool:
        # AppleDouble resource forks carry the media extension but no media
        if path.name.startswith("._"):
            return False
        return path.suffix.lower() in self.extensions

    def _iter_files(self, root: Path, skip_dirs: Set[Path]) -> Iterator[Path]:
        """Depth-first walker using os.scandir for speed."""
        stack = [root]
        while stack:
            current = stack.pop()
            if skip_dirs and any(sd == current or sd in current.parents for sd in skip_dirs):
                continue

            try:
                with os.scandir(current) as it:
                    entries = list(it)
            except OSError as e:
                logging.warning(f"Cannot read directory {current}: {e}")
                continue

            # Sort for stable traversal order
            entries.sort(key=lambda e: e.name.lower())

            dirs = []
            for e in entries:
                if e.is_dir(follow_symlinks=False):
                    dirs.append(Path(e.path))
                elif e.is_file(follow_symlinks=False) and self.is_media(Path(e.name)):
                    yield Path(e.path)

            # Push dirs to stack (reversed so we process A before Z)
            for d in reversed(dirs):
                stack.append(d)
