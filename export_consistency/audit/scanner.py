"""File discovery for a project scan."""

import os
import re
from functools import lru_cache
from pathlib import Path

import structlog

from export_consistency.config import ScanOptions
from export_consistency.providers import SUPPORTED_EXTENSIONS

logger = structlog.get_logger()


@lru_cache(maxsize=256)
def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Translate a path glob (``**``, ``*``, ``?``) into an anchored regex."""
    i = 0
    out = []
    while i < len(pattern):
        if pattern.startswith("**/", i):
            out.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            out.append(".*")
            i += 2
        elif pattern[i] == "*":
            out.append("[^/]*")
            i += 1
        elif pattern[i] == "?":
            out.append("[^/]")
            i += 1
        else:
            out.append(re.escape(pattern[i]))
            i += 1
    return re.compile("^" + "".join(out) + "$")


def matches_any(rel_path: str, patterns: list[str]) -> bool:
    """True when a POSIX relative path matches one of the globs."""
    return any(glob_to_regex(p).match(rel_path) for p in patterns)


class FileScanner:
    """Lists the source files a scan covers.

    Results are sorted by relative path so every run sees the same scan order.
    """

    def __init__(self, options: ScanOptions | None = None):
        self.options = options or ScanOptions()
        self._logger = logger.bind(component="FileScanner")

    def scan(self, root_path: str | Path) -> list[str]:
        """Return matching file paths under root, in scan order."""
        root = Path(root_path)
        if not root.is_dir():
            self._logger.warning("Scan root is not a directory", root=str(root))
            return []

        found: list[str] = []
        for dirpath, dirnames, filenames in os.walk(root, followlinks=self.options.follow_symlinks):
            rel_dir = Path(dirpath).relative_to(root).as_posix()
            depth = 0 if rel_dir == "." else rel_dir.count("/") + 1

            if not self.options.recursive or (
                self.options.max_depth is not None and depth >= self.options.max_depth
            ):
                dirnames[:] = []
            else:
                dirnames[:] = sorted(
                    d for d in dirnames
                    if not self._is_excluded_dir(d if rel_dir == "." else f"{rel_dir}/{d}")
                )

            for name in filenames:
                rel_path = name if rel_dir == "." else f"{rel_dir}/{name}"
                if self.accepts(rel_path):
                    found.append(rel_path)

        found.sort()
        self._logger.info("Scan complete", root=str(root), files=len(found))
        return [str(root / rel) for rel in found]

    def accepts(self, rel_path: str) -> bool:
        """True when a relative path is included and not excluded."""
        if Path(rel_path).suffix.lower() not in SUPPORTED_EXTENSIONS:
            return False
        if not matches_any(rel_path, self.options.include):
            return False
        return not matches_any(rel_path, self.options.exclude)

    def _is_excluded_dir(self, rel_dir: str) -> bool:
        # Pruned when a pattern excludes everything below the directory
        return matches_any(f"{rel_dir}/", self.options.exclude)
