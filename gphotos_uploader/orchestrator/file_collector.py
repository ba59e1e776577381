"""File collection utilities for argument uploads."""
import os
from pathlib import Path
from typing import Iterable, Iterator, Optional

from ..utils.patterns import IgnorePatterns


class FileCollector:
    """Collects the files named on the command line."""

    def __init__(self, ignore: Optional[IgnorePatterns] = None):
        self._ignore = ignore or IgnorePatterns()

    def collect(self, names: Iterable) -> Iterator[Path]:
        """
        Yield every non-ignored regular file under each name.

        Args:
            names: Files or directories; directories are walked recursively

        Returns:
            Iterator of absolute file paths, in walk order
        """
        for name in names:
            root = Path(name).expanduser().absolute()
            if root.is_file():
                if not self._ignore.matches(root):
                    yield root
                continue
            for dirpath, dirnames, filenames in os.walk(root):
                dirnames.sort()
                for filename in sorted(filenames):
                    file_path = Path(dirpath) / filename
                    if file_path.is_file() and not self._ignore.matches(file_path):
                        yield file_path
