"""Ignore patterns shared by the collector, the pool and the coalescer."""
from __future__ import annotations

import logging
import re
from typing import Iterable, List, Pattern

logger = logging.getLogger(__name__)


class IgnorePatterns:
    """
    A set of regular expressions matched anywhere in a path.

    A path is ignored when any pattern is found in it (``re.search``).
    """

    def __init__(self, patterns: Iterable[str] = ()):
        self._raw: List[str] = list(patterns)
        self._compiled: List[Pattern[str]] = [re.compile(p) for p in self._raw]

    def matches(self, path) -> bool:
        text = str(path)
        for pattern in self._compiled:
            if pattern.search(text):
                logger.debug("Ignored %s (pattern %r)", text, pattern.pattern)
                return True
        return False

    @property
    def patterns(self) -> List[str]:
        return list(self._raw)

    def __bool__(self) -> bool:
        return bool(self._compiled)

    def __repr__(self) -> str:
        return f"IgnorePatterns({self._raw!r})"
