from __future__ import annotations

import re
import sys
import threading
from pathlib import Path

from .utils import read_text

PARTIAL_RE = re.compile(r"\{\{partial:([A-Za-z0-9_-]+)\}\}")


def missing_partial_marker(name: str) -> str:
    return f"<!-- Partial not found: {name} -->"


class PartialCache:
    """Partials loaded from one directory, memoized for the life of one build."""

    def __init__(self, partials_dir: Path):
        self.partials_dir = partials_dir
        self._cache: dict[str, str] = {}
        self._lock = threading.Lock()

    def load(self, name: str) -> str:
        with self._lock:
            if name in self._cache:
                return self._cache[name]
            path = self.partials_dir / f"{name}.html"
            if not path.is_file():
                print(f"Partial not found: {name}.html", file=sys.stderr)
                return missing_partial_marker(name)
            try:
                content = read_text(path)
            except (OSError, UnicodeDecodeError) as exc:
                print(f"Partial unreadable: {name}.html ({exc})", file=sys.stderr)
                return missing_partial_marker(name)
            self._cache[name] = content
            return content

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def __contains__(self, name: str) -> bool:
        return name in self._cache

    def __len__(self) -> int:
        return len(self._cache)


def resolve_partials(text: str, partials: PartialCache) -> str:
    # single pass: placeholders inside an inserted partial are left for the next run
    return PARTIAL_RE.sub(lambda match: partials.load(match.group(1)), text)
