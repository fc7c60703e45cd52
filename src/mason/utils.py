from __future__ import annotations

"""Small helpers for build settings lookup and source expansion."""

import fnmatch
import os
from pathlib import Path
from typing import Dict, Iterable, List


def _get(d: Dict, *keys, default=None):
    cur = d
    for k in keys:
        if not isinstance(cur, dict):
            return default
        cur = cur.get(k)
        if cur is None:
            return default
    return cur


def canonical(path: str | os.PathLike, base_dir: Path | None = None) -> str:
    """Absolute, normalized form of `path` used as a file task identity."""
    p = Path(path)
    if not p.is_absolute() and base_dir is not None:
        p = base_dir / p
    return os.path.normpath(os.path.abspath(p))


def expand_sources(
    paths: Iterable[str | os.PathLike], pattern: str, excludes: Iterable[str] = ()
) -> List[str]:
    """Expand directories into the files below them matching `pattern`.

    Plain files are kept as given. Missing paths are dropped. The result is
    sorted and free of duplicates so that argument vectors stay stable.
    """
    excluded = [str(e) for e in excludes]
    found: set[str] = set()
    for entry in paths:
        p = Path(entry)
        if p.is_dir():
            for root, _, files in os.walk(p):
                for file in files:
                    if fnmatch.fnmatch(file, pattern):
                        found.add(os.path.normpath(os.path.join(root, file)))
        elif p.exists():
            found.add(os.path.normpath(str(p)))
    return sorted(
        f for f in found if not any(fnmatch.fnmatch(f, ex) or f == ex for ex in excluded)
    )
