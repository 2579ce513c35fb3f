# trigger.py
# Decides whether a workflow run starts, from the event kind and the files a push touched.
from __future__ import annotations

import re
from functools import lru_cache
from typing import TYPE_CHECKING, Iterable, List

if TYPE_CHECKING:
    from .model import Event


def _normalize(path: str) -> str:
    path = path.replace("\\", "/")
    while path.startswith("./"):
        path = path[2:]
    return path.lstrip("/")


@lru_cache(maxsize=256)
def _compile(pattern: str) -> re.Pattern:
    """
    Translate a path filter glob into an anchored regex.

      *    any run of characters inside one path segment
      **   any run of characters across segments ("**/" may match nothing)
      ?    zero or one of the preceding character
      [..] character class ("[!..]" negates)
    """
    out: List[str] = []
    i, n = 0, len(pattern)
    while i < n:
        c = pattern[i]
        if c == "*":
            if pattern.startswith("**", i):
                i += 2
                if i < n and pattern[i] == "/":
                    out.append("(?:.*/)?")
                    i += 1
                else:
                    out.append(".*")
                continue
            out.append("[^/]*")
        elif c == "?":
            if out:
                out[-1] = f"(?:{out[-1]})?"
            else:
                out.append(re.escape(c))
        elif c == "[":
            end = pattern.find("]", i + 2 if pattern.startswith("[!", i) else i + 1)
            if end == -1:
                out.append(re.escape(c))
            else:
                body = pattern[i + 1:end]
                if body.startswith("!"):
                    body = "^" + body[1:]
                out.append(f"[{body}]")
                i = end
        else:
            out.append(re.escape(c))
        i += 1
    return re.compile("".join(out) + r"\Z")


def matches(path: str, pattern: str) -> bool:
    """True if `path` (relative to the repo root) matches a single glob `pattern`."""
    return _compile(_normalize(pattern)).match(_normalize(path)) is not None


def _included(path: str, patterns: Iterable[str]) -> bool:
    # Later patterns win, so "!docs/**" after "**" excludes docs again.
    hit = False
    for p in patterns:
        if p.startswith("!"):
            if hit and matches(path, p[1:]):
                hit = False
        elif not hit and matches(path, p):
            hit = True
    return hit


def matched_paths(changed_paths: Iterable[str], patterns: Iterable[str]) -> List[str]:
    """Changed paths selected by the pattern set, sorted."""
    patterns = list(patterns)
    return sorted(p for p in set(changed_paths) if _included(p, patterns))


def should_run(event: "Event", changed_paths: Iterable[str], patterns: Iterable[str]) -> bool:
    """
    Manual dispatch always runs. A push runs iff at least one changed path
    matches the configured patterns. Anything else does not run.
    """
    if event.kind == "manual":
        return True
    if event.kind == "push":
        return bool(matched_paths(changed_paths, patterns))
    return False
