"""Path-aware glob matching for project lookup.

Unlike :mod:`fnmatch`, ``*`` stops at ``/`` while ``**`` crosses it, and
``{a,b}`` alternation is supported. Matching ignores case.
"""

from __future__ import annotations

import re
from functools import lru_cache


def translate(pattern: str) -> str:
    """Convert a glob *pattern* into an anchored regular expression."""
    out: list[str] = []
    i, n = 0, len(pattern)
    in_group = False
    while i < n:
        ch = pattern[i]
        i += 1
        if ch == "\\" and i < n:
            out.append(re.escape(pattern[i]))
            i += 1
        elif ch == "*":
            if i < n and pattern[i] == "*":
                i += 1
                out.append(".*")
            else:
                out.append("[^/]*")
        elif ch == "?":
            out.append("[^/]")
        elif ch == "[":
            negate = i < n and pattern[i] in "!^"
            start = i + 1 if negate else i
            end = pattern.find("]", start)
            if end <= start:
                out.append(re.escape(ch))
                continue
            body = pattern[start:end].replace("\\", "\\\\")
            i = end + 1
            # a negated class still never matches the separator
            out.append(f"[^/{body}]" if negate else f"[{body}]")
        elif ch == "{" and not in_group:
            in_group = True
            out.append("(?:")
        elif ch == "}" and in_group:
            in_group = False
            out.append(")")
        elif ch == "," and in_group:
            out.append("|")
        else:
            out.append(re.escape(ch))
    if in_group:
        raise ValueError(f"Unclosed '{{' in glob pattern {pattern!r}")
    return "(?s:" + "".join(out) + r")\Z"


@lru_cache(maxsize=256)
def compile_glob(pattern: str) -> re.Pattern[str]:
    return re.compile(translate(pattern), re.IGNORECASE)


def glob_match(pattern: str, path: str) -> bool:
    return compile_glob(pattern).match(path) is not None
