from __future__ import annotations

import re
from typing import Iterable, List, Pattern


def wildcard_to_regex_str(pattern: str) -> str:
    """
    Converts a wildcard selector into an anchored, case-insensitive regex string.

    `*` matches any substring; every other character is matched literally.
    The result is also used verbatim as a `$regex` filter against the object store.
    """
    escaped = ".*".join(re.escape(literal) for literal in pattern.split("*"))
    return f"(?i)^{escaped}$"


def wildcard_to_regex(pattern: str) -> Pattern[str]:
    return re.compile(wildcard_to_regex_str(pattern))


class SelectorMatcher:
    """
    Matches objects against a list of selectors.

    Each selector is either an object id (exact match) or a title, which may contain
    `*` wildcards (case-insensitive). An empty selector list matches everything.
    """

    def __init__(self, selectors: Iterable[str]):
        self.selectors: List[str] = list(selectors)
        self._patterns: List[Pattern[str]] = [wildcard_to_regex(s) for s in self.selectors]

    def __bool__(self) -> bool:
        return bool(self.selectors)

    def matches(self, obj_id: str, title: str) -> bool:
        if not self.selectors:
            return True

        if obj_id in self.selectors:
            return True

        return any(p.match(title) for p in self._patterns)

    def display(self) -> List[str]:
        return self.selectors if self.selectors else ["*"]
