"""
Filter Engine: keyword block-list and duration bounds.

Keywords are matched case-insensitively against title and description.
Non-wildcard keywords must appear as a whole word (bounded by
non-alphanumeric characters or string edges); wildcard keywords match
anywhere as a substring, with any '*' stripped first.
"""

import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Iterable, List, Optional, Protocol, Sequence, Set, Tuple


class Filterable(Protocol):
    title: str
    description: Optional[str]
    duration: Optional[int]


class KeywordRule(Protocol):
    keyword: str
    is_wildcard: bool


@lru_cache(maxsize=1024)
def _whole_word_pattern(keyword: str):
    return re.compile(r"(?<![a-z0-9])" + re.escape(keyword) + r"(?![a-z0-9])")


def keyword_matches(keyword: str, is_wildcard: bool, text: str) -> bool:
    """Match one normalized keyword against already lower-cased text."""
    if is_wildcard:
        needle = keyword.replace("*", "").strip()
        return bool(needle) and needle in text
    if not keyword:
        return False
    return _whole_word_pattern(keyword).search(text) is not None


def matching_keywords(item: Filterable, keywords: Iterable[KeywordRule]) -> List[str]:
    fields = [(item.title or "").lower(), (item.description or "").lower()]
    matched = []
    for rule in keywords:
        keyword = rule.keyword.strip().lower()
        if any(keyword_matches(keyword, rule.is_wildcard, text) for text in fields):
            matched.append(rule.keyword)
    return matched


def is_blocked(item: Filterable, keywords: Iterable[KeywordRule]) -> bool:
    """True if any keyword matches the item's title or description."""
    return bool(matching_keywords(item, keywords))


def within_duration(item: Filterable, min_duration: Optional[int], max_duration: Optional[int]) -> bool:
    """Inclusive bounds; unknown duration and unset bounds never exclude."""
    if item.duration is None:
        return True
    if min_duration is not None and item.duration < min_duration:
        return False
    if max_duration is not None and item.duration > max_duration:
        return False
    return True


@dataclass
class FilterResult:
    is_filtered: bool
    reasons: List[str] = field(default_factory=list)


class FilterEngine:
    """A user's filter rules bound together for repeated evaluation."""

    def __init__(self, keywords: Sequence[KeywordRule] = (), min_duration: Optional[int] = None,
                 max_duration: Optional[int] = None):
        self.keywords = list(keywords)
        self.min_duration = min_duration
        self.max_duration = max_duration

    def evaluate(self, item: Filterable, always_safe: bool = False) -> FilterResult:
        reasons = []

        # Always-safe sources skip keywords but not duration
        if not always_safe:
            for keyword in matching_keywords(item, self.keywords):
                reasons.append(f"Blocked keyword: {keyword}")

        if not within_duration(item, self.min_duration, self.max_duration):
            if self.min_duration is not None and item.duration < self.min_duration:
                reasons.append(f"Shorter than {self.min_duration}s")
            else:
                reasons.append(f"Longer than {self.max_duration}s")

        return FilterResult(is_filtered=bool(reasons), reasons=reasons)

    def apply(self, items: Iterable, safe_source_keys: Set[Tuple[str, str]] = frozenset()) -> List:
        """
        Keep items passing every rule.

        safe_source_keys holds (provider_type, source_external_id) pairs of
        always-safe sources.
        """
        kept = []
        for item in items:
            always_safe = (item.provider_type, item.source_external_id) in safe_source_keys
            if not self.evaluate(item, always_safe=always_safe).is_filtered:
                kept.append(item)
        return kept
