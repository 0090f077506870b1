"""
Feed ranking algorithms.

Pure functions over ranked candidates: anything exposing `published_at`
and `source_id`. FeedService feeds them the filtered candidate set in
this order: partition_by_recency -> select_mix -> cap_diversity ->
interleave_sources.
"""

from collections import OrderedDict, deque
from datetime import datetime, timedelta
from typing import Deque, Dict, List, Optional, Sequence, Tuple, TypeVar

T = TypeVar("T")


def newest_first(items: Sequence[T]) -> List[T]:
    return sorted(items, key=lambda i: i.published_at, reverse=True)


def partition_by_recency(items: Sequence[T], now: datetime, recency_days: int) -> Tuple[List[T], List[T]]:
    """Split into (recent, backlog); recent means published within the window."""
    cutoff = now - timedelta(days=recency_days)
    recent, backlog = [], []
    for item in items:
        if item.published_at > cutoff:
            recent.append(item)
        else:
            backlog.append(item)
    return recent, backlog


def backlog_quota(limit: int, backlog_ratio: float) -> int:
    """round(limit * ratio), halves rounded up."""
    return int(limit * backlog_ratio + 0.5)


def feed_size(items: Sequence[T], max_items: int, diversity_limit: int) -> int:
    """Largest feed the diversity cap can still fill: distinct sources x cap, at most max_items."""
    sources = {item.source_id for item in items}
    return min(max_items, len(sources) * diversity_limit)


def select_mix(recent: Sequence[T], backlog: Sequence[T], limit: int, backlog_ratio: float,
               diversity_limit: Optional[int] = None) -> List[T]:
    """
    Take the backlog quota from backlog and the rest from recent, newest
    first in each. A short partition is topped up from the other one.

    With a diversity_limit, an item whose source already holds that many
    picks is passed over, so the quota is met by items the cap will keep.
    """
    recent = newest_first(recent)
    backlog = newest_first(backlog)
    per_source: Dict[str, int] = {}

    def take(pool: List[T], count: int) -> Tuple[List[T], List[T]]:
        chosen, rest = [], []
        for item in pool:
            used = per_source.get(item.source_id, 0)
            if len(chosen) < count and (diversity_limit is None or used < diversity_limit):
                chosen.append(item)
                per_source[item.source_id] = used + 1
            else:
                rest.append(item)
        return chosen, rest

    chosen_backlog, backlog_rest = take(backlog, backlog_quota(limit, backlog_ratio))
    chosen_recent, _ = take(recent, limit - len(chosen_backlog))

    recent_short = limit - len(chosen_backlog) - len(chosen_recent)
    if recent_short > 0:
        chosen_backlog += take(backlog_rest, recent_short)[0]

    return newest_first(chosen_recent + chosen_backlog)


def cap_diversity(items: Sequence[T], diversity_limit: int) -> List[T]:
    """Keep at most diversity_limit items per source, newest first; drop the rest."""
    per_source: Dict[str, int] = {}
    kept = []
    for item in newest_first(items):
        count = per_source.get(item.source_id, 0)
        if count < diversity_limit:
            kept.append(item)
            per_source[item.source_id] = count + 1
    return kept


def interleave_sources(items: Sequence[T]) -> List[T]:
    """
    Order so that consecutive items come from different sources where
    possible: repeatedly emit the newest head among sources other than the
    previous one. Items from one source stay newest-first.
    """
    queues: "OrderedDict[str, Deque[T]]" = OrderedDict()
    for item in newest_first(items):
        queues.setdefault(item.source_id, deque()).append(item)

    ordered: List[T] = []
    last_source = None
    while queues:
        candidates = [sid for sid in queues if sid != last_source] or list(queues)
        source_id = max(candidates, key=lambda sid: queues[sid][0].published_at)

        ordered.append(queues[source_id].popleft())
        if not queues[source_id]:
            del queues[source_id]
        last_source = source_id

    return ordered
