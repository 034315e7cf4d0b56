from collections import defaultdict
from datetime import timezone
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from schemes.analytics import AggregateBucket, Window
from schemes.telemetry import EventRecord
from utils.enums import EVENT_KINDS, Dimension, EventKind
from utils.errors import AggregationError

Key = Tuple[Optional[str], ...]


def dimension_value(event: EventRecord, dimension: Dimension) -> Optional[str]:
    if dimension == Dimension.DAY:
        return event.occurred_at.astimezone(timezone.utc).date().isoformat()
    if dimension == Dimension.GEOGRAPHY:
        return event.province
    if dimension == Dimension.CATEGORY:
        return event.category
    if dimension == Dimension.TIER:
        return event.tier.value if event.tier else None
    raise ValueError(f"unknown dimension {dimension!r}")


def _sort_key(key: Key) -> tuple:
    # None sorts after every real value
    return tuple((v is None, v or "") for v in key)


def aggregate(
    events: Iterable[EventRecord],
    window: Window,
    dimensions: Sequence[Dimension] = (Dimension.DAY,),
) -> List[AggregateBucket]:
    """
    Count views and clicks of the events inside `window`, grouped by the
    requested dimensions. The result only depends on the multiset of
    events, not on their order.
    """
    dims = [Dimension(d) for d in dimensions]
    counters: Dict[Key, List[int]] = defaultdict(lambda: [0, 0])

    for idx, ev in enumerate(events):
        if ev.occurred_at.tzinfo is None:
            raise AggregationError(f"event #{idx} ({ev.type}) has a naive timestamp")
        kind = EVENT_KINDS.get(ev.type)
        if kind is None:
            raise AggregationError(f"event #{idx} has unknown type {ev.type!r}")
        if not window.contains(ev.occurred_at):
            continue
        key = tuple(dimension_value(ev, d) for d in dims)
        counters[key][0 if kind == EventKind.VIEW else 1] += 1

    return [
        AggregateBucket(
            window_start=window.start,
            window_end=window.end,
            key=dict(zip([d.value for d in dims], key)),
            views=views,
            clicks=clicks,
        )
        for key, (views, clicks) in sorted(counters.items(), key=lambda kv: _sort_key(kv[0]))
    ]


def merge_buckets(buckets: Iterable[AggregateBucket]) -> List[AggregateBucket]:
    """Sum buckets sharing window and key. Commutative and associative."""
    merged: Dict[tuple, List[int]] = defaultdict(lambda: [0, 0])
    for b in buckets:
        key_items = tuple(sorted(b.key.items()))
        ident = (b.window_start, b.window_end, key_items)
        merged[ident][0] += b.views
        merged[ident][1] += b.clicks

    def order(ident):
        start, end, key_items = ident
        return start, end, tuple(k for k, _ in key_items), _sort_key(tuple(v for _, v in key_items))

    return [
        AggregateBucket(
            window_start=ident[0],
            window_end=ident[1],
            key=dict(ident[2]),
            views=merged[ident][0],
            clicks=merged[ident][1],
        )
        for ident in sorted(merged, key=order)
    ]


def totals(buckets: Iterable[AggregateBucket]) -> Tuple[int, int]:
    views = clicks = 0
    for b in buckets:
        views += b.views
        clicks += b.clicks
    return views, clicks
