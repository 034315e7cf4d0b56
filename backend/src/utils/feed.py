import logging
from typing import Dict, List, Optional, Sequence

from schemes.marketplace import FeedPage, Listing
from utils.errors import FeedContractError, Side

logger = logging.getLogger(__name__)

DEFAULT_CADENCE = 4


def validate_candidates(listings: Sequence[Listing], side: Side) -> None:
    for idx, item in enumerate(listings):
        if not item.id or not item.id.strip():
            raise FeedContractError(side, idx, "listing has no identity")
        if side == "promoted":
            if item.promotion is None:
                raise FeedContractError(side, idx, f"listing {item.id!r} has no promotion")
            if not item.promotion.promoted_listing_id.strip():
                raise FeedContractError(side, idx, f"listing {item.id!r} has an empty promoted_listing_id")


def resolve_promoted(promoted: Sequence[Listing]) -> List[Listing]:
    """
    One entry per listing id. When a product runs under several campaigns
    the higher tier keeps its slot; on equal tiers the earlier one stays.
    """
    winners: Dict[str, int] = {}
    for idx, item in enumerate(promoted):
        current = winners.get(item.id)
        if current is None or item.promotion.tier.rank > promoted[current].promotion.tier.rank:
            winners[item.id] = idx
    keep = set(winners.values())
    return [item for idx, item in enumerate(promoted) if idx in keep]


def compose(
    organic: Sequence[Listing],
    promoted: Sequence[Listing],
    cadence: int = DEFAULT_CADENCE,
) -> List[Listing]:
    """
    Interleave promoted listings into the organic stream.

    After every `cadence` organic items the next promoted item takes the
    following slot (positions 5, 10, 15... for a cadence of 4). Organic
    items that are also promoted only surface at their promoted slot.
    Promoted items left over once the organic stream runs out are appended.
    """
    if cadence < 1:
        raise ValueError("cadence must be >= 1")
    validate_candidates(organic, "organic")
    validate_candidates(promoted, "promoted")

    if not promoted:
        return list(organic)

    promoted = resolve_promoted(promoted)
    promoted_ids = {p.id for p in promoted}
    organic = [o for o in organic if o.id not in promoted_ids]

    result: List[Listing] = []
    p_idx = 0
    for o_idx, item in enumerate(organic, start=1):
        result.append(item)
        if o_idx % cadence == 0 and p_idx < len(promoted):
            result.append(promoted[p_idx])
            p_idx += 1
    result.extend(promoted[p_idx:])
    return result


def compose_page(
    organic: Sequence[Listing],
    promoted: Sequence[Listing],
    *,
    cadence: int = DEFAULT_CADENCE,
    next_cursor: Optional[str] = None,
) -> FeedPage:
    """Boundary wrapper: malformed candidates are dropped instead of failing the page."""
    try:
        return FeedPage(items=compose(organic, promoted, cadence), next_cursor=next_cursor)
    except FeedContractError:
        items = compose(well_formed(organic, "organic"), well_formed(promoted, "promoted"), cadence)
        return FeedPage(items=items, next_cursor=next_cursor, degraded=True)


def well_formed(listings: Sequence[Listing], side: Side) -> List[Listing]:
    kept: List[Listing] = []
    for idx, item in enumerate(listings):
        try:
            validate_candidates([item], side)
        except FeedContractError as e:
            logger.warning("dropping %s candidate #%d from feed: %s", side, idx, e.reason)
            continue
        kept.append(item)
    return kept
