from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from schemes.marketplace import FeedPage, MarketplaceFilters
from settings import settings
from utils.enums import MarketplaceSort
from utils.feed import compose_page
from utils.marketplace import CandidateSource

router = APIRouter(prefix="/marketplace", tags=["marketplace"])


def get_candidate_source() -> CandidateSource:
    return CandidateSource()


@router.get("/feed", response_model=FeedPage)
async def marketplace_feed(
    source: CandidateSource = Depends(get_candidate_source),

    # filters
    category: Optional[str] = Query(None),
    province: Optional[str] = Query(None),
    city: Optional[str] = Query(None),
    verified_only: bool = Query(False),
    min_price: Optional[int] = Query(None, ge=0),
    max_price: Optional[int] = Query(None, ge=0),
    search: Optional[str] = Query(None, min_length=1, max_length=100),

    # ordering / pagination
    sort: MarketplaceSort = MarketplaceSort.NEWEST,
    limit: Optional[int] = Query(None, ge=1, le=100),
    cursor: Optional[str] = None,
):
    filters = MarketplaceFilters(
        category=category,
        province=province,
        city=city,
        verified_only=verified_only,
        min_price=min_price,
        max_price=max_price,
        search=search,
        sort=sort,
    )
    try:
        organic, next_cursor = await source.organic(filters, limit or settings.feed.page_size, cursor)
    except ValueError:
        raise HTTPException(400, "Invalid cursor")

    promoted = await source.promoted(settings.feed.promoted_limit)
    return compose_page(organic, promoted, cadence=settings.feed.cadence, next_cursor=next_cursor)
