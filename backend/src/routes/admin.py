import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from schemes.analytics import AdminPromotionPage, AnalyticsReport
from settings import settings
from utils.analytics import get_analytics
from utils.enums import PromotionStatus
from utils.errors import AggregationError
from utils.marketplace import list_admin_promotions
from utils.redis import ReportCache
from utils.store import EventStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


def get_event_store(request: Request) -> EventStore:
    return request.app.state.store


def get_report_cache(request: Request) -> Optional[ReportCache]:
    return getattr(request.app.state, "report_cache", None)


def aggregation_failed(e: AggregationError) -> JSONResponse:
    logger.error("analytics aggregation failed: %s", e)
    return JSONResponse(
        status_code=503,
        content={"error": "aggregation_failed", "retryable": e.retryable},
    )


@router.get("/analytics", response_model=AnalyticsReport)
async def analytics(
    days: int = Query(settings.analytics.default_days),
    store: EventStore = Depends(get_event_store),
    cache: Optional[ReportCache] = Depends(get_report_cache),
):
    try:
        return await get_analytics(
            store,
            days,
            timeout_sec=settings.analytics.timeout_sec,
            max_days=settings.analytics.max_days,
            cache=cache,
        )
    except ValueError as e:
        raise HTTPException(422, str(e))
    except AggregationError as e:
        return aggregation_failed(e)


@router.get("/promotions", response_model=AdminPromotionPage)
async def promotions(
    status: Optional[PromotionStatus] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    store: EventStore = Depends(get_event_store),
):
    try:
        return await list_admin_promotions(status, page, limit, store)
    except AggregationError as e:
        return aggregation_failed(e)
