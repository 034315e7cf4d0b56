from fastapi import APIRouter, Depends, Request

from schemes.telemetry import Accepted, GenericEventIn, ImpressionBatch, PromotedClickIn
from utils.attribution import AttributionDispatcher

router = APIRouter(prefix="/telemetry", tags=["telemetry"])


def get_dispatcher(request: Request) -> AttributionDispatcher:
    return request.app.state.dispatcher


# The response never waits on the event store: writes are queued and a
# failed write is reported server side only.

@router.post("/promoted/click", status_code=202, response_model=Accepted)
async def promoted_click(body: PromotedClickIn, dispatcher: AttributionDispatcher = Depends(get_dispatcher)):
    queued = dispatcher.track_click(body.promoted_listing_id, body.shop_id, body.product_id)
    return Accepted(queued=queued)


@router.post("/promoted/impressions", status_code=202, response_model=Accepted)
async def promoted_impressions(body: ImpressionBatch, dispatcher: AttributionDispatcher = Depends(get_dispatcher)):
    queued = dispatcher.track_impressions(body.promoted_listing_ids)
    return Accepted(queued=queued)


@router.post("/events", status_code=202, response_model=Accepted)
async def ingest(body: GenericEventIn, dispatcher: AttributionDispatcher = Depends(get_dispatcher)):
    queued = dispatcher.track_event(body.type, body.shop_id, body.product_id, body.visitor_id)
    return Accepted(queued=queued)
