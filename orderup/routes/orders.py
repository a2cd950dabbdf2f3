"""Participant-facing routes addressed by share code."""

from __future__ import annotations

import asyncio
import json
import logging

from fastapi import APIRouter, Depends, Request
from sse_starlette.sse import EventSourceResponse

from orderup.config import settings
from orderup.routes.deps import get_order_service, unwrap
from orderup.schemas import (
    MenuItemOut,
    SelectionSubmitRequest,
    SelectionSubmitResponse,
    SessionDetailResponse,
    SessionOut,
    ShopOut,
    SummaryOut,
)
from orderup.services.orders import OrderSessionService, SelectionItem, SessionDetail

router = APIRouter(prefix="/orders", tags=["orders"])

logger = logging.getLogger(__name__)

_REFRESH_INTERVAL_SECONDS = max(0.5, float(settings.refresh_interval_seconds))


@router.get("/{share_code}", response_model=SessionDetailResponse, name="get_order")
async def get_order(
    share_code: str,
    order_service: OrderSessionService = Depends(get_order_service),
) -> SessionDetailResponse:
    detail: SessionDetail = unwrap(await order_service.describe(share_code)).data
    return _detail_response(detail)


@router.post("/{share_code}/selections", response_model=SelectionSubmitResponse)
async def submit_selections(
    share_code: str,
    payload: SelectionSubmitRequest,
    order_service: OrderSessionService = Depends(get_order_service),
) -> SelectionSubmitResponse:
    detail: SessionDetail = unwrap(await order_service.describe(share_code)).data
    items = [
        SelectionItem(menu_item_id=item.menu_item_id, quantity=item.quantity)
        for item in payload.items
    ]
    result = unwrap(
        await order_service.accept_selections(detail.order.id, payload.participant_name, items)
    )
    return SelectionSubmitResponse(
        message=result.message,
        selection_ids=[row.id for row in result.data],
    )


@router.get("/{share_code}/events", name="stream_order_events")
async def stream_order_events(
    request: Request,
    share_code: str,
    order_service: OrderSessionService = Depends(get_order_service),
):
    """Push a fresh tally snapshot periodically until the session stops accepting orders."""

    unwrap(await order_service.describe(share_code))

    async def event_generator():
        while True:
            result = await order_service.describe(share_code)
            if not result.success:
                yield {"event": "error", "data": json.dumps({"message": result.message})}
                return
            detail: SessionDetail = result.data
            yield {
                "event": "tally",
                "data": _detail_response(detail).model_dump_json(),
            }
            if detail.state != "open":
                yield {"event": "closed", "data": json.dumps({"state": detail.state})}
                return
            if await request.is_disconnected():
                logger.debug("Client left the event stream for %s", share_code)
                return
            await asyncio.sleep(_REFRESH_INTERVAL_SECONDS)

    return EventSourceResponse(event_generator())


def _detail_response(detail: SessionDetail) -> SessionDetailResponse:
    return SessionDetailResponse(
        session=SessionOut.from_record(detail.order, detail.state, detail.remaining_seconds),
        shop=ShopOut.from_record(detail.shop),
        menu=[MenuItemOut.from_record(item) for item in detail.menu_items],
        summary=SummaryOut.from_summary(detail.summary),
    )
