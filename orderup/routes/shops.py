"""Shop-side routes: shops, menus and session management."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Request

from orderup.routes.deps import (
    get_menu_service,
    get_order_service,
    get_shop_service,
    share_link,
    unwrap,
)
from orderup.schemas import (
    MenuItemOut,
    MenuItemsCreateRequest,
    MenuItemUpdateRequest,
    MessageResponse,
    QuickOrderRequest,
    QuickOrderResponse,
    SessionCreatedResponse,
    SessionCreateRequest,
    SessionOut,
    SessionOverviewOut,
    ShopCreateRequest,
    ShopOut,
    ShopOverviewResponse,
    ShopPromoteRequest,
    SummaryOut,
)
from orderup.services.llm import MenuExtractionService
from orderup.services.orders import OrderSessionService
from orderup.services.shops import MenuItemDraft, ShopService
from orderup.services.store import OrderRecord

router = APIRouter(tags=["shops"])


@router.post("/shops", response_model=ShopOut, status_code=201)
async def create_shop(
    payload: ShopCreateRequest,
    shop_service: ShopService = Depends(get_shop_service),
) -> ShopOut:
    result = unwrap(await shop_service.create_shop(payload.name, payload.address))
    return ShopOut.from_record(result.data)


@router.get("/shops", response_model=List[ShopOut])
async def list_shops(
    shop_service: ShopService = Depends(get_shop_service),
) -> List[ShopOut]:
    result = unwrap(await shop_service.list_shops())
    return [ShopOut.from_record(shop) for shop in result.data]


@router.get("/shops/{shop_id}", response_model=ShopOverviewResponse)
async def get_shop(
    shop_id: str,
    shop_service: ShopService = Depends(get_shop_service),
) -> ShopOverviewResponse:
    overview = unwrap(await shop_service.get_shop_overview(shop_id)).data
    return ShopOverviewResponse(
        shop=ShopOut.from_record(overview.shop),
        menu=[MenuItemOut.from_record(item) for item in overview.menu_items],
        sessions=[
            SessionOverviewOut(
                session=SessionOut.from_record(
                    session.order, session.state, session.remaining_seconds
                ),
                summary=SummaryOut.from_summary(session.summary),
            )
            for session in overview.sessions
        ],
    )


@router.delete("/shops/{shop_id}", response_model=MessageResponse)
async def delete_shop(
    shop_id: str,
    shop_service: ShopService = Depends(get_shop_service),
) -> MessageResponse:
    result = unwrap(await shop_service.delete_shop(shop_id))
    return MessageResponse(message=result.message)


@router.post("/shops/{shop_id}/promote", response_model=ShopOut)
async def promote_shop(
    shop_id: str,
    payload: ShopPromoteRequest,
    shop_service: ShopService = Depends(get_shop_service),
) -> ShopOut:
    result = unwrap(await shop_service.promote_shop(shop_id, payload.address))
    return ShopOut.from_record(result.data)


@router.post("/shops/{shop_id}/menu-items", response_model=List[MenuItemOut], status_code=201)
async def add_menu_items(
    shop_id: str,
    payload: MenuItemsCreateRequest,
    shop_service: ShopService = Depends(get_shop_service),
) -> List[MenuItemOut]:
    drafts = [
        MenuItemDraft(name=item.name, description=item.description, price=item.price)
        for item in payload.items
    ]
    result = unwrap(await shop_service.add_menu_items(shop_id, drafts))
    return [MenuItemOut.from_record(item) for item in result.data]


@router.patch("/shops/{shop_id}/menu-items/{item_id}", response_model=MenuItemOut)
async def update_menu_item(
    shop_id: str,
    item_id: str,
    payload: MenuItemUpdateRequest,
    shop_service: ShopService = Depends(get_shop_service),
) -> MenuItemOut:
    result = unwrap(
        await shop_service.update_menu_item(
            shop_id,
            item_id,
            name=payload.name,
            description=payload.description,
            price=payload.price,
        )
    )
    return MenuItemOut.from_record(result.data)


@router.delete("/shops/{shop_id}/menu-items/{item_id}", response_model=MessageResponse)
async def delete_menu_item(
    shop_id: str,
    item_id: str,
    shop_service: ShopService = Depends(get_shop_service),
) -> MessageResponse:
    result = unwrap(await shop_service.delete_menu_item(shop_id, item_id))
    return MessageResponse(message=result.message)


@router.delete("/shops/{shop_id}/menu-items", response_model=MessageResponse)
async def reset_menu(
    shop_id: str,
    shop_service: ShopService = Depends(get_shop_service),
) -> MessageResponse:
    result = unwrap(await shop_service.reset_menu(shop_id))
    return MessageResponse(message=result.message)


@router.post("/shops/{shop_id}/orders", response_model=SessionCreatedResponse, status_code=201)
async def start_order(
    request: Request,
    shop_id: str,
    payload: SessionCreateRequest,
    order_service: OrderSessionService = Depends(get_order_service),
    shop_service: ShopService = Depends(get_shop_service),
    menu_service: MenuExtractionService = Depends(get_menu_service),
) -> SessionCreatedResponse:
    title = payload.title
    if not (title and title.strip()) and payload.generate_title:
        shop = unwrap(await shop_service.get_shop(shop_id)).data
        title = await menu_service.generate_session_title(shop.name)

    result = unwrap(
        await order_service.create_session(
            shop_id, title=title, expires_in_minutes=payload.expires_in_minutes
        )
    )
    return _session_created(request, order_service, result.data)


@router.post("/shops/{shop_id}/orders/{order_id}/terminate", response_model=SessionOut)
async def terminate_order(
    shop_id: str,
    order_id: str,
    order_service: OrderSessionService = Depends(get_order_service),
) -> SessionOut:
    order = unwrap(await order_service.terminate(order_id, shop_id=shop_id)).data
    return SessionOut.from_record(order, order_service.state_of(order), None)


@router.delete("/shops/{shop_id}/orders/{order_id}", response_model=MessageResponse)
async def delete_order(
    shop_id: str,
    order_id: str,
    order_service: OrderSessionService = Depends(get_order_service),
) -> MessageResponse:
    result = unwrap(await order_service.delete_session(order_id, shop_id=shop_id))
    return MessageResponse(message=result.message)


@router.delete(
    "/shops/{shop_id}/orders/{order_id}/selections/{selection_id}",
    response_model=MessageResponse,
)
async def delete_selection(
    shop_id: str,
    order_id: str,
    selection_id: str,
    order_service: OrderSessionService = Depends(get_order_service),
) -> MessageResponse:
    result = unwrap(
        await order_service.delete_selection(selection_id, order_id=order_id, shop_id=shop_id)
    )
    return MessageResponse(message=result.message)


@router.post("/quick-order", response_model=QuickOrderResponse, status_code=201)
async def quick_order(
    request: Request,
    payload: QuickOrderRequest,
    shop_service: ShopService = Depends(get_shop_service),
    order_service: OrderSessionService = Depends(get_order_service),
) -> QuickOrderResponse:
    drafts = [
        MenuItemDraft(name=item.name, description=item.description, price=item.price)
        for item in payload.menus
    ]
    result = unwrap(
        await shop_service.quick_order(
            payload.shop_name,
            drafts,
            title=payload.title,
            expires_in_minutes=payload.expires_in_minutes,
        )
    )
    shop, order = result.data
    created = _session_created(request, order_service, order)
    return QuickOrderResponse(shop=ShopOut.from_record(shop), **created.model_dump())


def _session_created(
    request: Request, order_service: OrderSessionService, order: OrderRecord
) -> SessionCreatedResponse:
    share_url, share_qr = share_link(request, order.share_code)
    now = order_service.clock()
    return SessionCreatedResponse(
        session=SessionOut.from_record(order, order.state(now), order.remaining_seconds(now)),
        share_url=share_url,
        share_qr=share_qr,
    )
