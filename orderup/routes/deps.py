"""Service singletons and helpers shared by the routers."""

from __future__ import annotations

import logging
from typing import Tuple

import segno
from fastapi import HTTPException, Request

from orderup.services.llm import MenuExtractionService
from orderup.services.orders import OrderSessionService
from orderup.services.results import ErrorKind, OperationResult
from orderup.services.shops import ShopService
from orderup.services.store import build_store

logger = logging.getLogger(__name__)

_store = build_store()
_order_service = OrderSessionService(_store)
_shop_service = ShopService(_order_service)
_menu_service = MenuExtractionService()

_STATUS_BY_ERROR = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.BUSINESS: 409,
    ErrorKind.SERVICE: 502,
}


def get_order_service() -> OrderSessionService:
    return _order_service


def get_shop_service() -> ShopService:
    return _shop_service


def get_menu_service() -> MenuExtractionService:
    return _menu_service


def unwrap(result: OperationResult) -> OperationResult:
    """Return successful results; raise an HTTP error for failures."""

    if result.success:
        return result
    status_code = _STATUS_BY_ERROR.get(result.error, 500)
    raise HTTPException(status_code=status_code, detail=result.message)


def share_link(request: Request, share_code: str) -> Tuple[str, str]:
    """Return the participant URL for a session and a QR code PNG data URI."""

    url = str(request.url_for("order_view", share_code=share_code))
    qr = segno.make_qr(url).png_data_uri(scale=4, dark="#1d5bdb", light="#f8fafc")
    return url, qr
