"""Shared pydantic schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Union

from pydantic import BaseModel, Field

from orderup.services.aggregation import SelectionLine, SessionSummary, TallyLine
from orderup.services.extraction import MenuCandidate
from orderup.services.store import MenuItemRecord, OrderRecord, ShopRecord

Price = Union[float, str, None]


class ShopCreateRequest(BaseModel):
    name: str
    address: str | None = None


class ShopPromoteRequest(BaseModel):
    address: str | None = None


class MenuItemIn(BaseModel):
    """Menu entry as typed by the shop or returned by extraction."""

    name: str
    description: str | None = None
    price: Price = Field(default=0, description="Number or loosely formatted text such as '4,500원'")


class MenuItemsCreateRequest(BaseModel):
    items: List[MenuItemIn]


class MenuItemUpdateRequest(BaseModel):
    name: str | None = None
    description: str | None = None
    price: Price = None


class SessionCreateRequest(BaseModel):
    title: str | None = None
    expires_in_minutes: int | None = Field(
        default=None, description="Minutes until the session expires; defaults to 30."
    )
    generate_title: bool = Field(
        default=False, description="Ask the model for a playful title when none is given."
    )


class QuickOrderRequest(BaseModel):
    shop_name: str
    menus: List[MenuItemIn]
    title: str | None = None
    expires_in_minutes: int | None = None


class SelectionItemIn(BaseModel):
    menu_item_id: str
    quantity: int = 1


class SelectionSubmitRequest(BaseModel):
    participant_name: str
    items: List[SelectionItemIn] = Field(default_factory=list)


class TitleRequest(BaseModel):
    shop_name: str | None = None


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class ShopOut(BaseModel):
    id: str
    name: str
    address: str | None = None
    is_temporary: bool
    created_at: datetime

    @classmethod
    def from_record(cls, shop: ShopRecord) -> "ShopOut":
        return cls(
            id=shop.id,
            name=shop.name,
            address=shop.address,
            is_temporary=shop.is_temporary,
            created_at=shop.created_at,
        )


class MenuItemOut(BaseModel):
    id: str
    shop_id: str
    name: str
    description: str | None = None
    price: float

    @classmethod
    def from_record(cls, item: MenuItemRecord) -> "MenuItemOut":
        return cls(
            id=item.id,
            shop_id=item.shop_id,
            name=item.name,
            description=item.description,
            price=item.price,
        )


class SessionOut(BaseModel):
    """Order session with both its stored status and derived state."""

    id: str
    shop_id: str
    share_code: str
    status: str = Field(description="Stored status: open or closed.")
    state: str = Field(description="Derived status: open, expired or closed.")
    title: str | None = None
    created_at: datetime
    expires_at: datetime | None = None
    closed_at: datetime | None = None
    remaining_seconds: int | None = None

    @classmethod
    def from_record(
        cls, order: OrderRecord, state: str, remaining_seconds: int | None
    ) -> "SessionOut":
        return cls(
            id=order.id,
            shop_id=order.shop_id,
            share_code=order.share_code,
            status=order.status,
            state=state,
            title=order.title,
            created_at=order.created_at,
            expires_at=order.expires_at,
            closed_at=order.closed_at,
            remaining_seconds=remaining_seconds,
        )


class SelectionLineOut(BaseModel):
    selection_id: str
    menu_item_id: str
    name: str
    unit_price: float
    quantity: int
    line_total: float

    @classmethod
    def from_line(cls, line: SelectionLine) -> "SelectionLineOut":
        return cls(
            selection_id=line.selection_id,
            menu_item_id=line.menu_item_id,
            name=line.name,
            unit_price=line.unit_price,
            quantity=line.quantity,
            line_total=line.line_total,
        )


class ParticipantOut(BaseModel):
    participant_name: str
    quantity: int
    subtotal: float
    lines: List[SelectionLineOut]


class TallyLineOut(BaseModel):
    name: str
    unit_price: float
    quantity: int
    line_total: float

    @classmethod
    def from_line(cls, line: TallyLine) -> "TallyLineOut":
        return cls(
            name=line.name,
            unit_price=line.unit_price,
            quantity=line.quantity,
            line_total=line.line_total,
        )


class SummaryOut(BaseModel):
    participants: List[ParticipantOut]
    tally: List[TallyLineOut]
    total_quantity: int
    total_amount: float

    @classmethod
    def from_summary(cls, summary: SessionSummary) -> "SummaryOut":
        return cls(
            participants=[
                ParticipantOut(
                    participant_name=group.participant_name,
                    quantity=group.quantity,
                    subtotal=group.subtotal,
                    lines=[SelectionLineOut.from_line(line) for line in group.lines],
                )
                for group in summary.participants
            ],
            tally=[TallyLineOut.from_line(line) for line in summary.tally],
            total_quantity=summary.total_quantity,
            total_amount=summary.total_amount,
        )


class SessionDetailResponse(BaseModel):
    """Everything a participant page needs for one session."""

    session: SessionOut
    shop: ShopOut
    menu: List[MenuItemOut]
    summary: SummaryOut


class SessionOverviewOut(BaseModel):
    session: SessionOut
    summary: SummaryOut


class ShopOverviewResponse(BaseModel):
    shop: ShopOut
    menu: List[MenuItemOut]
    sessions: List[SessionOverviewOut]


class SessionCreatedResponse(BaseModel):
    session: SessionOut
    share_url: str
    share_qr: str = Field(description="PNG data URI of a QR code for the share link.")


class QuickOrderResponse(SessionCreatedResponse):
    shop: ShopOut


class SelectionSubmitResponse(BaseModel):
    success: bool = True
    message: str
    selection_ids: List[str]


class MenuCandidateOut(BaseModel):
    name: str
    description: str = ""
    price: float = 0

    @classmethod
    def from_candidate(cls, candidate: MenuCandidate) -> "MenuCandidateOut":
        return cls(
            name=candidate.name,
            description=candidate.description,
            price=candidate.price,
        )


class MenuExtractionResponse(BaseModel):
    success: bool = True
    message: str
    items: List[MenuCandidateOut]


class TitleResponse(BaseModel):
    title: str
