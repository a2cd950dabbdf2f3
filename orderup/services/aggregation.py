"""Selection aggregation: per-participant breakdown and merged shop tally."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Tuple


@dataclass(frozen=True)
class SelectionLine:
    """One stored selection joined with its menu item's name and price."""

    selection_id: str
    participant_name: str
    menu_item_id: str
    name: str
    unit_price: float
    quantity: int
    created_at: datetime | None = None

    @property
    def line_total(self) -> float:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class ParticipantGroup:
    """All selections submitted under one participant name."""

    participant_name: str
    lines: List[SelectionLine] = field(default_factory=list)

    @property
    def quantity(self) -> int:
        return sum(line.quantity for line in self.lines)

    @property
    def subtotal(self) -> float:
        return sum(line.line_total for line in self.lines)


@dataclass(frozen=True)
class TallyLine:
    """Shop-facing merged line keyed by (name, unit price)."""

    name: str
    unit_price: float
    quantity: int

    @property
    def line_total(self) -> float:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class SessionSummary:
    """Both aggregation views plus grand totals."""

    participants: List[ParticipantGroup]
    tally: List[TallyLine]
    total_quantity: int
    total_amount: float


def group_by_participant(lines: Iterable[SelectionLine]) -> List[ParticipantGroup]:
    """Group lines by exact participant name, keeping first-seen order.

    Names are compared byte-for-byte: ``"Alice"`` and ``"alice "`` are two
    different participants.
    """

    groups: Dict[str, List[SelectionLine]] = {}
    for line in lines:
        groups.setdefault(line.participant_name, []).append(line)
    return [ParticipantGroup(name, grouped) for name, grouped in groups.items()]


def merge_tally(lines: Iterable[SelectionLine]) -> List[TallyLine]:
    """Sum quantities per (name, unit price) across all participants.

    Distinct menu items that share a name and price collapse into one line.
    """

    quantities: Dict[Tuple[str, float], int] = {}
    for line in lines:
        key = (line.name, line.unit_price)
        quantities[key] = quantities.get(key, 0) + line.quantity
    return [
        TallyLine(name=name, unit_price=price, quantity=quantity)
        for (name, price), quantity in quantities.items()
    ]


def summarize(lines: Iterable[SelectionLine]) -> SessionSummary:
    """Build the participant view, merged tally and grand totals."""

    materialised = list(lines)
    tally = merge_tally(materialised)
    return SessionSummary(
        participants=group_by_participant(materialised),
        tally=tally,
        total_quantity=sum(line.quantity for line in materialised),
        total_amount=sum(line.line_total for line in tally),
    )
