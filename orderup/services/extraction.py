"""Validation of untrusted menu extraction output.

Everything coming back from the extraction model is treated as loosely
structured text; this module is the single place that turns it into typed
menu candidates.
"""

from __future__ import annotations

import json
import math
import random
import re
from dataclasses import dataclass, field
from typing import List

_FENCE_OPEN = re.compile(r"^\s*```[A-Za-z0-9_-]*[ \t]*\n?")
_FENCE_CLOSE = re.compile(r"\n?```\s*$")
_PRICE_NOISE = re.compile(r"[^\d.]")
_TITLE_OBJECT = re.compile(r"\{.*\}", re.DOTALL)

# Line formats accepted by the rule-based parser, tried in order.
_PRICE = r"(\d+(?:,\d+)*원?)"
_LINE_PATTERNS = (
    re.compile(rf"^(.+?)\s*-\s*(.+?)\s*-\s*{_PRICE}$"),
    re.compile(rf"^(.+?)\s+(.+?)\s+{_PRICE}$"),
    re.compile(rf"^(.+?)()\s+{_PRICE}$"),
)

EXTRACTION_FAILED_MESSAGE = "No menu could be extracted. Please try again."

FALLBACK_TITLES = (
    "기분이 좋아서 😊",
    "커피가 땡겨서 ☕",
    "친구들과 함께 👥",
    "오늘은 특별히 ✨",
    "스트레스 해소 💆‍♂️",
    "커피 한 잔의 여유 ☕",
    "오후의 힐링 🌅",
    "새로운 메뉴 시도 🆕",
)


@dataclass(frozen=True)
class MenuCandidate:
    """A menu entry proposed by extraction, not yet stored."""

    name: str
    description: str = ""
    price: float = 0.0


@dataclass(frozen=True)
class ExtractionResult:
    """Tagged parse outcome: ``ok`` with items, or a failure reason."""

    ok: bool
    items: List[MenuCandidate] = field(default_factory=list)
    reason: str | None = None

    @classmethod
    def success(cls, items: List[MenuCandidate]) -> "ExtractionResult":
        return cls(ok=True, items=items)

    @classmethod
    def failure(cls, reason: str) -> "ExtractionResult":
        return cls(ok=False, reason=reason)


def strip_code_fence(raw: str) -> str:
    """Remove a surrounding Markdown code fence, if present."""

    text = raw.strip()
    if text.startswith("```"):
        text = _FENCE_OPEN.sub("", text, count=1)
        text = _FENCE_CLOSE.sub("", text, count=1)
    return text.strip()


def coerce_price(value: object) -> float:
    """Convert an untyped price into a non-negative float, 0 on failure."""

    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        cleaned = _PRICE_NOISE.sub("", str(value))
        try:
            number = float(cleaned)
        except ValueError:
            return 0.0
    if math.isnan(number) or math.isinf(number) or number < 0:
        return 0.0
    return number


def parse_menu_candidates(raw: str | None) -> ExtractionResult:
    """Parse model output into menu candidates.

    The payload must be a JSON array (optionally fenced) holding at least
    one object with a non-empty ``name``.
    """

    if not raw or not raw.strip():
        return ExtractionResult.failure("Extraction returned no text")

    try:
        payload = json.loads(strip_code_fence(raw))
    except json.JSONDecodeError as exc:
        return ExtractionResult.failure(f"Extraction output is not valid JSON: {exc.msg}")

    if not isinstance(payload, list) or not payload:
        return ExtractionResult.failure("Extraction output is not a non-empty array")

    items: List[MenuCandidate] = []
    for entry in payload:
        if not isinstance(entry, dict):
            continue
        name = str(entry.get("name") or "").strip()
        if not name:
            continue
        items.append(
            MenuCandidate(
                name=name,
                description=str(entry.get("description") or "").strip(),
                price=coerce_price(entry.get("price")),
            )
        )

    if not items:
        return ExtractionResult.failure("Extraction output contained no named items")
    return ExtractionResult.success(items)


def parse_menu_lines(text: str) -> List[MenuCandidate]:
    """Rule-based parser for typed or dictated menus, one item per line.

    Understands ``name - description - price``, ``name description price``
    and ``name price``. Lines without a trailing price become items priced
    at 0; purely numeric names are dropped.
    """

    items: List[MenuCandidate] = []
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped:
            continue

        name, description, price = stripped, "", 0.0
        for pattern in _LINE_PATTERNS:
            match = pattern.match(stripped)
            if match:
                name = match.group(1).strip()
                description = match.group(2).strip()
                price = coerce_price(match.group(3))
                break

        if name.isdigit():
            continue
        items.append(MenuCandidate(name=name, description=description, price=price))
    return items


def parse_title(raw: str | None) -> str | None:
    """Pull a session title out of ``{"title": ...}`` or bare model text."""

    if not raw:
        return None
    text = strip_code_fence(raw)
    match = _TITLE_OBJECT.search(text)
    if match:
        try:
            parsed = json.loads(match.group(0))
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, dict):
            title = str(parsed.get("title") or "").strip()
            return title or None
    title = text.strip().strip('"').strip()
    return title or None


def pick_fallback_title(rng: random.Random | None = None) -> str:
    """Return one of the pre-written playful titles."""

    return (rng or random).choice(FALLBACK_TITLES)
