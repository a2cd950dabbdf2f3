"""Prompt building helpers for OpenAI payload construction."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence

__all__ = [
    "PromptRequest",
    "build_image_prompt",
    "build_reasoning_config",
    "build_text_config",
    "build_text_prompt",
    "build_title_prompt",
]


@dataclass(frozen=True)
class PromptRequest:
    """Container describing a single Responses API prompt."""

    instructions: str
    content: List[dict[str, str]]


SYSTEM_INSTRUCTIONS = (
    "You are a meticulous transcription assistant for cafe and restaurant menus. "
    "Your responsibility is to extract menu items and return them as a JSON array."
)

_RESPONSE_FORMAT = (
    "Respond with a JSON array only, no explanatory text. Each element must look like "
    '{"name": "메뉴명", "description": "메뉴 설명", "price": "가격"}.'
)

_EXTRACTION_RULES = (
    "Prices contain digits only, for example \"4500\" or \"4,500\". "
    "Use an empty string when an item has no description. "
    "Leave out any text that is not a menu item."
)


def build_image_prompt(file_ids: Sequence[str]) -> PromptRequest:
    """Return the prompt that reads menu items from uploaded menu photos."""

    if not file_ids:
        raise ValueError("Image prompt requires at least one uploaded file id.")

    content: List[dict[str, str]] = [
        {"type": "input_text", "text": "These images show a menu board."},
        {"type": "input_text", "text": _EXTRACTION_RULES},
        {"type": "input_text", "text": _RESPONSE_FORMAT},
    ]
    for file_id in file_ids:
        content.append({"type": "input_image", "file_id": file_id})

    return PromptRequest(instructions=SYSTEM_INSTRUCTIONS, content=content)


def build_text_prompt(text: str) -> PromptRequest:
    """Return the prompt for a typed or speech-recognised menu description."""

    if not text or not text.strip():
        raise ValueError("Text prompt requires menu text.")

    speech_rule = (
        "The following menu was entered by voice or keyboard, usually one item per line. "
        "Fix obvious speech recognition mistakes."
    )
    content: List[dict[str, str]] = [
        {"type": "input_text", "text": speech_rule},
        {"type": "input_text", "text": _EXTRACTION_RULES},
        {"type": "input_text", "text": _RESPONSE_FORMAT},
        {"type": "input_text", "text": text.strip()},
    ]
    return PromptRequest(instructions=SYSTEM_INSTRUCTIONS, content=content)


def build_title_prompt(shop_name: str | None) -> PromptRequest:
    """Return the prompt asking for a short, playful session title."""

    name = (shop_name or "").strip() or "매장"
    instructions = (
        "You name group-order sessions for a cafe. "
        "Write one fun, friendly Korean title of at most 10 characters, "
        "in the style of '~해서', '~때문에' or '~하고 싶어서'. Emoji are welcome."
    )
    content: List[dict[str, str]] = [
        {"type": "input_text", "text": f"매장 이름: {name}"},
        {"type": "input_text", "text": "예시: 기분이 좋아서 😊, 커피가 땡겨서 ☕, 오늘은 특별히 ✨"},
        {"type": "input_text", "text": 'Answer with JSON only: {"title": "..."}'},
    ]
    return PromptRequest(instructions=instructions, content=content)


def build_text_config() -> dict[str, object]:
    """Return text configuration for the OpenAI Responses API."""

    return {"verbosity": "low"}


def build_reasoning_config() -> dict[str, object]:
    """Return reasoning configuration for the OpenAI Responses API."""

    return {"effort": "minimal"}
