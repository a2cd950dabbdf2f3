"""Menu extraction and session title routes."""

from __future__ import annotations

import logging
from io import BytesIO
from typing import List, Tuple

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from PIL import Image, UnidentifiedImageError

from orderup.routes.deps import get_menu_service, unwrap
from orderup.schemas import (
    MenuCandidateOut,
    MenuExtractionResponse,
    TitleRequest,
    TitleResponse,
)
from orderup.services.llm import MenuExtractionService

router = APIRouter(prefix="/menu", tags=["menu"])

logger = logging.getLogger(__name__)

_ALLOWED_CONTENT_TYPES = {"image/jpeg", "image/png", "image/heic"}
_MAX_IMAGE_DIMENSION = 1280
_JPEG_QUALITY = 80
_PNG_COMPRESS_LEVEL = 6


@router.post("/extract", response_model=MenuExtractionResponse)
async def extract_menu(
    files: List[UploadFile] | None = File(default=None),
    text: str | None = Form(default=None),
    menu_service: MenuExtractionService = Depends(get_menu_service),
) -> MenuExtractionResponse:
    """Read menu items from photos or from a typed/dictated description."""

    if not files and not (text and text.strip()):
        raise HTTPException(
            status_code=400, detail="An image or a text description is required."
        )

    contents: List[bytes] = []
    filenames: List[str] = []
    content_types: List[str] = []
    for upload in files or []:
        if upload.content_type not in _ALLOWED_CONTENT_TYPES:
            raise HTTPException(status_code=400, detail="Unsupported file type")
        raw = await upload.read()
        if not raw:
            raise HTTPException(status_code=400, detail="Empty file uploaded")
        optimised, content_type = _optimise_image_payload(raw, upload.content_type)
        contents.append(optimised)
        filenames.append(upload.filename or "menu-page")
        content_types.append(content_type)

    result = unwrap(
        await menu_service.extract_menu(
            contents or None,
            filenames,
            content_types,
            text=None if contents else text,
        )
    )
    return MenuExtractionResponse(
        message=result.message,
        items=[MenuCandidateOut.from_candidate(item) for item in result.data.items],
    )


@router.post("/title", response_model=TitleResponse)
async def generate_title(
    payload: TitleRequest,
    menu_service: MenuExtractionService = Depends(get_menu_service),
) -> TitleResponse:
    title = await menu_service.generate_session_title(payload.shop_name)
    return TitleResponse(title=title)


def _optimise_image_payload(raw: bytes, content_type: str) -> Tuple[bytes, str]:
    """Downscale and recompress menu images to reduce upload latency."""

    if content_type not in {"image/jpeg", "image/png"}:
        return raw, content_type

    try:
        with Image.open(BytesIO(raw)) as image:
            image.load()
            original_size = image.size
            processed = image.copy()
    except (UnidentifiedImageError, OSError):
        logger.debug("Passing through an image Pillow cannot decode")
        return raw, content_type

    if max(processed.size) > _MAX_IMAGE_DIMENSION:
        processed.thumbnail(
            (_MAX_IMAGE_DIMENSION, _MAX_IMAGE_DIMENSION), Image.Resampling.LANCZOS
        )

    buffer = BytesIO()
    if content_type == "image/jpeg":
        if processed.mode not in {"RGB", "L"}:
            processed = processed.convert("RGB")
        processed.save(buffer, format="JPEG", quality=_JPEG_QUALITY, optimize=True)
        optimised_type = "image/jpeg"
    else:
        if processed.mode == "P":
            processed = processed.convert("RGBA")
        processed.save(
            buffer, format="PNG", optimize=True, compress_level=_PNG_COMPRESS_LEVEL
        )
        optimised_type = "image/png"

    optimised_bytes = buffer.getvalue()
    if max(processed.size) == max(original_size) and len(optimised_bytes) >= len(raw):
        return raw, content_type
    return optimised_bytes, optimised_type
