"""LLM integration layer for menu extraction and session titles."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable, List, Sequence

from openai import AsyncOpenAI, OpenAIError

from orderup.config import settings
from orderup.services.extraction import (
    EXTRACTION_FAILED_MESSAGE,
    ExtractionResult,
    parse_menu_candidates,
    parse_menu_lines,
    parse_title,
    pick_fallback_title,
)
from orderup.services.prompt import (
    PromptRequest,
    build_image_prompt,
    build_reasoning_config,
    build_text_config,
    build_text_prompt,
    build_title_prompt,
)
from orderup.services.results import ErrorKind, OperationResult

logger = logging.getLogger(__name__)


class MenuExtractionService:
    """Turn menu photos or dictated text into menu candidates."""

    def __init__(
        self,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self._client = client

    @property
    def configured(self) -> bool:
        return self._client is not None or bool(settings.openai_api_key)

    @property
    def client(self) -> AsyncOpenAI:
        """Lazily instantiate an OpenAI client."""

        if self._client is None:
            if not settings.openai_api_key:
                raise RuntimeError("OPENAI_API_KEY is required to extract menus")
            self._client = AsyncOpenAI(api_key=settings.openai_api_key)
        return self._client

    async def extract_menu(
        self,
        images: Sequence[bytes] | None = None,
        filenames: Sequence[str] | None = None,
        content_types: Sequence[str] | None = None,
        *,
        text: str | None = None,
    ) -> OperationResult:
        """Extract menu candidates, returning a structured success or failure."""

        if not images and not (text and text.strip()):
            return OperationResult.fail(
                ErrorKind.VALIDATION, "An image or a text description is required."
            )

        if not images and not self.configured:
            # Without a model the typed text is parsed line by line.
            items = parse_menu_lines(text or "")
            if not items:
                return OperationResult.fail(ErrorKind.BUSINESS, EXTRACTION_FAILED_MESSAGE)
            return OperationResult.ok(
                f"Extracted {len(items)} menu item(s).", ExtractionResult.success(items)
            )

        try:
            if images:
                raw = await asyncio.wait_for(
                    self.extract_from_images(images, filenames, content_types),
                    timeout=settings.extraction_timeout_seconds,
                )
            else:
                raw = await asyncio.wait_for(
                    self.extract_from_text(text or ""),
                    timeout=settings.extraction_timeout_seconds,
                )
        except asyncio.TimeoutError:
            logger.warning(
                "Menu extraction timed out after %s seconds",
                settings.extraction_timeout_seconds,
            )
            return OperationResult.fail(ErrorKind.BUSINESS, EXTRACTION_FAILED_MESSAGE)
        except (OpenAIError, RuntimeError) as exc:
            logger.warning("Menu extraction call failed: %s", exc)
            return OperationResult.fail(ErrorKind.BUSINESS, EXTRACTION_FAILED_MESSAGE)

        result = parse_menu_candidates(raw)
        if not result.ok:
            logger.info("Discarding extraction output: %s", result.reason)
            return OperationResult.fail(ErrorKind.BUSINESS, EXTRACTION_FAILED_MESSAGE)
        return OperationResult.ok(f"Extracted {len(result.items)} menu item(s).", result)

    async def extract_from_images(
        self,
        images: Sequence[bytes],
        filenames: Sequence[str] | None = None,
        content_types: Sequence[str] | None = None,
    ) -> str:
        """Upload menu photos, ask the model for a JSON array and return raw text."""

        if not images:
            raise ValueError("At least one image is required")

        async with self._image_batch(images, filenames, content_types) as file_ids:
            return await self._run_prompt(build_image_prompt(file_ids), settings.openai_model)

    async def extract_from_text(self, text: str) -> str:
        """Ask the model to structure a typed or dictated menu; return raw text."""

        return await self._run_prompt(build_text_prompt(text), settings.openai_model)

    async def generate_session_title(self, shop_name: str | None) -> str:
        """Return a playful session title, falling back to a canned one."""

        if not self.configured:
            return pick_fallback_title()
        try:
            raw = await asyncio.wait_for(
                self._run_prompt(build_title_prompt(shop_name), settings.title_model),
                timeout=settings.extraction_timeout_seconds,
            )
        except (asyncio.TimeoutError, OpenAIError, RuntimeError) as exc:
            logger.warning("Session title generation failed: %s", exc)
            return pick_fallback_title()

        return parse_title(raw) or pick_fallback_title()

    @asynccontextmanager
    async def _image_batch(
        self,
        images: Sequence[bytes],
        filenames: Sequence[str] | None,
        content_types: Sequence[str] | None,
    ) -> AsyncIterator[List[str]]:
        """Upload menu images once and guarantee cleanup."""

        file_ids = await self._upload_images(images, filenames, content_types)
        try:
            yield file_ids
        finally:
            await self._delete_files(file_ids)

    async def _upload_images(
        self,
        images: Sequence[bytes],
        filenames: Sequence[str] | None,
        content_types: Sequence[str] | None,
    ) -> List[str]:
        """Upload images to the Files API and return file IDs."""

        uploads = []
        for index, raw in enumerate(images):
            name = (
                filenames[index]
                if filenames and index < len(filenames)
                else f"menu-page-{index + 1}.jpg"
            )
            content_type = (
                content_types[index]
                if content_types and index < len(content_types)
                else "image/jpeg"
            )
            uploads.append(
                self.client.files.create(
                    file=(name, raw, content_type),
                    purpose="vision",
                )
            )

        results = await asyncio.gather(*uploads)
        return [upload.id for upload in results]

    async def _delete_files(self, file_ids: Iterable[str]) -> None:
        if not file_ids:
            return

        async def _delete(file_id: str) -> None:
            try:
                await self.client.files.delete(file_id)
            except OpenAIError as exc:  # pragma: no cover - best effort cleanup
                logger.debug("Could not delete uploaded file %s: %s", file_id, exc)

        await asyncio.gather(
            *(_delete(file_id) for file_id in file_ids),
            return_exceptions=True,
        )

    async def _run_prompt(self, prompt: PromptRequest, model: str) -> str:
        response = await self.client.responses.create(
            model=model,
            instructions=prompt.instructions,
            input=[{"role": "user", "content": prompt.content}],
            text=build_text_config(),
            reasoning=build_reasoning_config(),
        )
        return _extract_output_text(response)


def _extract_output_text(response: object) -> str:
    """Return the textual content for a Responses API call."""

    try:
        output_text = response.output_text  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - defensive guard
        raise RuntimeError("OpenAI response missing output_text") from exc

    if not output_text:
        raise RuntimeError("OpenAI response returned empty output_text")
    return str(output_text).strip()
