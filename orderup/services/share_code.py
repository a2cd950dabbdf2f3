"""Short share codes used as the public identifier of order sessions."""

from __future__ import annotations

import logging
import secrets
import string
from typing import Awaitable, Callable, Protocol, Sequence, TypeVar

from orderup.services.store import ShareCodeConflict

logger = logging.getLogger(__name__)

SHARE_CODE_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits
DEFAULT_CODE_LENGTH = 6
DEFAULT_ATTEMPTS = 5

T = TypeVar("T")


class ShareCodeExhausted(RuntimeError):
    """Raised when no unused share code was found within the attempt bound."""


class _CodeLookup(Protocol):
    async def share_code_exists(self, share_code: str) -> bool: ...


class ShareCodeAllocator:
    """Generate share codes and find unused ones with a bounded retry."""

    def __init__(
        self,
        *,
        length: int = DEFAULT_CODE_LENGTH,
        attempts: int = DEFAULT_ATTEMPTS,
        alphabet: Sequence[str] = SHARE_CODE_ALPHABET,
        choice: Callable[[Sequence[str]], str] = secrets.choice,
    ) -> None:
        if length < 1:
            raise ValueError("Share codes need at least one character")
        if attempts < 1:
            raise ValueError("At least one allocation attempt is required")
        self._length = length
        self._attempts = attempts
        self._alphabet = alphabet
        self._choice = choice

    @property
    def attempts(self) -> int:
        return self._attempts

    def generate(self) -> str:
        """Return a random code drawn uniformly from the alphabet."""

        return "".join(self._choice(self._alphabet) for _ in range(self._length))

    async def allocate_unique(self, store: _CodeLookup) -> str:
        """Return the first generated code that no session uses yet.

        This is a check-then-use lookup; callers that insert the code should
        prefer :meth:`insert_unique`, which relies on the store's uniqueness
        rule instead.
        """

        for attempt in range(1, self._attempts + 1):
            candidate = self.generate()
            if not await store.share_code_exists(candidate):
                return candidate
            logger.debug("Share code collision on attempt %s", attempt)
        raise ShareCodeExhausted(
            f"Could not generate a unique share code after {self._attempts} attempts."
        )

    async def insert_unique(self, insert: Callable[[str], Awaitable[T]]) -> T:
        """Call ``insert`` with fresh codes until the store accepts one."""

        for attempt in range(1, self._attempts + 1):
            candidate = self.generate()
            try:
                return await insert(candidate)
            except ShareCodeConflict:
                logger.info("Share code %s already taken (attempt %s)", candidate, attempt)
        raise ShareCodeExhausted(
            f"Could not generate a unique share code after {self._attempts} attempts."
        )
