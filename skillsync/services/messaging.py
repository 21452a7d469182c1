"""Polling refresh of a two-party message thread while a chat panel is open."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from ..clients.store import SocialStore
from ..errors import AiServiceError, StoreError
from ..schemas import Message
from .ai_service import AiTextService

logger = logging.getLogger(__name__)

MESSAGE_POLL_INTERVAL = 3.0


class MessagePoller:
    """Own the message cache and the polling loop for the active chat partner.

    Only one partner is polled at a time. Each ``open`` starts a new
    generation; fetch results tagged with an older generation are dropped.
    """

    def __init__(
        self,
        store: SocialStore,
        *,
        interval: float = MESSAGE_POLL_INTERVAL,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._store = store
        self._interval = interval
        self._sleep = sleep
        self.messages: list[Message] = []
        self.current_user_id: str | None = None
        self.partner_id: str | None = None
        self._generation = 0
        self._task: asyncio.Task[None] | None = None

    @property
    def is_open(self) -> bool:
        return self.partner_id is not None

    @property
    def is_polling(self) -> bool:
        return self._task is not None and not self._task.done()

    async def open(self, current_user_id: str, partner_id: str) -> None:
        """Fetch the thread now, then keep refetching every interval until closed."""

        self.close()
        self._generation += 1
        generation = self._generation
        self.current_user_id = current_user_id
        self.partner_id = partner_id
        logger.debug("Chat opened | user=%s partner=%s", current_user_id, partner_id)

        await self._fetch(generation)
        if generation == self._generation:
            self._task = asyncio.get_running_loop().create_task(self._poll(generation))

    def close(self) -> None:
        self._generation += 1
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
        if self.partner_id is not None:
            logger.debug("Chat closed | partner=%s", self.partner_id)
        self.partner_id = None

    def reset(self) -> None:
        self.close()
        self.current_user_id = None
        self.messages = []

    async def _poll(self, generation: int) -> None:
        while generation == self._generation:
            await self._sleep(self._interval)
            if generation != self._generation:
                return
            await self._fetch(generation)

    async def _fetch(self, generation: int) -> None:
        user_id, partner_id = self.current_user_id, self.partner_id
        if user_id is None or partner_id is None:
            return
        try:
            fetched = await self._store.list_messages(user_id, partner_id)
        except StoreError:
            logger.exception("Fetching messages failed | partner=%s", partner_id)
            return
        if generation != self._generation:
            logger.debug("Discarding stale thread response | partner=%s", partner_id)
            return
        self._merge_thread(user_id, partner_id, fetched)

    def _merge_thread(self, user_id: str, partner_id: str, fetched: list[Message]) -> None:
        fetched_ids = {message.id for message in fetched}
        kept = [
            message
            for message in self.messages
            if not message.belongs_to(user_id, partner_id) or message.id not in fetched_ids
        ]
        self.messages = [*kept, *fetched]

    async def send(self, content: str) -> Message | None:
        """Insert a message for the active partner and show it without waiting for a poll."""

        text = (content or "").strip()
        user_id, partner_id = self.current_user_id, self.partner_id
        if not text or user_id is None or partner_id is None:
            return None
        try:
            message = await self._store.send_message(user_id, partner_id, text)
        except StoreError:
            logger.exception("Sending message failed | partner=%s", partner_id)
            return None
        if all(existing.id != message.id for existing in self.messages):
            self.messages = [*self.messages, message]
        return message

    def thread(self, user_a: str | None = None, user_b: str | None = None) -> list[Message]:
        """Messages between the two users (defaults to the open chat), oldest first."""

        user_a = user_a or self.current_user_id
        user_b = user_b or self.partner_id
        if user_a is None or user_b is None:
            return []
        return sorted(
            (message for message in self.messages if message.belongs_to(user_a, user_b)),
            key=lambda message: message.timestamp,
        )

    async def improve_draft(self, ai: AiTextService, text: str) -> str:
        """Run the empathy rewrite over a chat draft; the draft is returned unchanged on failure."""

        if not text or not text.strip():
            return text
        try:
            rewritten = await ai.rewrite_for_empathy(text)
        except AiServiceError:
            logger.exception("Improving chat draft failed")
            return text
        return rewritten or text


__all__ = ["MESSAGE_POLL_INTERVAL", "MessagePoller"]
