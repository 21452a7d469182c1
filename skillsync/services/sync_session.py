"""Timed, AI-coached sync session.

One :class:`SyncSessionOrchestrator` drives the active-session screen: a
countdown from the configured duration, the coach payload, the empathy
rewrite field and the final summary call. Every run of the countdown is
tagged with an epoch; responses and ticks carrying an older epoch are
dropped instead of being applied to a session that has moved on.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from ..errors import AiServiceError
from ..schemas import AiCoachResponse, MatchedUser, SessionSummary, UserProfile
from .ai_service import AiTextService

logger = logging.getLogger(__name__)

SESSION_DURATION_SECONDS = 600
EMPATHY_APOLOGY = "Sorry, translation failed. Please try again."

SleepFunc = Callable[[float], Awaitable[None]]
ExpireCallback = Callable[[], Awaitable[None]]
ErrorCallback = Callable[[BaseException], None]


def format_time(seconds: int) -> str:
    """Render a countdown value as ``m:ss``."""

    minutes, secs = divmod(max(0, int(seconds)), 60)
    return f"{minutes}:{secs:02d}"


class SyncSessionOrchestrator:
    def __init__(
        self,
        ai: AiTextService,
        *,
        duration: int = SESSION_DURATION_SECONDS,
        tick: float = 1.0,
        sleep: SleepFunc = asyncio.sleep,
        on_expire: ExpireCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> None:
        self._ai = ai
        self.duration = duration
        self._tick = tick
        self._sleep = sleep
        self.on_expire = on_expire
        self.on_error = on_error

        self.profile: UserProfile | None = None
        self.partner: MatchedUser | None = None
        self.remaining = duration
        self.coach: AiCoachResponse | None = None
        self.coach_error: str | None = None
        self.empathy_text = ""
        self.empathy_loading = False

        self._epoch = 0
        self._attempt = 0
        self._active = False
        self._expired = False
        self._coach_inflight = 0
        self._countdown: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def is_counting(self) -> bool:
        return self._countdown is not None and not self._countdown.done()

    @property
    def coach_loading(self) -> bool:
        return self._coach_inflight > 0

    def _spawn(self, coro: Awaitable[None]) -> asyncio.Task[None]:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(self._report_failure)
        return task

    def _report_failure(self, task: asyncio.Task[None]) -> None:
        if task.cancelled() or task.exception() is None:
            return
        exc = task.exception()
        logger.error("Sync session background task failed | error=%s", exc, exc_info=exc)
        if self.on_error is not None:
            self.on_error(exc)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, profile: UserProfile, partner: MatchedUser) -> None:
        """Begin a new session attempt: full countdown plus one coach fetch."""

        self.stop()
        self.profile = profile
        self.partner = partner
        self.remaining = self.duration
        self.coach = None
        self.coach_error = None
        self.empathy_text = ""
        self.empathy_loading = False
        self._attempt += 1
        self._expired = False
        self._activate()
        logger.info("Sync session started | duration=%s epoch=%s", self.duration, self._epoch)
        self._spawn(self._fetch_coach(self._epoch))

    def _activate(self) -> None:
        self._epoch += 1
        self._active = True
        if self.remaining > 0:
            self._countdown = self._spawn(self._run_countdown(self._epoch))

    def stop(self) -> None:
        """Cancel the countdown, keeping the remaining seconds."""

        if not self._active and self._countdown is None:
            return
        self._epoch += 1
        self._active = False
        countdown, self._countdown = self._countdown, None
        if countdown is not None and not countdown.done():
            countdown.cancel()
        logger.debug("Sync session stopped | remaining=%s", self.remaining)

    def resume(self) -> bool:
        """Reactivate the session after a failed summary.

        The countdown continues from where it stopped; at zero it stays
        stopped and the user ends the session manually. Returns True when a
        countdown is running again.
        """

        if self.profile is None or self.partner is None:
            return False
        self.stop()
        self._activate()
        logger.info("Sync session resumed | remaining=%s", self.remaining)
        return self.is_counting

    def reset(self) -> None:
        """Stop and discard every session-scoped value."""

        self.stop()
        self.profile = None
        self.partner = None
        self.remaining = self.duration
        self.coach = None
        self.coach_error = None
        self.empathy_text = ""
        self.empathy_loading = False
        self._attempt += 1
        self._expired = False

    def close(self) -> None:
        self.reset()
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

    async def _run_countdown(self, epoch: int) -> None:
        while self.remaining > 0:
            await self._sleep(self._tick)
            if epoch != self._epoch:
                return
            self.remaining -= 1

        if epoch != self._epoch or self._expired:
            return
        self._expired = True
        # Detach so a stop() issued from the expiry callback does not cancel this task.
        self._countdown = None
        logger.info("Sync session timer expired | epoch=%s", epoch)
        if self.on_expire is not None:
            await self.on_expire()

    # ------------------------------------------------------------------
    # Coach
    # ------------------------------------------------------------------

    async def _fetch_coach(self, epoch: int) -> None:
        profile, partner = self.profile, self.partner
        if profile is None or partner is None:
            return
        self._coach_inflight += 1
        try:
            coach = await self._ai.generate_coach_guidance(profile, partner)
        except AiServiceError as exc:
            logger.exception("Coach guidance failed | epoch=%s", epoch)
            if epoch == self._epoch:
                self.coach_error = str(exc)
            return
        finally:
            self._coach_inflight -= 1

        if epoch != self._epoch:
            logger.info("Discarding late coach response | epoch=%s current=%s", epoch, self._epoch)
            return
        self.coach = coach
        self.coach_error = None

    async def regenerate_coach(self) -> bool:
        """Fetch a fresh coach payload; the previous one stays on failure."""

        if not self._active:
            return False
        epoch = self._epoch
        await self._fetch_coach(epoch)
        return epoch == self._epoch and self.coach_error is None

    # ------------------------------------------------------------------
    # Empathy and summary
    # ------------------------------------------------------------------

    async def rewrite_for_empathy(self, text: str) -> str | None:
        """Rewrite ``text`` into the empathy field.

        Blank input, or a call while another rewrite is outstanding, does
        nothing and returns None. A rewrite that resolves after the session
        was restarted or reset is dropped and also returns None.
        """

        if not text or not text.strip() or self.empathy_loading:
            return None
        attempt = self._attempt
        self.empathy_loading = True
        self.empathy_text = ""
        try:
            rewritten = await self._ai.rewrite_for_empathy(text)
        except AiServiceError:
            logger.exception("Empathy rewrite failed | attempt=%s", attempt)
            rewritten = EMPATHY_APOLOGY
        finally:
            if attempt == self._attempt:
                self.empathy_loading = False

        if attempt != self._attempt:
            logger.info("Discarding late empathy rewrite | attempt=%s current=%s", attempt, self._attempt)
            return None
        self.empathy_text = rewritten
        return rewritten

    async def generate_summary(self) -> SessionSummary:
        if self.profile is None or self.partner is None:
            raise AiServiceError("No active session to summarise.")
        return await self._ai.generate_summary(self.profile, self.partner)


__all__ = [
    "EMPATHY_APOLOGY",
    "SESSION_DURATION_SECONDS",
    "SyncSessionOrchestrator",
    "format_time",
]
