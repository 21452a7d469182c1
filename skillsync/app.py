"""Application facade.

:class:`SkillSyncApp` owns the screen model, the social caches and the three
stateful services, and exposes one coroutine per user action. Handlers turn
outcomes into state machine events; side effects (stopping the countdown,
closing the chat poller, clearing caches) follow from the screen change that
``dispatch`` observes rather than being repeated in every handler.
"""
from __future__ import annotations

import asyncio
import functools
import logging
from typing import Any, Awaitable, Callable, Mapping, TypeVar

from pydantic import ValidationError

from .clients.store import SocialStore
from .errors import AiServiceError, StoreError
from .schemas import Message, Post, PostDraft, PostType, User, UserProfile
from .services.ai_service import AiTextService
from .services.messaging import MESSAGE_POLL_INTERVAL, MessagePoller
from .services.reconciler import (
    CommentAdd,
    FollowToggle,
    LikeToggle,
    MergePolicy,
    MutationResult,
    PostCreate,
    ProfileUpdate,
    SocialCache,
    SocialReconciler,
)
from .services.state_machine import (
    SESSION_SCREENS,
    AppModel,
    BackToDashboard,
    BackToHome,
    ChatClosed,
    ChatOpened,
    FatalErrorRaised,
    LeaveOnboarding,
    LoggedOut,
    LoginFailed,
    LoginSucceeded,
    MatchAccepted,
    MatchFailed,
    MatchFound,
    Reload,
    Restart,
    Screen,
    SessionEnded,
    SessionRestored,
    SignInRequested,
    SkillsSubmitted,
    StartSession,
    SummaryFailed,
    SummaryReady,
    ViewProfile,
    reduce,
)
from .services.sync_session import SESSION_DURATION_SECONDS, SyncSessionOrchestrator

logger = logging.getLogger(__name__)

PENDING_CONFIRMATION_MESSAGE = (
    "Sign up successful. Please check your email to confirm your account before signing in."
)
MATCH_FAILED_MESSAGE = "Failed to find a match. Please try again."
SUMMARY_FAILED_MESSAGE = "Failed to generate session summary."
PROFILE_CREATE_FAILED_MESSAGE = "Failed to create user profile. Please try again."
PROFILE_INIT_FAILED_MESSAGE = "Failed to initialize user profile."

HandlerT = TypeVar("HandlerT", bound=Callable[..., Awaitable[Any]])


def fatal_boundary(handler: HandlerT) -> HandlerT:
    """Record anything a handler fails to catch as the fatal error of the app."""

    @functools.wraps(handler)
    async def wrapper(self: "SkillSyncApp", *args: Any, **kwargs: Any) -> Any:
        try:
            return await handler(self, *args, **kwargs)
        except Exception as exc:
            logger.exception("Unhandled error in handler | handler=%s", handler.__name__)
            self.dispatch(FatalErrorRaised(str(exc) or type(exc).__name__))
            return None

    return wrapper  # type: ignore[return-value]


class SkillSyncApp:
    def __init__(
        self,
        store: SocialStore,
        ai: AiTextService,
        *,
        session_duration: int = SESSION_DURATION_SECONDS,
        poll_interval: float = MESSAGE_POLL_INTERVAL,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        policies: Mapping[type, MergePolicy] | None = None,
    ) -> None:
        self.store = store
        self.ai = ai
        self.model = AppModel()
        self.cache = SocialCache()
        self.reconciler = SocialReconciler(store, self.cache, policies)
        self.session = SyncSessionOrchestrator(
            ai,
            duration=session_duration,
            sleep=sleep,
            on_expire=self._on_session_expired,
            on_error=self._on_background_error,
        )
        self.poller = MessagePoller(store, interval=poll_interval, sleep=sleep)
        self._match_attempt = 0
        self._summary_attempt = 0

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    @property
    def screen(self) -> Screen:
        return self.model.screen

    @property
    def error(self) -> str | None:
        return self.model.error

    @property
    def users(self) -> list[User]:
        return list(self.cache.users.values())

    @property
    def posts(self) -> list[Post]:
        return list(self.cache.posts)

    @property
    def current_user(self) -> User | None:
        if self.model.current_user_id is None:
            return None
        return self.cache.current_user

    @property
    def viewing_profile(self) -> User | None:
        return self.cache.user(self.model.viewing_profile_id)

    @property
    def active_chat_partner(self) -> User | None:
        return self.cache.user(self.model.active_chat_user_id)

    @property
    def thread_messages(self) -> list[Message]:
        if self.model.current_user_id is None or self.model.active_chat_user_id is None:
            return []
        return self.poller.thread(self.model.current_user_id, self.model.active_chat_user_id)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def dispatch(self, event: Any) -> AppModel:
        previous = self.model
        self.model = reduce(previous, event)
        self._follow_screen(previous, self.model)
        return self.model

    def _follow_screen(self, previous: AppModel, current: AppModel) -> None:
        if current.fatal_error is not None and previous.fatal_error is None:
            self.session.stop()
            self.poller.close()
            return

        if previous.current_user_id is not None and current.current_user_id is None:
            self.poller.reset()
            self.session.reset()
            self.reconciler.cancel_background()
            self.cache.clear()
            return

        if previous.active_chat_user_id is not None and current.active_chat_user_id is None:
            self.poller.close()

        entered_active = current.screen is Screen.SESSION_ACTIVE and previous.screen is not Screen.SESSION_ACTIVE
        if entered_active and current.profile is not None and current.match is not None:
            if previous.screen is Screen.SESSION_SUMMARY_LOADING:
                self.session.resume()
            else:
                self.session.start(current.profile, current.match)
        elif previous.screen is Screen.SESSION_ACTIVE and current.screen is not Screen.SESSION_ACTIVE:
            self.session.stop()

        if previous.screen in SESSION_SCREENS and current.screen not in SESSION_SCREENS:
            self.session.reset()

    # ------------------------------------------------------------------
    # Launch and authentication
    # ------------------------------------------------------------------

    @fatal_boundary
    async def launch(self) -> AppModel:
        """Restore an existing auth session, going straight to the dashboard when possible."""

        try:
            identity = await self.store.current_session()
        except StoreError:
            logger.exception("Auth check failed")
            return self.model
        if identity is None:
            return self.model

        await self.reconciler.refresh()
        if self.cache.user(identity.id) is None:
            logger.warning("User authenticated but profile not found in database | user=%s", identity.id)
            return self.model
        self.cache.current_user_id = identity.id
        return self.dispatch(SessionRestored(identity.id))

    @fatal_boundary
    async def open_login(self) -> AppModel:
        return self.dispatch(SignInRequested())

    @fatal_boundary
    async def back_home(self) -> AppModel:
        return self.dispatch(BackToHome())

    @fatal_boundary
    async def submit_credentials(self, email: str, password: str, *, sign_up: bool = False) -> AppModel:
        if self.model.screen is not Screen.LOGIN or not email or not password:
            return self.model

        try:
            if sign_up:
                result = await self.store.sign_up(email, password)
                if result.identity is None:
                    return self.dispatch(LoginFailed(PENDING_CONFIRMATION_MESSAGE))
                identity = result.identity
            else:
                identity = await self.store.sign_in(email, password)
        except StoreError as exc:
            logger.error("Authentication failed | sign_up=%s error=%s", sign_up, exc)
            return self.dispatch(LoginFailed(str(exc) or ("Sign up failed" if sign_up else "Sign in failed")))

        return await self.login(email, identity.id)

    @fatal_boundary
    async def login(self, email: str, user_id: str) -> AppModel:
        """Resolve the profile of a freshly authenticated user, creating it when missing."""

        if self.model.screen is not Screen.LOGIN:
            return self.model

        await self.reconciler.refresh()
        if self.cache.user(user_id) is None:
            logger.warning("User profile not found, creating one | user=%s", user_id)
            try:
                await self.store.create_user_profile(email, email.split("@")[0], user_id)
            except StoreError:
                logger.exception("Error creating fallback profile | user=%s", user_id)
                return self.dispatch(LoginFailed(PROFILE_INIT_FAILED_MESSAGE))
            await self.reconciler.refresh()
            if self.cache.user(user_id) is None:
                return self.dispatch(LoginFailed(PROFILE_CREATE_FAILED_MESSAGE))

        self.cache.current_user_id = user_id
        return self.dispatch(LoginSucceeded(user_id))

    @fatal_boundary
    async def logout(self) -> AppModel:
        try:
            await self.store.sign_out()
        except StoreError:
            logger.exception("Logout failed")
            return self.model
        return self.dispatch(LoggedOut())

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    @fatal_boundary
    async def view_profile(self, user_id: str) -> AppModel:
        return self.dispatch(ViewProfile(user_id))

    @fatal_boundary
    async def back_to_dashboard(self) -> AppModel:
        return self.dispatch(BackToDashboard())

    @fatal_boundary
    async def start_session(self) -> AppModel:
        return self.dispatch(StartSession())

    @fatal_boundary
    async def leave_onboarding(self) -> AppModel:
        return self.dispatch(LeaveOnboarding())

    # ------------------------------------------------------------------
    # Sync session flow
    # ------------------------------------------------------------------

    @fatal_boundary
    async def start_matching(self, skill_to_offer: str, skill_to_learn: str) -> AppModel:
        if self.model.screen is not Screen.SESSION_ONBOARDING:
            return self.model
        try:
            profile = UserProfile(skill_to_offer=skill_to_offer, skill_to_learn=skill_to_learn)
        except ValidationError:
            logger.debug("Ignoring incomplete skill submission")
            return self.model

        self._match_attempt += 1
        attempt = self._match_attempt
        self.dispatch(SkillsSubmitted(profile))
        try:
            match = await self.ai.generate_match(profile)
        except AiServiceError:
            logger.exception("Match generation failed | attempt=%s", attempt)
            if self._matching(attempt):
                self.dispatch(MatchFailed(MATCH_FAILED_MESSAGE))
            return self.model

        if not self._matching(attempt):
            logger.info("Discarding late match | attempt=%s", attempt)
            return self.model
        return self.dispatch(MatchFound(match))

    def _matching(self, attempt: int) -> bool:
        return attempt == self._match_attempt and self.model.screen is Screen.SESSION_MATCHING

    @fatal_boundary
    async def accept_match(self) -> AppModel:
        return self.dispatch(MatchAccepted())

    @fatal_boundary
    async def end_session(self) -> AppModel:
        """Stop the countdown and generate the summary; on failure return to the active session."""

        if self.model.screen is not Screen.SESSION_ACTIVE:
            return self.model

        self._summary_attempt += 1
        attempt = self._summary_attempt
        self.dispatch(SessionEnded())
        try:
            summary = await self.session.generate_summary()
        except AiServiceError:
            logger.exception("Summary generation failed | attempt=%s", attempt)
            if self._summarising(attempt):
                self.dispatch(SummaryFailed(SUMMARY_FAILED_MESSAGE))
            return self.model

        if not self._summarising(attempt):
            logger.info("Discarding late summary | attempt=%s", attempt)
            return self.model
        return self.dispatch(SummaryReady(summary))

    def _summarising(self, attempt: int) -> bool:
        return attempt == self._summary_attempt and self.model.screen is Screen.SESSION_SUMMARY_LOADING

    async def _on_session_expired(self) -> None:
        await self.end_session()

    def _on_background_error(self, exc: BaseException) -> None:
        self.dispatch(FatalErrorRaised(str(exc) or type(exc).__name__))

    @fatal_boundary
    async def restart(self) -> AppModel:
        return self.dispatch(Restart())

    @fatal_boundary
    async def regenerate_coach(self) -> bool:
        if self.model.screen is not Screen.SESSION_ACTIVE:
            return False
        return await self.session.regenerate_coach()

    @fatal_boundary
    async def rewrite_for_empathy(self, text: str) -> str | None:
        if self.model.screen is not Screen.SESSION_ACTIVE:
            return None
        return await self.session.rewrite_for_empathy(text)

    # ------------------------------------------------------------------
    # Messaging
    # ------------------------------------------------------------------

    @fatal_boundary
    async def open_chat(self, user_id: str) -> AppModel:
        current_user_id = self.model.current_user_id
        if current_user_id is None or user_id == current_user_id:
            return self.model
        self.dispatch(ChatOpened(user_id))
        if self.model.active_chat_user_id == user_id:
            await self.poller.open(current_user_id, user_id)
        return self.model

    @fatal_boundary
    async def close_chat(self) -> AppModel:
        return self.dispatch(ChatClosed())

    @fatal_boundary
    async def send_message(self, content: str) -> Message | None:
        if self.model.active_chat_user_id is None:
            return None
        return await self.poller.send(content)

    @fatal_boundary
    async def improve_draft(self, text: str) -> str:
        return await self.poller.improve_draft(self.ai, text)

    # ------------------------------------------------------------------
    # Social mutations
    # ------------------------------------------------------------------

    async def _apply(self, mutation: Any) -> MutationResult:
        return await self.reconciler.apply(mutation)

    @fatal_boundary
    async def follow_toggle(self, target_id: str) -> MutationResult | None:
        if self.model.current_user_id is None:
            return None
        return await self._apply(FollowToggle(self.model.current_user_id, target_id))

    @fatal_boundary
    async def like_toggle(self, post_id: str) -> MutationResult | None:
        if self.model.current_user_id is None:
            return None
        return await self._apply(LikeToggle(post_id, self.model.current_user_id))

    @fatal_boundary
    async def add_comment(self, post_id: str, content: str) -> MutationResult | None:
        if self.model.current_user_id is None:
            return None
        return await self._apply(CommentAdd(post_id, self.model.current_user_id, content))

    @fatal_boundary
    async def create_post(
        self,
        content: str = "",
        *,
        post_type: PostType = PostType.TEXT,
        title: str | None = None,
        media_url: str | None = None,
    ) -> MutationResult | None:
        if self.model.current_user_id is None:
            return None
        try:
            draft = PostDraft(type=post_type, content=content, title=title, media_url=media_url)
        except ValidationError as exc:
            logger.warning("Post draft rejected | errors=%s", exc.error_count())
            return MutationResult(ok=False, error="Post content is required")
        return await self._apply(PostCreate(self.model.current_user_id, draft))

    @fatal_boundary
    async def update_profile(self, about_me: str) -> MutationResult | None:
        if self.model.current_user_id is None:
            return None
        return await self._apply(ProfileUpdate(self.model.current_user_id, about_me))

    # ------------------------------------------------------------------
    # Reset and shutdown
    # ------------------------------------------------------------------

    @fatal_boundary
    async def reload(self) -> AppModel:
        """Discard all in-memory state and start again as if freshly launched."""

        self.poller.reset()
        self.session.close()
        self.reconciler.cancel_background()
        self.cache.clear()
        self.model = reduce(self.model, Reload())
        return await self.launch()

    async def aclose(self) -> None:
        self.poller.reset()
        self.session.close()
        self.reconciler.cancel_background()
        for resource in (self.store, self.ai):
            closer = getattr(resource, "aclose", None)
            if closer is not None:
                await closer()


__all__ = [
    "MATCH_FAILED_MESSAGE",
    "PENDING_CONFIRMATION_MESSAGE",
    "PROFILE_CREATE_FAILED_MESSAGE",
    "PROFILE_INIT_FAILED_MESSAGE",
    "SUMMARY_FAILED_MESSAGE",
    "SkillSyncApp",
    "fatal_boundary",
]
