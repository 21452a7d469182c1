"""Top-level screen controller.

The application state is an immutable :class:`AppModel`; user and async
outcomes arrive as small event dataclasses and :func:`reduce` folds them into
a new model. ``reduce`` never performs I/O, so every transition can be unit
tested without a rendering layer or network.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable

from ..schemas import MatchedUser, SessionSummary, UserProfile

logger = logging.getLogger(__name__)


class Screen(str, Enum):
    HOME = "HOME"
    LOGIN = "LOGIN"
    DASHBOARD = "DASHBOARD"
    PROFILE_VIEWING = "PROFILE_VIEWING"
    SESSION_ONBOARDING = "SESSION_ONBOARDING"
    SESSION_MATCHING = "SESSION_MATCHING"
    SESSION_ACTIVE = "SESSION_ACTIVE"
    SESSION_SUMMARY_LOADING = "SESSION_SUMMARY_LOADING"
    SESSION_SUMMARY = "SESSION_SUMMARY"


UNAUTHENTICATED_SCREENS = frozenset({Screen.HOME, Screen.LOGIN})
AUTHENTICATED_SCREENS = frozenset(Screen) - UNAUTHENTICATED_SCREENS
SESSION_SCREENS = frozenset(
    {
        Screen.SESSION_ONBOARDING,
        Screen.SESSION_MATCHING,
        Screen.SESSION_ACTIVE,
        Screen.SESSION_SUMMARY_LOADING,
        Screen.SESSION_SUMMARY,
    }
)


@dataclass(frozen=True, slots=True)
class AppModel:
    screen: Screen = Screen.HOME
    current_user_id: str | None = None
    error: str | None = None
    profile: UserProfile | None = None
    match: MatchedUser | None = None
    summary: SessionSummary | None = None
    viewing_profile_id: str | None = None
    active_chat_user_id: str | None = None
    fatal_error: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.current_user_id is not None and self.screen in AUTHENTICATED_SCREENS


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SessionRestored:
    user_id: str


@dataclass(frozen=True, slots=True)
class SignInRequested:
    pass


@dataclass(frozen=True, slots=True)
class BackToHome:
    pass


@dataclass(frozen=True, slots=True)
class LoginSucceeded:
    user_id: str


@dataclass(frozen=True, slots=True)
class LoginFailed:
    error: str


@dataclass(frozen=True, slots=True)
class ViewProfile:
    user_id: str


@dataclass(frozen=True, slots=True)
class BackToDashboard:
    pass


@dataclass(frozen=True, slots=True)
class StartSession:
    pass


@dataclass(frozen=True, slots=True)
class LeaveOnboarding:
    pass


@dataclass(frozen=True, slots=True)
class SkillsSubmitted:
    profile: UserProfile


@dataclass(frozen=True, slots=True)
class MatchFound:
    match: MatchedUser


@dataclass(frozen=True, slots=True)
class MatchFailed:
    error: str


@dataclass(frozen=True, slots=True)
class MatchAccepted:
    pass


@dataclass(frozen=True, slots=True)
class SessionEnded:
    pass


@dataclass(frozen=True, slots=True)
class SummaryReady:
    summary: SessionSummary


@dataclass(frozen=True, slots=True)
class SummaryFailed:
    error: str


@dataclass(frozen=True, slots=True)
class Restart:
    pass


@dataclass(frozen=True, slots=True)
class LoggedOut:
    pass


@dataclass(frozen=True, slots=True)
class ChatOpened:
    user_id: str


@dataclass(frozen=True, slots=True)
class ChatClosed:
    pass


@dataclass(frozen=True, slots=True)
class FatalErrorRaised:
    error: str


@dataclass(frozen=True, slots=True)
class Reload:
    pass


Event = Any
Handler = Callable[[AppModel, Any], AppModel]


# ---------------------------------------------------------------------------
# Transition handlers
# ---------------------------------------------------------------------------


def _clear_session(model: AppModel, **changes: Any) -> AppModel:
    return replace(model, profile=None, match=None, summary=None, **changes)


def _to_dashboard(model: AppModel, user_id: str) -> AppModel:
    return _clear_session(model, screen=Screen.DASHBOARD, current_user_id=user_id, error=None)


def _session_restored(model: AppModel, event: SessionRestored) -> AppModel:
    return _to_dashboard(model, event.user_id)


def _sign_in_requested(model: AppModel, event: SignInRequested) -> AppModel:
    return replace(model, screen=Screen.LOGIN, error=None)


def _back_to_home(model: AppModel, event: BackToHome) -> AppModel:
    return replace(model, screen=Screen.HOME, error=None)


def _login_succeeded(model: AppModel, event: LoginSucceeded) -> AppModel:
    return _to_dashboard(model, event.user_id)


def _login_failed(model: AppModel, event: LoginFailed) -> AppModel:
    return replace(model, error=event.error)


def _view_profile(model: AppModel, event: ViewProfile) -> AppModel:
    return _clear_session(model, screen=Screen.PROFILE_VIEWING, viewing_profile_id=event.user_id, error=None)


def _back_to_dashboard(model: AppModel, event: BackToDashboard) -> AppModel:
    return replace(model, screen=Screen.DASHBOARD, viewing_profile_id=None)


def _start_session(model: AppModel, event: StartSession) -> AppModel:
    return _clear_session(model, screen=Screen.SESSION_ONBOARDING, error=None)


def _leave_onboarding(model: AppModel, event: LeaveOnboarding) -> AppModel:
    return _clear_session(model, screen=Screen.DASHBOARD, error=None)


def _skills_submitted(model: AppModel, event: SkillsSubmitted) -> AppModel:
    return replace(model, screen=Screen.SESSION_MATCHING, profile=event.profile, match=None, error=None)


def _match_found(model: AppModel, event: MatchFound) -> AppModel:
    return replace(model, match=event.match)


def _match_failed(model: AppModel, event: MatchFailed) -> AppModel:
    return replace(model, screen=Screen.SESSION_ONBOARDING, match=None, error=event.error)


def _match_accepted(model: AppModel, event: MatchAccepted) -> AppModel:
    if model.match is None:
        return model
    return replace(model, screen=Screen.SESSION_ACTIVE, error=None)


def _session_ended(model: AppModel, event: SessionEnded) -> AppModel:
    return replace(model, screen=Screen.SESSION_SUMMARY_LOADING, error=None)


def _summary_ready(model: AppModel, event: SummaryReady) -> AppModel:
    return replace(model, screen=Screen.SESSION_SUMMARY, summary=event.summary)


def _summary_failed(model: AppModel, event: SummaryFailed) -> AppModel:
    return replace(model, screen=Screen.SESSION_ACTIVE, error=event.error)


def _restart(model: AppModel, event: Restart) -> AppModel:
    return _clear_session(model, screen=Screen.DASHBOARD, error=None)


def _logged_out(model: AppModel, event: LoggedOut) -> AppModel:
    return AppModel()


def _chat_opened(model: AppModel, event: ChatOpened) -> AppModel:
    return replace(model, active_chat_user_id=event.user_id)


def _chat_closed(model: AppModel, event: ChatClosed) -> AppModel:
    return replace(model, active_chat_user_id=None)


_TRANSITIONS: dict[tuple[Screen, type], Handler] = {
    (Screen.HOME, SessionRestored): _session_restored,
    (Screen.LOGIN, SessionRestored): _session_restored,
    (Screen.HOME, SignInRequested): _sign_in_requested,
    (Screen.LOGIN, BackToHome): _back_to_home,
    (Screen.LOGIN, LoginSucceeded): _login_succeeded,
    (Screen.LOGIN, LoginFailed): _login_failed,
    (Screen.PROFILE_VIEWING, BackToDashboard): _back_to_dashboard,
    (Screen.DASHBOARD, StartSession): _start_session,
    (Screen.SESSION_ONBOARDING, LeaveOnboarding): _leave_onboarding,
    (Screen.SESSION_ONBOARDING, SkillsSubmitted): _skills_submitted,
    (Screen.SESSION_MATCHING, MatchFound): _match_found,
    (Screen.SESSION_MATCHING, MatchFailed): _match_failed,
    (Screen.SESSION_MATCHING, MatchAccepted): _match_accepted,
    (Screen.SESSION_ACTIVE, SessionEnded): _session_ended,
    (Screen.SESSION_SUMMARY_LOADING, SummaryReady): _summary_ready,
    (Screen.SESSION_SUMMARY_LOADING, SummaryFailed): _summary_failed,
    (Screen.SESSION_SUMMARY, Restart): _restart,
}

# Valid from every authenticated screen.
_AUTHENTICATED_TRANSITIONS: dict[type, Handler] = {
    LoggedOut: _logged_out,
    ViewProfile: _view_profile,
    ChatOpened: _chat_opened,
    ChatClosed: _chat_closed,
}


def apply_guards(model: AppModel) -> AppModel:
    """Redirect screens whose required data is missing back to the dashboard."""

    if model.screen is Screen.SESSION_ACTIVE and (model.profile is None or model.match is None):
        logger.warning("Guard redirect | screen=%s reason=missing profile or match", model.screen.value)
        return _clear_session(model, screen=Screen.DASHBOARD)
    if model.screen is Screen.SESSION_SUMMARY and model.summary is None:
        logger.warning("Guard redirect | screen=%s reason=missing summary", model.screen.value)
        return _clear_session(model, screen=Screen.DASHBOARD)
    if model.screen is Screen.PROFILE_VIEWING and model.viewing_profile_id is None:
        return replace(model, screen=Screen.DASHBOARD)
    return model


def _lookup(model: AppModel, event: Event) -> Handler | None:
    handler = _TRANSITIONS.get((model.screen, type(event)))
    if handler is None and model.screen in AUTHENTICATED_SCREENS:
        handler = _AUTHENTICATED_TRANSITIONS.get(type(event))
    return handler


def reduce(model: AppModel, event: Event) -> AppModel:
    """Return the model that results from ``event``; invalid events leave it unchanged."""

    if isinstance(event, Reload):
        return AppModel()
    if model.fatal_error is not None:
        logger.debug("Ignoring event while fatal error is shown | event=%s", type(event).__name__)
        return model
    if isinstance(event, FatalErrorRaised):
        return replace(model, fatal_error=event.error)

    handler = _lookup(model, event)
    if handler is None:
        logger.debug("Ignoring event | screen=%s event=%s", model.screen.value, type(event).__name__)
        return apply_guards(model)

    updated = apply_guards(handler(model, event))
    if updated.screen is not model.screen:
        logger.debug(
            "Transition | %s -> %s event=%s", model.screen.value, updated.screen.value, type(event).__name__
        )
    return updated


__all__ = [
    "AUTHENTICATED_SCREENS",
    "AppModel",
    "BackToDashboard",
    "BackToHome",
    "ChatClosed",
    "ChatOpened",
    "FatalErrorRaised",
    "LeaveOnboarding",
    "LoggedOut",
    "LoginFailed",
    "LoginSucceeded",
    "MatchAccepted",
    "MatchFailed",
    "MatchFound",
    "Reload",
    "Restart",
    "SESSION_SCREENS",
    "Screen",
    "SessionEnded",
    "SessionRestored",
    "SignInRequested",
    "SkillsSubmitted",
    "StartSession",
    "SummaryFailed",
    "SummaryReady",
    "UNAUTHENTICATED_SCREENS",
    "ViewProfile",
    "apply_guards",
    "reduce",
]
