"""End-to-end handler flows of the application facade."""
from __future__ import annotations

import asyncio
from typing import Any

import httpx
import pytest

from skillsync.app import (
    MATCH_FAILED_MESSAGE,
    PENDING_CONFIRMATION_MESSAGE,
    PROFILE_INIT_FAILED_MESSAGE,
    SUMMARY_FAILED_MESSAGE,
    SkillSyncApp,
)
from skillsync.clients import GeminiClient, SqlSocialStore, SupabaseStore
from skillsync.errors import AiResponseError, StoreError
from skillsync.schemas import AiCoachResponse, MatchedUser, SessionSummary, UserIdentity, UserProfile
from skillsync.services.ai_service import SkillSyncAI
from skillsync.services.state_machine import Screen

PASSWORD = "pw-123456"


class StubAI:
    def __init__(self) -> None:
        self.fail_match = False
        self.summary_failures = 0
        self.summary_calls = 0

    async def generate_match(self, profile: UserProfile) -> MatchedUser:
        if self.fail_match:
            raise AiResponseError("AI failed to generate a valid match profile.")
        return MatchedUser(
            name="Amélie",
            country="France",
            skill_to_offer=profile.skill_to_learn,
            skill_to_learn=profile.skill_to_offer,
            personality="Warm",
            learning_style="Visual",
            profile_picture="https://i.pravatar.cc/150?u=amelie",
        )

    async def generate_coach_guidance(self, profile: UserProfile, partner: MatchedUser) -> AiCoachResponse:
        return AiCoachResponse.model_validate(
            {
                "microLesson": {"title": "Bonjour", "content": "Say hello", "for": "user"},
                "activity": {"title": "Chat", "description": "Introduce yourselves"},
                "cultureBridge": {"title": "Bise", "content": "Greetings"},
            }
        )

    async def rewrite_for_empathy(self, text: str) -> str:
        return f"Kindly, {text}"

    async def generate_summary(self, profile: UserProfile, partner: MatchedUser) -> SessionSummary:
        self.summary_calls += 1
        if self.summary_failures:
            self.summary_failures -= 1
            raise AiResponseError("AI failed to generate a valid session summary.")
        return SessionSummary(score=97, summary="Wonderful", takeaway="Connection matters")


async def fast_sleep(_seconds: float) -> None:
    await asyncio.sleep(0)


async def idle_sleep(_seconds: float) -> None:
    await asyncio.get_running_loop().create_future()


async def _signed_up(app: SkillSyncApp, email: str) -> None:
    await app.open_login()
    await app.submit_credentials(email, PASSWORD, sign_up=True)


async def _active_session(app: SkillSyncApp) -> None:
    await _signed_up(app, "alice@example.com")
    await app.start_session()
    await app.start_matching("guitar", "french")
    await app.accept_match()


def test_sign_up_creates_missing_profile_and_reaches_dashboard(sql_store: SqlSocialStore) -> None:
    app = SkillSyncApp(sql_store, StubAI(), sleep=idle_sleep)

    async def scenario() -> None:
        await _signed_up(app, "alice@example.com")

    asyncio.run(scenario())
    assert app.screen is Screen.DASHBOARD
    assert app.current_user is not None
    assert app.current_user.name == "alice"
    assert app.error is None


def test_pending_sign_up_stays_on_login(make_sql_store) -> None:
    app = SkillSyncApp(make_sql_store(require_email_confirmation=True), StubAI(), sleep=idle_sleep)

    asyncio.run(_signed_up(app, "alice@example.com"))

    assert app.screen is Screen.LOGIN
    assert app.error == PENDING_CONFIRMATION_MESSAGE
    assert app.current_user is None


def test_bad_credentials_show_inline_error(sql_store: SqlSocialStore) -> None:
    app = SkillSyncApp(sql_store, StubAI(), sleep=idle_sleep)

    async def scenario() -> None:
        await app.open_login()
        await app.submit_credentials("nobody@example.com", "wrong-pass")

    asyncio.run(scenario())
    assert app.screen is Screen.LOGIN
    assert app.error == "Invalid login credentials"


def test_launch_restores_existing_session(make_sql_store) -> None:
    async def scenario() -> SkillSyncApp:
        first = make_sql_store()
        result = await first.sign_up("alice@example.com", PASSWORD)
        assert result.identity is not None
        await first.create_user_profile("alice@example.com", "Alice", result.identity.id)

        app = SkillSyncApp(make_sql_store(session_user_id=result.identity.id), StubAI(), sleep=idle_sleep)
        await app.launch()
        return app

    app = asyncio.run(scenario())
    assert app.screen is Screen.DASHBOARD
    assert app.current_user is not None
    assert app.current_user.name == "Alice"


def test_launch_without_profile_stays_home(make_sql_store, caplog: pytest.LogCaptureFixture) -> None:
    async def scenario() -> SkillSyncApp:
        first = make_sql_store()
        result = await first.sign_up("alice@example.com", PASSWORD)
        assert result.identity is not None
        app = SkillSyncApp(make_sql_store(session_user_id=result.identity.id), StubAI(), sleep=idle_sleep)
        await app.launch()
        return app

    app = asyncio.run(scenario())
    assert app.screen is Screen.HOME
    assert "profile not found" in caplog.text


class BrokenProfileStore:
    """Authenticates fine but cannot create profiles."""

    async def sign_in(self, email: str, password: str) -> UserIdentity:
        return UserIdentity(id="u1", email=email)

    async def list_users(self) -> list[Any]:
        return []

    async def list_posts(self) -> list[Any]:
        return []

    async def create_user_profile(self, email: str, name: str, user_id: str) -> None:
        raise StoreError("permission denied", status_code=403)


def test_profile_creation_failure_is_blocking() -> None:
    app = SkillSyncApp(BrokenProfileStore(), StubAI(), sleep=idle_sleep)  # type: ignore[arg-type]

    async def scenario() -> None:
        await app.open_login()
        await app.submit_credentials("alice@example.com", PASSWORD)

    asyncio.run(scenario())
    assert app.screen is Screen.LOGIN
    assert app.error == PROFILE_INIT_FAILED_MESSAGE
    assert app.model.current_user_id is None


def test_match_then_confirm_enters_active_session(sql_store: SqlSocialStore) -> None:
    app = SkillSyncApp(sql_store, StubAI(), sleep=idle_sleep)

    async def scenario() -> None:
        await _signed_up(app, "alice@example.com")
        await app.start_session()
        await app.start_matching("guitar", "french")
        assert app.screen is Screen.SESSION_MATCHING
        assert app.model.match is not None
        assert app.model.match.skill_to_offer == "french"
        assert app.model.match.skill_to_learn == "guitar"
        await app.accept_match()
        assert app.screen is Screen.SESSION_ACTIVE
        assert app.session.is_active
        app.session.close()

    asyncio.run(scenario())


def test_match_failure_goes_back_to_onboarding(sql_store: SqlSocialStore) -> None:
    ai = StubAI()
    ai.fail_match = True
    app = SkillSyncApp(sql_store, ai, sleep=idle_sleep)

    async def scenario() -> None:
        await _signed_up(app, "alice@example.com")
        await app.start_session()
        await app.start_matching("guitar", "french")

    asyncio.run(scenario())
    assert app.screen is Screen.SESSION_ONBOARDING
    assert app.error == MATCH_FAILED_MESSAGE


def test_summary_failure_returns_to_session_with_countdown_preserved(sql_store: SqlSocialStore) -> None:
    ai = StubAI()
    ai.summary_failures = 1
    app = SkillSyncApp(sql_store, ai, sleep=fast_sleep)

    async def scenario() -> None:
        await _active_session(app)
        while app.session.remaining > 595:
            await asyncio.sleep(0)
        await app.end_session()
        assert app.screen is Screen.SESSION_ACTIVE
        assert app.error == SUMMARY_FAILED_MESSAGE
        assert 0 < app.session.remaining <= 595
        assert app.model.profile is not None
        assert app.model.match is not None

        await app.end_session()
        assert app.screen is Screen.SESSION_SUMMARY
        assert app.model.summary is not None

        await app.restart()
        assert app.screen is Screen.DASHBOARD
        assert app.model.profile is None
        assert not app.session.is_active

    asyncio.run(scenario())
    assert ai.summary_calls == 2


def test_timer_expiry_moves_to_summary_once(sql_store: SqlSocialStore) -> None:
    ai = StubAI()
    app = SkillSyncApp(sql_store, ai, session_duration=5, sleep=fast_sleep)

    async def scenario() -> None:
        await _active_session(app)
        for _ in range(200):
            if app.screen is Screen.SESSION_SUMMARY:
                break
            await asyncio.sleep(0)

    asyncio.run(scenario())
    assert app.screen is Screen.SESSION_SUMMARY
    assert ai.summary_calls == 1


def test_logout_clears_user_chat_and_session(sql_store: SqlSocialStore) -> None:
    app = SkillSyncApp(sql_store, StubAI(), sleep=idle_sleep)

    async def scenario() -> None:
        bob = await sql_store.sign_up("bob@example.com", PASSWORD)
        assert bob.identity is not None
        await sql_store.create_user_profile("bob@example.com", "Bob", bob.identity.id)
        await _signed_up(app, "alice@example.com")
        await app.open_chat(bob.identity.id)
        assert app.poller.is_polling
        await app.logout()

    asyncio.run(scenario())
    assert app.screen is Screen.HOME
    assert app.current_user is None
    assert app.model.active_chat_user_id is None
    assert not app.poller.is_polling
    assert app.users == []


def test_chat_send_shows_message_and_close_stops_poller(sql_store: SqlSocialStore) -> None:
    app = SkillSyncApp(sql_store, StubAI(), sleep=idle_sleep)

    async def scenario() -> None:
        bob = await sql_store.sign_up("bob@example.com", PASSWORD)
        assert bob.identity is not None
        await sql_store.create_user_profile("bob@example.com", "Bob", bob.identity.id)
        await _signed_up(app, "alice@example.com")

        await app.open_chat(bob.identity.id)
        assert app.active_chat_partner is not None
        assert app.active_chat_partner.name == "Bob"
        draft = await app.improve_draft("see you")
        assert draft == "Kindly, see you"
        await app.send_message(draft)
        assert [message.content for message in app.thread_messages] == ["Kindly, see you"]

        await app.close_chat()
        assert not app.poller.is_polling
        assert app.thread_messages == []

    asyncio.run(scenario())


def test_social_handlers_merge_into_cache(sql_store: SqlSocialStore) -> None:
    app = SkillSyncApp(sql_store, StubAI(), sleep=idle_sleep)

    async def scenario() -> None:
        bob = await sql_store.sign_up("bob@example.com", PASSWORD)
        assert bob.identity is not None
        await sql_store.create_user_profile("bob@example.com", "Bob", bob.identity.id)
        await _signed_up(app, "alice@example.com")

        await app.follow_toggle(bob.identity.id)
        assert app.current_user is not None
        assert app.current_user.following == [bob.identity.id]

        created = await app.create_post("hello world")
        assert created is not None and created.ok
        await app.reconciler.drain()
        post_id = app.posts[0].id

        await app.like_toggle(post_id)
        await app.add_comment(post_id, "first!")
        await app.update_profile("Guitar teacher")

        assert app.posts[0].likes == [app.model.current_user_id]
        assert [comment.content for comment in app.posts[0].comments] == ["first!"]
        assert app.current_user.about_me == "Guitar teacher"

        rejected = await app.create_post("   ")
        assert rejected is not None and not rejected.ok

    asyncio.run(scenario())


class ExplodingStore:
    def __init__(self) -> None:
        self.explode = True

    async def current_session(self) -> None:
        if self.explode:
            raise RuntimeError("unexpected payload shape")
        return None


def test_unexpected_error_sets_fatal_state_until_reload() -> None:
    store = ExplodingStore()
    app = SkillSyncApp(store, StubAI(), sleep=idle_sleep)  # type: ignore[arg-type]

    async def scenario() -> None:
        await app.launch()
        assert app.model.fatal_error == "unexpected payload shape"
        await app.open_login()
        assert app.screen is Screen.HOME

        store.explode = False
        await app.reload()

    asyncio.run(scenario())
    assert app.model.fatal_error is None
    assert app.screen is Screen.HOME


def test_gemini_error_with_list_body_is_a_match_failure(sql_store: SqlSocialStore) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json=[{"error": {"code": 400, "message": "API key not valid"}}])

    ai = SkillSyncAI(GeminiClient("test-key", transport=httpx.MockTransport(handler)))
    app = SkillSyncApp(sql_store, ai, sleep=idle_sleep)

    async def scenario() -> None:
        await _signed_up(app, "alice@example.com")
        await app.start_session()
        await app.start_matching("guitar", "french")
        await app.aclose()

    asyncio.run(scenario())
    assert app.model.fatal_error is None
    assert app.screen is Screen.SESSION_ONBOARDING
    assert app.error == MATCH_FAILED_MESSAGE


def test_malformed_backend_row_leaves_app_usable(caplog: pytest.LogCaptureFixture) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/auth/v1/user":
            return httpx.Response(200, json={"id": "u1", "email": "alice@example.com"})
        if request.url.path == "/rest/v1/users":
            return httpx.Response(200, json=[{"id": "u1", "name": "Alice"}])
        return httpx.Response(200, json=[{"id": "p1", "author_id": "u1", "type": "link", "content": "?"}])

    store = SupabaseStore(
        "https://project.supabase.co",
        "anon-key",
        access_token="jwt-1",
        transport=httpx.MockTransport(handler),
    )
    app = SkillSyncApp(store, StubAI(), sleep=idle_sleep)

    async def scenario() -> None:
        await app.launch()
        await app.aclose()

    asyncio.run(scenario())
    assert app.model.fatal_error is None
    assert app.screen is Screen.HOME
    assert app.posts == []
    assert "unexpected row" in caplog.text


def test_view_own_profile_from_active_session_stops_countdown(sql_store: SqlSocialStore) -> None:
    app = SkillSyncApp(sql_store, StubAI(), sleep=fast_sleep)

    async def scenario() -> None:
        await _active_session(app)
        assert app.session.is_counting
        user_id = app.model.current_user_id
        assert user_id is not None

        await app.view_profile(user_id)
        assert app.screen is Screen.PROFILE_VIEWING
        assert app.viewing_profile is not None
        assert not app.session.is_counting
        assert not app.session.is_active
        assert app.model.match is None

        remaining = app.session.remaining
        for _ in range(20):
            await asyncio.sleep(0)
        assert app.session.remaining == remaining

    asyncio.run(scenario())


class CoachCrashAI(StubAI):
    async def generate_coach_guidance(self, profile: UserProfile, partner: MatchedUser) -> AiCoachResponse:
        raise RuntimeError("coach payload exploded")


def test_unexpected_background_coach_failure_is_fatal(sql_store: SqlSocialStore) -> None:
    app = SkillSyncApp(sql_store, CoachCrashAI(), sleep=idle_sleep)

    async def scenario() -> None:
        await _active_session(app)
        for _ in range(5):
            await asyncio.sleep(0)
        await app.aclose()

    asyncio.run(scenario())
    assert app.model.fatal_error == "coach payload exploded"
