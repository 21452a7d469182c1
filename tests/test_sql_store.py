"""Local SQLAlchemy store: auth, profiles, posts, toggles and messages."""
from __future__ import annotations

import asyncio

import pytest

from skillsync.clients import SqlSocialStore
from skillsync.errors import AuthError, StoreError
from skillsync.schemas import PostType


async def _account(store: SqlSocialStore, email: str, *, profile: bool = True) -> str:
    result = await store.sign_up(email, "s3cret-pass")
    assert result.identity is not None
    if profile:
        await store.create_user_profile(email, email.split("@")[0], result.identity.id)
    return result.identity.id


def test_sign_up_then_sign_in(sql_store: SqlSocialStore) -> None:
    async def scenario() -> None:
        result = await sql_store.sign_up("Alice@Example.com", "s3cret-pass")
        assert result.identity is not None
        assert result.identity.email == "alice@example.com"
        assert not result.pending_confirmation

        session = await sql_store.current_session()
        assert session == result.identity

        await sql_store.sign_out()
        assert await sql_store.current_session() is None

        identity = await sql_store.sign_in("alice@example.com", "s3cret-pass")
        assert identity.id == result.identity.id

    asyncio.run(scenario())


def test_bad_credentials_and_duplicates(sql_store: SqlSocialStore) -> None:
    async def scenario() -> None:
        await sql_store.sign_up("bob@example.com", "pw-123456")
        with pytest.raises(AuthError, match="Invalid login credentials"):
            await sql_store.sign_in("bob@example.com", "wrong")
        with pytest.raises(AuthError, match="already registered"):
            await sql_store.sign_up("bob@example.com", "pw-123456")

    asyncio.run(scenario())


def test_sign_up_pending_confirmation(make_sql_store) -> None:
    store = make_sql_store(require_email_confirmation=True)

    async def scenario() -> None:
        result = await store.sign_up("carol@example.com", "pw-123456")
        assert result.identity is None
        assert result.pending_confirmation
        with pytest.raises(AuthError, match="Email not confirmed"):
            await store.sign_in("carol@example.com", "pw-123456")
        store.confirm_email("carol@example.com")
        identity = await store.sign_in("carol@example.com", "pw-123456")
        assert identity.email == "carol@example.com"

    asyncio.run(scenario())


def test_account_without_profile_is_not_listed(sql_store: SqlSocialStore) -> None:
    async def scenario() -> None:
        user_id = await _account(sql_store, "dave@example.com", profile=False)
        assert await sql_store.list_users() == []

        await sql_store.create_user_profile("dave@example.com", "dave", user_id)
        users = await sql_store.list_users()
        assert [user.name for user in users] == ["dave"]

        with pytest.raises(StoreError) as excinfo:
            await sql_store.create_user_profile("dave@example.com", "dave", user_id)
        assert excinfo.value.status_code == 409

    asyncio.run(scenario())


def test_follow_toggle_builds_edges(sql_store: SqlSocialStore) -> None:
    async def scenario() -> None:
        alice = await _account(sql_store, "alice@example.com")
        bob = await _account(sql_store, "bob@example.com")

        assert (await sql_store.toggle_follow(alice, bob)).action == "followed"
        users = {user.id: user for user in await sql_store.list_users()}
        assert users[alice].following == [bob]
        assert users[bob].followers == [alice]

        assert (await sql_store.toggle_follow(alice, bob)).action == "unfollowed"
        users = {user.id: user for user in await sql_store.list_users()}
        assert users[alice].following == []

        with pytest.raises(StoreError):
            await sql_store.toggle_follow(alice, alice)

    asyncio.run(scenario())


def test_posts_likes_and_comments(sql_store: SqlSocialStore) -> None:
    async def scenario() -> None:
        alice = await _account(sql_store, "alice@example.com")
        bob = await _account(sql_store, "bob@example.com")

        first = await sql_store.create_post(alice, "", "first post")
        second = await sql_store.create_post(
            bob, "", "", post_type=PostType.PHOTO, media_url="https://img.example/1.png"
        )
        assert second.type is PostType.PHOTO

        liked = await sql_store.toggle_like(first.id, bob)
        assert (liked.action, liked.like_count) == ("liked", 1)
        unliked = await sql_store.toggle_like(first.id, bob)
        assert (unliked.action, unliked.like_count) == ("unliked", 0)
        await sql_store.toggle_like(first.id, bob)

        comment = await sql_store.create_comment(first.id, bob, " nice ")
        assert comment.content == "nice"
        with pytest.raises(StoreError):
            await sql_store.create_comment(first.id, bob, "   ")

        posts = await sql_store.list_posts()
        assert [post.id for post in posts] == [second.id, first.id]
        assert posts[1].likes == [bob]
        assert [item.id for item in posts[1].comments] == [comment.id]
        assert posts[0].media_url == "https://img.example/1.png"

    asyncio.run(scenario())


def test_update_user_only_accepts_profile_fields(sql_store: SqlSocialStore) -> None:
    async def scenario() -> None:
        alice = await _account(sql_store, "alice@example.com")
        updated = await sql_store.update_user(alice, {"about_me": "I teach guitar"})
        assert updated.about_me == "I teach guitar"
        with pytest.raises(StoreError, match="Unknown user fields"):
            await sql_store.update_user(alice, {"email": "x@example.com"})

    asyncio.run(scenario())


def test_messages_thread_is_ascending(sql_store: SqlSocialStore) -> None:
    async def scenario() -> None:
        alice = await _account(sql_store, "alice@example.com")
        bob = await _account(sql_store, "bob@example.com")
        carol = await _account(sql_store, "carol@example.com")

        await sql_store.send_message(alice, bob, "hi bob")
        await sql_store.send_message(bob, alice, "hi alice")
        await sql_store.send_message(alice, carol, "hi carol")

        thread = await sql_store.list_messages(bob, alice)
        assert [message.content for message in thread] == ["hi bob", "hi alice"]

        with pytest.raises(StoreError):
            await sql_store.send_message(alice, bob, "  ")

    asyncio.run(scenario())
