"""Merge behaviour of the social reconciler against an in-memory flip-state store."""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Mapping

import pytest

from skillsync.errors import StoreError
from skillsync.schemas import Comment, FollowToggleResult, LikeToggleResult, Post, PostDraft, PostType, User
from skillsync.services.reconciler import (
    CommentAdd,
    FollowToggle,
    LikeToggle,
    MergePolicy,
    PostCreate,
    ProfileUpdate,
    SocialCache,
    SocialReconciler,
)


class FlipStore:
    """Keeps its own edges and flips them like the real backends do."""

    def __init__(self, users: list[User], posts: list[Post]) -> None:
        self.users = {user.id: user for user in users}
        self.posts = list(posts)
        self.follows: set[tuple[str, str]] = set()
        self.likes: set[tuple[str, str]] = {(post.id, uid) for post in posts for uid in post.likes}
        self.fail = False
        self.calls: list[str] = []
        self._counter = 0

    def _check(self, name: str) -> None:
        self.calls.append(name)
        if self.fail:
            raise StoreError(f"{name} failed", status_code=500)

    def _next_id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}{self._counter}"

    async def toggle_follow(self, follower_id: str, target_id: str) -> FollowToggleResult:
        self._check("toggle_follow")
        edge = (follower_id, target_id)
        if edge in self.follows:
            self.follows.discard(edge)
            return FollowToggleResult(action="unfollowed")
        self.follows.add(edge)
        return FollowToggleResult(action="followed")

    async def toggle_like(self, post_id: str, user_id: str) -> LikeToggleResult:
        self._check("toggle_like")
        edge = (post_id, user_id)
        if edge in self.likes:
            self.likes.discard(edge)
            return LikeToggleResult(action="unliked", like_count=0)
        self.likes.add(edge)
        return LikeToggleResult(action="liked", like_count=99)

    async def create_comment(self, post_id: str, author_id: str, content: str) -> Comment:
        self._check("create_comment")
        return Comment(id=self._next_id("c"), author_id=author_id, content=content)

    async def create_post(
        self,
        author_id: str,
        title: str,
        content: str,
        *,
        post_type: PostType = PostType.TEXT,
        media_url: str | None = None,
    ) -> Post:
        self._check("create_post")
        post = Post(id=self._next_id("p"), author_id=author_id, type=post_type, content=content, title=title or None)
        self.posts.insert(0, post)
        return post

    async def update_user(self, user_id: str, fields: Mapping[str, Any]) -> User:
        self._check("update_user")
        updated = self.users[user_id].model_copy(update=dict(fields))
        self.users[user_id] = updated
        return updated

    async def list_users(self) -> list[User]:
        self._check("list_users")
        return list(self.users.values())

    async def list_posts(self) -> list[Post]:
        self._check("list_posts")
        return list(self.posts)


def _users() -> list[User]:
    return [User(id="alice", name="Alice"), User(id="bob", name="Bob")]


def _posts() -> list[Post]:
    return [Post(id="p0", author_id="bob", content="hello", timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc))]


@pytest.fixture
def store() -> FlipStore:
    return FlipStore(_users(), _posts())


@pytest.fixture
def reconciler(store: FlipStore) -> SocialReconciler:
    cache = SocialCache(_users(), _posts(), current_user_id="alice")
    return SocialReconciler(store, cache)


def _assert_follow_invariants(cache: SocialCache) -> None:
    for user in cache.users.values():
        assert user.id not in user.following
        assert user.id not in user.followers
        assert len(user.following) == len(set(user.following))
        assert len(user.followers) == len(set(user.followers))


def test_follow_toggle_sequence_keeps_sets_consistent(reconciler: SocialReconciler) -> None:
    async def scenario() -> list[bool]:
        following_states = []
        for _ in range(5):
            result = await reconciler.apply(FollowToggle("alice", "bob"))
            assert result.ok and result.merged
            _assert_follow_invariants(reconciler.cache)
            following_states.append("bob" in reconciler.cache.users["alice"].following)
        return following_states

    assert asyncio.run(scenario()) == [True, False, True, False, True]
    assert reconciler.cache.users["bob"].followers == ["alice"]
    # The current-user view reads from the same mapping.
    assert reconciler.cache.current_user is not None
    assert reconciler.cache.current_user.following == ["bob"]


def test_followed_answer_is_idempotent_when_edge_already_cached(store: FlipStore) -> None:
    cache = SocialCache(
        [User(id="alice", following=["bob"]), User(id="bob", followers=["alice"])],
        current_user_id="alice",
    )
    reconciler = SocialReconciler(store, cache)

    result = asyncio.run(reconciler.apply(FollowToggle("alice", "bob")))

    assert result.value.action == "followed"
    assert cache.users["alice"].following == ["bob"]
    assert cache.users["bob"].followers == ["alice"]


def test_self_follow_is_rejected_before_store_call(reconciler: SocialReconciler, store: FlipStore) -> None:
    result = asyncio.run(reconciler.apply(FollowToggle("alice", "alice")))
    assert not result.ok
    assert store.calls == []
    _assert_follow_invariants(reconciler.cache)


def test_follow_with_uncached_user_is_not_merged(reconciler: SocialReconciler) -> None:
    before = dict(reconciler.cache.users)
    result = asyncio.run(reconciler.apply(FollowToggle("alice", "ghost")))
    assert result.ok
    assert not result.merged
    assert reconciler.cache.users == before


def test_like_toggle_changes_size_by_one_and_round_trips(reconciler: SocialReconciler) -> None:
    original = list(reconciler.cache.posts[0].likes)

    async def scenario() -> list[int]:
        sizes = []
        for _ in range(2):
            await reconciler.apply(LikeToggle("p0", "alice"))
            sizes.append(len(reconciler.cache.posts[0].likes))
        return sizes

    sizes = asyncio.run(scenario())
    assert sizes == [len(original) + 1, len(original)]
    assert reconciler.cache.posts[0].likes == original


def test_liked_twice_from_store_keeps_single_entry(store: FlipStore) -> None:
    # Two overlapping clicks both resolve as "liked" (e.g. the store raced): still one entry.
    class AlwaysLiked(FlipStore):
        async def toggle_like(self, post_id: str, user_id: str) -> LikeToggleResult:
            return LikeToggleResult(action="liked")

    cache = SocialCache(_users(), _posts(), current_user_id="alice")
    reconciler = SocialReconciler(AlwaysLiked(_users(), _posts()), cache)

    async def scenario() -> None:
        await asyncio.gather(
            reconciler.apply(LikeToggle("p0", "alice")),
            reconciler.apply(LikeToggle("p0", "alice")),
        )

    asyncio.run(scenario())
    assert cache.posts[0].likes == ["alice"]


def test_like_count_from_store_is_ignored(reconciler: SocialReconciler) -> None:
    asyncio.run(reconciler.apply(LikeToggle("p0", "alice")))
    assert reconciler.cache.posts[0].likes == ["alice"]


def test_comment_waits_for_store_comment(reconciler: SocialReconciler) -> None:
    result = asyncio.run(reconciler.apply(CommentAdd("p0", "alice", "  nice post  ")))
    assert result.ok
    comments = reconciler.cache.posts[0].comments
    assert [comment.id for comment in comments] == ["c1"]
    assert comments[0].content == "nice post"


def test_blank_comment_is_rejected(reconciler: SocialReconciler, store: FlipStore) -> None:
    result = asyncio.run(reconciler.apply(CommentAdd("p0", "alice", "   ")))
    assert not result.ok
    assert store.calls == []


def test_post_create_is_optimistic_then_refetched(reconciler: SocialReconciler, store: FlipStore) -> None:
    draft = PostDraft(type=PostType.ARTICLE, content="Long read", title="On guitars")

    async def scenario() -> list[str]:
        result = await reconciler.apply(PostCreate("alice", draft))
        assert result.ok
        head = reconciler.cache.posts[0]
        assert head.author_id == "alice"
        assert head.type is PostType.ARTICLE
        assert head.title == "On guitars"
        assert head.likes == []
        assert head.comments == []
        await reconciler.drain()
        return list(store.calls)

    calls = asyncio.run(scenario())
    assert calls[0] == "create_post"
    assert set(calls[1:]) == {"list_users", "list_posts"}
    assert [post.id for post in reconciler.cache.posts] == ["p1", "p0"]


def test_post_create_can_be_configured_to_wait(store: FlipStore) -> None:
    cache = SocialCache(_users(), _posts(), current_user_id="alice")
    reconciler = SocialReconciler(store, cache, {PostCreate: MergePolicy.WAIT_THEN_MERGE})

    result = asyncio.run(reconciler.apply(PostCreate("alice", PostDraft(content="hi"))))

    assert result.ok
    assert store.calls == ["create_post"]
    assert cache.posts[0].id == "p1"


def test_profile_update_keeps_current_user_view_coherent(reconciler: SocialReconciler) -> None:
    result = asyncio.run(reconciler.apply(ProfileUpdate("alice", "I teach guitar")))
    assert result.ok
    assert reconciler.cache.users["alice"].about_me == "I teach guitar"
    assert reconciler.cache.current_user is not None
    assert reconciler.cache.current_user.about_me == "I teach guitar"


@pytest.mark.parametrize(
    "mutation",
    [
        FollowToggle("alice", "bob"),
        LikeToggle("p0", "alice"),
        CommentAdd("p0", "alice", "hi"),
        PostCreate("alice", PostDraft(content="hi")),
        ProfileUpdate("alice", "new"),
    ],
)
def test_store_failure_leaves_cache_untouched(reconciler: SocialReconciler, store: FlipStore, mutation: object) -> None:
    store.fail = True
    users_before = {key: value.model_copy(deep=True) for key, value in reconciler.cache.users.items()}
    posts_before = [post.model_copy(deep=True) for post in reconciler.cache.posts]

    result = asyncio.run(reconciler.apply(mutation))  # type: ignore[arg-type]

    assert not result.ok
    assert result.error
    assert reconciler.cache.users == users_before
    assert reconciler.cache.posts == posts_before
    assert not reconciler.is_pending(mutation)  # type: ignore[arg-type]


def test_refresh_failure_keeps_caches(reconciler: SocialReconciler, store: FlipStore) -> None:
    store.fail = True
    before = list(reconciler.cache.posts)
    assert asyncio.run(reconciler.refresh()) is False
    assert reconciler.cache.posts == before


def test_is_pending_while_toggle_in_flight(store: FlipStore) -> None:
    release = asyncio.Event()

    class SlowStore(FlipStore):
        async def toggle_like(self, post_id: str, user_id: str) -> LikeToggleResult:
            await release.wait()
            return await super().toggle_like(post_id, user_id)

    cache = SocialCache(_users(), _posts(), current_user_id="alice")
    reconciler = SocialReconciler(SlowStore(_users(), _posts()), cache)
    mutation = LikeToggle("p0", "alice")

    async def scenario() -> tuple[bool, bool, bool]:
        task = asyncio.ensure_future(reconciler.apply(mutation))
        await asyncio.sleep(0)
        during = reconciler.is_pending(mutation)
        other = reconciler.is_pending(LikeToggle("p0", "bob"))
        release.set()
        await task
        return during, other, reconciler.is_pending(mutation)

    during, other, after = asyncio.run(scenario())
    assert during is True
    assert other is False
    assert after is False
