"""Merge social mutations into the client-side caches.

Every user-initiated social action (follow, like, comment, post, profile
edit) goes through :meth:`SocialReconciler.apply`. The store call is made
first; its answer is then merged into :class:`SocialCache` by swapping in
updated copies, so a failure at any point leaves the previous cache intact.

Posts are merged optimistically: a locally completed view is prepended at
once and a full refetch reconciles server-side fields afterwards. Every
other mutation waits for the store and merges only its answer. The choice
is a per-type :class:`MergePolicy` that callers may override.
"""
from __future__ import annotations

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Mapping, Union

from ..clients.store import SocialStore
from ..errors import StoreError
from ..schemas import Comment, FollowToggleResult, LikeToggleResult, Post, PostDraft, User

logger = logging.getLogger(__name__)


class MergePolicy(str, Enum):
    WAIT_THEN_MERGE = "wait_then_merge"
    OPTIMISTIC = "optimistic"


@dataclass(frozen=True, slots=True)
class FollowToggle:
    actor_id: str
    target_id: str


@dataclass(frozen=True, slots=True)
class LikeToggle:
    post_id: str
    actor_id: str


@dataclass(frozen=True, slots=True)
class CommentAdd:
    post_id: str
    actor_id: str
    content: str


@dataclass(frozen=True, slots=True)
class PostCreate:
    author_id: str
    draft: PostDraft


@dataclass(frozen=True, slots=True)
class ProfileUpdate:
    user_id: str
    about_me: str


Mutation = Union[FollowToggle, LikeToggle, CommentAdd, PostCreate, ProfileUpdate]

DEFAULT_POLICIES: dict[type, MergePolicy] = {
    FollowToggle: MergePolicy.WAIT_THEN_MERGE,
    LikeToggle: MergePolicy.WAIT_THEN_MERGE,
    CommentAdd: MergePolicy.WAIT_THEN_MERGE,
    PostCreate: MergePolicy.OPTIMISTIC,
    ProfileUpdate: MergePolicy.WAIT_THEN_MERGE,
}


@dataclass(slots=True)
class MutationResult:
    ok: bool
    merged: bool = False
    error: str | None = None
    value: Any = None


class SocialCache:
    """Cached users and feed; may be stale relative to the store."""

    def __init__(
        self,
        users: Iterable[User] = (),
        posts: Iterable[Post] = (),
        current_user_id: str | None = None,
    ) -> None:
        self.users: dict[str, User] = {user.id: user for user in users}
        self.posts: list[Post] = list(posts)
        self.current_user_id = current_user_id

    @property
    def current_user(self) -> User | None:
        # Derived from the same mapping as every other user view.
        if self.current_user_id is None:
            return None
        return self.users.get(self.current_user_id)

    def user(self, user_id: str | None) -> User | None:
        if user_id is None:
            return None
        return self.users.get(user_id)

    def post(self, post_id: str) -> Post | None:
        for post in self.posts:
            if post.id == post_id:
                return post
        return None

    def put_user(self, user: User) -> None:
        self.users = {**self.users, user.id: user}

    def put_post(self, post: Post) -> None:
        self.posts = [post if item.id == post.id else item for item in self.posts]

    def prepend_post(self, post: Post) -> None:
        self.posts = [post, *(item for item in self.posts if item.id != post.id)]

    def replace_all(self, users: Iterable[User], posts: Iterable[Post]) -> None:
        self.users = {user.id: user for user in users}
        self.posts = list(posts)

    def clear(self) -> None:
        self.users = {}
        self.posts = []
        self.current_user_id = None


def _with(values: list[str], item: str) -> list[str]:
    return values if item in values else [*values, item]


def _without(values: list[str], item: str) -> list[str]:
    return [value for value in values if value != item]


def _pending_key(mutation: Mutation) -> tuple[str, ...]:
    if isinstance(mutation, FollowToggle):
        return ("follow", mutation.actor_id, mutation.target_id)
    if isinstance(mutation, LikeToggle):
        return ("like", mutation.post_id, mutation.actor_id)
    if isinstance(mutation, CommentAdd):
        return ("comment", mutation.post_id, mutation.actor_id)
    if isinstance(mutation, PostCreate):
        return ("post", mutation.author_id)
    return ("profile", mutation.user_id)


class SocialReconciler:
    """Apply mutations against the store and merge the outcome into the cache."""

    def __init__(
        self,
        store: SocialStore,
        cache: SocialCache,
        policies: Mapping[type, MergePolicy] | None = None,
    ) -> None:
        self._store = store
        self.cache = cache
        self.policies: dict[type, MergePolicy] = {**DEFAULT_POLICIES, **(policies or {})}
        self._pending: Counter[tuple[str, ...]] = Counter()
        self._background: set[asyncio.Task[bool]] = set()
        self._handlers: dict[type, tuple[Callable[[Any], Awaitable[Any]], Callable[[Any, Any], bool]]] = {
            FollowToggle: (self._call_follow, self._merge_follow),
            LikeToggle: (self._call_like, self._merge_like),
            CommentAdd: (self._call_comment, self._merge_comment),
            PostCreate: (self._call_post, self._merge_post),
            ProfileUpdate: (self._call_profile, self._merge_profile),
        }

    def policy_for(self, mutation: Mutation) -> MergePolicy:
        return self.policies.get(type(mutation), MergePolicy.WAIT_THEN_MERGE)

    def is_pending(self, mutation: Mutation) -> bool:
        """Return True while a mutation on the same entity is awaiting the store."""

        return self._pending[_pending_key(mutation)] > 0

    async def apply(self, mutation: Mutation) -> MutationResult:
        try:
            call, merge = self._handlers[type(mutation)]
        except KeyError:
            raise TypeError(f"Unsupported mutation: {type(mutation).__name__}") from None

        rejection = self._precheck(mutation)
        if rejection is not None:
            logger.warning("Mutation rejected | mutation=%s reason=%s", type(mutation).__name__, rejection)
            return MutationResult(ok=False, error=rejection)

        key = _pending_key(mutation)
        self._pending[key] += 1
        try:
            answer = await call(mutation)
        except StoreError as exc:
            logger.exception("Mutation failed | mutation=%s status=%s", type(mutation).__name__, exc.status_code)
            return MutationResult(ok=False, error=str(exc))
        finally:
            self._pending[key] -= 1
            if self._pending[key] <= 0:
                del self._pending[key]

        policy = self.policy_for(mutation)
        if policy is MergePolicy.OPTIMISTIC and isinstance(mutation, PostCreate):
            answer = self._complete_post(mutation, answer)
        merged = merge(mutation, answer)
        if policy is MergePolicy.OPTIMISTIC:
            self.schedule_refresh()
        return MutationResult(ok=True, merged=merged, value=answer)

    def _precheck(self, mutation: Mutation) -> str | None:
        if isinstance(mutation, FollowToggle) and mutation.actor_id == mutation.target_id:
            return "Cannot follow yourself"
        if isinstance(mutation, CommentAdd) and not mutation.content.strip():
            return "Comment cannot be empty"
        return None

    # ------------------------------------------------------------------
    # Store calls
    # ------------------------------------------------------------------

    async def _call_follow(self, mutation: FollowToggle) -> FollowToggleResult:
        return await self._store.toggle_follow(mutation.actor_id, mutation.target_id)

    async def _call_like(self, mutation: LikeToggle) -> LikeToggleResult:
        return await self._store.toggle_like(mutation.post_id, mutation.actor_id)

    async def _call_comment(self, mutation: CommentAdd) -> Comment:
        return await self._store.create_comment(mutation.post_id, mutation.actor_id, mutation.content.strip())

    async def _call_post(self, mutation: PostCreate) -> Post:
        draft = mutation.draft
        return await self._store.create_post(
            mutation.author_id,
            draft.title or "",
            draft.content,
            post_type=draft.type,
            media_url=draft.media_url,
        )

    async def _call_profile(self, mutation: ProfileUpdate) -> User:
        return await self._store.update_user(mutation.user_id, {"about_me": mutation.about_me})

    # ------------------------------------------------------------------
    # Merges
    # ------------------------------------------------------------------

    def _merge_follow(self, mutation: FollowToggle, answer: FollowToggleResult) -> bool:
        actor = self.cache.user(mutation.actor_id)
        target = self.cache.user(mutation.target_id)
        if actor is None or target is None:
            logger.error(
                "Follow merge skipped; user not cached | actor=%s target=%s", mutation.actor_id, mutation.target_id
            )
            return False

        if answer.action == "followed":
            following = _with(actor.following, target.id)
            followers = _with(target.followers, actor.id)
        else:
            following = _without(actor.following, target.id)
            followers = _without(target.followers, actor.id)

        self.cache.users = {
            **self.cache.users,
            actor.id: actor.model_copy(update={"following": following}),
            target.id: target.model_copy(update={"followers": followers}),
        }
        return True

    def _merge_like(self, mutation: LikeToggle, answer: LikeToggleResult) -> bool:
        post = self.cache.post(mutation.post_id)
        if post is None:
            logger.warning("Like merge skipped; post not cached | post=%s", mutation.post_id)
            return False
        if answer.action == "liked":
            likes = _with(post.likes, mutation.actor_id)
        else:
            likes = _without(post.likes, mutation.actor_id)
        self.cache.put_post(post.model_copy(update={"likes": likes}))
        return True

    def _merge_comment(self, mutation: CommentAdd, answer: Comment) -> bool:
        post = self.cache.post(mutation.post_id)
        if post is None:
            logger.warning("Comment merge skipped; post not cached | post=%s", mutation.post_id)
            return False
        self.cache.put_post(post.model_copy(update={"comments": [*post.comments, answer]}))
        return True

    def _complete_post(self, mutation: PostCreate, stored: Post) -> Post:
        draft = mutation.draft
        return Post(
            id=stored.id,
            author_id=mutation.author_id,
            type=draft.type,
            content=draft.content,
            title=draft.title,
            media_url=draft.media_url,
            likes=[],
            comments=[],
            timestamp=stored.timestamp,
        )

    def _merge_post(self, mutation: PostCreate, answer: Post) -> bool:
        self.cache.prepend_post(answer)
        return True

    def _merge_profile(self, mutation: ProfileUpdate, answer: User) -> bool:
        cached = self.cache.user(mutation.user_id)
        if cached is None:
            self.cache.put_user(answer)
        else:
            self.cache.put_user(cached.model_copy(update={"about_me": answer.about_me or mutation.about_me}))
        return True

    # ------------------------------------------------------------------
    # Refetch
    # ------------------------------------------------------------------

    async def refresh(self) -> bool:
        """Reload users and posts together; on failure the caches are left as they were."""

        try:
            users, posts = await asyncio.gather(self._store.list_users(), self._store.list_posts())
        except StoreError:
            logger.exception("Refreshing users and posts failed")
            return False
        self.cache.replace_all(users, posts)
        logger.debug("Caches refreshed | users=%s posts=%s", len(users), len(posts))
        return True

    def schedule_refresh(self) -> asyncio.Task[bool]:
        task = asyncio.get_running_loop().create_task(self.refresh())
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def drain(self) -> None:
        """Wait for scheduled refetches to finish."""

        while self._background:
            await asyncio.gather(*list(self._background))

    def cancel_background(self) -> None:
        for task in list(self._background):
            task.cancel()
        self._background.clear()


__all__ = [
    "CommentAdd",
    "DEFAULT_POLICIES",
    "FollowToggle",
    "LikeToggle",
    "MergePolicy",
    "Mutation",
    "MutationResult",
    "PostCreate",
    "ProfileUpdate",
    "SocialCache",
    "SocialReconciler",
]
