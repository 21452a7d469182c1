"""Contract consumed from the identity and social graph store."""
from __future__ import annotations

from typing import Any, Mapping, Protocol

from ..schemas import (
    Comment,
    FollowToggleResult,
    LikeToggleResult,
    Message,
    Post,
    PostType,
    SignUpResult,
    User,
    UserIdentity,
)


class SocialStore(Protocol):
    async def current_session(self) -> UserIdentity | None:
        """Return the identity behind a still-valid auth session, if any."""
        ...

    async def sign_up(self, email: str, password: str) -> SignUpResult:
        ...

    async def sign_in(self, email: str, password: str) -> UserIdentity:
        ...

    async def sign_out(self) -> None:
        ...

    async def list_users(self) -> list[User]:
        ...

    async def update_user(self, user_id: str, fields: Mapping[str, Any]) -> User:
        ...

    async def list_posts(self) -> list[Post]:
        """Return posts newest first with like actor ids and nested comments."""
        ...

    async def create_post(
        self,
        author_id: str,
        title: str,
        content: str,
        *,
        post_type: PostType = PostType.TEXT,
        media_url: str | None = None,
    ) -> Post:
        ...

    async def create_comment(self, post_id: str, author_id: str, content: str) -> Comment:
        ...

    async def toggle_like(self, post_id: str, user_id: str) -> LikeToggleResult:
        ...

    async def toggle_follow(self, follower_id: str, target_id: str) -> FollowToggleResult:
        ...

    async def list_messages(self, user_a: str, user_b: str) -> list[Message]:
        """Return the two-party thread in ascending time order."""
        ...

    async def send_message(self, sender_id: str, receiver_id: str, content: str) -> Message:
        ...

    async def create_user_profile(self, email: str, name: str, user_id: str) -> None:
        ...


__all__ = ["SocialStore"]
