"""Local social store backed by SQLAlchemy, used for development and tests."""
from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any, Callable, Mapping, TypeVar
from uuid import UUID

from passlib.context import CryptContext
from sqlalchemy import or_, and_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from ..errors import AuthError, StoreError
from ..models import Account, Follow, Message as MessageRecord, Post as PostRecord, PostComment, PostLike
from ..models import User as UserRecord
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

logger = logging.getLogger(__name__)

_pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

_UPDATABLE_USER_FIELDS = frozenset({"name", "country", "profile_picture", "skills", "bio", "about_me"})

T = TypeVar("T")


def _as_uuid(value: str, *, field: str = "id") -> UUID:
    try:
        return UUID(str(value))
    except ValueError as exc:
        raise StoreError(f"Invalid {field}: {value!r}") from exc


def _comment_schema(record: PostComment) -> Comment:
    return Comment(
        id=str(record.id),
        author_id=str(record.author_id),
        content=record.content,
        timestamp=record.created_at,
    )


def _post_schema(record: PostRecord) -> Post:
    return Post(
        id=str(record.id),
        author_id=str(record.author_id),
        type=PostType(record.kind or PostType.TEXT.value),
        content=record.content or "",
        title=record.title,
        media_url=record.media_url,
        likes=[str(like.user_id) for like in record.likes],
        comments=[_comment_schema(comment) for comment in record.comments],
        timestamp=record.created_at,
    )


def _message_schema(record: MessageRecord) -> Message:
    return Message(
        id=str(record.id),
        sender_id=str(record.sender_id),
        receiver_id=str(record.receiver_id),
        content=record.content,
        timestamp=record.timestamp,
    )


class SqlSocialStore:
    """Implements :class:`~skillsync.clients.store.SocialStore` over a SQLAlchemy session factory.

    Identities (``accounts``) and profiles (``users``) are separate tables, so an
    account can authenticate before its profile row exists. With
    ``require_email_confirmation`` set, sign-up leaves the account unconfirmed and
    reports the confirmation as pending.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        require_email_confirmation: bool = False,
        session_user_id: str | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._require_confirmation = require_email_confirmation
        self._session_user_id = session_user_id

    async def _run(self, func: Callable[[Session], T]) -> T:
        def _work() -> T:
            with self._session_factory() as db:
                try:
                    return func(db)
                except SQLAlchemyError as exc:
                    db.rollback()
                    logger.error("Local store query failed: %s", type(exc).__name__)
                    raise StoreError("Local store query failed") from exc

        return await asyncio.to_thread(_work)

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    async def current_session(self) -> UserIdentity | None:
        user_id = self._session_user_id
        if not user_id:
            return None

        def _load(db: Session) -> UserIdentity | None:
            account = db.get(Account, _as_uuid(user_id))
            if account is None:
                return None
            return UserIdentity(id=str(account.id), email=account.email)

        identity = await self._run(_load)
        if identity is None:
            self._session_user_id = None
        return identity

    async def sign_up(self, email: str, password: str) -> SignUpResult:
        normalized = (email or "").strip().lower()
        if not normalized or not password:
            raise AuthError("Email and password are required")

        def _create(db: Session) -> Account:
            if db.scalar(select(Account).where(Account.email == normalized)) is not None:
                raise AuthError("User already registered")
            account = Account(
                email=normalized,
                password_hash=_pwd_context.hash(password),
                email_confirmed=not self._require_confirmation,
            )
            db.add(account)
            db.commit()
            db.refresh(account)
            return account

        account = await self._run(_create)
        if self._require_confirmation:
            return SignUpResult(identity=None, pending_confirmation=True)
        self._session_user_id = str(account.id)
        return SignUpResult(identity=UserIdentity(id=str(account.id), email=account.email))

    async def sign_in(self, email: str, password: str) -> UserIdentity:
        normalized = (email or "").strip().lower()

        def _verify(db: Session) -> UserIdentity:
            account = db.scalar(select(Account).where(Account.email == normalized))
            if account is None or not _pwd_context.verify(password, account.password_hash):
                raise AuthError("Invalid login credentials")
            if not account.email_confirmed:
                raise AuthError("Email not confirmed")
            return UserIdentity(id=str(account.id), email=account.email)

        identity = await self._run(_verify)
        self._session_user_id = identity.id
        return identity

    async def sign_out(self) -> None:
        self._session_user_id = None

    def confirm_email(self, email: str) -> None:
        """Mark an account as confirmed (stands in for the confirmation link)."""

        with self._session_factory() as db:
            account = db.scalar(select(Account).where(Account.email == email.strip().lower()))
            if account is None:
                raise StoreError("Account not found")
            account.email_confirmed = True
            db.commit()

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    @staticmethod
    def _user_schema(record: UserRecord, following: Mapping[str, list[str]], followers: Mapping[str, list[str]]) -> User:
        user_id = str(record.id)
        return User(
            id=user_id,
            name=record.name or "",
            email=record.email or "",
            country=record.country or "",
            profile_picture=record.profile_picture or "",
            skills=list(record.skills or []),
            bio=record.bio or "",
            about_me=record.about_me or "",
            following=following.get(user_id, []),
            followers=followers.get(user_id, []),
        )

    @staticmethod
    def _edges(db: Session, user_ids: list[UUID] | None = None) -> tuple[dict[str, list[str]], dict[str, list[str]]]:
        stmt = select(Follow).order_by(Follow.created_at.asc())
        if user_ids is not None:
            stmt = stmt.where(or_(Follow.follower_id.in_(user_ids), Follow.following_id.in_(user_ids)))
        following: dict[str, list[str]] = defaultdict(list)
        followers: dict[str, list[str]] = defaultdict(list)
        for edge in db.scalars(stmt):
            following[str(edge.follower_id)].append(str(edge.following_id))
            followers[str(edge.following_id)].append(str(edge.follower_id))
        return following, followers

    async def list_users(self) -> list[User]:
        def _load(db: Session) -> list[User]:
            records = list(db.scalars(select(UserRecord).order_by(UserRecord.created_at.asc())))
            following, followers = self._edges(db)
            return [self._user_schema(record, following, followers) for record in records]

        return await self._run(_load)

    async def update_user(self, user_id: str, fields: Mapping[str, Any]) -> User:
        unknown = set(fields) - _UPDATABLE_USER_FIELDS
        if unknown:
            raise StoreError(f"Unknown user fields: {', '.join(sorted(unknown))}")
        key = _as_uuid(user_id, field="user id")

        def _update(db: Session) -> User:
            record = db.get(UserRecord, key)
            if record is None:
                raise StoreError("User not found", status_code=404)
            for name, value in fields.items():
                setattr(record, name, value)
            db.commit()
            db.refresh(record)
            following, followers = self._edges(db, [key])
            return self._user_schema(record, following, followers)

        return await self._run(_update)

    async def create_user_profile(self, email: str, name: str, user_id: str) -> None:
        key = _as_uuid(user_id, field="user id")

        def _create(db: Session) -> None:
            if db.get(Account, key) is None:
                raise StoreError("No account found for profile creation", status_code=404)
            db.add(UserRecord(id=key, email=email, name=name, skills=[]))
            try:
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                raise StoreError("Profile already exists", status_code=409) from exc

        await self._run(_create)

    # ------------------------------------------------------------------
    # Posts
    # ------------------------------------------------------------------

    async def list_posts(self) -> list[Post]:
        def _load(db: Session) -> list[Post]:
            stmt = (
                select(PostRecord)
                .options(selectinload(PostRecord.likes), selectinload(PostRecord.comments))
                .order_by(PostRecord.created_at.desc())
            )
            return [_post_schema(record) for record in db.scalars(stmt)]

        return await self._run(_load)

    async def create_post(
        self,
        author_id: str,
        title: str,
        content: str,
        *,
        post_type: PostType = PostType.TEXT,
        media_url: str | None = None,
    ) -> Post:
        key = _as_uuid(author_id, field="author id")

        def _create(db: Session) -> Post:
            if db.get(UserRecord, key) is None:
                raise StoreError("User not found", status_code=404)
            record = PostRecord(
                author_id=key,
                kind=post_type.value,
                title=title or None,
                content=content,
                media_url=media_url,
            )
            db.add(record)
            db.commit()
            db.refresh(record)
            return Post(
                id=str(record.id),
                author_id=str(record.author_id),
                type=post_type,
                content=record.content,
                title=record.title,
                media_url=record.media_url,
                timestamp=record.created_at,
            )

        return await self._run(_create)

    async def create_comment(self, post_id: str, author_id: str, content: str) -> Comment:
        post_key = _as_uuid(post_id, field="post id")
        author_key = _as_uuid(author_id, field="author id")
        text = (content or "").strip()
        if not text:
            raise StoreError("Comment cannot be empty", status_code=422)

        def _create(db: Session) -> Comment:
            if db.get(PostRecord, post_key) is None:
                raise StoreError("Post not found", status_code=404)
            record = PostComment(post_id=post_key, author_id=author_key, content=text)
            db.add(record)
            db.commit()
            db.refresh(record)
            return _comment_schema(record)

        return await self._run(_create)

    async def toggle_like(self, post_id: str, user_id: str) -> LikeToggleResult:
        post_key = _as_uuid(post_id, field="post id")
        user_key = _as_uuid(user_id, field="user id")

        def _toggle(db: Session) -> LikeToggleResult:
            if db.get(PostRecord, post_key) is None:
                raise StoreError("Post not found", status_code=404)
            existing = db.scalar(select(PostLike).where(PostLike.post_id == post_key, PostLike.user_id == user_key))
            if existing is not None:
                db.delete(existing)
                action = "unliked"
            else:
                db.add(PostLike(post_id=post_key, user_id=user_key))
                action = "liked"
            db.commit()
            count = len(list(db.scalars(select(PostLike.id).where(PostLike.post_id == post_key))))
            return LikeToggleResult(action=action, like_count=count)

        return await self._run(_toggle)

    # ------------------------------------------------------------------
    # Follows and messages
    # ------------------------------------------------------------------

    async def toggle_follow(self, follower_id: str, target_id: str) -> FollowToggleResult:
        follower_key = _as_uuid(follower_id, field="follower id")
        target_key = _as_uuid(target_id, field="target id")
        if follower_key == target_key:
            raise StoreError("Cannot follow yourself", status_code=400)

        def _toggle(db: Session) -> FollowToggleResult:
            if db.get(UserRecord, target_key) is None:
                raise StoreError("User not found", status_code=404)
            existing = db.get(Follow, (follower_key, target_key))
            if existing is not None:
                db.delete(existing)
                db.commit()
                return FollowToggleResult(action="unfollowed")
            db.add(Follow(follower_id=follower_key, following_id=target_key))
            db.commit()
            return FollowToggleResult(action="followed")

        return await self._run(_toggle)

    async def list_messages(self, user_a: str, user_b: str) -> list[Message]:
        key_a = _as_uuid(user_a, field="user id")
        key_b = _as_uuid(user_b, field="user id")

        def _load(db: Session) -> list[Message]:
            stmt = (
                select(MessageRecord)
                .where(
                    or_(
                        and_(MessageRecord.sender_id == key_a, MessageRecord.receiver_id == key_b),
                        and_(MessageRecord.sender_id == key_b, MessageRecord.receiver_id == key_a),
                    )
                )
                .order_by(MessageRecord.timestamp.asc())
            )
            return [_message_schema(record) for record in db.scalars(stmt)]

        return await self._run(_load)

    async def send_message(self, sender_id: str, receiver_id: str, content: str) -> Message:
        sender_key = _as_uuid(sender_id, field="sender id")
        receiver_key = _as_uuid(receiver_id, field="receiver id")
        text = (content or "").strip()
        if not text:
            raise StoreError("Message requires text", status_code=400)

        def _send(db: Session) -> Message:
            record = MessageRecord(sender_id=sender_key, receiver_id=receiver_key, content=text)
            db.add(record)
            db.commit()
            db.refresh(record)
            return _message_schema(record)

        return await self._run(_send)


__all__ = ["SqlSocialStore"]
