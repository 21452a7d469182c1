"""Supabase adapter for the social store: GoTrue auth plus PostgREST tables."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, TypeVar, cast

import httpx

from ..errors import AuthError, StoreError
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

T = TypeVar("T")

_POSTS_SELECT = "*,post_likes(user_id),comments(id,author_id,content,created_at)"
_RETURN_REPRESENTATION = {"Prefer": "return=representation"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        for key in ("msg", "message", "error_description", "error"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    return str(body)


def _identity_from(payload: Mapping[str, Any] | None) -> UserIdentity | None:
    if not isinstance(payload, Mapping):
        return None
    user_id = payload.get("id") or payload.get("sub")
    if not user_id:
        return None
    return UserIdentity(id=str(user_id), email=str(payload.get("email") or ""))


def _user_from_row(row: Mapping[str, Any]) -> User:
    return User(
        id=str(row["id"]),
        name=row.get("name") or "",
        email=row.get("email") or "",
        country=row.get("country") or "",
        profile_picture=row.get("profile_picture") or row.get("profilePicture") or "",
        skills=list(row.get("skills") or []),
        bio=row.get("bio") or "",
        about_me=row.get("about_me") or row.get("aboutMe") or "",
        following=[str(item) for item in row.get("following") or []],
        followers=[str(item) for item in row.get("followers") or []],
    )


def _comment_from_row(row: Mapping[str, Any]) -> Comment:
    return Comment(
        id=str(row["id"]),
        author_id=str(row.get("author_id")),
        content=row.get("content") or "",
        timestamp=row.get("created_at") or row.get("timestamp") or _utcnow(),
    )


def _post_from_row(row: Mapping[str, Any]) -> Post:
    kind = row.get("type") or row.get("kind") or PostType.TEXT.value
    return Post(
        id=str(row["id"]),
        author_id=str(row.get("author_id")),
        type=PostType(kind),
        content=row.get("content") or "",
        title=row.get("title") or None,
        media_url=row.get("media_url") or None,
        likes=[str(like["user_id"]) for like in row.get("post_likes") or []],
        comments=[_comment_from_row(item) for item in row.get("comments") or []],
        timestamp=row.get("created_at") or row.get("timestamp") or _utcnow(),
    )


def _message_from_row(row: Mapping[str, Any]) -> Message:
    return Message(
        id=str(row["id"]),
        sender_id=str(row.get("sender_id")),
        receiver_id=str(row.get("receiver_id")),
        content=row.get("content") or "",
        timestamp=row.get("timestamp") or row.get("created_at") or _utcnow(),
    )


_ROW_ERRORS = (AttributeError, KeyError, TypeError, ValueError)


def _map_rows(mapper: Callable[[Mapping[str, Any]], T], rows: Any, what: str) -> list[T]:
    """Map backend rows, turning any malformed row into a :class:`StoreError`."""
    if not isinstance(rows, list):
        rows = [rows]
    try:
        return [mapper(row) for row in rows]
    except _ROW_ERRORS as exc:
        logger.error("Backend returned an unexpected row | source=%s error=%s", what, exc)
        raise StoreError("Backend returned an unexpected row") from exc


class SupabaseStore:
    """Async REST client implementing :class:`~skillsync.clients.store.SocialStore`."""

    def __init__(
        self,
        url: str | None,
        anon_key: str | None,
        *,
        timeout: float = 15.0,
        access_token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not url or not anon_key:
            logger.warning(
                "Supabase settings are not set. Provide SUPABASE_URL and SUPABASE_ANON_KEY in the environment or .env file."
            )
        self._anon_key = anon_key or ""
        self._access_token: str | None = access_token or None
        self._client = httpx.AsyncClient(
            base_url=(url or "http://localhost").rstrip("/"),
            headers={"apikey": self._anon_key, "Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    @property
    def access_token(self) -> str | None:
        return self._access_token

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._access_token or self._anon_key}"}

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, str] | None = None,
        json: Any = None,
        headers: Mapping[str, str] | None = None,
        auth_call: bool = False,
    ) -> Any:
        merged = self._auth_headers()
        if headers:
            merged.update(headers)
        try:
            response = await self._client.request(method, path, params=params, json=json, headers=merged)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            detail = _error_detail(exc.response)
            logger.error(
                "Supabase request failed | method=%s path=%s status=%s detail=%s",
                method,
                path,
                exc.response.status_code,
                detail,
            )
            error_cls = AuthError if auth_call else StoreError
            raise error_cls(detail, status_code=exc.response.status_code) from exc
        except httpx.HTTPError as exc:
            logger.error("Supabase transport error | method=%s path=%s error=%s", method, path, type(exc).__name__)
            raise StoreError("Backend request failed") from exc

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise StoreError("Backend response was not valid JSON") from exc

    @staticmethod
    def _single(rows: Any, what: str) -> Mapping[str, Any]:
        if isinstance(rows, list):
            if not rows:
                raise StoreError(f"{what} returned no rows")
            return cast(Mapping[str, Any], rows[0])
        if isinstance(rows, dict):
            return rows
        raise StoreError(f"{what} returned an unexpected payload")

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    async def current_session(self) -> UserIdentity | None:
        if not self._access_token:
            return None
        try:
            payload = await self._request("GET", "/auth/v1/user", auth_call=True)
        except StoreError:
            logger.error("Get current user failed; treating session as expired")
            self._access_token = None
            return None
        return _identity_from(payload)

    async def sign_up(self, email: str, password: str) -> SignUpResult:
        payload = await self._request(
            "POST", "/auth/v1/signup", json={"email": email, "password": password}, auth_call=True
        ) or {}
        if not isinstance(payload, dict):
            raise AuthError("Unexpected auth response")
        token = payload.get("access_token")
        if token:
            self._access_token = str(token)
            return SignUpResult(identity=_identity_from(payload.get("user")))
        # Email confirmation required: the user object comes back without a session.
        return SignUpResult(identity=None, pending_confirmation=True)

    async def sign_in(self, email: str, password: str) -> UserIdentity:
        payload = await self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
            auth_call=True,
        ) or {}
        if not isinstance(payload, dict):
            raise AuthError("Unexpected auth response")
        identity = _identity_from(payload.get("user"))
        token = payload.get("access_token")
        if identity is None or not token:
            raise AuthError("Failed to get user info")
        self._access_token = str(token)
        return identity

    async def sign_out(self) -> None:
        if self._access_token:
            await self._request("POST", "/auth/v1/logout", auth_call=True)
        self._access_token = None

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def list_users(self) -> list[User]:
        rows = await self._request("GET", "/rest/v1/users", params={"select": "*"}) or []
        return _map_rows(_user_from_row, rows, "users")

    async def update_user(self, user_id: str, fields: Mapping[str, Any]) -> User:
        rows = await self._request(
            "PATCH",
            "/rest/v1/users",
            params={"id": f"eq.{user_id}"},
            json=dict(fields),
            headers=_RETURN_REPRESENTATION,
        )
        return _map_rows(_user_from_row, self._single(rows, "Update user"), "users")[0]

    async def create_user_profile(self, email: str, name: str, user_id: str) -> None:
        await self._request(
            "POST",
            "/rest/v1/users",
            json=[{"id": user_id, "email": email, "name": name, "skills": [], "following": [], "followers": []}],
        )

    # ------------------------------------------------------------------
    # Posts
    # ------------------------------------------------------------------

    async def list_posts(self) -> list[Post]:
        rows = await self._request(
            "GET",
            "/rest/v1/posts",
            params={"select": _POSTS_SELECT, "order": "created_at.desc"},
        ) or []
        return _map_rows(_post_from_row, rows, "posts")

    async def create_post(
        self,
        author_id: str,
        title: str,
        content: str,
        *,
        post_type: PostType = PostType.TEXT,
        media_url: str | None = None,
    ) -> Post:
        record: dict[str, Any] = {"author_id": author_id, "title": title, "content": content}
        if post_type is not PostType.TEXT:
            record["type"] = post_type.value
        if media_url:
            record["media_url"] = media_url
        rows = await self._request("POST", "/rest/v1/posts", json=[record], headers=_RETURN_REPRESENTATION)
        return _map_rows(_post_from_row, self._single(rows, "Create post"), "posts")[0]

    async def create_comment(self, post_id: str, author_id: str, content: str) -> Comment:
        rows = await self._request(
            "POST",
            "/rest/v1/comments",
            json=[{"post_id": post_id, "author_id": author_id, "content": content}],
            headers=_RETURN_REPRESENTATION,
        )
        return _map_rows(_comment_from_row, self._single(rows, "Create comment"), "comments")[0]

    async def _count_likes(self, post_id: str) -> int | None:
        rows = await self._request("GET", "/rest/v1/post_likes", params={"select": "user_id", "post_id": f"eq.{post_id}"})
        return len(rows) if isinstance(rows, list) else None

    async def toggle_like(self, post_id: str, user_id: str) -> LikeToggleResult:
        match = {"post_id": f"eq.{post_id}", "user_id": f"eq.{user_id}"}
        existing = await self._request("GET", "/rest/v1/post_likes", params={"select": "*", **match, "limit": "1"})
        if existing:
            await self._request("DELETE", "/rest/v1/post_likes", params=match)
            return LikeToggleResult(action="unliked", like_count=await self._count_likes(post_id))
        await self._request(
            "POST",
            "/rest/v1/post_likes",
            json=[{"post_id": post_id, "user_id": user_id}],
            headers=_RETURN_REPRESENTATION,
        )
        return LikeToggleResult(action="liked", like_count=await self._count_likes(post_id))

    # ------------------------------------------------------------------
    # Follows and messages
    # ------------------------------------------------------------------

    async def toggle_follow(self, follower_id: str, target_id: str) -> FollowToggleResult:
        match = {"follower_id": f"eq.{follower_id}", "following_id": f"eq.{target_id}"}
        existing = await self._request("GET", "/rest/v1/follows", params={"select": "*", **match, "limit": "1"})
        if existing:
            await self._request("DELETE", "/rest/v1/follows", params=match)
            return FollowToggleResult(action="unfollowed")
        await self._request(
            "POST",
            "/rest/v1/follows",
            json=[{"follower_id": follower_id, "following_id": target_id}],
            headers=_RETURN_REPRESENTATION,
        )
        return FollowToggleResult(action="followed")

    async def list_messages(self, user_a: str, user_b: str) -> list[Message]:
        pair_filter = (
            f"(and(sender_id.eq.{user_a},receiver_id.eq.{user_b}),"
            f"and(sender_id.eq.{user_b},receiver_id.eq.{user_a}))"
        )
        rows = await self._request(
            "GET",
            "/rest/v1/messages",
            params={"select": "*", "or": pair_filter, "order": "timestamp.asc"},
        ) or []
        return _map_rows(_message_from_row, rows, "messages")

    async def send_message(self, sender_id: str, receiver_id: str, content: str) -> Message:
        rows = await self._request(
            "POST",
            "/rest/v1/messages",
            json=[{"sender_id": sender_id, "receiver_id": receiver_id, "content": content}],
            headers=_RETURN_REPRESENTATION,
        )
        return _map_rows(_message_from_row, self._single(rows, "Send message"), "messages")[0]


__all__ = ["SupabaseStore"]
