"""Convenience exports for ORM models."""
from .account import Account
from .follow import Follow
from .message import Message
from .post import Post, PostComment, PostLike
from .user import User

__all__ = [
    "Account",
    "Follow",
    "Message",
    "Post",
    "PostComment",
    "PostLike",
    "User",
]
