"""Convenience exports for pydantic schemas."""
from .messages import Message
from .posts import Comment, FollowToggleResult, LikeToggleResult, Post, PostDraft, PostType
from .sync import Activity, AiCoachResponse, CultureBridge, MatchedUser, MicroLesson, SessionSummary, UserProfile
from .users import SignUpResult, User, UserIdentity

__all__ = [
    "Activity",
    "AiCoachResponse",
    "Comment",
    "CultureBridge",
    "FollowToggleResult",
    "LikeToggleResult",
    "MatchedUser",
    "Message",
    "MicroLesson",
    "Post",
    "PostDraft",
    "PostType",
    "SessionSummary",
    "SignUpResult",
    "User",
    "UserIdentity",
    "UserProfile",
]
