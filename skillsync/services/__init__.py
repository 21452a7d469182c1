"""Convenience exports for the service layer."""
from .ai_service import AiTextService, SkillSyncAI
from .messaging import MessagePoller
from .reconciler import (
    CommentAdd,
    FollowToggle,
    LikeToggle,
    MergePolicy,
    MutationResult,
    PostCreate,
    ProfileUpdate,
    SocialCache,
    SocialReconciler,
)
from .state_machine import AppModel, Screen, apply_guards, reduce
from .sync_session import EMPATHY_APOLOGY, SyncSessionOrchestrator, format_time

__all__ = [
    "AiTextService",
    "AppModel",
    "CommentAdd",
    "EMPATHY_APOLOGY",
    "FollowToggle",
    "LikeToggle",
    "MergePolicy",
    "MessagePoller",
    "MutationResult",
    "PostCreate",
    "ProfileUpdate",
    "Screen",
    "SkillSyncAI",
    "SocialCache",
    "SocialReconciler",
    "SyncSessionOrchestrator",
    "apply_guards",
    "format_time",
    "reduce",
]
