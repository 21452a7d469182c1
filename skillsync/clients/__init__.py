"""Adapters for the external collaborators: social store and AI text service."""
from .gemini_client import GeminiClient, TextGenerator
from .sql_store import SqlSocialStore
from .store import SocialStore
from .supabase_store import SupabaseStore

__all__ = [
    "GeminiClient",
    "SocialStore",
    "SqlSocialStore",
    "SupabaseStore",
    "TextGenerator",
]
