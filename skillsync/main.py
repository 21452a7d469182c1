"""Wiring for the SkillSync client: logging, collaborators and the app facade."""
from __future__ import annotations

import asyncio
import logging

from .app import SkillSyncApp
from .clients import GeminiClient, SqlSocialStore, SupabaseStore
from .clients.store import SocialStore
from .config import Settings, get_settings
from .database import make_engine, make_session_factory, init_db
from .services.ai_service import SkillSyncAI

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    resolved = (level or get_settings().log_level or "INFO").upper()
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=resolved, format=LOG_FORMAT)
    root.setLevel(resolved)


def build_store(settings: Settings) -> SocialStore:
    if settings.store_backend == "supabase":
        return SupabaseStore(
            settings.supabase_url,
            settings.supabase_anon_key,
            timeout=settings.store_timeout,
            access_token=settings.supabase_access_token,
        )
    engine = make_engine(settings.database_url)
    init_db(engine)
    return SqlSocialStore(
        make_session_factory(engine),
        require_email_confirmation=settings.require_email_confirmation,
        session_user_id=settings.session_user_id,
    )


def build_ai(settings: Settings) -> SkillSyncAI:
    client = GeminiClient(
        settings.gemini_api_key,
        model=settings.gemini_model,
        base_url=settings.gemini_base_url,
        timeout=settings.ai_timeout,
    )
    if not client.is_available():
        logger.warning("GEMINI_API_KEY is not set; sync session features will fail until it is provided")
    return SkillSyncAI(client)


def create_app(settings: Settings | None = None) -> SkillSyncApp:
    settings = settings or get_settings()
    return SkillSyncApp(
        build_store(settings),
        build_ai(settings),
        session_duration=settings.session_duration_seconds,
        poll_interval=settings.message_poll_interval,
    )


async def _run() -> None:
    app = create_app()
    try:
        model = await app.launch()
        logger.info("%s ready | screen=%s", get_settings().app_name, model.screen.value)
    finally:
        await app.aclose()


def main() -> None:
    configure_logging()
    asyncio.run(_run())


if __name__ == "__main__":
    main()
