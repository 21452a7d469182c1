"""Prompt construction and structured-answer validation for the sync session AI."""
from __future__ import annotations

import logging
from typing import Any, Final, Protocol, TypeVar

from pydantic import BaseModel, ValidationError

from ..clients.gemini_client import TextGenerator
from ..errors import AiResponseError
from ..schemas import AiCoachResponse, MatchedUser, SessionSummary, UserProfile

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

_STRING: Final = {"type": "STRING"}

MATCHED_USER_SCHEMA: Final[dict[str, Any]] = {
    "type": "OBJECT",
    "properties": {
        "name": _STRING,
        "country": _STRING,
        "skillToOffer": _STRING,
        "skillToLearn": _STRING,
        "personality": _STRING,
        "learningStyle": _STRING,
        "profilePicture": {"type": "STRING", "description": "A placeholder image URL from i.pravatar.cc"},
    },
    "required": ["name", "country", "skillToOffer", "skillToLearn", "personality", "learningStyle", "profilePicture"],
}

COACH_RESPONSE_SCHEMA: Final[dict[str, Any]] = {
    "type": "OBJECT",
    "properties": {
        "microLesson": {
            "type": "OBJECT",
            "properties": {
                "title": _STRING,
                "content": _STRING,
                "for": {"type": "STRING", "enum": ["user", "partner"]},
            },
            "required": ["title", "content", "for"],
        },
        "activity": {
            "type": "OBJECT",
            "properties": {"title": _STRING, "description": _STRING},
            "required": ["title", "description"],
        },
        "cultureBridge": {
            "type": "OBJECT",
            "properties": {"title": _STRING, "content": _STRING},
            "required": ["title", "content"],
        },
    },
    "required": ["microLesson", "activity", "cultureBridge"],
}

SESSION_SUMMARY_SCHEMA: Final[dict[str, Any]] = {
    "type": "OBJECT",
    "properties": {"score": {"type": "NUMBER"}, "summary": _STRING, "takeaway": _STRING},
    "required": ["score", "summary", "takeaway"],
}


class AiTextService(Protocol):
    async def generate_match(self, profile: UserProfile) -> MatchedUser:
        ...

    async def generate_coach_guidance(self, profile: UserProfile, partner: MatchedUser) -> AiCoachResponse:
        ...

    async def rewrite_for_empathy(self, text: str) -> str:
        ...

    async def generate_summary(self, profile: UserProfile, partner: MatchedUser) -> SessionSummary:
        ...


def _parse(model: type[ModelT], raw: str | None, failure: str) -> ModelT:
    if not raw:
        raise AiResponseError(failure)
    try:
        return model.model_validate_json(raw)
    except ValidationError as exc:
        logger.error("Failed to parse AI JSON for %s: %s", model.__name__, exc.errors(include_url=False))
        logger.debug("Invalid JSON string: %s", raw)
        raise AiResponseError(failure) from exc


def build_match_prompt(profile: UserProfile) -> str:
    return (
        "You are a matchmaking AI for SkillSync, a platform for global skill exchange.\n"
        f'A user offers to teach "{profile.skill_to_offer}" and wants to learn "{profile.skill_to_learn}".\n'
        "Create a profile for an ideal learning partner.\n"
        "- The partner's skill to offer must be what the user wants to learn.\n"
        "- The partner's skill to learn must be what the user is offering.\n"
        "- Give them a plausible name, country, personality, and learning style.\n"
        "- Provide a unique placeholder profile picture URL using i.pravatar.cc, "
        'for example: "https://i.pravatar.cc/150?u=some-unique-id".\n'
        "- Keep the profile positive and encouraging."
    )


def build_coach_prompt(profile: UserProfile, partner: MatchedUser) -> str:
    return (
        "You are an AI Coach for a SkillSync session.\n"
        f'User A (the user) can teach "{profile.skill_to_offer}" and wants to learn "{profile.skill_to_learn}".\n'
        f"User B (the partner, from {partner.country}) can teach \"{partner.skill_to_offer}\" "
        f'and wants to learn "{partner.skill_to_learn}".\n'
        f'User A is here to learn; User B has a personality of "{partner.personality}" '
        f'and a learning style of "{partner.learning_style}".\n\n'
        "Generate the next part of their 10-minute session. Provide:\n"
        "1. A 'microLesson' for one of the users. Specify who it is for ('user' or 'partner').\n"
        "2. An 'activity' for them to do together to practice their new skills.\n"
        f"3. A 'cultureBridge' note about {partner.country} to foster understanding.\n\n"
        "Keep the tone friendly, encouraging, and clear, and keep the content practical for a short session."
    )


def build_empathy_prompt(text: str) -> str:
    return (
        "You are an AI Empathy Translator. A user, who might be shy or nervous, "
        f'wrote the following message: "{text}".\n'
        "Rewrite it to sound more polite, confident, encouraging, and clear, while keeping the original intent. "
        "Keep it concise.\nReturn only the rewritten text, with no extra explanations or labels."
    )


def build_summary_prompt(profile: UserProfile, partner: MatchedUser) -> str:
    return (
        "You are the SkillSync analysis AI. A 10-minute learning session just concluded between two users.\n"
        f'User A taught "{profile.skill_to_offer}" and learned "{profile.skill_to_learn}".\n'
        f'User B from {partner.country} taught "{partner.skill_to_offer}" and learned "{partner.skill_to_learn}".\n\n'
        "Based on a simulated positive, kind, and collaborative interaction where they helped each other, generate:\n"
        "1. A 'SkillSync Score' between 85 and 100.\n"
        "2. A short, encouraging 'summary' of their session's success.\n"
        "3. One positive 'takeaway' about the power of human connection."
    )


class SkillSyncAI(AiTextService):
    """The four AI operations of a sync session, one attempt each."""

    def __init__(self, generator: TextGenerator) -> None:
        self._generator = generator

    async def aclose(self) -> None:
        closer = getattr(self._generator, "aclose", None)
        if closer is not None:
            await closer()

    async def generate_match(self, profile: UserProfile) -> MatchedUser:
        raw = await self._generator.generate(
            build_match_prompt(profile),
            response_schema=MATCHED_USER_SCHEMA,
            temperature=0.8,
        )
        return _parse(MatchedUser, raw, "AI failed to generate a valid match profile.")

    async def generate_coach_guidance(self, profile: UserProfile, partner: MatchedUser) -> AiCoachResponse:
        raw = await self._generator.generate(
            build_coach_prompt(profile, partner),
            response_schema=COACH_RESPONSE_SCHEMA,
            temperature=0.7,
        )
        return _parse(AiCoachResponse, raw, "AI failed to generate a valid coach prompt.")

    async def rewrite_for_empathy(self, text: str) -> str:
        raw = await self._generator.generate(
            build_empathy_prompt(text),
            temperature=0.5,
            max_output_tokens=150,
            thinking_budget=75,
        )
        return (raw or "").strip()

    async def generate_summary(self, profile: UserProfile, partner: MatchedUser) -> SessionSummary:
        raw = await self._generator.generate(
            build_summary_prompt(profile, partner),
            response_schema=SESSION_SUMMARY_SCHEMA,
        )
        return _parse(SessionSummary, raw, "AI failed to generate a valid session summary.")


__all__ = [
    "AiTextService",
    "COACH_RESPONSE_SCHEMA",
    "MATCHED_USER_SCHEMA",
    "SESSION_SUMMARY_SCHEMA",
    "SkillSyncAI",
    "build_coach_prompt",
    "build_empathy_prompt",
    "build_match_prompt",
    "build_summary_prompt",
]
