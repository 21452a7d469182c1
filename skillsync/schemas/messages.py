"""Schemas used by direct messaging."""
from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


class Message(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    sender_id: str = Field(alias="senderId")
    receiver_id: str = Field(alias="receiverId")
    content: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def belongs_to(self, user_a: str, user_b: str) -> bool:
        """True when the message travels between ``user_a`` and ``user_b`` in either direction."""

        return {self.sender_id, self.receiver_id} == {user_a, user_b}


__all__ = ["Message"]
