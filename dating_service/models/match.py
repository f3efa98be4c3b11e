from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .identifiers import PyObjectId

MatchType = Literal["regular", "superlike"]
MatchStatus = Literal["active", "unmatched", "blocked"]


class MatchDocument(BaseModel):
    """A match between two users; ``user1`` always sorts before ``user2``."""

    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)

    id: PyObjectId = Field(alias="_id")
    users: List[str]
    user1: str
    user2: str
    match_type: MatchType = Field(default="regular", alias="matchType")
    initiated_by: Optional[str] = Field(default=None, alias="initiatedBy")
    status: MatchStatus = "active"
    unmatched_by: Optional[str] = Field(default=None, alias="unmatchedBy")
    unmatched_at: Optional[int] = Field(default=None, alias="unmatchedAt")
    conversation_started: bool = Field(default=False, alias="conversationStarted")
    first_message_at: Optional[int] = Field(default=None, alias="firstMessageAt")
    first_message_by: Optional[str] = Field(default=None, alias="firstMessageBy")
    last_activity_at: Optional[int] = Field(default=None, alias="lastActivityAt")
    message_count: int = Field(default=0, alias="messageCount")
    created_at: int = Field(alias="createdAt")
    updated_at: int = Field(alias="updatedAt")

    def other_user(self, user_id: str) -> str:
        return self.user2 if self.user1 == user_id else self.user1


__all__ = ["MatchDocument", "MatchStatus", "MatchType"]
