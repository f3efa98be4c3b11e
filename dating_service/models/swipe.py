from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .identifiers import PyObjectId

SwipeAction = Literal["like", "pass", "superlike"]
POSITIVE_ACTIONS = ("like", "superlike")
SWIPE_TTL_DAYS = 30


class SwipeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    target_id: str = Field(alias="targetId", min_length=1)
    action: SwipeAction
    is_priority: bool = Field(default=False, alias="isPriority")


class UndoSwipeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    swipe_id: str = Field(alias="swipeId", min_length=1)


class SwipeDocument(BaseModel):
    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)

    id: PyObjectId = Field(alias="_id")
    swiper_id: str = Field(alias="swiperId")
    swiped_id: str = Field(alias="swipedId")
    action: SwipeAction
    is_priority: bool = Field(default=False, alias="isPriority")
    created_at: int = Field(alias="createdAt")


class MatchedUserSummary(BaseModel):
    id: str
    name: Optional[str] = None
    photo: Optional[str] = None
    age: Optional[int] = None


class MatchData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    match_id: str = Field(alias="matchId")
    match_type: str = Field(alias="matchType")
    matched_at: int = Field(alias="matchedAt")
    is_new_match: bool = Field(alias="isNewMatch")
    was_reactivated: bool = Field(default=False, alias="wasReactivated")
    matched_user: Optional[MatchedUserSummary] = Field(default=None, alias="matchedUser")


class SwipeResult(BaseModel):
    """Outcome of a swipe, including any match it produced."""

    model_config = ConfigDict(populate_by_name=True)

    swipe: Dict[str, Any]
    is_match: bool = Field(alias="isMatch")
    match_data: Optional[MatchData] = Field(default=None, alias="matchData")
    already_processed: bool = Field(default=False, alias="alreadyProcessed")


__all__ = [
    "MatchData",
    "MatchedUserSummary",
    "POSITIVE_ACTIONS",
    "SWIPE_TTL_DAYS",
    "SwipeAction",
    "SwipeDocument",
    "SwipeRequest",
    "SwipeResult",
    "UndoSwipeRequest",
]
