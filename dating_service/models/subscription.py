from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

SubscriptionStatus = Literal["free", "trial", "active", "expired", "cancelled"]


class SubscriptionDocument(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId")
    status: SubscriptionStatus = "free"
    plan_type: Optional[str] = Field(default=None, alias="planType")
    features: List[str] = Field(default_factory=list)
    start_date: Optional[int] = Field(default=None, alias="startDate")
    end_date: Optional[int] = Field(default=None, alias="endDate")

    def is_active(self, now_ms: int) -> bool:
        if self.status not in ("active", "trial"):
            return False
        return self.end_date is None or self.end_date > now_ms


__all__ = ["SubscriptionDocument", "SubscriptionStatus"]
