from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .identifiers import PyObjectId

MessageType = Literal["text", "image", "gif", "audio"]


class MessageCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    content: str = Field(default="", max_length=2000)
    type: MessageType = "text"
    media_url: Optional[str] = Field(default=None, alias="mediaUrl")
    reply_to: Optional[str] = Field(default=None, alias="replyTo")

    @model_validator(mode="after")
    def _has_body(self) -> "MessageCreateRequest":
        if self.type == "text" and not self.content.strip():
            raise ValueError("content required for text messages")
        if self.type != "text" and not self.media_url:
            raise ValueError("mediaUrl required for media messages")
        return self


class MessageDocument(BaseModel):
    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)

    id: PyObjectId = Field(alias="_id")
    match_id: str = Field(alias="matchId")
    sender_id: str = Field(alias="senderId")
    receiver_id: str = Field(alias="receiverId")
    content: str = ""
    type: MessageType = "text"
    media_url: Optional[str] = Field(default=None, alias="mediaUrl")
    reply_to: Optional[str] = Field(default=None, alias="replyTo")
    is_read: bool = Field(default=False, alias="isRead")
    read_at: Optional[int] = Field(default=None, alias="readAt")
    created_at: int = Field(alias="createdAt")

    def to_public(self) -> dict:
        data = self.model_dump(by_alias=True)
        data["id"] = data.pop("_id")
        return data


__all__ = ["MessageCreateRequest", "MessageDocument", "MessageType"]
