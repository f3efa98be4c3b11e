from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

from .identifiers import PyObjectId

Gender = Literal["male", "female", "non-binary", "other"]
PreferredGender = Literal["male", "female", "non-binary", "other", "any"]
ModerationStatus = Literal["pending", "approved", "rejected"]


class AgeRange(BaseModel):
    min: int = Field(default=18, ge=18, le=100)
    max: int = Field(default=100, ge=18, le=100)

    @model_validator(mode="after")
    def _ordered(self) -> "AgeRange":
        if self.min > self.max:
            raise ValueError("preferredAgeRange.min must not exceed max")
        return self


class GeoPoint(BaseModel):
    """GeoJSON point; coordinates are ``[longitude, latitude]``."""

    type: Literal["Point"] = "Point"
    coordinates: List[float] = Field(min_length=2, max_length=2)


class Photo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: str
    public_id: Optional[str] = Field(default=None, alias="publicId")
    moderation_status: ModerationStatus = Field(default="pending", alias="moderationStatus")
    uploaded_at: Optional[int] = Field(default=None, alias="uploadedAt")


class Education(BaseModel):
    school: Optional[str] = None
    degree: Optional[str] = None


class NotificationPreferences(BaseModel):
    matches: bool = True
    messages: bool = True
    likes: bool = True


class UserStats(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_swipes: int = Field(default=0, alias="totalSwipes")
    total_matches: int = Field(default=0, alias="totalMatches")
    swipes_given: int = Field(default=0, alias="swipesGiven")
    swipes_received: int = Field(default=0, alias="swipesReceived")
    messages_sent: int = Field(default=0, alias="messagesSent")


class UserSignupRequest(BaseModel):
    """Payload for creating a new user via the public sign-up flow."""

    model_config = ConfigDict(populate_by_name=True)

    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    name: str = Field(min_length=1, max_length=50)
    age: Optional[int] = Field(default=None, ge=18, le=100)
    gender: Optional[Gender] = None


class UserLoginRequest(BaseModel):
    """Credentials provided during login."""

    email: EmailStr
    password: str


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    token: str = Field(min_length=1)
    new_password: str = Field(alias="newPassword")


class LocationUpdate(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class UserProfileDocument(BaseModel):
    """Canonical representation of a user document stored in MongoDB."""

    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)

    id: PyObjectId = Field(alias="_id")
    user_id: str = Field(alias="userId")
    email: str
    name: str
    password_hash: str = Field(alias="passwordHash")
    age: Optional[int] = None
    gender: Optional[str] = None
    bio: Optional[str] = None
    interests: List[str] = Field(default_factory=list)
    photos: List[Photo] = Field(default_factory=list)
    location: Optional[GeoPoint] = None
    preferred_gender: str = Field(default="any", alias="preferredGender")
    preferred_age_range: AgeRange = Field(default_factory=AgeRange, alias="preferredAgeRange")
    lifestyle: Dict[str, Any] = Field(default_factory=dict)
    education: Education = Field(default_factory=Education)
    notification_preferences: NotificationPreferences = Field(
        default_factory=NotificationPreferences, alias="notificationPreferences"
    )
    stats: UserStats = Field(default_factory=UserStats)
    matches: List[str] = Field(default_factory=list)
    profile_completeness: int = Field(default=0, alias="profileCompleteness")
    is_active: bool = Field(default=True, alias="isActive")
    last_active: Optional[int] = Field(default=None, alias="lastActive")
    created_at: int = Field(alias="createdAt")
    updated_at: int = Field(alias="updatedAt")


class UserProfile(BaseModel):
    """Public-facing user profile returned to clients."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId")
    name: str
    age: Optional[int] = None
    gender: Optional[str] = None
    bio: Optional[str] = None
    interests: List[str] = Field(default_factory=list)
    photos: List[Photo] = Field(default_factory=list)
    lifestyle: Dict[str, Any] = Field(default_factory=dict)
    education: Education = Field(default_factory=Education)
    profile_completeness: int = Field(default=0, alias="profileCompleteness")
    last_active: Optional[int] = Field(default=None, alias="lastActive")


class OwnUserProfile(UserProfile):
    """Profile as seen by its owner."""

    email: str
    location: Optional[GeoPoint] = None
    preferred_gender: str = Field(default="any", alias="preferredGender")
    preferred_age_range: AgeRange = Field(default_factory=AgeRange, alias="preferredAgeRange")
    notification_preferences: NotificationPreferences = Field(
        default_factory=NotificationPreferences, alias="notificationPreferences"
    )
    stats: UserStats = Field(default_factory=UserStats)
    created_at: int = Field(alias="createdAt")
    updated_at: int = Field(alias="updatedAt")


class AuthTokenResponse(BaseModel):
    """Payload of authentication endpoints."""

    token: str
    profile: OwnUserProfile


class UserProfilePatch(BaseModel):
    """Mutable fields for partial profile updates."""

    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    bio: Optional[str] = Field(default=None, max_length=500)
    age: Optional[int] = Field(default=None, ge=18, le=100)
    gender: Optional[Gender] = None
    preferred_gender: Optional[PreferredGender] = Field(default=None, alias="preferredGender")
    preferred_age_range: Optional[AgeRange] = Field(default=None, alias="preferredAgeRange")
    interests: Optional[List[str]] = None
    lifestyle: Optional[Dict[str, Any]] = None
    education: Optional[Education] = None
    location: Optional[LocationUpdate] = None
    notification_preferences: Optional[NotificationPreferences] = Field(
        default=None, alias="notificationPreferences"
    )


__all__ = [
    "AgeRange",
    "AuthTokenResponse",
    "Education",
    "ForgotPasswordRequest",
    "GeoPoint",
    "LocationUpdate",
    "NotificationPreferences",
    "OwnUserProfile",
    "Photo",
    "ResetPasswordRequest",
    "UserLoginRequest",
    "UserProfile",
    "UserProfileDocument",
    "UserProfilePatch",
    "UserSignupRequest",
    "UserStats",
]
