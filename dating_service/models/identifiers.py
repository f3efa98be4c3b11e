"""Identifier types shared by the swipe, match, message and user documents."""

from __future__ import annotations

from typing import Annotated, Any, Optional

from bson import ObjectId
from pydantic.functional_serializers import PlainSerializer
from pydantic.functional_validators import BeforeValidator


def _validate_object_id(value: Any) -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value.strip()):
        return ObjectId(value.strip())
    raise ValueError(f"Invalid ObjectId: {value!r}")


def to_object_id(value: Any) -> Optional[ObjectId]:
    """Parse a path or body id. Returns None for anything that is not a valid ObjectId."""
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


# Documents keep the raw ObjectId; API payloads see its hex string
PyObjectId = Annotated[
    ObjectId,
    BeforeValidator(_validate_object_id),
    PlainSerializer(lambda value: str(value), return_type=str),
]

__all__ = ["PyObjectId", "to_object_id"]
