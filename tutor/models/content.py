"""
tutor/models/content.py

Content types, access classes and the stored lesson artifact.
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class ContentType(str, Enum):
    PDF_FREE = "PDF_FREE"
    NOTES_SIMPLE = "NOTES_SIMPLE"
    NOTES_PREMIUM = "NOTES_PREMIUM"
    MCQ_SIMPLE = "MCQ_SIMPLE"
    MCQ_ANALYSIS = "MCQ_ANALYSIS"
    WEEKLY_TEST = "WEEKLY_TEST"
    PDF_PREMIUM = "PDF_PREMIUM"
    PDF_VIEWER = "PDF_VIEWER"


class AccessClass(str, Enum):
    FREE = "FREE"
    BASIC = "BASIC"
    ULTRA = "ULTRA"


class AccessLevel(str, Enum):
    NONE = "NONE"
    BASIC = "BASIC"
    ULTRA = "ULTRA"


ACCESS_CLASS_BY_TYPE: Dict[ContentType, AccessClass] = {
    ContentType.PDF_FREE: AccessClass.FREE,
    ContentType.NOTES_SIMPLE: AccessClass.FREE,
    ContentType.NOTES_PREMIUM: AccessClass.BASIC,
    ContentType.MCQ_SIMPLE: AccessClass.BASIC,
    ContentType.MCQ_ANALYSIS: AccessClass.BASIC,
    ContentType.WEEKLY_TEST: AccessClass.BASIC,
    ContentType.PDF_PREMIUM: AccessClass.ULTRA,
    ContentType.PDF_VIEWER: AccessClass.ULTRA,
}


def access_class_for(content_type: ContentType) -> AccessClass:
    return ACCESS_CLASS_BY_TYPE[ContentType(content_type)]


class ContentArtifact(BaseModel):
    """
    Stored lesson content.

    The payload is free-form; unknown fields survive a store round trip.
    `price` is the credit cost an admin set, absent meaning free.
    """
    model_config = ConfigDict(frozen=True, extra="allow")

    content: Any = None
    price: Optional[int] = Field(default=None, ge=0)
    title: Optional[str] = None
    premium: Optional[bool] = None

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)

    @classmethod
    def from_document(cls, data: Dict[str, Any]) -> "ContentArtifact":
        return cls.model_validate(data)

    def without_store_metadata(self) -> Dict[str, Any]:
        doc = self.to_document()
        doc.pop("updated_at", None)
        return doc
