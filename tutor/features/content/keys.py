"""
Composite content keys.

A key names one artifact:
    content_{board}_{class}[-{stream}]_{subject}_{chapter}_{type}
The stream segment appears exactly for classes 11 and 12, and those
classes must name one. Remote stores cannot hold `. # $ [ ]` in a key, so
those become `_` before any remote read or write; the local cache keeps
the raw key.
"""

import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from tutor.core.config import settings
from tutor.models.content import ContentType

KEY_PREFIX = "content_"
STREAM_CLASSES = {"11", "12"}

_UNSAFE_RE = re.compile(r"[.#$\[\]]")


def sanitize(key: str) -> str:
    return _UNSAFE_RE.sub("_", key)


def realtime_path(key: str, namespace: Optional[str] = None) -> str:
    return f"{namespace or settings.CONTENT_NAMESPACE}/{sanitize(key)}"


class ContentKey(BaseModel):
    model_config = ConfigDict(frozen=True)

    board: str
    class_level: str
    stream: Optional[str] = None
    subject_name: str
    chapter_id: str
    content_type: ContentType

    @field_validator("class_level", mode="before")
    @classmethod
    def _class_text(cls, v):
        return str(v).strip()

    @field_validator("stream", mode="before")
    @classmethod
    def _blank_stream(cls, v):
        if v is None:
            return None
        return str(v).strip() or None

    @model_validator(mode="after")
    def _senior_classes_need_stream(self):
        if self.class_level in STREAM_CLASSES and not self.stream:
            raise ValueError(f"class {self.class_level} content needs a stream")
        return self

    def render(self) -> str:
        class_part = self.class_level
        if self.class_level in STREAM_CLASSES:
            class_part = f"{self.class_level}-{self.stream}"
        return (
            f"{KEY_PREFIX}{self.board}_{class_part}_{self.subject_name}"
            f"_{self.chapter_id}_{self.content_type.value}"
        )

    def remote_id(self) -> str:
        return sanitize(self.render())

    def __str__(self) -> str:
        return self.render()
