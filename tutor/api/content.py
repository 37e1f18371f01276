"""
Content API: open, quote and (admin) publish lesson artifacts.
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
import pydantic
from pydantic import BaseModel, Field, field_validator

from tutor.api.deps import Services, get_caller, get_services, require_admin
from tutor.core.errors import ValidationError
from tutor.features.content.keys import ContentKey
from tutor.models.content import ContentArtifact, ContentType
from tutor.models.user import CallerContext

router = APIRouter(prefix="/v1/content", tags=["content"])


class ContentKeyIn(BaseModel):
    board: str
    class_level: str
    stream: Optional[str] = None
    subject_name: str
    chapter_id: str
    content_type: ContentType

    @field_validator("board", "class_level", "stream", "subject_name", "chapter_id", mode="before")
    @classmethod
    def _trim(cls, value: Optional[Any]) -> Optional[str]:
        if value is None:
            return None
        return str(value).strip() or None

    def to_key(self) -> ContentKey:
        try:
            return ContentKey(
                board=self.board,
                class_level=self.class_level,
                stream=self.stream,
                subject_name=self.subject_name,
                chapter_id=self.chapter_id,
                content_type=self.content_type,
            )
        except pydantic.ValidationError as e:
            raise ValidationError(e.errors()[0]["msg"]) from e


class OpenContentRequest(ContentKeyIn):
    chapter_title: Optional[str] = None
    language: Optional[str] = None


class PublishContentRequest(ContentKeyIn):
    content: Any = None
    price: Optional[int] = Field(default=None, ge=0)
    title: Optional[str] = None
    premium: Optional[bool] = None
    data: Dict[str, Any] = Field(default_factory=dict)

    def to_artifact(self) -> ContentArtifact:
        fields = dict(self.data)
        for name in ("content", "price", "title", "premium"):
            value = getattr(self, name)
            if value is not None:
                fields[name] = value
        return ContentArtifact.model_validate(fields)


class BulkPublishRequest(BaseModel):
    items: List[PublishContentRequest]


@router.post("/open")
def open_content(
    body: OpenContentRequest,
    caller: CallerContext = Depends(get_caller),
    services: Services = Depends(get_services),
):
    result = services.content.open_content(
        caller,
        body.to_key(),
        chapter_title=body.chapter_title,
        language=body.language,
    )
    return {
        "key": result.key,
        "cost": result.cost,
        "generated": result.generated,
        "covered_by_subscription": result.covered_by_subscription,
        "credits": result.user.credits,
        "artifact": result.artifact.to_document(),
    }


@router.get("/cost")
def quote_cost(
    key: ContentKeyIn = Depends(),
    caller: CallerContext = Depends(get_caller),
    services: Services = Depends(get_services),
):
    content_key = key.to_key()
    return {
        "key": content_key.render(),
        "cost": services.content.quote(caller, content_key),
        "credits": caller.user.credits,
    }


@router.post("")
def publish_content(
    body: PublishContentRequest,
    caller: CallerContext = Depends(require_admin),
    services: Services = Depends(get_services),
):
    content_key = body.to_key()
    services.content.publish(caller, content_key, body.to_artifact())
    return {"key": content_key.render(), "saved": True}


@router.post("/bulk")
def bulk_publish(
    body: BulkPublishRequest,
    caller: CallerContext = Depends(require_admin),
    services: Services = Depends(get_services),
):
    artifacts = {item.to_key().render(): item.to_artifact() for item in body.items}
    results = services.resolver.bulk_persist(artifacts)
    return {"written": sum(1 for ok in results.values() if ok), "results": results}
