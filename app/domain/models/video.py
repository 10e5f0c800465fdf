from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _CamelModel(BaseModel):
    # JSON em camelCase (mediaUrl, ownerId...), atributos em snake_case
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OwnerProjection(_CamelModel):
    """Visão somente-leitura do dono anexada aos vídeos listados."""
    username: Optional[str] = None
    email: Optional[str] = None
    avatar: Optional[str] = None


class Video(_CamelModel):
    id: str
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=5000)
    media_url: str
    media_key: str
    thumbnail_url: str
    thumbnail_key: str
    duration: float = Field(0.0, ge=0)
    owner_id: str
    is_published: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class VideoView(Video):
    owner: Optional[OwnerProjection] = None


class DeleteResult(_CamelModel):
    video_id: str
    deleted: bool
