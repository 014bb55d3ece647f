# avatar video relay models: request/response envelope of /api/generate-avatar-video

from typing import Any, Optional
from pydantic import BaseModel, Field


class AvatarVideoRequest(BaseModel):
    text: Optional[str] = None
    language: str = "en"
    gender: str = "male"
    avatar_media_url: Optional[str] = Field(None, alias="avatarMediaUrl")

    model_config = {"populate_by_name": True}


class AvatarVideoResponse(BaseModel):
    success: bool
    video_url: Optional[str] = Field(None, alias="videoUrl")
    video_urls: Optional[list[str]] = Field(None, alias="videoUrls")
    error: Optional[str] = None
    details: Optional[Any] = None

    model_config = {"populate_by_name": True}
