# conversation models: conversations, messages and their request/response schemas
# mirrors the frontend Conversation and Message types

from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field

from avatar_chat.models.settings import ConversationSettings
from avatar_chat.models.vision import VisionContext

Sender = Literal["user", "ai"]


class Message(BaseModel):
    """one immutable turn utterance, ordered by created_at"""
    id: Optional[str] = None
    conversation_id: str = Field(..., alias="conversationId")
    sender: Sender
    text: str
    video_urls: Optional[list[str]] = Field(None, alias="videoUrls")
    created_at: datetime = Field(..., alias="createdAt")
    vision_context: Optional[VisionContext] = Field(None, alias="visionContext")

    model_config = {"populate_by_name": True}


class Conversation(BaseModel):
    id: str
    user_id: str = Field(..., alias="userId")
    title: str
    created_at: datetime = Field(..., alias="createdAt")
    settings: ConversationSettings = Field(default_factory=ConversationSettings)

    model_config = {"populate_by_name": True}


class ConversationCreate(BaseModel):
    """payload for creating a conversation"""
    user_id: str = Field(..., alias="userId", min_length=1)
    title: str = Field("New Conversation", min_length=1, max_length=200)

    model_config = {"populate_by_name": True}


class ConversationListResponse(BaseModel):
    conversations: list[Conversation]
    total: int
