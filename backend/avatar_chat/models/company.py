# company models: shared multi-user conversation space with documents

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from avatar_chat.models.settings import ConversationSettings


def company_conversation_id(company_id: str) -> str:
    """every company shares one conversation for its members"""
    return f"company_{company_id}"


class Company(BaseModel):
    id: str
    name: str = ""
    members: list[str] = Field(default_factory=list)
    settings: ConversationSettings = Field(default_factory=ConversationSettings)


class MemberInvite(BaseModel):
    email: str = Field(..., pattern=r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class CompanyDocumentCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=300)
    content: str = Field(..., min_length=1)
    uploaded_by: str = Field("current-user", alias="uploadedBy")

    model_config = {"populate_by_name": True}


class CompanyDocument(BaseModel):
    id: Optional[str] = None
    company_id: str = Field(..., alias="companyId")
    title: str
    content: str
    uploaded_by: str = Field("", alias="uploadedBy")
    created_at: datetime = Field(..., alias="createdAt")

    model_config = {"populate_by_name": True}
