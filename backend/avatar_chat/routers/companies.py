# companies router: shared company conversation settings, members and documents
# a company space is created on first use

import logging
from fastapi import APIRouter, Depends, status

from avatar_chat.dependencies import get_store
from avatar_chat.models.company import Company, CompanyDocument, CompanyDocumentCreate, MemberInvite
from avatar_chat.models.settings import ConversationSettings, SettingsUpdate
from avatar_chat.services.conversation_store import ConversationStore

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/companies", tags=["companies"])


@router.get("/{company_id}/settings", response_model=ConversationSettings)
async def get_company_settings(
    company_id: str,
    store: ConversationStore = Depends(get_store),
):
    company = await store.ensure_company(company_id)
    return company.settings


@router.patch("/{company_id}/settings", response_model=ConversationSettings)
async def update_company_settings(
    company_id: str,
    body: SettingsUpdate,
    store: ConversationStore = Depends(get_store),
):
    company = await store.ensure_company(company_id)
    merged = {**company.settings.model_dump(), **body.settings}
    return await store.update_company_settings(company_id, merged)


@router.post("/{company_id}/members", response_model=Company)
async def add_member(
    company_id: str,
    body: MemberInvite,
    store: ConversationStore = Depends(get_store),
):
    """add a member email to the company; adding an existing member is a no-op"""
    return await store.add_company_member(company_id, body.email)


@router.get("/{company_id}/documents", response_model=list[CompanyDocument])
async def list_documents(
    company_id: str,
    store: ConversationStore = Depends(get_store),
):
    return await store.list_company_documents(company_id)


@router.post("/{company_id}/documents", response_model=CompanyDocument, status_code=status.HTTP_201_CREATED)
async def add_document(
    company_id: str,
    body: CompanyDocumentCreate,
    store: ConversationStore = Depends(get_store),
):
    """store a document whose content is given to the avatar as context"""
    document = await store.add_company_document(company_id, body.title, body.content, body.uploaded_by)
    logger.info(f"Document '{body.title}' added to company {company_id}")
    return document
