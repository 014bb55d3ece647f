# conversations router: create, list, delete conversations and read their messages
# settings updates are normalized to defaults before they are stored

import logging
from fastapi import APIRouter, Depends, HTTPException, Query, status

from avatar_chat.dependencies import get_store
from avatar_chat.models.conversation import (
    Conversation,
    ConversationCreate,
    ConversationListResponse,
    Message,
)
from avatar_chat.models.settings import ConversationSettings, SettingsUpdate
from avatar_chat.services.conversation_store import ConversationStore

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/conversations", tags=["conversations"])


@router.post("", response_model=Conversation, status_code=status.HTTP_201_CREATED)
async def create_conversation(
    body: ConversationCreate,
    store: ConversationStore = Depends(get_store),
):
    """start a new conversation with default settings"""
    return await store.create_conversation(body.user_id, body.title)


@router.get("", response_model=ConversationListResponse)
async def list_conversations(
    user_id: str = Query(..., alias="userId", min_length=1),
    store: ConversationStore = Depends(get_store),
):
    """a user's conversations, newest first"""
    conversations = await store.list_conversations(user_id)
    return ConversationListResponse(conversations=conversations, total=len(conversations))


@router.get("/{conversation_id}", response_model=Conversation)
async def get_conversation(
    conversation_id: str,
    store: ConversationStore = Depends(get_store),
):
    conversation = await store.get_conversation(conversation_id)
    if conversation is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")
    return conversation


@router.delete("/{conversation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_conversation(
    conversation_id: str,
    store: ConversationStore = Depends(get_store),
):
    """delete a conversation and all of its messages"""
    deleted = await store.delete_conversation(conversation_id)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")


@router.get("/{conversation_id}/messages", response_model=list[Message])
async def list_messages(
    conversation_id: str,
    store: ConversationStore = Depends(get_store),
):
    """messages in chronological order"""
    conversation = await store.get_conversation(conversation_id)
    if conversation is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")
    return await store.list_messages(conversation_id)


@router.patch("/{conversation_id}/settings", response_model=ConversationSettings)
async def update_settings(
    conversation_id: str,
    body: SettingsUpdate,
    store: ConversationStore = Depends(get_store),
):
    """merge the submitted fields over the current settings and persist them"""
    conversation = await store.get_conversation(conversation_id)
    if conversation is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")

    merged = {**conversation.settings.model_dump(), **body.settings}
    return await store.update_settings(conversation_id, merged)
