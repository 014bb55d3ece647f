# conversation store: conversations, messages and company spaces in mongodb
# every mutation pushes a fresh snapshot to live subscribers through the hub

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from bson import ObjectId
from bson.errors import InvalidId

from avatar_chat.models.company import Company, CompanyDocument
from avatar_chat.models.conversation import Conversation, Message
from avatar_chat.models.settings import ConversationSettings, normalize_settings
from avatar_chat.models.vision import VisionContext
from avatar_chat.services.subscriptions import SnapshotHub

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_object_id(value: str) -> Optional[ObjectId]:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def _doc_to_conversation(doc: dict) -> Conversation:
    """convert a mongodb conversation document to the api model"""
    return Conversation(
        id=str(doc["_id"]),
        userId=doc.get("user_id", ""),
        title=doc.get("title", ""),
        createdAt=doc.get("created_at") or _utcnow(),
        settings=normalize_settings(doc.get("settings")),
    )


def _doc_to_message(doc: dict) -> Message:
    """convert a mongodb message document, reading legacy single-url videos as a list"""
    video_urls = doc.get("video_urls")
    if video_urls is None and doc.get("video_url"):
        video_urls = [doc["video_url"]]
    elif video_urls is not None and not isinstance(video_urls, list):
        video_urls = [video_urls]

    vision = doc.get("vision_context")
    return Message(
        id=str(doc.get("_id", "")),
        conversationId=doc.get("conversation_id", ""),
        sender=doc.get("sender", "user"),
        text=doc.get("text", ""),
        videoUrls=video_urls,
        createdAt=doc.get("created_at") or _utcnow(),
        visionContext=VisionContext(**vision) if vision else None,
    )


def _doc_to_company(doc: dict) -> Company:
    return Company(
        id=str(doc["_id"]),
        name=doc.get("name", ""),
        members=doc.get("members", []),
        settings=normalize_settings(doc.get("settings")),
    )


def _doc_to_company_document(doc: dict) -> CompanyDocument:
    return CompanyDocument(
        id=str(doc.get("_id", "")),
        companyId=doc.get("company_id", ""),
        title=doc.get("title", ""),
        content=doc.get("content", ""),
        uploadedBy=doc.get("uploaded_by", ""),
        createdAt=doc.get("created_at") or _utcnow(),
    )


class ConversationStore:
    """persistence for conversations and messages with live snapshot subscriptions"""

    def __init__(self, db, hub: SnapshotHub):
        self.db = db
        self.hub = hub

    # conversations

    async def create_conversation(self, user_id: str, title: str) -> Conversation:
        doc = {
            "user_id": user_id,
            "title": title,
            "created_at": _utcnow(),
            "settings": ConversationSettings().to_document(),
        }
        result = await self.db.conversations.insert_one(doc)
        doc["_id"] = result.inserted_id
        logger.info(f"Conversation created: {result.inserted_id} for user {user_id}")
        await self._publish_user_conversations(user_id)
        return _doc_to_conversation(doc)

    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        oid = _to_object_id(conversation_id)
        if oid is None:
            return None
        doc = await self.db.conversations.find_one({"_id": oid})
        return _doc_to_conversation(doc) if doc else None

    async def list_conversations(self, user_id: str) -> list[Conversation]:
        cursor = self.db.conversations.find({"user_id": user_id}).sort("created_at", -1)
        return [_doc_to_conversation(doc) async for doc in cursor]

    async def update_settings(self, conversation_id: str, raw: Any) -> Optional[ConversationSettings]:
        """normalize and persist settings; None when the conversation does not exist"""
        oid = _to_object_id(conversation_id)
        if oid is None:
            return None
        existing = await self.db.conversations.find_one({"_id": oid})
        if existing is None:
            return None

        clean = normalize_settings(raw)
        await self.db.conversations.update_one({"_id": oid}, {"$set": {"settings": clean.to_document()}})
        logger.info(f"Settings saved for conversation {conversation_id} (avatar={clean.avatar_id})")

        await self._publish_conversation(conversation_id)
        await self._publish_user_conversations(existing.get("user_id", ""))
        return clean

    async def delete_conversation(self, conversation_id: str) -> bool:
        """delete a conversation and cascade its messages"""
        oid = _to_object_id(conversation_id)
        if oid is None:
            return False
        existing = await self.db.conversations.find_one({"_id": oid})
        if existing is None:
            return False

        result = await self.db.messages.delete_many({"conversation_id": conversation_id})
        await self.db.conversations.delete_one({"_id": oid})
        logger.info(f"Conversation {conversation_id} deleted with {result.deleted_count} messages")

        await self.hub.publish("conversation", conversation_id, None)
        await self.hub.publish("messages", conversation_id, [])
        await self._publish_user_conversations(existing.get("user_id", ""))
        return True

    # messages

    async def add_message(
        self,
        conversation_id: str,
        sender: str,
        text: str,
        vision_context: Optional[VisionContext] = None,
    ) -> Message:
        doc = {
            "conversation_id": conversation_id,
            "sender": sender,
            "text": text,
            "created_at": _utcnow(),
        }
        if vision_context is not None:
            doc["vision_context"] = vision_context.model_dump()

        result = await self.db.messages.insert_one(doc)
        doc["_id"] = result.inserted_id
        logger.info(f"Message saved: {result.inserted_id} ({sender})")

        await self._publish_messages(conversation_id)
        return _doc_to_message(doc)

    async def list_messages(self, conversation_id: str) -> list[Message]:
        cursor = self.db.messages.find({"conversation_id": conversation_id}).sort("created_at", 1)
        return [_doc_to_message(doc) async for doc in cursor]

    # companies (multi-user variant)

    async def ensure_company(self, company_id: str, name: str = "") -> Company:
        doc = await self.db.companies.find_one({"_id": company_id})
        if doc is None:
            doc = {
                "_id": company_id,
                "name": name or company_id,
                "members": [],
                "settings": ConversationSettings().to_document(),
            }
            await self.db.companies.insert_one(doc)
            logger.info(f"Company space created: {company_id}")
        return _doc_to_company(doc)

    async def get_company(self, company_id: str) -> Optional[Company]:
        doc = await self.db.companies.find_one({"_id": company_id})
        return _doc_to_company(doc) if doc else None

    async def update_company_settings(self, company_id: str, raw: Any) -> ConversationSettings:
        await self.ensure_company(company_id)
        clean = normalize_settings(raw)
        await self.db.companies.update_one({"_id": company_id}, {"$set": {"settings": clean.to_document()}})
        logger.info(f"Settings saved for company {company_id}")
        await self._publish_company(company_id)
        return clean

    async def add_company_member(self, company_id: str, email: str) -> Company:
        await self.ensure_company(company_id)
        await self.db.companies.update_one({"_id": company_id}, {"$addToSet": {"members": email.lower()}})
        logger.info(f"Member {email} added to company {company_id}")
        await self._publish_company(company_id)
        return await self.get_company(company_id)

    async def add_company_document(self, company_id: str, title: str, content: str, uploaded_by: str) -> CompanyDocument:
        await self.ensure_company(company_id)
        doc = {
            "company_id": company_id,
            "title": title,
            "content": content,
            "uploaded_by": uploaded_by,
            "created_at": _utcnow(),
        }
        result = await self.db.company_documents.insert_one(doc)
        doc["_id"] = result.inserted_id
        await self._publish_company_documents(company_id)
        return _doc_to_company_document(doc)

    async def list_company_documents(self, company_id: str) -> list[CompanyDocument]:
        cursor = self.db.company_documents.find({"company_id": company_id}).sort("created_at", 1)
        return [_doc_to_company_document(doc) async for doc in cursor]

    # subscriptions: each pushes the current snapshot immediately, then on every change

    async def subscribe_messages(self, conversation_id: str, callback: Callable[[list[Message]], Awaitable[None]]):
        unsubscribe = self.hub.add("messages", conversation_id, callback)
        await callback(await self.list_messages(conversation_id))
        return unsubscribe

    async def subscribe_conversation(self, conversation_id: str, callback: Callable[[Optional[Conversation]], Awaitable[None]]):
        unsubscribe = self.hub.add("conversation", conversation_id, callback)
        await callback(await self.get_conversation(conversation_id))
        return unsubscribe

    async def subscribe_user_conversations(self, user_id: str, callback: Callable[[list[Conversation]], Awaitable[None]]):
        unsubscribe = self.hub.add("user_conversations", user_id, callback)
        await callback(await self.list_conversations(user_id))
        return unsubscribe

    async def subscribe_company(self, company_id: str, callback: Callable[[Optional[Company]], Awaitable[None]]):
        unsubscribe = self.hub.add("company", company_id, callback)
        await callback(await self.get_company(company_id))
        return unsubscribe

    async def subscribe_company_documents(self, company_id: str, callback: Callable[[list[CompanyDocument]], Awaitable[None]]):
        unsubscribe = self.hub.add("company_documents", company_id, callback)
        await callback(await self.list_company_documents(company_id))
        return unsubscribe

    # snapshot publishing

    async def _publish_messages(self, conversation_id: str):
        if self.hub.has_subscribers("messages", conversation_id):
            await self.hub.publish("messages", conversation_id, await self.list_messages(conversation_id))

    async def _publish_conversation(self, conversation_id: str):
        if self.hub.has_subscribers("conversation", conversation_id):
            await self.hub.publish("conversation", conversation_id, await self.get_conversation(conversation_id))

    async def _publish_user_conversations(self, user_id: str):
        if user_id and self.hub.has_subscribers("user_conversations", user_id):
            await self.hub.publish("user_conversations", user_id, await self.list_conversations(user_id))

    async def _publish_company(self, company_id: str):
        if self.hub.has_subscribers("company", company_id):
            await self.hub.publish("company", company_id, await self.get_company(company_id))

    async def _publish_company_documents(self, company_id: str):
        if self.hub.has_subscribers("company_documents", company_id):
            await self.hub.publish("company_documents", company_id, await self.list_company_documents(company_id))
