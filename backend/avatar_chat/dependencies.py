# fastapi dependency injection
# provides the conversation store and the services a chat view's turns call

import logging
from dataclasses import dataclass

from fastapi import Depends

from avatar_chat.services.attachment_service import AttachmentService
from avatar_chat.services.avatar_video_service import AvatarVideoGenerator
from avatar_chat.services.conversation_store import ConversationStore
from avatar_chat.services.db import Database, get_db
from avatar_chat.services.response_service import ResponseGenerator
from avatar_chat.services.subscriptions import SnapshotHub, get_hub
from avatar_chat.services.vision_service import VisionService

logger = logging.getLogger(__name__)


def get_store(
    db: Database = Depends(get_db),
    hub: SnapshotHub = Depends(get_hub),
) -> ConversationStore:
    """conversation store bound to the shared database and snapshot hub"""
    return ConversationStore(db, hub)


@dataclass
class TurnServices:
    responder: ResponseGenerator
    video: AvatarVideoGenerator
    vision: VisionService
    attachments: AttachmentService


def get_turn_services() -> TurnServices:
    """external-service adapters for one chat view"""
    return TurnServices(
        responder=ResponseGenerator(),
        video=AvatarVideoGenerator(),
        vision=VisionService(),
        attachments=AttachmentService(),
    )
