# chat websocket: one turn orchestrator per connected chat view
# client messages become orchestrator events; orchestrator output goes back as {"type", "data"}
#
# connect with ?conversationId=... (single user) or ?companyId=... (shared company view)
# and ?capabilities=voice,attachments,vision

import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, WebSocket, status
from starlette.websockets import WebSocketDisconnect

from avatar_chat.dependencies import TurnServices, get_store, get_turn_services
from avatar_chat.orchestrator.events import InvalidClientEvent, parse_client_event
from avatar_chat.orchestrator.state import Capabilities
from avatar_chat.orchestrator.turn_orchestrator import TurnOrchestrator
from avatar_chat.orchestrator.ws_adapters import (
    WebSocketCamera,
    WebSocketSpeechCapture,
    WebSocketSpeechSynthesizer,
    WebSocketView,
)
from avatar_chat.services.conversation_store import ConversationStore

logger = logging.getLogger(__name__)
router = APIRouter(tags=["chat"])


@router.websocket("/ws/chat")
async def chat_socket(
    websocket: WebSocket,
    conversation_id: Optional[str] = Query(None, alias="conversationId"),
    company_id: Optional[str] = Query(None, alias="companyId"),
    capabilities: str = "voice",
    store: ConversationStore = Depends(get_store),
    services: TurnServices = Depends(get_turn_services),
):
    await websocket.accept()

    if not conversation_id and not company_id:
        await websocket.send_json({"type": "error", "data": {"message": "conversationId or companyId is required"}})
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    if not company_id and await store.get_conversation(conversation_id) is None:
        await websocket.send_json({"type": "error", "data": {"message": "Conversation not found"}})
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    caps = Capabilities.parse(capabilities, multi_user=bool(company_id))
    view = WebSocketView(websocket)
    synthesizer = WebSocketSpeechSynthesizer(view)
    camera = WebSocketCamera(view) if caps.vision else None
    orchestrator = TurnOrchestrator(
        view,
        store,
        responder=services.responder,
        video=services.video,
        synthesizer=synthesizer,
        capture=WebSocketSpeechCapture(view, supported=caps.voice_input),
        camera=camera,
        vision=services.vision if caps.vision else None,
        attachments=services.attachments if caps.attachments else None,
        capabilities=caps,
    )
    logger.info(f"[chat] connected ({company_id or conversation_id}, {caps})")

    try:
        if company_id:
            await orchestrator.open_company(company_id)
        else:
            await orchestrator.open(conversation_id)

        while True:
            raw = await websocket.receive_text()
            try:
                msg = json.loads(raw)
                if not isinstance(msg, dict):
                    raise InvalidClientEvent("message must be a json object")
                kind = msg.get("type")
                # platform callbacks answered by the adapters themselves
                if kind == "speech_end":
                    synthesizer.complete()
                    continue
                if kind == "frame":
                    if camera is not None:
                        camera.resolve_frame(msg)
                    continue
                event = parse_client_event(msg)
            except (ValueError, TypeError) as e:
                logger.warning(f"[chat] bad client message: {e}")
                await view.emit("notice", {"message": f"Invalid message: {e}"})
                continue

            if event is not None:
                await orchestrator.dispatch(event)
    except WebSocketDisconnect:
        logger.info("[chat] disconnected")
    finally:
        await orchestrator.close()
