# websocket-backed adapters: the browser owns the microphone, speech synthesis and camera
# commands go out as {"type": ..., "data": ...}; platform callbacks come back as client messages

import asyncio
import base64
import binascii
import logging
import uuid
from typing import Any, Optional

from fastapi import WebSocket

from avatar_chat.config import settings
from avatar_chat.orchestrator.adapters import (
    CameraHandle,
    CaptureBusyError,
    SpeechCapture,
    SpeechSynthesizer,
    TurnView,
    recognition_language,
    voice_params,
)
from avatar_chat.services.vision_service import CapturedFrame

logger = logging.getLogger(__name__)


def _dimension(value: Any) -> int:
    """pixel size from a client frame; 0 (unknown) when missing or malformed"""
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        return 0


class WebSocketView(TurnView):
    def __init__(self, websocket: WebSocket):
        self.websocket = websocket

    async def emit(self, event_type: str, payload: Any = None) -> None:
        await self.websocket.send_json({"type": event_type, "data": payload})


class WebSocketSpeechCapture(SpeechCapture):
    """browser speech recognition driven by listen commands"""

    def __init__(self, view: TurnView, supported: bool = True):
        self.view = view
        self.supported = supported
        self._active = False

    def is_supported(self) -> bool:
        return self.supported

    @property
    def active(self) -> bool:
        return self._active

    async def start(self, language: str) -> None:
        if self._active:
            raise CaptureBusyError("speech capture session already open")
        self._active = True
        await self.view.emit("listen", {"action": "start", "lang": language})

    async def stop(self) -> None:
        await self.view.emit("listen", {"action": "stop"})

    async def abort(self) -> None:
        self._active = False
        await self.view.emit("listen", {"action": "abort"})

    def session_ended(self) -> None:
        self._active = False


class WebSocketSpeechSynthesizer(SpeechSynthesizer):
    """browser speechSynthesis; speak() waits for the client's speech_end"""

    def __init__(self, view: TurnView, available: bool = True):
        self.view = view
        self.available = available
        self._pending: Optional[asyncio.Future] = None

    def is_available(self) -> bool:
        return self.available

    async def speak(self, text: str, tone: str, language: str) -> None:
        await self.cancel()
        rate, pitch = voice_params(tone)
        self._pending = asyncio.get_running_loop().create_future()
        await self.view.emit("speak", {
            "text": text,
            "lang": recognition_language(language),
            "rate": rate,
            "pitch": pitch,
        })
        await self._pending

    def complete(self) -> None:
        """client reported the utterance finished"""
        if self._pending is not None and not self._pending.done():
            self._pending.set_result(None)
        self._pending = None

    async def cancel(self) -> None:
        if self._pending is None:
            return
        self.complete()
        await self.view.emit("speak_cancel")


class WebSocketCamera(CameraHandle):
    """browser camera stream; frames are requested by id and answered with base64 images"""

    def __init__(self, view: TurnView, timeout: Optional[float] = None):
        self.view = view
        self.timeout = settings.FRAME_CAPTURE_TIMEOUT_SECONDS if timeout is None else timeout
        self._active = False
        self._requests: dict[str, asyncio.Future] = {}

    @property
    def active(self) -> bool:
        return self._active

    async def start(self) -> None:
        self._active = True
        await self.view.emit("camera", {"active": True})
        logger.info("Camera started")

    async def stop(self) -> None:
        self._active = False
        for future in self._requests.values():
            if not future.done():
                future.set_result(None)
        self._requests.clear()
        await self.view.emit("camera", {"active": False})
        logger.info("Camera stopped")

    async def capture_frame(self) -> Optional[CapturedFrame]:
        if not self._active:
            return None

        request_id = uuid.uuid4().hex
        future = asyncio.get_running_loop().create_future()
        self._requests[request_id] = future
        await self.view.emit("capture_frame", {"requestId": request_id})
        try:
            return await asyncio.wait_for(future, self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Frame capture timed out after {self.timeout}s")
            return None
        finally:
            self._requests.pop(request_id, None)

    def resolve_frame(self, msg: dict) -> None:
        """answer a pending capture_frame request from a client 'frame' message"""
        future = self._requests.get(msg.get("requestId") or "")
        if future is None or future.done():
            return
        try:
            data = base64.b64decode(msg.get("data") or "", validate=True)
        except (binascii.Error, ValueError) as e:
            logger.warning(f"Discarding undecodable frame: {e}")
            future.set_result(None)
            return
        future.set_result(CapturedFrame(
            data=data,
            mime_type=msg.get("mimeType") or "image/jpeg",
            width=_dimension(msg.get("width")),
            height=_dimension(msg.get("height")),
        ))
