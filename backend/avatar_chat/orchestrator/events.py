# typed events consumed by the turn orchestrator's dispatch point
# client json messages are parsed into these by parse_client_event

import base64
import binascii
from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class TextSubmitted:
    text: str


@dataclass
class ListenRequested:
    pass


@dataclass
class ListenStopped:
    pass


@dataclass
class TranscriptReceived:
    text: str
    is_final: bool = False


@dataclass
class CaptureFailed:
    error: str


@dataclass
class CaptureEnded:
    pass


@dataclass
class VideoChunkEnded:
    index: int


@dataclass
class VideoChunkFailed:
    index: int


@dataclass
class ConversationSwitched:
    conversation_id: str


@dataclass
class AttachmentAdded:
    filename: str
    mime_type: str
    data: bytes = field(repr=False)


@dataclass
class AttachmentsCleared:
    pass


@dataclass
class CameraToggled:
    active: bool


@dataclass
class SettingsChanged:
    settings: dict[str, Any]


@dataclass
class AvatarSelected:
    avatar_id: str


class InvalidClientEvent(ValueError):
    """client message is missing a type or a required field"""


def _decode_attachment(msg: dict) -> AttachmentAdded:
    try:
        data = base64.b64decode(msg.get("data") or "", validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidClientEvent(f"attachment data is not valid base64: {e}")
    return AttachmentAdded(
        filename=msg.get("filename") or "attachment",
        mime_type=msg.get("mimeType") or "application/octet-stream",
        data=data,
    )


def _require(msg: dict, key: str) -> Any:
    if msg.get(key) is None:
        raise InvalidClientEvent(f"'{msg.get('type')}' message requires '{key}'")
    return msg[key]


def _require_index(msg: dict) -> int:
    value = _require(msg, "index")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidClientEvent(f"'{msg.get('type')}' index must be an integer, got {value!r}")


def parse_client_event(msg: dict) -> Optional[object]:
    """map one client message to an orchestrator event.

    returns None for message types that are handled by adapters directly
    (speech_end, frame) rather than by the orchestrator.
    """
    kind = msg.get("type")
    if not kind:
        raise InvalidClientEvent("message has no type")

    if kind == "submit":
        return TextSubmitted(text=str(_require(msg, "text")))
    if kind == "listen_start":
        return ListenRequested()
    if kind == "listen_stop":
        return ListenStopped()
    if kind == "transcript":
        return TranscriptReceived(text=str(msg.get("text") or ""), is_final=bool(msg.get("isFinal")))
    if kind == "capture_error":
        return CaptureFailed(error=str(msg.get("error") or "unknown"))
    if kind == "capture_end":
        return CaptureEnded()
    if kind == "video_ended":
        return VideoChunkEnded(index=_require_index(msg))
    if kind == "video_error":
        return VideoChunkFailed(index=_require_index(msg))
    if kind == "switch_conversation":
        return ConversationSwitched(conversation_id=str(_require(msg, "conversationId")))
    if kind == "attachment":
        return _decode_attachment(msg)
    if kind == "clear_attachments":
        return AttachmentsCleared()
    if kind == "camera":
        return CameraToggled(active=bool(msg.get("active")))
    if kind == "update_settings":
        settings = _require(msg, "settings")
        if not isinstance(settings, dict):
            raise InvalidClientEvent("'update_settings' settings must be an object")
        return SettingsChanged(settings=settings)
    if kind == "select_avatar":
        return AvatarSelected(avatar_id=str(_require(msg, "avatarId")))
    if kind in ("speech_end", "frame"):
        return None
    raise InvalidClientEvent(f"unknown message type: {kind}")
