# turn state machine states and the capability set that selects the chat-view variant

from dataclasses import dataclass
from enum import Enum


class TurnState(str, Enum):
    """states of one chat view's turn lifecycle"""
    IDLE = "idle"
    LISTENING = "listening"
    THINKING = "thinking"
    SPEAKING = "speaking"


BUSY_STATES = (TurnState.THINKING, TurnState.SPEAKING)


@dataclass(frozen=True)
class Capabilities:
    voice_input: bool = True
    attachments: bool = False
    vision: bool = False
    multi_user: bool = False

    @classmethod
    def parse(cls, value: str, multi_user: bool = False) -> "Capabilities":
        """build from a comma separated list such as 'voice,attachments,vision'"""
        names = {part.strip().lower() for part in (value or "").split(",") if part.strip()}
        return cls(
            voice_input="voice" in names,
            attachments="attachments" in names,
            vision="vision" in names,
            multi_user=multi_user,
        )
