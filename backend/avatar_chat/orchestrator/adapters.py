"""
Adapter interfaces used by the turn orchestrator.

Each hardware or platform capability (the view, the microphone, speech
synthesis, the camera) is an explicitly owned handle passed into the
orchestrator. Implementations report platform callbacks back as typed
events through TurnOrchestrator.dispatch.
"""
from abc import ABC, abstractmethod
from typing import Any, Optional

from avatar_chat.services.vision_service import CapturedFrame

# browser speech-recognition error codes that mean the user refused the microphone
PERMISSION_ERRORS = ("not-allowed", "service-not-allowed")

CAPTURE_UNSUPPORTED = "Voice input not supported in this browser"

# (rate, pitch) for the fallback synthesizer per conversation tone
VOICE_PARAMS = {
    "Professional": (1.0, 1.0),
    "Friendly": (1.05, 1.1),
    "Mentor": (0.9, 0.95),
}


class CaptureBusyError(RuntimeError):
    """a capture session is already open on this handle"""


def classify_capture_error(error: str) -> str:
    """user-facing notice for a speech-recognition error code"""
    if error in PERMISSION_ERRORS:
        return "Microphone access denied"
    if error == "no-speech":
        return "No speech detected"
    return "Voice input failed"


def recognition_language(language: str) -> str:
    return "hi-IN" if language == "hi" else "en-US"


def voice_params(tone: str) -> tuple[float, float]:
    return VOICE_PARAMS.get(tone, VOICE_PARAMS["Professional"])


class TurnView(ABC):
    """where orchestrator output (state, captions, media commands, snapshots) goes"""

    @abstractmethod
    async def emit(self, event_type: str, payload: Any = None) -> None:
        pass


class SpeechCapture(ABC):
    """
    Microphone speech-recognition session.

    At most one session is live at a time; start() raises CaptureBusyError
    otherwise. Results come back as TranscriptReceived / CaptureFailed /
    CaptureEnded events.
    """

    @abstractmethod
    def is_supported(self) -> bool:
        pass

    @property
    @abstractmethod
    def active(self) -> bool:
        pass

    @abstractmethod
    async def start(self, language: str) -> None:
        pass

    @abstractmethod
    async def stop(self) -> None:
        """finish the session, letting the final transcript through"""
        pass

    @abstractmethod
    async def abort(self) -> None:
        """drop the session and any pending transcript"""
        pass

    @abstractmethod
    def session_ended(self) -> None:
        """mark the platform session as closed"""
        pass


class SpeechSynthesizer(ABC):
    """built-in text-to-speech used when no avatar video is available"""

    @abstractmethod
    def is_available(self) -> bool:
        pass

    @abstractmethod
    async def speak(self, text: str, tone: str, language: str) -> None:
        """speak the text and return once playback has completed or was cancelled"""
        pass

    @abstractmethod
    async def cancel(self) -> None:
        pass


class CameraHandle(ABC):
    """exclusive camera stream; frames are grabbed on demand"""

    @property
    @abstractmethod
    def active(self) -> bool:
        pass

    @abstractmethod
    async def start(self) -> None:
        pass

    @abstractmethod
    async def stop(self) -> None:
        pass

    @abstractmethod
    async def capture_frame(self) -> Optional[CapturedFrame]:
        """one still frame, or None if the camera is off or did not answer"""
        pass
