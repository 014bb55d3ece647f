# avatar video service: lip-synced talking video via the gooey LipsyncTTS api
# google tts voice by language/gender, wav2lip model, public face image url

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from avatar_chat.config import settings

logger = logging.getLogger(__name__)

TERMINAL_PUNCTUATION = (".", "!", "?", "।")
# appended when a reply stops mid-sentence; the lip-sync tts otherwise clips the last word
SENTENCE_END_MARK = "।"

GOOGLE_VOICES = {
    ("hi", "male"): "hi-IN-Wavenet-B",
    ("hi", "female"): "hi-IN-Wavenet-A",
    ("en", "male"): "en-IN-Wavenet-C",
    ("en", "female"): "en-IN-Wavenet-A",
}

FACE_PADDING = {
    "face_padding_top": 3,
    "face_padding_bottom": 16,
    "face_padding_left": 12,
    "face_padding_right": 6,
}

_SENTENCE_RE = re.compile(r"[^.!?।]+[.!?।]+|[^.!?।]+$")


class AvatarVideoError(Exception):
    """upstream lip-sync request failed"""

    def __init__(self, message: str, status_code: int = 500, details: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


@dataclass
class AvatarVideoResult:
    success: bool
    video_urls: list[str] = field(default_factory=list)
    error: Optional[str] = None
    details: Any = None
    status_code: int = 200

    @property
    def video_url(self) -> Optional[str]:
        return self.video_urls[0] if self.video_urls else None

    @property
    def playable(self) -> bool:
        return self.success and bool(self.video_urls)


def prepare_text_for_video(text: str) -> str:
    """collapse whitespace and guarantee terminal sentence punctuation"""
    cleaned = re.sub(r"\s+", " ", text or "").strip()
    if cleaned and not cleaned.endswith(TERMINAL_PUNCTUATION):
        return cleaned + SENTENCE_END_MARK
    return cleaned


def pick_google_voice(language: str, gender: str) -> str:
    lang = "hi" if language == "hi" else "en"
    sex = "male" if gender == "male" else "female"
    return GOOGLE_VOICES[(lang, sex)]


def split_into_chunks(text: str, max_chars: int) -> list[str]:
    """split on sentence boundaries so each chunk stays under max_chars.

    a single sentence longer than max_chars becomes its own chunk.
    """
    sentences = [s.strip() for s in _SENTENCE_RE.findall(text) if s.strip()]
    chunks: list[str] = []
    current = ""
    for sentence in sentences:
        candidate = f"{current} {sentence}".strip()
        if current and len(candidate) > max_chars:
            chunks.append(current)
            current = sentence
        else:
            current = candidate
    if current:
        chunks.append(current)
    return chunks


def build_lipsync_payload(text: str, voice_name: str, face_url: str) -> dict:
    return {
        "text_prompt": text,
        "tts_provider": "GOOGLE_TTS",
        "google_voice_name": voice_name,
        "google_speaking_rate": 1.0,
        "selected_model": "Wav2Lip",
        **FACE_PADDING,
        # must be a public https image url
        "input_face": face_url,
    }


async def request_lipsync_video(
    text: str,
    language: str,
    gender: str,
    face_url: str,
    client: Optional[httpx.AsyncClient] = None,
) -> str:
    """call gooey once and return the output video url"""
    if not settings.GOOEY_API_KEY:
        raise AvatarVideoError("Server configuration error: GOOEY_API_KEY not set", status_code=500)

    payload = build_lipsync_payload(text, pick_google_voice(language, gender), face_url)
    headers = {
        "Authorization": f"bearer {settings.GOOEY_API_KEY}",
        "Content-Type": "application/json",
    }

    logger.info(f"Calling Gooey LipsyncTTS API ({len(text)} chars, voice={payload['google_voice_name']})")
    if client is None:
        async with httpx.AsyncClient(timeout=settings.GOOEY_TIMEOUT_SECONDS) as own_client:
            resp = await own_client.post(settings.GOOEY_LIPSYNC_ENDPOINT, headers=headers, json=payload)
    else:
        resp = await client.post(settings.GOOEY_LIPSYNC_ENDPOINT, headers=headers, json=payload)

    logger.info(f"Gooey response status: {resp.status_code}")
    if resp.status_code >= 400:
        logger.error(f"Gooey API error: {resp.status_code} {resp.text[:200]}")
        raise AvatarVideoError("Gooey API request failed", status_code=resp.status_code, details=resp.text)

    try:
        result = resp.json()
    except ValueError:
        logger.error(f"Gooey returned a non-json body: {resp.text[:200]}")
        raise AvatarVideoError("Invalid response from Gooey", status_code=502, details=resp.text)

    output = result.get("output") if isinstance(result, dict) else None
    if not isinstance(output, dict):
        raise AvatarVideoError("Invalid response from Gooey", status_code=502, details=resp.text)

    video_url = output.get("output_video")
    if not video_url or not isinstance(video_url, str):
        raise AvatarVideoError("No output_video returned by Gooey", status_code=500, details=result)
    return video_url


async def generate_avatar_video(
    text: str,
    language: str = "en",
    gender: str = "male",
    face_url: Optional[str] = None,
    max_chars: Optional[int] = None,
) -> AvatarVideoResult:
    """generate one video per text chunk, in order; any chunk failure fails the whole result.

    pure with respect to conversation state: the caller interprets the result.
    """
    safe_text = prepare_text_for_video(text)
    if not safe_text:
        return AvatarVideoResult(success=False, error="Text is required", status_code=400)

    face = face_url or settings.DEFAULT_FACE_URL
    chunks = split_into_chunks(safe_text, max_chars or settings.VIDEO_CHUNK_MAX_CHARS)
    urls: list[str] = []

    try:
        async with httpx.AsyncClient(timeout=settings.GOOEY_TIMEOUT_SECONDS) as client:
            for index, chunk in enumerate(chunks):
                logger.info(f"Requesting avatar video chunk {index + 1}/{len(chunks)}")
                urls.append(await request_lipsync_video(chunk, language, gender, face, client=client))
    except AvatarVideoError as e:
        return AvatarVideoResult(success=False, error=str(e), details=e.details, status_code=e.status_code)
    except httpx.HTTPError as e:
        logger.error(f"Gooey request error: {e}")
        return AvatarVideoResult(success=False, error=str(e), status_code=500)

    return AvatarVideoResult(success=True, video_urls=urls)


class AvatarVideoGenerator:
    """orchestrator-facing adapter over generate_avatar_video"""

    async def generate(self, text: str, language: str, gender: str, face_url: Optional[str]) -> AvatarVideoResult:
        try:
            return await generate_avatar_video(text, language=language, gender=gender, face_url=face_url)
        except Exception as e:
            logger.error(f"Avatar video generation crashed: {e}")
            return AvatarVideoResult(success=False, error=str(e), status_code=500)
