# conversation settings model and the single normalization policy
# every field has a non-empty default; absent, empty or unknown values fall back to it

from typing import Any, Literal, Optional, get_args
from pydantic import BaseModel, Field, model_validator

from avatar_chat.config import settings as app_settings
from avatar_chat.models.catalog import find_avatar

Tone = Literal["Professional", "Friendly", "Mentor"]
ResponseLength = Literal["Short", "Normal", "Detailed"]
VoiceGender = Literal["male", "female"]
Language = Literal["en", "hi"]

DEFAULT_DESCRIPTION = "A general purpose AI assistant"
DEFAULT_PERSONALITY = "A helpful and knowledgeable AI assistant"
DEFAULT_AVATAR_ID = "default-ai"
DEFAULT_GEMINI_MODEL = "gemini-2.5-flash"

MEDIA_FIELDS = ("avatar_image_url", "avatar_media_url", "avatar_preview_image_url")


def default_media_url(avatar_id: Optional[str]) -> str:
    """catalog image for predefined avatars, the stock face for custom ones"""
    avatar = find_avatar(avatar_id)
    if avatar is not None:
        return avatar.image_url
    return app_settings.DEFAULT_FACE_URL


class ConversationSettings(BaseModel):
    """how a conversation behaves: persona, voice, language, avatar and model"""
    description: str = DEFAULT_DESCRIPTION
    personality: str = DEFAULT_PERSONALITY
    tone: Tone = "Professional"
    response_length: ResponseLength = Field("Normal", alias="responseLength")
    avatar_voice_gender: VoiceGender = Field("female", alias="avatarVoiceGender")
    language: Language = "en"
    avatar_id: str = Field(DEFAULT_AVATAR_ID, alias="avatarId")
    avatar_image_url: str = Field("", alias="avatarImageUrl")
    avatar_media_url: str = Field("", alias="avatarMediaUrl")
    avatar_preview_image_url: str = Field("", alias="avatarPreviewImageUrl")
    selected_gemini_model: str = Field(DEFAULT_GEMINI_MODEL, alias="selectedGeminiModel")

    model_config = {"populate_by_name": True}

    @model_validator(mode="after")
    def _fill_media_urls(self):
        fallback = default_media_url(self.avatar_id)
        for name in MEDIA_FIELDS:
            if not getattr(self, name):
                setattr(self, name, fallback)
        return self

    def to_document(self) -> dict:
        """camelCase dict as stored on the conversation document"""
        return self.model_dump(by_alias=True)


class SettingsUpdate(BaseModel):
    """partial settings payload from the settings panel; missing keys keep defaults"""
    settings: dict[str, Any] = Field(default_factory=dict)


_ENUM_FIELDS = {
    "tone": get_args(Tone),
    "response_length": get_args(ResponseLength),
    "avatar_voice_gender": get_args(VoiceGender),
    "language": get_args(Language),
}


def default_settings() -> ConversationSettings:
    return ConversationSettings()


def _raw_value(raw: dict, name: str) -> Any:
    field = ConversationSettings.model_fields[name]
    if field.alias and field.alias in raw:
        return raw[field.alias]
    return raw.get(name)


def normalize_settings(raw: Any) -> ConversationSettings:
    """substitute documented defaults for undefined, null, blank or invalid fields.

    accepts a ConversationSettings, a camelCase or snake_case dict, or None.
    """
    if isinstance(raw, ConversationSettings):
        raw = raw.model_dump()
    if not isinstance(raw, dict):
        raw = {}

    clean: dict[str, Any] = {}
    for name in ConversationSettings.model_fields:
        value = _raw_value(raw, name)
        if value is None:
            continue
        if isinstance(value, str):
            value = value.strip()
            if not value:
                continue
        elif name not in _ENUM_FIELDS:
            # everything else is free text
            value = str(value)
        if name in _ENUM_FIELDS and value not in _ENUM_FIELDS[name]:
            continue
        clean[name] = value

    return ConversationSettings(**clean)


def apply_avatar_preset(current: ConversationSettings, avatar_id: str) -> ConversationSettings:
    """switch to a predefined avatar, taking its voice, tone, persona and image"""
    avatar = find_avatar(avatar_id)
    if avatar is None:
        return normalize_settings({**current.model_dump(), "avatar_id": avatar_id})

    updated = current.model_dump()
    updated.update(
        avatar_id=avatar.id,
        avatar_voice_gender=avatar.default_gender,
        tone=avatar.default_tone,
        personality=avatar.default_personality,
        avatar_image_url=avatar.image_url,
        avatar_media_url=avatar.image_url,
        avatar_preview_image_url=avatar.image_url,
    )
    return normalize_settings(updated)
