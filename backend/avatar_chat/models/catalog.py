# catalog models: predefined avatars and selectable gemini models
# mirrors the settings panel choices offered to the frontend

from typing import Literal
from pydantic import BaseModel, Field


class PredefinedAvatar(BaseModel):
    """an avatar preset the user can pick in the settings panel"""
    id: str
    name: str
    image_url: str = Field(..., alias="imageUrl")
    default_gender: Literal["male", "female"] = Field(..., alias="defaultGender")
    default_tone: Literal["Professional", "Friendly", "Mentor"] = Field(..., alias="defaultTone")
    default_personality: str = Field(..., alias="defaultPersonality")
    type: Literal["default", "celebrity", "professional"]

    model_config = {"populate_by_name": True}


class GeminiModelOption(BaseModel):
    id: str
    name: str
    locked: bool = False


PREDEFINED_AVATARS: list[PredefinedAvatar] = [
    PredefinedAvatar(
        id="default-ai",
        name="Default AI Avatar",
        imageUrl="https://images.pexels.com/photos/3769021/pexels-photo-3769021.jpeg?auto=compress&cs=tinysrgb&w=800",
        type="default",
        defaultGender="female",
        defaultTone="Professional",
        defaultPersonality="A helpful and knowledgeable AI assistant",
    ),
    PredefinedAvatar(
        id="einstein",
        name="Albert Einstein",
        imageUrl="https://images.pexels.com/photos/3785079/pexels-photo-3785079.jpeg?auto=compress&cs=tinysrgb&w=800",
        type="celebrity",
        defaultGender="male",
        defaultTone="Mentor",
        defaultPersonality="A brilliant scientist who explains complex concepts with curiosity and wisdom",
    ),
    PredefinedAvatar(
        id="mr-bean",
        name="Mr. Bean",
        imageUrl="https://images.pexels.com/photos/1181690/pexels-photo-1181690.jpeg?auto=compress&cs=tinysrgb&w=800",
        type="celebrity",
        defaultGender="male",
        defaultTone="Friendly",
        defaultPersonality="A playful and humorous character who makes conversations light and entertaining",
    ),
    PredefinedAvatar(
        id="professional-mentor",
        name="Professional Mentor",
        imageUrl="https://images.pexels.com/photos/220453/pexels-photo-220453.jpeg?auto=compress&cs=tinysrgb&w=800",
        type="professional",
        defaultGender="male",
        defaultTone="Mentor",
        defaultPersonality="An experienced mentor who provides thoughtful guidance and advice",
    ),
    PredefinedAvatar(
        id="friendly-assistant",
        name="Friendly Assistant",
        imageUrl="https://images.pexels.com/photos/774909/pexels-photo-774909.jpeg?auto=compress&cs=tinysrgb&w=800",
        type="professional",
        defaultGender="female",
        defaultTone="Friendly",
        defaultPersonality="A warm and approachable assistant who makes everyone feel comfortable",
    ),
]

GEMINI_MODELS: list[GeminiModelOption] = [
    GeminiModelOption(id="gemini-2.5-flash", name="Gemini 2.5 Flash"),
    GeminiModelOption(id="gemini-2.0-flash", name="Gemini 2.0 Flash"),
    GeminiModelOption(id="gemini-2.0-flash-exp", name="Gemini 2.0 Flash Experimental"),
    GeminiModelOption(id="gemini-2.5-flash-lite", name="Gemini 2.5 Flash Lite"),
    GeminiModelOption(id="gemini-flash-latest", name="Gemini Flash Latest"),
    GeminiModelOption(id="gemini-pro", name="Gemini Pro", locked=True),
    GeminiModelOption(id="gemini-ultra", name="Gemini Ultra", locked=True),
]


def find_avatar(avatar_id: str | None) -> PredefinedAvatar | None:
    """look up a predefined avatar by id, None for custom avatars"""
    for avatar in PREDEFINED_AVATARS:
        if avatar.id == avatar_id:
            return avatar
    return None
