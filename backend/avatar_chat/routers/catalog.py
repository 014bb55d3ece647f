# catalog router: predefined avatars and selectable gemini models for the settings panel

from fastapi import APIRouter

from avatar_chat.models.catalog import GEMINI_MODELS, PREDEFINED_AVATARS, GeminiModelOption, PredefinedAvatar

router = APIRouter(prefix="/api/catalog", tags=["catalog"])


@router.get("/avatars", response_model=list[PredefinedAvatar])
async def list_avatars():
    return PREDEFINED_AVATARS


@router.get("/models", response_model=list[GeminiModelOption])
async def list_models():
    return GEMINI_MODELS
