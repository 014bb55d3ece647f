# avatar router: lip-sync video relay and service health
# the gooey credential stays server-side; the client only sees the result envelope

import logging
from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from avatar_chat.config import settings
from avatar_chat.models.avatar import AvatarVideoRequest, AvatarVideoResponse
from avatar_chat.services.avatar_video_service import generate_avatar_video

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["avatar"])


@router.get("/health")
async def health_check():
    """liveness plus whether the upstream video credential is configured"""
    return {
        "status": "ok",
        "serverTime": datetime.now(timezone.utc).isoformat(),
        "port": settings.PORT,
        "gooeyApiKeyConfigured": bool(settings.GOOEY_API_KEY),
    }


@router.post("/generate-avatar-video", response_model=AvatarVideoResponse, response_model_exclude_none=True)
async def generate_video(body: AvatarVideoRequest):
    """relay reply text to the lip-sync provider and return the video url(s)"""
    text = body.text or ""
    logger.info(f"Processing text: \"{text[:50]}...\"")

    try:
        result = await generate_avatar_video(
            text,
            language=body.language,
            gender=body.gender,
            face_url=body.avatar_media_url,
        )
    except Exception as e:
        logger.error(f"Error in /api/generate-avatar-video: {e}")
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})

    if not result.success:
        content = {"success": False, "error": result.error}
        if result.details is not None:
            content["details"] = result.details
        return JSONResponse(status_code=result.status_code, content=content)

    return AvatarVideoResponse(success=True, videoUrl=result.video_url, videoUrls=result.video_urls)
