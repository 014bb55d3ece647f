# backend configuration
# loads env vars for the lip-sync relay, gemini, mongodb and turn timing

import os
from pathlib import Path
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# load .env from project root
load_dotenv(Path(__file__).parent.parent.parent / ".env")


class Settings(BaseSettings):
    # service
    PORT: int = int(os.getenv("PORT", "3001"))
    FRONTEND_URL: str = os.getenv("FRONTEND_URL", "http://localhost:5173")

    # gooey lip-sync video provider
    GOOEY_API_KEY: str = os.getenv("GOOEY_API_KEY", "")
    GOOEY_LIPSYNC_ENDPOINT: str = os.getenv("GOOEY_LIPSYNC_ENDPOINT", "https://api.gooey.ai/v2/LipsyncTTS/")
    GOOEY_TIMEOUT_SECONDS: float = float(os.getenv("GOOEY_TIMEOUT_SECONDS", "180"))
    DEFAULT_FACE_URL: str = os.getenv(
        "DEFAULT_FACE_URL",
        "https://storage.googleapis.com/dara-c1b52.appspot.com/daras_ai/media/"
        "ec9dab26-7479-11ef-bf69-02420a0001c7/ai%20generated%208434149_1280.jpg",
    )
    # long replies are split into several lip-sync requests
    VIDEO_CHUNK_MAX_CHARS: int = int(os.getenv("VIDEO_CHUNK_MAX_CHARS", "400"))

    # gemini (reply generation, attachment extraction, vision)
    GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")
    GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")

    # mongodb
    MONGODB_URI: str = os.getenv("MONGODB_URI", "mongodb://localhost:27017")
    MONGODB_DATABASE: str = os.getenv("MONGODB_DATABASE", "avatar_chat")

    # turn timing
    SETTLE_DELAY_MS: int = int(os.getenv("SETTLE_DELAY_MS", "700"))
    CAPTION_LINE_MS: int = int(os.getenv("CAPTION_LINE_MS", "3000"))
    FRAME_CAPTURE_TIMEOUT_SECONDS: float = float(os.getenv("FRAME_CAPTURE_TIMEOUT_SECONDS", "5"))

    # attachment limits
    MAX_ATTACHMENTS: int = 5
    MAX_ATTACHMENT_BYTES: int = 5 * 1024 * 1024

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
