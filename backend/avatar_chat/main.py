# avatar chat backend api
# fastapi app: gooey lip-sync relay, conversation store over motor, websocket turn orchestrator

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from avatar_chat.config import settings
from avatar_chat.services.db import db
from avatar_chat.routers import avatar, catalog, chat_ws, companies, conversations

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """startup: connect to mongodb and report credentials. shutdown: close connection."""
    logger.info("Starting avatar chat backend...")
    if not settings.GOOEY_API_KEY:
        logger.error("GOOEY_API_KEY is not set, avatar video generation will fail")
    if not settings.GEMINI_API_KEY:
        logger.warning("GEMINI_API_KEY is not set, replies will use the offline substitute")
    logger.info(f"Gooey API Key configured: {bool(settings.GOOEY_API_KEY)}")

    await db.connect()
    logger.info(f"Avatar chat backend ready on port {settings.PORT}")
    yield
    logger.info("Shutting down avatar chat backend...")
    await db.close()


app = FastAPI(
    title="Avatar Chat API",
    description="Backend API for the talking-avatar chat: lip-sync video relay, conversations and live turn orchestration",
    version="0.1.0",
    lifespan=lifespan,
)

# cors: allow frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL, "http://localhost:5173", "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.info(f"{request.method} {request.url.path}")
    return await call_next(request)


# register routers
app.include_router(avatar.router)
app.include_router(conversations.router)
app.include_router(companies.router)
app.include_router(catalog.router)
app.include_router(chat_ws.router)
