# attachment service: extracts text context from uploaded files with gemini
# the file is sent inline as base64 next to the extraction instruction

import base64
import logging
from typing import Optional

from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_core.messages import HumanMessage

from avatar_chat.config import settings

logger = logging.getLogger(__name__)

EXTRACTION_MODEL = "gemini-2.5-flash"
NO_CONTENT = "No extractable content found."

EXTRACTION_INSTRUCTION = (
    "You are a document analysis and information extraction assistant. "
    "Extract ALL meaningful information from the attached file."
)


class AttachmentRejected(ValueError):
    """attachment breaks the per-turn count or size limit"""


def get_extraction_llm(api_key: str) -> ChatGoogleGenerativeAI:
    return ChatGoogleGenerativeAI(
        model=EXTRACTION_MODEL,
        google_api_key=api_key,
        temperature=0.2,
        top_k=32,
        top_p=0.9,
        max_output_tokens=4096,
    )


def check_attachment(filename: str, size: int, pending_count: int) -> None:
    """raise AttachmentRejected when a new file would break the limits"""
    if pending_count + 1 > settings.MAX_ATTACHMENTS:
        raise AttachmentRejected(f"You can upload a maximum of {settings.MAX_ATTACHMENTS} attachments.")
    if size > settings.MAX_ATTACHMENT_BYTES:
        limit_mb = settings.MAX_ATTACHMENT_BYTES // (1024 * 1024)
        raise AttachmentRejected(f"{filename} exceeds {limit_mb}MB limit")


class AttachmentService:
    """turns an uploaded image/pdf/etc. into textual prompt context"""

    def __init__(self, api_key: Optional[str] = None):
        self.api_key = settings.GEMINI_API_KEY if api_key is None else api_key

    async def extract(self, filename: str, mime_type: str, data: bytes) -> str:
        if not self.api_key:
            logger.warning(f"Gemini key missing, cannot extract {filename}")
            return NO_CONTENT

        encoded = base64.b64encode(data).decode("ascii")
        message = HumanMessage(content=[
            {"type": "text", "text": EXTRACTION_INSTRUCTION},
            {"type": "media", "mime_type": mime_type, "data": encoded},
        ])

        llm = get_extraction_llm(self.api_key)
        result = await llm.ainvoke([message])
        text = result.content if isinstance(result.content, str) else ""
        text = text.strip()
        logger.info(f"Extracted {len(text)} chars from {filename} ({mime_type})")
        return text or NO_CONTENT
