# tests for attachment extraction and the per-turn attachment limits
# gemini is mocked at the llm factory

import base64
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from avatar_chat.config import settings
from avatar_chat.services.attachment_service import (
    NO_CONTENT,
    AttachmentRejected,
    AttachmentService,
    check_attachment,
)

SERVICE = "avatar_chat.services.attachment_service"


class TestLimits:

    def test_within_limits(self):
        check_attachment("notes.pdf", 1024, pending_count=4)

    def test_too_many(self):
        with pytest.raises(AttachmentRejected) as exc:
            check_attachment("sixth.png", 10, pending_count=settings.MAX_ATTACHMENTS)
        assert "maximum of 5" in str(exc.value)

    def test_too_large(self):
        with pytest.raises(AttachmentRejected) as exc:
            check_attachment("huge.pdf", settings.MAX_ATTACHMENT_BYTES + 1, pending_count=0)
        assert str(exc.value) == "huge.pdf exceeds 5MB limit"


class TestExtraction:

    async def test_sends_inline_base64(self):
        llm = MagicMock()
        llm.ainvoke = AsyncMock(return_value=MagicMock(content="  Invoice #42, total $40  "))
        with patch(f"{SERVICE}.get_extraction_llm", return_value=llm) as mock_factory:
            text = await AttachmentService(api_key="test-key").extract("invoice.pdf", "application/pdf", b"%PDF-1.4")

        assert text == "Invoice #42, total $40"
        mock_factory.assert_called_once_with("test-key")
        message = llm.ainvoke.call_args.args[0][0]
        media = message.content[1]
        assert media["type"] == "media"
        assert media["mime_type"] == "application/pdf"
        assert media["data"] == base64.b64encode(b"%PDF-1.4").decode("ascii")

    async def test_empty_result_placeholder(self):
        llm = MagicMock()
        llm.ainvoke = AsyncMock(return_value=MagicMock(content=""))
        with patch(f"{SERVICE}.get_extraction_llm", return_value=llm):
            text = await AttachmentService(api_key="test-key").extract("blank.png", "image/png", b"\x89PNG")
        assert text == NO_CONTENT

    async def test_no_key_placeholder(self):
        with patch(f"{SERVICE}.get_extraction_llm") as mock_factory:
            text = await AttachmentService(api_key="").extract("a.png", "image/png", b"\x89PNG")
        assert text == NO_CONTENT
        mock_factory.assert_not_called()

    async def test_model_error_propagates(self):
        llm = MagicMock()
        llm.ainvoke = AsyncMock(side_effect=RuntimeError("quota"))
        with patch(f"{SERVICE}.get_extraction_llm", return_value=llm):
            with pytest.raises(RuntimeError):
                await AttachmentService(api_key="test-key").extract("a.png", "image/png", b"\x89PNG")
