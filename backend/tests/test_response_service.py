# tests for reply generation: prompt assembly, model fallback chain, substitute replies
# gemini is mocked by patching the per-model call

from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

from avatar_chat.models.conversation import Message
from avatar_chat.models.settings import ConversationSettings
from avatar_chat.services.prompting import (
    MAX_HISTORY_MESSAGES,
    build_system_prompt,
    compose_user_query,
    compose_vision_query,
)
from avatar_chat.services.response_service import (
    FALLBACK_MODELS,
    MAX_OUTPUT_TOKENS,
    ResponseGenerator,
    models_to_try,
    substitute_response,
)


def _message(i, sender="user"):
    return Message(
        id=str(i),
        conversationId="c1",
        sender=sender,
        text=f"message {i}",
        createdAt=datetime(2025, 1, 1, tzinfo=timezone.utc),
    )


class TestSystemPrompt:

    def test_includes_persona_and_directives(self):
        settings = ConversationSettings(
            description="A travel guide",
            personality="Curious",
            tone="Mentor",
            responseLength="Detailed",
            avatarVoiceGender="male",
            language="hi",
        )
        prompt = build_system_prompt(settings)
        assert "A travel guide" in prompt
        assert "Curious" in prompt
        assert "patient mentor" in prompt
        assert "thorough, comprehensive" in prompt
        assert "Male" in prompt
        assert "Respond ONLY in Hindi" in prompt

    def test_history_trimmed_to_window(self):
        history = [_message(i, "user" if i % 2 else "ai") for i in range(10)]
        prompt = build_system_prompt(ConversationSettings(), history)
        assert "message 3" not in prompt
        for i in range(10 - MAX_HISTORY_MESSAGES, 10):
            assert f"message {i}" in prompt
        assert "AI: message 8" in prompt
        assert "User: message 9" in prompt

    def test_no_history_block_when_empty(self):
        assert "CONVERSATION CONTEXT" not in build_system_prompt(ConversationSettings(), [])


class TestUserQuery:

    def test_plain_text_passthrough(self):
        assert compose_user_query("hi") == "hi"

    def test_attachment_and_documents(self):
        query = compose_user_query("what is the refund policy?", "invoice total 40", "Policy:\n30 days")
        assert query.index("Company Documents:") < query.index("Attached content context:")
        assert query.endswith("User query:\nwhat is the refund policy?")

    def test_vision_query(self):
        query = compose_vision_query("what's in my hand?", "[Current view - 10:00:00] I can see a cup")
        assert "LIVE CAMERA ACCESS" in query
        assert "I can see a cup" in query
        assert "what's in my hand?" in query

    def test_vision_query_without_window(self):
        assert compose_vision_query("hi", "") == "hi"


class TestModelOrder:

    def test_selected_first_without_repeats(self):
        order = models_to_try("gemini-2.0-flash")
        assert order[0] == "gemini-2.0-flash"
        assert order.count("gemini-2.0-flash") == 1
        assert set(FALLBACK_MODELS) <= set(order)

    def test_default_when_unset(self):
        assert models_to_try(None)[0] == "gemini-2.5-flash"


class TestSubstituteResponse:

    def test_deterministic(self):
        settings = ConversationSettings()
        assert substitute_response(settings, "hello") == substitute_response(settings, "hello")

    def test_tone_prefix_and_echo(self):
        reply = substitute_response(ConversationSettings(tone="Friendly"), "how do tides work")
        assert reply.startswith("Hey there! ")
        assert '"how do tides work"' in reply

    def test_long_question_truncated(self):
        question = "x" * 80
        reply = substitute_response(ConversationSettings(), question)
        assert f'"{"x" * 50}..."' in reply


class TestResponseGenerator:
    """fallback chain"""

    async def test_no_key_uses_substitute(self):
        generator = ResponseGenerator(api_key="")
        with patch.object(ResponseGenerator, "_try_model", AsyncMock()) as mock_try:
            reply = await generator.generate("hello", ConversationSettings())
        assert reply
        mock_try.assert_not_called()

    async def test_selected_model_first(self):
        generator = ResponseGenerator(api_key="test-key")
        settings = ConversationSettings(selectedGeminiModel="gemini-2.0-flash", responseLength="Short")
        with patch.object(ResponseGenerator, "_try_model", AsyncMock(return_value="Sure thing.")) as mock_try:
            reply = await generator.generate("hello", settings)

        assert reply == "Sure thing."
        model, max_tokens, inputs = mock_try.call_args.args
        assert model == "gemini-2.0-flash"
        assert max_tokens == MAX_OUTPUT_TOKENS["Short"]
        assert inputs["query"] == "hello"

    async def test_falls_back_on_error_and_empty(self):
        generator = ResponseGenerator(api_key="test-key")
        mock_try = AsyncMock(side_effect=[RuntimeError("quota exceeded"), None, "Third time lucky."])
        with patch.object(ResponseGenerator, "_try_model", mock_try):
            reply = await generator.generate("hello", ConversationSettings())

        assert reply == "Third time lucky."
        tried = [c.args[0] for c in mock_try.call_args_list]
        assert tried == models_to_try("gemini-2.5-flash")[:3]

    async def test_all_models_fail_still_replies(self):
        generator = ResponseGenerator(api_key="test-key")
        settings = ConversationSettings(responseLength="Short")
        with patch.object(ResponseGenerator, "_try_model", AsyncMock(side_effect=RuntimeError("down"))) as mock_try:
            reply = await generator.generate("hello", settings)

        assert reply == substitute_response(settings, "hello")
        assert mock_try.call_count == len(models_to_try("gemini-2.5-flash"))
