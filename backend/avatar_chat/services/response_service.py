# response service: gemini reply generation with a model fallback chain
# selected model first, then alternates, then a local templated reply
#
# generation pipeline:
#   1. build the persona system prompt from settings + recent history
#   2. try the selected gemini model via langchain
#   3. on failure or empty text, walk FALLBACK_MODELS in order
#   4. if every model fails (or no key is configured), synthesize a local reply

import logging
import zlib
from typing import Optional

from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_core.prompts import ChatPromptTemplate
from langchain_core.output_parsers import StrOutputParser

from avatar_chat.config import settings as app_settings
from avatar_chat.models.conversation import Message
from avatar_chat.models.settings import ConversationSettings, DEFAULT_GEMINI_MODEL
from avatar_chat.services.prompting import build_system_prompt

logger = logging.getLogger(__name__)

# alternates tried after the selected model, in order
FALLBACK_MODELS = [
    "gemini-2.5-flash",
    "gemini-2.0-flash",
    "gemini-2.0-flash-exp",
    "gemini-2.5-flash-lite",
    "gemini-flash-latest",
]

MAX_OUTPUT_TOKENS = {
    "Short": 100,
    "Normal": 250,
    "Detailed": 500,
}

REPLY_PROMPT = ChatPromptTemplate.from_messages([
    ("human", "{system_prompt}\n\nCurrent user query: {query}"),
])

NORMAL_RESPONSES = [
    "That's a great question! Let me break it down for you in a way that's easy to understand.",
    "I appreciate you asking about this topic. Here's what I think you should know.",
    "Based on my understanding, here's a comprehensive explanation of your query.",
    "Let me walk you through this step by step so it's crystal clear.",
    "This is an interesting point you've raised. Here's my perspective on it.",
]

SHORT_RESPONSES = [
    "Got it! Here's the quick answer.",
    "In short, yes that's correct.",
    "Here's the brief explanation.",
]

DETAILED_RESPONSES = [
    "Let me provide a comprehensive analysis of this topic. First, we need to understand the fundamental "
    "concepts. Then, I'll walk you through the practical applications and implications.",
    "This is a multifaceted question that deserves a thorough response. Let me break it down into several "
    "components and address each one systematically.",
]

TONE_PREFIXES = {
    "Professional": "",
    "Friendly": "Hey there! ",
    "Mentor": "Great question. ",
}


def get_llm(model: str, max_output_tokens: int, api_key: str) -> ChatGoogleGenerativeAI:
    """create a gemini llm instance for reply generation"""
    return ChatGoogleGenerativeAI(
        model=model,
        google_api_key=api_key,
        temperature=0.7,
        top_k=40,
        top_p=0.95,
        max_output_tokens=max_output_tokens,
    )


def models_to_try(selected: Optional[str]) -> list[str]:
    """selected model first, then the alternates, without repeats"""
    ordered = [selected or DEFAULT_GEMINI_MODEL, *FALLBACK_MODELS]
    return list(dict.fromkeys(ordered))


def substitute_response(settings: ConversationSettings, user_message: str) -> str:
    """deterministic offline reply built from tone and length templates"""
    if settings.response_length == "Short":
        templates = SHORT_RESPONSES
    elif settings.response_length == "Detailed":
        templates = DETAILED_RESPONSES
    else:
        templates = NORMAL_RESPONSES

    base = templates[zlib.crc32(user_message.encode("utf-8")) % len(templates)]
    prefix = TONE_PREFIXES.get(settings.tone, "")

    if len(user_message) > 50:
        suffix = f' This relates to your question about "{user_message[:50]}..."'
    else:
        suffix = f' This addresses your question: "{user_message}"'

    return prefix + base + suffix


class ResponseGenerator:
    """produces the assistant's reply text; never raises to the caller"""

    def __init__(self, api_key: Optional[str] = None):
        self.api_key = app_settings.GEMINI_API_KEY if api_key is None else api_key

    async def _try_model(self, model: str, max_tokens: int, inputs: dict) -> Optional[str]:
        chain = REPLY_PROMPT | get_llm(model, max_tokens, self.api_key) | StrOutputParser()
        text = await chain.ainvoke(inputs)
        text = (text or "").strip()
        return text or None

    async def generate(
        self,
        user_message: str,
        settings: ConversationSettings,
        history: Optional[list[Message]] = None,
    ) -> str:
        if not self.api_key:
            logger.warning("Gemini key missing, using substitute response")
            return substitute_response(settings, user_message)

        inputs = {
            "system_prompt": build_system_prompt(settings, history),
            "query": user_message,
        }
        max_tokens = MAX_OUTPUT_TOKENS.get(settings.response_length, 250)

        for model in models_to_try(settings.selected_gemini_model):
            try:
                text = await self._try_model(model, max_tokens, inputs)
            except Exception as e:
                logger.warning(f"Model {model} failed: {e}")
                continue
            if text:
                logger.info(f"Reply generated with model: {model}")
                return text
            logger.warning(f"No text in response for model: {model}")

        logger.error("All Gemini models failed, using substitute response")
        return substitute_response(settings, user_message)
