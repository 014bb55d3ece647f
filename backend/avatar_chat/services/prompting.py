# prompt assembly for the live video-call persona
# settings + recent history + optional attachment, document or camera context

from typing import Optional

from avatar_chat.models.conversation import Message
from avatar_chat.models.settings import ConversationSettings

# prior messages sent to the model with every turn
MAX_HISTORY_MESSAGES = 6

TONE_INSTRUCTIONS = {
    "Professional": "Respond in a professional, clear, and articulate manner. Be informative and precise.",
    "Friendly": "Respond in a warm, friendly, and approachable manner. Use conversational language and be encouraging.",
    "Mentor": "Respond as a patient mentor or teacher. Guide the user through concepts and offer thoughtful advice.",
}

LENGTH_INSTRUCTIONS = {
    "Short": "Keep your response brief and to the point. Use 1-2 sentences maximum.",
    "Normal": "Provide a balanced response with enough detail to be helpful but not overwhelming. Use 2-4 sentences.",
    "Detailed": "Provide a thorough, comprehensive response with examples and explanations. Be detailed but organized.",
}

LANGUAGE_NAMES = {
    "en": "English",
    "hi": "Hindi",
}


def _format_history(history: list[Message]) -> str:
    """format the recent history window into a context block"""
    if not history:
        return ""

    recent = history[-MAX_HISTORY_MESSAGES:]
    lines = [f"{'User' if msg.sender == 'user' else 'AI'}: {msg.text}" for msg in recent]
    return "\nCONVERSATION CONTEXT (recent messages):\n" + "\n".join(lines) + "\n"


def build_system_prompt(settings: ConversationSettings, history: Optional[list[Message]] = None) -> str:
    language = LANGUAGE_NAMES.get(settings.language, "English")
    voice_gender = "Male" if settings.avatar_voice_gender == "male" else "Female"
    conversation_context = _format_history(history or [])

    return f"""You are an AI assistant in a live video call conversation.

=== DESCRIPTION (CONTEXTUAL ROLE) ===
{settings.description}

=== AI PERSONALITY ===
{settings.personality}

=== CONVERSATION TONE ===
{TONE_INSTRUCTIONS[settings.tone]}

=== RESPONSE DEPTH ===
{LENGTH_INSTRUCTIONS[settings.response_length]}

=== AVATAR VOICE GENDER ===
{voice_gender}

=== LANGUAGE ===
Respond ONLY in {language}. All your responses must be in {language}.
{conversation_context}
=== MANDATORY INSTRUCTIONS ===
- You are speaking in a LIVE video call - respond naturally and conversationally
- Sound natural as if you are actually talking to someone face-to-face
- Match the selected tone ({settings.tone}) and response depth ({settings.response_length})
- Respond ONLY in {language} - do not mix languages
- Do NOT mention that you are an AI model or assistant
- Do NOT use markdown formatting, bullet points, or special characters
- Do NOT use asterisks, bold, or italic markers
- Speak in complete sentences suitable for text-to-speech
- Be engaging, warm, and personable"""


def compose_user_query(
    user_text: str,
    attachment_context: str = "",
    document_context: str = "",
) -> str:
    """wrap the user's words with uploaded-file and company-document context"""
    if not attachment_context and not document_context:
        return user_text

    parts = []
    if document_context:
        parts.append(f"Company Documents:\n{document_context}")
    if attachment_context:
        parts.append(f"Attached content context:\n{attachment_context}")
    parts.append(f"User query:\n{user_text}")
    return "\n\n".join(parts)


def format_company_documents(documents) -> str:
    return "\n\n".join(f"{doc.title}:\n{doc.content}" for doc in documents)


def compose_vision_query(user_text: str, vision_window: str) -> str:
    """frame the question around what the camera currently sees"""
    if not vision_window:
        return user_text

    return f"""IMPORTANT: You are an AI assistant with LIVE CAMERA ACCESS. You can SEE through the camera in real-time.

WHAT YOU CAN SEE RIGHT NOW (from camera):
{vision_window}

USER'S QUESTION: "{user_text}"

INSTRUCTIONS:
- Answer the user's question based on what you SEE in the camera feed
- If they ask "what's in my hand", describe the objects you detected that are close/foreground
- Be specific about what objects were detected and their positions
- If you see objects, describe them confidently
- If no objects were detected, say so honestly
- Always reference the visual information when answering"""
