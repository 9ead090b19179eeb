"""
Chat helpers: rolling context, prompt assembly and reply formatting
"""

from __future__ import annotations

import html
import re
from typing import Iterable, List

from studio.typing import ChatMessage

GREETING = "Hello! I'm an AI assistant. How can I help you today?"
CHAT_FAILED = (
    "I apologize, but I encountered an error while processing your request. "
    "Could you please try again?"
)
DEFAULT_CONTEXT_LENGTH = 5

_FENCED = re.compile(r"```([\s\S]*?)```")
_INLINE = re.compile(r"`([^`]+)`")


def greeting_message() -> ChatMessage:
    return ChatMessage(text=GREETING, sender="assistant")


def conversation_context(
    messages: Iterable[ChatMessage], context_length: int = DEFAULT_CONTEXT_LENGTH
) -> str:
    """Last ``context_length`` messages as ``sender: text`` lines"""
    recent = list(messages)[-context_length:] if context_length > 0 else []
    return "\n".join(f"{m.sender}: {m.text}" for m in recent)


def build_chat_prompt(
    history: List[ChatMessage],
    user_input: str,
    context_length: int = DEFAULT_CONTEXT_LENGTH,
) -> str:
    # The new message is part of the context window as well
    turns = [*history, ChatMessage(text=user_input, sender="user")]
    context = conversation_context(turns, context_length)
    return f"{context}\nHuman: {user_input}\nAssistant:"


def escape_html(unsafe: str) -> str:
    return html.escape(unsafe, quote=True).replace("&#x27;", "&#039;")


def format_response(response: str) -> str:
    """Render fenced and inline code as HTML"""
    fenced = _FENCED.sub(
        lambda m: (
            '<pre><code class="language-javascript">'
            f"{escape_html(m.group(1).strip())}</code></pre>"
        ),
        response,
    )
    return _INLINE.sub(r"<code>\1</code>", fenced)


def is_code_reply(response: str) -> bool:
    return "```" in response or "<code>" in response
