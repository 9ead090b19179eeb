"""
Chat and text analysis API
"""

from __future__ import annotations

from fastapi import APIRouter, Request

from studio.api.common import get_studio, validate_text
from studio.chat import (
    CHAT_FAILED,
    build_chat_prompt,
    format_response,
    greeting_message,
    is_code_reply,
)
from studio.errors import StudioError
from studio.log import logger
from studio.typing import (
    AnalyzeRequest,
    AnalyzeResponse,
    ChatMessage,
    ChatRequest,
    ChatResponse,
)

router = APIRouter(tags=["chat"])


@router.post(
    "/analyze",
    response_model=AnalyzeResponse,
    summary="Analyze text",
    description="Send text to the completion API and return its insights",
)
async def analyze(request: Request, body: AnalyzeRequest) -> AnalyzeResponse:
    studio = get_studio(request)
    content = validate_text(body.content, "content", studio.config.limits.max_text_chars)
    model = body.model or studio.config.groq.default_model

    logger.info(f"Analyzing {len(content)} characters with {model}")
    result = await studio.completion_client().analyze_content(content, model)
    return AnalyzeResponse(result=result.text or "", model=model)


@router.post(
    "/chat",
    response_model=ChatResponse,
    summary="Chat turn",
    description="Answer one user message using the last few messages as context",
)
async def chat(request: Request, body: ChatRequest) -> ChatResponse:
    studio = get_studio(request)
    limits = studio.config.limits
    message = validate_text(body.message, "message", limits.max_text_chars)
    model = body.model or studio.config.groq.default_model

    # a fresh conversation opens with the greeting
    history = list(body.history) or [greeting_message()]
    prompt = build_chat_prompt(history, message, limits.chat_context)
    try:
        result = await studio.completion_client().analyze_content(prompt, model)
    except StudioError as e:
        logger.error(f"Chat turn failed: {e.message}")
        e.user_message = CHAT_FAILED
        raise

    reply = result.text or ""
    is_code = is_code_reply(reply)
    history = [
        *history,
        ChatMessage(text=message, sender="user"),
        ChatMessage(text=reply, sender="assistant", is_code=is_code),
    ]
    return ChatResponse(
        reply=reply,
        html=format_response(reply),
        is_code=is_code,
        history=history,
    )
