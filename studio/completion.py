from __future__ import annotations

from typing import Any, Dict, List, Optional

import aiohttp

from studio.errors import MalformedResponseError, TransportError
from studio.log import logger
from studio.typing import InferenceResult, ModelIdentifier
from studio.utils.http import (
    TRANSPORT_ERRORS,
    bearer_headers,
    decode_json,
    open_session,
    transport_failure,
)

ANALYZE_FAILED = "Failed to analyze content. Please try again later."
SYSTEM_PROMPT = "You are an AI assistant that analyzes text content."


def build_analysis_messages(content: str) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {
            "role": "user",
            "content": f"Analyze the following content and provide insights: {content}",
        },
    ]


def extract_content(payload: Any) -> str:
    """Pull ``choices[0].message.content`` out of a completion body"""
    try:
        content = payload["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as e:
        raise MalformedResponseError(
            "Completion response missing choices[0].message.content",
            user_message=ANALYZE_FAILED,
            payload=payload,
        ) from e
    if not isinstance(content, str):
        raise MalformedResponseError(
            "Completion content is not a string",
            user_message=ANALYZE_FAILED,
            payload=payload,
        )
    return content


class CompletionClient:
    """Stateless client for an OpenAI compatible chat-completion endpoint"""

    def __init__(
        self,
        api_url: str,
        api_key: str = "",
        temperature: float = 0.5,
        max_tokens: int = 1000,
        timeout: float = 60.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.api_url = api_url
        self.api_key = api_key
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.session = session

    async def complete(
        self, messages: List[Dict[str, str]], model: ModelIdentifier
    ) -> str:
        body = {
            "model": model,
            "messages": messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        try:
            async with open_session(self.session, self.timeout) as session:
                async with session.post(
                    self.api_url, json=body, headers=bearer_headers(self.api_key)
                ) as resp:
                    status = resp.status
                    raw = await resp.read()
        except TRANSPORT_ERRORS as e:
            logger.error(f"Completion request failed: {e!r}")
            raise transport_failure(self.api_url, e, user_message=ANALYZE_FAILED) from e

        if not 200 <= status < 300:
            logger.error(f"Completion API returned HTTP {status} for model {model}")
            raise TransportError(
                f"Completion API returned HTTP {status}",
                user_message=ANALYZE_FAILED,
                upstream_status=status,
            )
        try:
            payload = decode_json(raw, self.api_url)
        except MalformedResponseError as e:
            e.user_message = ANALYZE_FAILED
            raise
        return extract_content(payload)

    async def analyze_content(self, content: str, model: ModelIdentifier) -> InferenceResult:
        text = await self.complete(build_analysis_messages(content), model)
        return InferenceResult(kind="text", source="completion", text=text)
