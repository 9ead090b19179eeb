from __future__ import annotations

from typing import Any, Literal, Optional

import aiohttp

from studio.errors import MalformedResponseError, TransportError
from studio.log import logger
from studio.typing import InferenceRequest, InferenceResult, ModelIdentifier
from studio.utils.http import (
    TRANSPORT_ERRORS,
    bearer_headers,
    decode_json,
    open_session,
    transport_failure,
)

PayloadKind = Literal["text", "image"]
DEFAULT_IMAGE_TYPE = "image/jpeg"


class InferenceDispatcher:
    """Send one generation request to a model that is already known to be ready.

    No readiness check and no retry happen here.
    """

    def __init__(
        self,
        api_url: str,
        api_token: str = "",
        timeout: float = 120.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.api_token = api_token
        self.timeout = timeout
        self.session = session

    def model_url(self, model: ModelIdentifier) -> str:
        return f"{self.api_url}/models/{model}"

    async def dispatch(
        self, request: InferenceRequest, kind: PayloadKind = "image"
    ) -> InferenceResult:
        url = self.model_url(request.model)
        logger.info(f"Dispatching {kind} request to {request.model}")
        try:
            async with open_session(self.session, self.timeout) as session:
                async with session.post(
                    url,
                    json={"inputs": request.prompt},
                    headers=bearer_headers(self.api_token),
                ) as resp:
                    status = resp.status
                    content_type = resp.headers.get("Content-Type", "")
                    body = await resp.read()
        except TRANSPORT_ERRORS as e:
            raise transport_failure(
                url, e, user_message="Failed to generate image. Please try again later."
            ) from e

        if not 200 <= status < 300:
            raise TransportError(
                f"Generation request to {request.model} failed with HTTP {status}",
                user_message=f"Failed to generate {kind}: HTTP error {status}",
                upstream_status=status,
            )

        if kind == "image":
            return _decode_image(body, content_type)
        return _decode_text(decode_json(body, url))


def _decode_image(body: bytes, content_type: str) -> InferenceResult:
    if not body:
        raise MalformedResponseError("Image generation returned an empty body")
    media_type = content_type.split(";")[0].strip()
    if not media_type.startswith("image/"):
        media_type = DEFAULT_IMAGE_TYPE
    return InferenceResult(
        kind="image", source="image-generation", data=body, content_type=media_type
    )


def _decode_text(payload: Any) -> InferenceResult:
    if isinstance(payload, list) and payload:
        payload = payload[0]
    if isinstance(payload, dict) and isinstance(payload.get("generated_text"), str):
        return InferenceResult(
            kind="text", source="text-generation", text=payload["generated_text"]
        )
    raise MalformedResponseError(
        "Text generation response missing generated_text", payload=payload
    )
