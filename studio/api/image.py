"""
Image generation API

Generation waits for the hosted model to finish loading before the actual
request is sent. If the client goes away meanwhile, the workflow is cancelled.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response

from studio.api.common import get_studio, validate_text
from studio.errors import error_payload
from studio.log import logger
from studio.typing import (
    Failed,
    ImageRequest,
    InferenceRequest,
    Loading,
    ReadinessResponse,
)

router = APIRouter(prefix="/image", tags=["image"])

DISCONNECT_CHECK_SECONDS = 1.0

T = TypeVar("T")


async def _cancel_on_disconnect(request: Request, work: Awaitable[T]) -> T:
    """Run ``work`` and cancel it as soon as the client disconnects"""
    task = asyncio.ensure_future(work)

    async def watch():
        while not task.done():
            if await request.is_disconnected():
                logger.info("Client disconnected, cancelling generation")
                task.cancel()
                return
            await asyncio.sleep(DISCONNECT_CHECK_SECONDS)

    watcher = asyncio.create_task(watch())
    try:
        return await task
    finally:
        watcher.cancel()


@router.get(
    "/status/{model:path}",
    response_model=ReadinessResponse,
    summary="Probe model readiness",
    description="Issue a single status probe against the hosted model",
)
async def image_model_status(request: Request, model: str) -> ReadinessResponse:
    state = await get_studio(request).status_probe()(model)
    if isinstance(state, Loading):
        return ReadinessResponse(
            model=model, state="loading", estimated_seconds=state.estimated_seconds
        )
    if isinstance(state, Failed):
        return ReadinessResponse(model=model, state="failed", reason=state.reason)
    return ReadinessResponse(model=model, state="ready")


@router.post(
    "/generate",
    response_class=Response,
    summary="Generate an image",
    description="Wait for the model to be ready, then generate one image",
    responses={200: {"content": {"image/*": {}}, "description": "Generated image"}},
)
async def generate_image(request: Request, body: ImageRequest) -> Response:
    studio = get_studio(request)
    prompt = validate_text(body.prompt, "prompt", studio.config.limits.max_prompt_chars)
    model = body.model or studio.config.huggingface.image_model

    logger.info(f"Generating image with {model}")
    workflow = studio.deferred_generation()
    outcome = await _cancel_on_disconnect(
        request, workflow.run_outcome(InferenceRequest(prompt=prompt, model=model))
    )
    if not outcome.ok or outcome.result is None:
        status_code = outcome.status_code or 500
        return JSONResponse(
            status_code=status_code,
            content=error_payload(
                outcome.error_type or "studio_error", status_code, outcome.error or ""
            ),
        )

    result = outcome.result
    logger.info(f"Image generated with {model}: {len(result.data or b'')} bytes")
    return Response(content=result.data, media_type=result.content_type)
