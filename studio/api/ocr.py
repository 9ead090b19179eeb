"""
OCR API

Text extraction through one of the connected OCR providers, with an optional
second pass through the completion API.
"""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, File, Form, Request, UploadFile
from pydantic import BaseModel, Field

from studio.api.common import get_studio
from studio.errors import TransportError, err_empty_input, err_unknown_provider
from studio.log import logger
from studio.ocr import OCR_FAILED, OCR_PROVIDERS, validate_text
from studio.typing import OcrResponse

router = APIRouter(prefix="/ocr", tags=["ocr"])


class OcrStatusResponse(BaseModel):
    """OCR provider status"""

    providers: List[str] = Field(description="Connected providers")
    validate_text: bool = Field(description="Default for the validation pass")


@router.get(
    "/status",
    response_model=OcrStatusResponse,
    summary="OCR provider status",
)
async def ocr_status(request: Request) -> OcrStatusResponse:
    studio = get_studio(request)
    return OcrStatusResponse(
        providers=studio.get_connected_ocr_providers(),
        validate_text=studio.config.ocr.validate_text,
    )


@router.post(
    "/extract",
    response_model=OcrResponse,
    summary="Extract text from an image",
    description="Upload an image and extract its text with the chosen provider",
)
async def extract_text(
    request: Request,
    image: UploadFile = File(..., description="Image file"),
    provider: str = Form(default="florence", description="OCR provider: florence or phi35"),
    text_input: str = Form(default="", description="Optional text hint"),
    double_check: Optional[bool] = Form(
        default=None,
        alias="validate",
        description="Double check the text with the completion API",
    ),
) -> OcrResponse:
    studio = get_studio(request)
    if provider not in OCR_PROVIDERS:
        raise err_unknown_provider(provider)

    worker = studio.get_ocr_worker(provider)
    if worker is None:
        raise TransportError(
            f"OCR provider {provider} is not connected", user_message=OCR_FAILED
        )

    content = await image.read()
    if not content:
        raise err_empty_input("image")

    logger.info(f"OCR with {provider}: {image.filename}, {len(content)} bytes")
    result = await worker.extract(
        content, filename=image.filename or "image.png", text_input=text_input
    )
    text = result.text or ""

    should_validate = studio.config.ocr.validate_text if double_check is None else double_check
    validated = False
    if should_validate:
        text, validated = await validate_text(
            text, studio.completion_client(), studio.config.groq.validation_model
        )
    return OcrResponse(text=text, provider=provider, validated=validated)
