from typing import List

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from studio.api.common import get_studio
from studio.log import logger
from studio.typing import ModelOption

router = APIRouter(tags=["models"])


class ReloadResponse(BaseModel):
    """State after a configuration reload"""

    ocr_providers: List[str] = Field(description="Connected OCR providers")
    models: List[ModelOption] = Field(description="Selectable models")


@router.get("/models", response_model=List[ModelOption], summary="Selectable models")
async def list_models(request: Request) -> List[ModelOption]:
    return get_studio(request).list_models()


@router.post(
    "/reload",
    response_model=ReloadResponse,
    summary="Reload configuration",
    description="Re-read the config file and reconnect the OCR providers",
)
async def reload_config(request: Request) -> ReloadResponse:
    studio = get_studio(request)
    await studio.reload()
    logger.info("Configuration reloaded")
    return ReloadResponse(
        ocr_providers=studio.get_connected_ocr_providers(),
        models=studio.list_models(),
    )
