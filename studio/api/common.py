from __future__ import annotations

from fastapi import Request

from studio.app import StudioApp
from studio.errors import err_empty_input, err_text_too_long


def get_studio(request: Request) -> StudioApp:
    return request.app.state.studio_app


def validate_text(value: str, field: str, limit: int) -> str:
    """Strip the input and enforce 1..limit characters"""
    text = value.strip()
    if not text:
        raise err_empty_input(field)
    if len(text) > limit:
        raise err_text_too_long(limit)
    return text
