"""
aiohttp helpers shared by the remote API clients
"""

from __future__ import annotations

import asyncio
import json
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

import aiohttp

from studio.errors import MalformedResponseError, TransportError

TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError)


@asynccontextmanager
async def open_session(
    session: Optional[aiohttp.ClientSession], timeout: float
) -> AsyncIterator[aiohttp.ClientSession]:
    """Yield the injected session, or a fresh one closed on exit"""
    if session is not None:
        yield session
        return
    async with aiohttp.ClientSession(
        timeout=aiohttp.ClientTimeout(total=timeout)
    ) as own_session:
        yield own_session


def bearer_headers(token: str, content_type: Optional[str] = "application/json") -> Dict[str, str]:
    headers: Dict[str, str] = {}
    if content_type:
        headers["Content-Type"] = content_type
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


def decode_json(body: bytes, url: str) -> Any:
    """Parse a JSON body, raising MalformedResponseError on garbage"""
    text = body.decode("utf-8", errors="replace").strip()
    if not text:
        raise MalformedResponseError(f"Empty response body from {url}")
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedResponseError(
            f"Invalid JSON from {url}: {e}", payload=text[:500]
        ) from e


def transport_failure(url: str, exc: BaseException, user_message: Optional[str] = None) -> TransportError:
    return TransportError(f"Request to {url} failed: {exc!r}", user_message)
