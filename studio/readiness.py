"""
Readiness polling for models hosted on the inference API

A status probe is issued immediately, then once per interval, until the host
reports the model as loaded. Only "still loading" answers are retried; any
transport failure or malformed answer ends the sequence with an error.
"""

from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

import aiohttp

from studio.errors import MalformedResponseError, ReadinessError, TransportError
from studio.log import logger
from studio.typing import Failed, Loading, ModelIdentifier, ReadinessState, Ready
from studio.utils.http import (
    TRANSPORT_ERRORS,
    bearer_headers,
    decode_json,
    open_session,
    transport_failure,
)

DEFAULT_POLL_INTERVAL = 10.0
LOADED_STATE = "Loaded"

Sleep = Callable[[float], Awaitable[Any]]


def parse_probe_response(payload: Any) -> ReadinessState:
    """Map a decoded status body to a readiness state.

    Only the empty object reads as ready without a readiness field. Anything
    else that cannot be classified (non-objects, empty ``error``, ``state`` or
    ``status`` fields, unknown keys, a stray ``estimated_time``) is malformed.
    """
    if not isinstance(payload, dict):
        raise MalformedResponseError(
            f"Status probe returned {type(payload).__name__}, expected an object",
            payload=payload,
        )

    if not payload:
        return Ready()

    _require_text(payload, "status")
    state = _decode_state(payload)
    if "estimated_time" in payload and not isinstance(state, Loading):
        raise MalformedResponseError(
            "estimated_time without a loading answer", payload=payload
        )
    return state


def _require_text(payload: dict, field: str) -> None:
    if field in payload:
        value = payload[field]
        if not isinstance(value, str) or not value.strip():
            raise MalformedResponseError(
                f"Status probe has an empty {field} field", payload=payload
            )


def _decode_state(payload: dict) -> ReadinessState:
    if "error" in payload:
        _require_text(payload, "error")
        error = payload["error"]
        if "loading" in error.lower():
            return Loading(estimated_seconds=_estimated_time(payload))
        return Failed(reason=error)

    if "state" in payload:
        _require_text(payload, "state")
        if payload["state"] == LOADED_STATE or payload.get("loaded") is True:
            return Ready()
        return Loading(estimated_seconds=_estimated_time(payload))

    if "loaded" in payload:
        return Ready() if payload["loaded"] is True else Loading()

    raise MalformedResponseError(
        f"Status probe has no readiness field: {sorted(payload)}", payload=payload
    )


def _estimated_time(payload: dict) -> Optional[float]:
    value = payload.get("estimated_time")
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedResponseError("estimated_time is not a number", payload=payload)
    return float(value)


def _describe_loading(attempt: int, state: Loading) -> str:
    if state.estimated_seconds is None:
        return f"probe {attempt}"
    return f"probe {attempt}, estimated {state.estimated_seconds}s"


class StatusProbe:
    """Single GET against the per-model status endpoint"""

    def __init__(
        self,
        api_url: str,
        api_token: str = "",
        timeout: float = 30.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.api_token = api_token
        self.timeout = timeout
        self.session = session

    def status_url(self, model: ModelIdentifier) -> str:
        return f"{self.api_url}/status/{model}"

    async def __call__(self, model: ModelIdentifier) -> ReadinessState:
        url = self.status_url(model)
        try:
            async with open_session(self.session, self.timeout) as session:
                async with session.get(
                    url, headers=bearer_headers(self.api_token, content_type=None)
                ) as resp:
                    status = resp.status
                    body = await resp.read()
        except TRANSPORT_ERRORS as e:
            raise transport_failure(url, e) from e

        if 200 <= status < 300:
            return parse_probe_response(decode_json(body, url))

        # The host answers 503 with a loading error while the model warms up
        try:
            state = parse_probe_response(decode_json(body, url))
        except MalformedResponseError:
            state = None
        if isinstance(state, Loading):
            return state
        raise TransportError(
            f"Status probe for {model} failed with HTTP {status}",
            upstream_status=status,
        )


class ReadinessPoller:
    """Lazy sequence of readiness flags for one model.

    ``poll`` yields ``False`` for every loading answer and a final ``True``
    once the model is ready. ``max_polls`` bounds the number of probes; with
    ``None`` the poller runs until the consumer stops iterating or the task is
    cancelled.
    """

    def __init__(
        self,
        probe: Callable[[ModelIdentifier], Awaitable[ReadinessState]],
        interval: float = DEFAULT_POLL_INTERVAL,
        max_polls: Optional[int] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        if interval < 0:
            raise ValueError("interval must not be negative")
        if max_polls is not None and max_polls < 1:
            raise ValueError("max_polls must be at least 1")
        self.probe = probe
        self.interval = interval
        self.max_polls = max_polls
        self.sleep = sleep
        self.last_state: Optional[ReadinessState] = None

    async def poll(self, model: ModelIdentifier) -> AsyncIterator[bool]:
        attempt = 0
        while True:
            attempt += 1
            state = await self.probe(model)
            self.last_state = state

            if isinstance(state, Failed):
                logger.error(f"Model {model} failed to load: {state.reason}")
                raise ReadinessError(
                    f"Model {model} reported failure: {state.reason}",
                    user_message=f"Model {model} is unavailable: {state.reason}",
                )

            if isinstance(state, Ready):
                logger.info(f"Model {model} ready after {attempt} probe(s)")
                yield True
                return

            logger.info(f"Model {model} still loading ({_describe_loading(attempt, state)})")
            yield False

            if self.max_polls is not None and attempt >= self.max_polls:
                raise ReadinessError(
                    f"Model {model} not ready after {attempt} probes",
                    user_message=f"Model {model} is still loading, please try again later.",
                )
            await self.sleep(self.interval)
