import json
from typing import Any, Dict, List, Optional

import pytest

from studio.app import StudioApp
from studio.config import MainConfig


class FakeResponse:
    """Stand-in for an aiohttp response used as ``async with session.get(...)``"""

    def __init__(
        self,
        status: int = 200,
        body: bytes = b"",
        headers: Optional[Dict[str, str]] = None,
        raises: Optional[BaseException] = None,
    ):
        self.status = status
        self.body = body
        self.headers = headers or {}
        self.raises = raises

    async def read(self) -> bytes:
        return self.body

    async def __aenter__(self):
        if self.raises is not None:
            raise self.raises
        return self

    async def __aexit__(self, *exc):
        return False


def json_response(payload: Any, status: int = 200) -> FakeResponse:
    return FakeResponse(
        status=status,
        body=json.dumps(payload).encode("utf-8"),
        headers={"Content-Type": "application/json"},
    )


def image_response(data: bytes = b"\x89PNG fake", status: int = 200) -> FakeResponse:
    return FakeResponse(status=status, body=data, headers={"Content-Type": "image/png"})


class FakeSession:
    """Scripted replacement for aiohttp.ClientSession.

    ``get`` and ``post`` hand out the queued responses in order and record
    every call as ``(method, url, kwargs)``.
    """

    def __init__(
        self,
        get: Optional[List[FakeResponse]] = None,
        post: Optional[List[FakeResponse]] = None,
    ):
        self.queues = {"GET": list(get or []), "POST": list(post or [])}
        self.calls: List[tuple] = []

    def _next(self, method: str, url: str, kwargs: dict) -> FakeResponse:
        self.calls.append((method, url, kwargs))
        queue = self.queues[method]
        if not queue:
            raise AssertionError(f"Unexpected {method} {url}")
        return queue.pop(0)

    def get(self, url: str, **kwargs) -> FakeResponse:
        return self._next("GET", url, kwargs)

    def post(self, url: str, **kwargs) -> FakeResponse:
        return self._next("POST", url, kwargs)

    def count(self, method: str) -> int:
        return sum(1 for call in self.calls if call[0] == method)


class FakeGradioClient:
    def __init__(self, space: str, hf_token: Optional[str], result: Any):
        self.space = space
        self.hf_token = hf_token
        self.result = result
        self.predict_calls: List[dict] = []
        self.closed = False

    def predict(self, **kwargs):
        self.predict_calls.append(kwargs)
        if isinstance(self.result, BaseException):
            raise self.result
        return self.result

    def close(self):
        self.closed = True


class FakeGradioFactory:
    def __init__(self, results: Optional[Dict[str, Any]] = None):
        self.results = results or {}
        self.clients: Dict[str, FakeGradioClient] = {}

    def __call__(self, space: str, hf_token: Optional[str] = None) -> FakeGradioClient:
        client = FakeGradioClient(space, hf_token, self.results.get(space, ""))
        self.clients[space] = client
        return client


@pytest.fixture
def config() -> MainConfig:
    cfg = MainConfig()
    cfg.groq.api_key = "groq-test-key"
    cfg.huggingface.api_token = "hf-test-token"
    cfg.huggingface.poll_interval = 0.0
    cfg.huggingface.max_polls = 5
    return cfg


@pytest.fixture
def make_studio(config):
    def _make(session: FakeSession, factory: Optional[FakeGradioFactory] = None) -> StudioApp:
        return StudioApp(
            config=config,
            session=session,  # type: ignore[arg-type]
            ocr_client_factory=factory or FakeGradioFactory(),
        )

    return _make
