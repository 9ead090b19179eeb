"""
OCR through hosted Gradio spaces

Each provider owns one Gradio client. The client is connected when the worker
starts and released when it closes; extractions through the same worker run
one at a time.
"""

from __future__ import annotations

import ast
import asyncio
import json
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Protocol

from gradio_client import Client, handle_file

from studio.completion import CompletionClient
from studio.config import FlorenceConfig, OcrConfig, Phi35VisionConfig
from studio.errors import MalformedResponseError, StudioError, TransportError
from studio.log import logger
from studio.typing import InferenceResult

OCR_FAILED = (
    "An error occurred while processing the image. "
    "Please try a smaller image or one with clearer text."
)
FLORENCE_OCR_KEY = "<OCR>"
OCR_PROVIDERS = ("florence", "phi35")

ClientFactory = Callable[[str, Optional[str]], Any]


def connect_gradio(space: str, hf_token: Optional[str] = None) -> Client:
    if hf_token:
        return Client(space, hf_token=hf_token, verbose=False)
    return Client(space, verbose=False)


def parse_florence_output(raw: Any) -> str:
    """Read the ``<OCR>`` text out of Florence's dict-like string.

    The space answers with a Python repr (single quotes), so strict JSON is
    tried first, then a Python literal, then a plain quote swap.
    """
    if isinstance(raw, (list, tuple)):
        if not raw:
            raise MalformedResponseError("Florence returned no data", user_message=OCR_FAILED)
        raw = raw[0]
    if isinstance(raw, dict):
        parsed: Any = raw
    elif isinstance(raw, str):
        parsed = _parse_dict_string(raw)
    else:
        raise MalformedResponseError(
            f"Florence returned {type(raw).__name__}", user_message=OCR_FAILED, payload=raw
        )

    text = parsed.get(FLORENCE_OCR_KEY) if isinstance(parsed, dict) else None
    if not isinstance(text, str):
        raise MalformedResponseError(
            f"Florence response has no {FLORENCE_OCR_KEY} text",
            user_message=OCR_FAILED,
            payload=raw,
        )
    return text


def _parse_dict_string(raw: str) -> Any:
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        pass
    try:
        return ast.literal_eval(raw)
    except (ValueError, SyntaxError, TypeError):
        pass
    try:
        return json.loads(raw.replace("'", '"'))
    except json.JSONDecodeError as e:
        raise MalformedResponseError(
            f"Could not parse Florence output: {e}", user_message=OCR_FAILED, payload=raw
        ) from e


def choose_best_text(original_text: str, validated_text: str) -> str:
    return validated_text if len(validated_text) > len(original_text) else original_text


class OcrProvider(Protocol):
    name: str
    space: str

    def extract(self, client: Any, image_path: Path, text_input: str) -> str:
        """Run OCR through a connected client and return the text"""
        ...


class FlorenceProvider:
    name = "florence"

    def __init__(self, config: FlorenceConfig):
        self.config = config
        self.space = config.space

    def extract(self, client: Any, image_path: Path, text_input: str) -> str:
        result = client.predict(
            image=handle_file(str(image_path)),
            task_prompt=self.config.task_prompt,
            text_input=text_input,
            model_id=self.config.model_id,
            api_name=self.config.api_name,
        )
        return parse_florence_output(result)


class Phi35VisionProvider:
    name = "phi35"

    def __init__(self, config: Phi35VisionConfig):
        self.config = config
        self.space = config.space

    def extract(self, client: Any, image_path: Path, text_input: str) -> str:
        result = client.predict(
            image=handle_file(str(image_path)),
            text_input=text_input or self.config.default_prompt,
            model_id=self.config.model_id,
            api_name=self.config.api_name,
        )
        if isinstance(result, (list, tuple)):
            result = result[0] if result else None
        if not isinstance(result, str):
            raise MalformedResponseError(
                "Phi-3.5-vision returned no text", user_message=OCR_FAILED, payload=result
            )
        return result


class OcrWorker:
    """Owns one Gradio client for one provider"""

    def __init__(
        self,
        provider: OcrProvider,
        hf_token: Optional[str] = None,
        client_factory: ClientFactory = connect_gradio,
    ):
        self.provider = provider
        self.hf_token = hf_token
        self.client_factory = client_factory
        self.client: Any = None
        self.lock = asyncio.Lock()

    @property
    def connected(self) -> bool:
        return self.client is not None

    async def start(self) -> None:
        if self.client is not None:
            return
        logger.info(f"Connecting OCR provider {self.provider.name} ({self.provider.space})...")
        loop = asyncio.get_running_loop()
        self.client = await loop.run_in_executor(
            None, self.client_factory, self.provider.space, self.hf_token or None
        )
        logger.info(f"OCR provider {self.provider.name} connected")

    async def extract(
        self, image: bytes, filename: str = "image.png", text_input: str = ""
    ) -> InferenceResult:
        if not image:
            raise MalformedResponseError("Empty image upload", user_message=OCR_FAILED)

        async with self.lock:
            if self.client is None:
                await self.start()
            suffix = Path(filename).suffix or ".png"
            loop = asyncio.get_running_loop()
            try:
                text = await loop.run_in_executor(
                    None, self._extract_sync, self.client, image, suffix, text_input
                )
            except StudioError:
                raise
            except Exception as e:
                logger.error(f"OCR provider {self.provider.name} failed: {e}")
                raise TransportError(
                    f"OCR provider {self.provider.name} failed: {e!r}",
                    user_message=OCR_FAILED,
                ) from e

        logger.info(f"OCR provider {self.provider.name} extracted {len(text)} characters")
        return InferenceResult(kind="text", source=f"ocr:{self.provider.name}", text=text)

    def _extract_sync(self, client: Any, image: bytes, suffix: str, text_input: str) -> str:
        """Blocking part of an extraction; runs in the executor"""
        with tempfile.TemporaryDirectory() as tmp_dir:
            image_path = Path(tmp_dir) / f"upload{suffix}"
            image_path.write_bytes(image)
            return self.provider.extract(client, image_path, text_input)

    async def close(self) -> None:
        async with self.lock:
            client, self.client = self.client, None
        if client is None:
            return
        close = getattr(client, "close", None)
        if callable(close):
            try:
                close()
            except Exception as e:
                logger.warning(f"Closing OCR provider {self.provider.name} failed: {e}")
        logger.info(f"OCR provider {self.provider.name} disconnected")


def build_providers(config: OcrConfig) -> Dict[str, OcrProvider]:
    providers: Dict[str, OcrProvider] = {}
    if config.florence.enable:
        providers["florence"] = FlorenceProvider(config.florence)
    if config.phi35.enable:
        providers["phi35"] = Phi35VisionProvider(config.phi35)
    return providers


async def validate_text(
    extracted: str, completion: CompletionClient, model: str
) -> tuple[str, bool]:
    """Second pass through the completion API; keeps the longer text.

    Returns ``(text, validated)``. Validation failures fall back to the
    extracted text.
    """
    if not extracted.strip():
        return extracted, False
    try:
        result = await completion.analyze_content(extracted, model)
    except StudioError as e:
        logger.warning(f"Text validation failed, keeping extracted text: {e.message}")
        return extracted, False
    return choose_best_text(extracted, result.text or ""), True
