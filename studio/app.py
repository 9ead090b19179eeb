import os
import sys
import asyncio
from typing import Dict, List, Optional
from pathlib import Path

import aiohttp

from studio.completion import CompletionClient
from studio.config import MainConfig, apply_env_overrides
from studio.dispatcher import InferenceDispatcher
from studio.log import logger
from studio.ocr import ClientFactory, OcrWorker, build_providers, connect_gradio
from studio.readiness import ReadinessPoller, StatusProbe
from studio.typing import ModelOption
from studio.workflow import DeferredGeneration

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib


# Selectable models: id -> display name
CHAT_MODELS: Dict[str, str] = {
    "mixtral-8x7b-32768": "Mixtral 8x7B",
    "llama-3.1-70b-versatile": "LLaMA 3.1 70B",
    "llama-3.1-8b-instant": "LLaMA 3.1 8B",
    "gemma2-9b-it": "Gemma2-9B",
    "gemma-7b-it": "Gemma-7B",
}
IMAGE_MODELS: Dict[str, str] = {
    "black-forest-labs/FLUX.1-schnell": "FLUX.1-schnell (Image Generation)",
}


class StudioApp:
    def __init__(
        self,
        config_path: Optional[str] = None,
        config: Optional[MainConfig] = None,
        session: Optional[aiohttp.ClientSession] = None,
        ocr_client_factory: ClientFactory = connect_gradio,
    ):
        self.config_path = config_path or os.environ.get("STUDIO_CONFIG", "config.toml")
        self.config: MainConfig = config  # type: ignore
        self.session = session
        self.ocr_client_factory = ocr_client_factory
        self.ocr_workers: Dict[str, OcrWorker] = {}
        self.lock = asyncio.Lock()

    async def init(self):
        if self.config is None:
            await self.load_config()
        await self.start_ocr_workers()

    async def load_config(self):
        """Read config.toml, then apply environment overrides"""
        config_path = Path(self.config_path)
        if not config_path.exists():
            logger.error(f"Config file not found: {self.config_path}, using defaults")
            config = MainConfig()
        else:
            async with self.lock:
                try:
                    loop = asyncio.get_running_loop()
                    content = await loop.run_in_executor(None, config_path.read_text)
                    config = MainConfig.model_validate(tomllib.loads(content))
                except Exception as e:
                    logger.error(f"Invalid config file: {e}")
                    config = MainConfig()
        self.config = apply_env_overrides(config)

    async def start_ocr_workers(self):
        """Connect every enabled OCR provider; a failed provider is skipped"""
        providers = build_providers(self.config.ocr)
        for name, provider in providers.items():
            worker = OcrWorker(
                provider,
                hf_token=self.config.ocr.hf_token,
                client_factory=self.ocr_client_factory,
            )
            try:
                await worker.start()
            except Exception as e:
                logger.error(f"OCR provider {name} failed to connect: {e}")
                continue
            self.ocr_workers[name] = worker

        logger.info(
            f"OCR providers ready: {len(self.ocr_workers)}/{len(providers)}"
        )

    async def close(self):
        workers = list(self.ocr_workers.values())
        self.ocr_workers.clear()
        for worker in workers:
            await worker.close()

    async def reload(self):
        """Reload configuration and reconnect OCR providers"""
        await self.close()
        await self.load_config()
        await self.start_ocr_workers()

    # -------------------------------------------------------------------------
    # Per-request collaborators. Nothing here is cached between requests.
    # -------------------------------------------------------------------------

    def completion_client(self) -> CompletionClient:
        groq = self.config.groq
        return CompletionClient(
            api_url=groq.api_url,
            api_key=groq.api_key,
            temperature=groq.temperature,
            max_tokens=groq.max_tokens,
            timeout=groq.request_timeout,
            session=self.session,
        )

    def status_probe(self) -> StatusProbe:
        hf = self.config.huggingface
        return StatusProbe(
            api_url=hf.api_url,
            api_token=hf.api_token,
            timeout=hf.request_timeout,
            session=self.session,
        )

    def deferred_generation(self) -> DeferredGeneration:
        hf = self.config.huggingface
        poller = ReadinessPoller(
            self.status_probe(),
            interval=hf.poll_interval,
            max_polls=hf.max_polls,
        )
        dispatcher = InferenceDispatcher(
            api_url=hf.api_url,
            api_token=hf.api_token,
            timeout=hf.request_timeout,
            session=self.session,
        )
        return DeferredGeneration(
            poller, dispatcher, readiness_timeout=hf.readiness_timeout
        )

    def get_ocr_worker(self, name: str) -> Optional[OcrWorker]:
        return self.ocr_workers.get(name)

    def get_connected_ocr_providers(self) -> List[str]:
        return [name for name, worker in self.ocr_workers.items() if worker.connected]

    def list_models(self) -> List[ModelOption]:
        options = [
            ModelOption(id=model_id, label=label, kind="chat")
            for model_id, label in CHAT_MODELS.items()
        ]
        options.extend(
            ModelOption(id=model_id, label=label, kind="image")
            for model_id, label in IMAGE_MODELS.items()
        )
        image_model = self.config.huggingface.image_model
        if image_model not in IMAGE_MODELS:
            options.append(ModelOption(id=image_model, label=image_model, kind="image"))
        return options
