import os
from pydantic import ConfigDict, BaseModel, Field, ValidationError
from typing import Optional, Union, Dict

from studio.log import logger


class ConfigModel(BaseModel):
    model_config = ConfigDict(extra="allow", protected_namespaces=())

    __config_name__: str = ""


class LogConfig(ConfigModel):
    level: Union[str, int] = Field(default="DEBUG", description="Logging level")
    verbose_exception: bool = Field(
        default=False, description="Whether to show verbose exception information"
    )


class AppConfig(ConfigModel):
    port: int = Field(default=8000, description="Application port")
    host: str = Field(default="0.0.0.0", description="Application host")


class GroqConfig(ConfigModel):
    """Hosted chat-completion endpoint (OpenAI compatible)"""
    api_url: str = Field(
        default="https://api.groq.com/openai/v1/chat/completions",
        description="Chat completion endpoint",
    )
    api_key: str = Field(default="", description="Bearer token")
    default_model: str = Field(default="mixtral-8x7b-32768", description="Model name")
    validation_model: str = Field(
        default="llama-3.1-70b-versatile",
        description="Model used to double check OCR output",
    )
    temperature: float = Field(default=0.5, description="Sampling temperature")
    max_tokens: int = Field(default=1000, description="Max generated tokens")
    request_timeout: float = Field(default=60.0, description="HTTP timeout in seconds")


class HuggingFaceConfig(ConfigModel):
    """Hosted inference API used for image generation"""
    api_url: str = Field(
        default="https://api-inference.huggingface.co", description="Inference API base URL"
    )
    api_token: str = Field(default="", description="Bearer token")
    image_model: str = Field(
        default="black-forest-labs/FLUX.1-schnell", description="Image generation model"
    )
    poll_interval: float = Field(default=10.0, description="Seconds between readiness probes")
    max_polls: Optional[int] = Field(
        default=30, description="Give up after this many probes (None polls until cancelled)"
    )
    readiness_timeout: Optional[float] = Field(
        default=None, description="Overall deadline for readiness in seconds"
    )
    request_timeout: float = Field(default=120.0, description="HTTP timeout in seconds")


class OcrProviderConfig(ConfigModel):
    """Base configuration for a Gradio-hosted OCR space"""
    enable: bool = Field(default=True, description="Connect this provider on startup")
    space: str = Field(default="", description="Gradio space id")
    api_name: str = Field(default="", description="Endpoint exposed by the space")
    model_id: str = Field(default="", description="Model selected inside the space")


class FlorenceConfig(OcrProviderConfig):
    """Florence-2 - OCR task prompt, returns a dict-like string"""
    space: str = Field(default="gokaygokay/Florence-2", description="Gradio space id")
    api_name: str = Field(default="/process_image", description="Endpoint exposed by the space")
    model_id: str = Field(default="microsoft/Florence-2-large-ft", description="Model id")
    task_prompt: str = Field(default="OCR", description="Florence task prompt")


class Phi35VisionConfig(OcrProviderConfig):
    """Phi-3.5-vision - instruction following vision model"""
    space: str = Field(default="MaziyarPanahi/Phi-3.5-Vision", description="Gradio space id")
    api_name: str = Field(default="/run_example", description="Endpoint exposed by the space")
    model_id: str = Field(default="microsoft/Phi-3.5-vision-instruct", description="Model id")
    default_prompt: str = Field(
        default="Extract all of the text in this image.",
        description="Text hint used when the caller sends none",
    )


class OcrConfig(ConfigModel):
    hf_token: str = Field(default="", description="Token passed to the Gradio client")
    validate_text: bool = Field(
        default=False, description="Send extracted text to the completion API for a second pass"
    )
    florence: FlorenceConfig = Field(default_factory=FlorenceConfig)
    phi35: Phi35VisionConfig = Field(default_factory=Phi35VisionConfig)


class LimitsConfig(ConfigModel):
    max_text_chars: int = Field(default=3000, description="Upper bound for analyzed text")
    max_prompt_chars: int = Field(default=1000, description="Upper bound for image prompts")
    chat_context: int = Field(default=5, description="Messages kept in the chat context")


class MainConfig(ConfigModel):
    app: AppConfig = Field(default_factory=AppConfig)
    log: LogConfig = Field(default_factory=LogConfig)
    groq: GroqConfig = Field(default_factory=GroqConfig)
    huggingface: HuggingFaceConfig = Field(default_factory=HuggingFaceConfig)
    ocr: OcrConfig = Field(default_factory=OcrConfig)
    limits: LimitsConfig = Field(default_factory=LimitsConfig)


# Environment variable -> (section, field)
ENV_OVERRIDES: Dict[str, tuple] = {
    "GROQ_API_KEY": ("groq", "api_key"),
    "GROQ_API_URL": ("groq", "api_url"),
    "HF_API_TOKEN": ("huggingface", "api_token"),
    "HF_API_URL": ("huggingface", "api_url"),
    "STUDIO_HOST": ("app", "host"),
    "STUDIO_PORT": ("app", "port"),
    "STUDIO_LOG_LEVEL": ("log", "level"),
}


def apply_env_overrides(
    config: MainConfig, environ: Optional[Dict[str, str]] = None
) -> MainConfig:
    """Return a copy of ``config`` with environment variables applied on top.

    An override that does not validate is logged and skipped.
    """
    environ = os.environ if environ is None else environ
    data = config.model_dump()
    for env_name, (section, field) in ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if not value:
            continue
        section_model = type(getattr(config, section))
        try:
            section_model.model_validate({**data[section], field: value})
        except ValidationError as e:
            logger.error(f"Ignoring invalid {env_name}: {e.errors()[0]['msg']}")
            continue
        data[section][field] = value
    # The OCR spaces accept the same Hugging Face token unless one is configured
    if not data["ocr"]["hf_token"]:
        data["ocr"]["hf_token"] = data["huggingface"]["api_token"]
    return MainConfig.model_validate(data)


