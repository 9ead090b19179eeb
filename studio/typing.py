from pydantic import BaseModel, ConfigDict, Field
from typing import List, Literal, Optional, Union

ModelIdentifier = str


class Loading(BaseModel):
    """Model is still being loaded by the host"""
    model_config = ConfigDict(frozen=True)

    kind: Literal["loading"] = "loading"
    estimated_seconds: Optional[float] = None


class Ready(BaseModel):
    """Model accepts inference requests"""
    model_config = ConfigDict(frozen=True)

    kind: Literal["ready"] = "ready"


class Failed(BaseModel):
    """Host reported an error other than loading"""
    model_config = ConfigDict(frozen=True)

    kind: Literal["failed"] = "failed"
    reason: str


ReadinessState = Union[Loading, Ready, Failed]


class InferenceRequest(BaseModel):
    """One generation request, immutable once issued"""
    model_config = ConfigDict(frozen=True)

    prompt: str
    model: ModelIdentifier


class InferenceResult(BaseModel):
    """Text or binary payload tagged by the collaborator that produced it"""
    model_config = ConfigDict(frozen=True)

    kind: Literal["text", "image"]
    source: str
    text: Optional[str] = None
    data: Optional[bytes] = None
    content_type: Optional[str] = None


class WorkflowOutcome(BaseModel):
    """Success or failure of one workflow, as a value"""

    ok: bool
    result: Optional[InferenceResult] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    status_code: Optional[int] = None


class ChatMessage(BaseModel):
    text: str
    sender: Literal["user", "assistant"]
    is_code: bool = False


class ModelOption(BaseModel):
    id: ModelIdentifier
    label: str
    kind: Literal["chat", "image"]


class ChatRequest(BaseModel):
    message: str = Field(description="New user message")
    history: List[ChatMessage] = Field(default_factory=list, description="Previous turns")
    model: Optional[ModelIdentifier] = Field(default=None, description="Chat model")


class ChatResponse(BaseModel):
    reply: str = Field(description="Raw assistant reply")
    html: str = Field(description="Reply with code blocks rendered as HTML")
    is_code: bool = Field(description="Whether the reply contains code")
    history: List[ChatMessage] = Field(description="History including this turn")


class AnalyzeRequest(BaseModel):
    content: str = Field(description="Text to analyze")
    model: Optional[ModelIdentifier] = Field(default=None, description="Chat model")


class AnalyzeResponse(BaseModel):
    result: str
    model: ModelIdentifier


class ImageRequest(BaseModel):
    prompt: str = Field(description="Image prompt")
    model: Optional[ModelIdentifier] = Field(default=None, description="Image model")


class ReadinessResponse(BaseModel):
    model: ModelIdentifier
    state: Literal["loading", "ready", "failed"]
    estimated_seconds: Optional[float] = None
    reason: Optional[str] = None


class OcrResponse(BaseModel):
    text: str
    provider: str
    validated: bool = False
