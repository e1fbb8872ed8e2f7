"""Pydantic models and domain entities for the prediction service."""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from manyshot.prompts.prediction_prompt import build_prediction_prompt

Provider = Literal["openai", "anthropic", "gemini", "local"]


class BackendKind(str, Enum):
    REMOTE_API = "remote-api"
    LOCAL = "local"


class RunStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    STOPPED = "stopped"
    FAILED = "failed"


def _clean_text(value: str, field_name: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValueError(f"{field_name} must not be empty.")
    return cleaned


def _clean_options(options: List[str]) -> List[str]:
    if not options:
        raise ValueError("At least one answer option is required.")
    cleaned: List[str] = []
    seen = set()
    for index, option in enumerate(options, start=1):
        value = _clean_text(option, f"Answer option {index}")
        if value in seen:
            raise ValueError(f"Duplicate answer option: {value}")
        seen.add(value)
        cleaned.append(value)
    return cleaned


class ModelDescriptor(BaseModel):
    """A catalog entry naming the backend variant and the model to invoke."""

    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    provider: Provider

    @property
    def backend_kind(self) -> BackendKind:
        return BackendKind.LOCAL if self.provider == "local" else BackendKind.REMOTE_API


class PredictionRequest(BaseModel):
    """Question plus the ordered answer options offered to the model."""

    model_config = ConfigDict(frozen=True)

    question: str
    answer_options: Tuple[str, ...]

    @field_validator("question")
    @classmethod
    def _validate_question(cls, value: str) -> str:
        return _clean_text(value, "Question")

    @field_validator("answer_options")
    @classmethod
    def _validate_options(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        return tuple(_clean_options(list(value)))

    def to_prompt(self) -> str:
        return build_prediction_prompt(self.question, self.answer_options)


class Prediction(BaseModel):
    model_config = ConfigDict(frozen=True)

    prediction: str


class RunResult(BaseModel):
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    run_id: str
    iteration: int = Field(ge=1)
    model_id: str
    prediction: Prediction


class RunState(BaseModel):
    """Mutable bookkeeping owned by a single runner for one run."""

    status: RunStatus = RunStatus.IDLE
    cancel_requested: bool = False
    last_error: Optional[str] = None
    current_iteration: int = 0
    total: int = 0


class RunOutcome(BaseModel):
    run_id: str
    status: RunStatus
    results: List[RunResult] = Field(default_factory=list)
    error: Optional[str] = None


class ChartEntry(BaseModel):
    option: str
    count: int
    percentage: float
    color_index: int
    color: str


# =============================================================================
# API SCHEMAS
# =============================================================================


class RunCreateRequest(BaseModel):
    """Payload to start a sampling run."""

    question: str
    answer_options: List[str]
    model: str
    runs: int = Field(default=1, ge=1)

    def to_prediction_request(self) -> PredictionRequest:
        return PredictionRequest(question=self.question, answer_options=self.answer_options)


class SinglePredictRequest(BaseModel):
    """Single best-effort prediction request.

    Accepts either a free-form ``prompt`` or ``question`` + ``answer_options``;
    both forms go through the same validation rules.
    """

    model: str
    prompt: Optional[str] = None
    question: Optional[str] = None
    answer_options: Optional[List[str]] = None

    @model_validator(mode="after")
    def _validate_payload(self) -> "SinglePredictRequest":
        self.model = _clean_text(self.model, "Model")
        has_prompt = self.prompt is not None
        has_question = self.question is not None or self.answer_options is not None
        if has_prompt == has_question:
            raise ValueError("Provide either 'prompt' or 'question' with 'answer_options'.")
        if has_prompt:
            self.prompt = _clean_text(self.prompt or "", "Prompt")
        else:
            self.question = _clean_text(self.question or "", "Question")
            self.answer_options = _clean_options(self.answer_options or [])
        return self


class RunSnapshot(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    run_id: str
    status: RunStatus
    model_id: str
    question: str
    answer_options: List[str]
    total_iterations: int
    completed_iterations: int
    progress: float
    results: List[RunResult]
    frequency: Dict[str, int]
    percentages: Dict[str, float]
    chart: List[ChartEntry]
    error: Optional[str] = None
    started_at: str
    updated_at: str
    finished_at: Optional[str] = None
