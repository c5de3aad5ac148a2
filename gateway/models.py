"""Gateway request/response models."""
from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Dict, Any, Union, Literal

from orchestrator.models import FollowUpQuestion, ReasoningStep
from visualization.models import Visualization

APOLOGY_ANSWER = "I encountered an error during the investigation. Please try again."


class HistoryMessage(BaseModel):
    """Prior conversation turn supplied by the caller."""
    role: Literal["user", "assistant"]
    content: Union[str, List[Dict[str, Any]]]


class Preferences(BaseModel):
    show_reasoning: Optional[bool] = None
    # Unrecognised modes fall back to the detected one
    force_mode: Optional[str] = None


class InvestigateRequest(BaseModel):
    """Investigation request; question and customer_id are checked by the endpoint."""
    question: Optional[str] = None
    customer_id: Optional[str] = None
    user_id: Optional[str] = None
    conversation_history: Optional[List[HistoryMessage]] = None
    preferences: Optional[Preferences] = None

    @field_validator("customer_id", "user_id", mode="before")
    @classmethod
    def _stringify_ids(cls, value: Any) -> Any:
        # Numeric ids are accepted and carried as strings
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class ClassificationInfo(BaseModel):
    detected: str
    confidence: float
    reason: str


class ResponseMetadata(BaseModel):
    processing_time_ms: int
    tool_call_count: int
    mode: str
    classification: ClassificationInfo
    iterations: int
    termination_reason: str
    backend_error: Optional[str] = None
    tool_registry_version: str


class InvestigateResponse(BaseModel):
    """Successful investigation response."""
    success: bool = True
    answer: str
    reasoning: List[ReasoningStep]
    follow_up_questions: List[FollowUpQuestion]
    visualizations: List[Visualization]
    metadata: ResponseMetadata


class FailureMetadata(BaseModel):
    processing_time_ms: int
    tool_call_count: int = 0
    mode: str = "deep"
    iterations: int = 0


class FailureResponse(BaseModel):
    """Well-formed payload returned with a 500."""
    success: bool = False
    error: str
    answer: str = APOLOGY_ANSWER
    reasoning: List[ReasoningStep] = Field(default_factory=list)
    follow_up_questions: List[FollowUpQuestion] = Field(default_factory=list)
    visualizations: List[Visualization] = Field(default_factory=list)
    metadata: FailureMetadata


class ErrorResponse(BaseModel):
    """Input error returned with a 400."""
    success: bool = False
    error: str
