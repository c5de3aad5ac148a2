"""Orchestrator data models."""
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Dict, Any, Optional, Tuple, Union, Literal

from visualization.models import Visualization

Mode = Literal["quick", "deep", "visual"]
StepType = Literal["routing", "thinking", "tool_call", "tool_result"]
TerminationReason = Literal["completion", "turn_budget", "timeout", "backend_error"]


class ChatMessage(BaseModel):
    """One conversation message; content is text or structured blocks."""
    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    content: Union[str, List[Dict[str, Any]]]


class Conversation(BaseModel):
    """Append-only message log; ``append`` returns a new conversation."""
    model_config = ConfigDict(frozen=True)

    messages: Tuple[ChatMessage, ...] = ()

    def append(self, *messages: ChatMessage) -> "Conversation":
        return Conversation(messages=self.messages + tuple(messages))

    def to_backend(self) -> List[Dict[str, Any]]:
        return [{"role": m.role, "content": m.content} for m in self.messages]

    def __len__(self) -> int:
        return len(self.messages)


class ToolInvocationRequest(BaseModel):
    """A tool call requested by the reasoning backend."""
    model_config = ConfigDict(frozen=True)

    id: str
    tool_name: str
    input: Dict[str, Any] = Field(default_factory=dict)


class ReasoningStep(BaseModel):
    """Reasoning trace entry."""
    model_config = ConfigDict(frozen=True)

    type: StepType
    content: str
    tool_name: Optional[str] = None


class Classification(BaseModel):
    model_config = ConfigDict(frozen=True)

    mode: Mode
    confidence: float
    reason: str


class FollowUpQuestion(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    question: str


class LoopState(BaseModel):
    """Everything a turn reads and produces. Turns return a new state."""
    model_config = ConfigDict(frozen=True)

    conversation: Conversation
    steps: Tuple[ReasoningStep, ...] = ()
    visualizations: Tuple[Visualization, ...] = ()
    tool_call_count: int = 0
    turns_used: int = 0
    last_text: str = ""
    answer: Optional[str] = None
    termination_reason: Optional[TerminationReason] = None
    backend_error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.termination_reason is not None

    def evolve(self, **changes: Any) -> "LoopState":
        return self.model_copy(update=changes)


class InvestigationMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    processing_time_ms: int
    tool_call_count: int
    mode: Mode
    classification: Classification
    turns_used: int
    termination_reason: TerminationReason
    backend_error: Optional[str] = None
    tool_registry_version: str


class InvestigationResult(BaseModel):
    """Final investigation result."""
    model_config = ConfigDict(frozen=True)

    answer: str
    reasoning: List[ReasoningStep] = Field(default_factory=list)
    visualizations: List[Visualization] = Field(default_factory=list)
    follow_ups: List[FollowUpQuestion] = Field(default_factory=list)
    metadata: InvestigationMetadata
