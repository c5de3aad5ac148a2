"""Reasoning backend client for tool-calling turns using Amazon Bedrock."""
from typing import Any, Dict, List, Optional, Protocol, Union
import os

from pydantic import BaseModel, ConfigDict, Field
import structlog

from orchestrator.config import OrchestratorConfig
from orchestrator.models import Conversation, ToolInvocationRequest
from shared.bedrock_client import BedrockClient
from shared.exceptions import ReasoningBackendError

logger = structlog.get_logger()


class TextBlock(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str

    def to_backend(self) -> Dict[str, Any]:
        return {"type": "text", "text": self.text}


class ToolUseBlock(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    input: Dict[str, Any] = Field(default_factory=dict)

    def to_backend(self) -> Dict[str, Any]:
        return {"type": "tool_use", "id": self.id, "name": self.name, "input": self.input}

    def to_request(self) -> ToolInvocationRequest:
        return ToolInvocationRequest(id=self.id, tool_name=self.name, input=self.input)


class BackendTurn(BaseModel):
    """One parsed reasoning backend response."""
    model_config = ConfigDict(frozen=True)

    content: List[Union[TextBlock, ToolUseBlock]] = Field(default_factory=list)
    stop_reason: Optional[str] = None

    @property
    def texts(self) -> List[str]:
        return [b.text for b in self.content if isinstance(b, TextBlock) and b.text]

    @property
    def tool_uses(self) -> List[ToolUseBlock]:
        return [b for b in self.content if isinstance(b, ToolUseBlock)]

    def to_backend_content(self) -> List[Dict[str, Any]]:
        # Echoed content never carries empty text blocks
        return [b.to_backend() for b in self.content if not (isinstance(b, TextBlock) and not b.text)]


class ReasoningBackend(Protocol):
    async def create_turn(
        self,
        system_prompt: str,
        conversation: Conversation,
        tools: List[Dict[str, Any]],
        max_tokens: int
    ) -> BackendTurn:
        ...


def parse_backend_response(body: Any) -> BackendTurn:
    """Parse an Anthropic Messages response body into a BackendTurn."""
    if not isinstance(body, dict) or not isinstance(body.get("content"), list):
        raise ReasoningBackendError("Reasoning backend returned a response without content")

    blocks: List[Union[TextBlock, ToolUseBlock]] = []
    for block in body["content"]:
        if not isinstance(block, dict):
            continue
        block_type = block.get("type")
        if block_type == "text":
            blocks.append(TextBlock(text=block.get("text") or ""))
        elif block_type == "tool_use":
            if not block.get("id") or not block.get("name"):
                raise ReasoningBackendError("Tool use block is missing its id or name")
            tool_input = block.get("input")
            blocks.append(ToolUseBlock(
                id=block["id"],
                name=block["name"],
                input=tool_input if isinstance(tool_input, dict) else {}
            ))
    return BackendTurn(content=blocks, stop_reason=body.get("stop_reason"))


class ReasoningLLMClient:
    """Reasoning backend backed by Claude on Amazon Bedrock."""

    def __init__(self, config: Optional[OrchestratorConfig] = None, bedrock_client: Optional[BedrockClient] = None):
        self.config = config or OrchestratorConfig()
        # Uses shared AWS credentials from environment
        self.bedrock_client = bedrock_client or BedrockClient(
            region_name=self.config.aws_region or os.getenv("AWS_REGION", "us-east-1"),
            aws_access_key_id=os.getenv("AWS_ACCESS_KEY_ID"),
            aws_secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
            model_id=self.config.llm_model
        )
        logger.info("Initialized reasoning backend client", model=self.config.llm_model)

    async def create_turn(
        self,
        system_prompt: str,
        conversation: Conversation,
        tools: List[Dict[str, Any]],
        max_tokens: int
    ) -> BackendTurn:
        body = await self.bedrock_client.invoke_messages(
            messages=conversation.to_backend(),
            system_prompt=system_prompt,
            tools=tools,
            temperature=self.config.llm_temperature,
            max_tokens=max_tokens
        )
        turn = parse_backend_response(body)
        logger.debug(
            "Reasoning backend turn",
            stop_reason=turn.stop_reason,
            tool_uses=len(turn.tool_uses),
            usage=body.get("usage")
        )
        return turn
