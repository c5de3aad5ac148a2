import pytest

from orchestrator.config import OrchestratorConfig
from orchestrator.llm_client import ReasoningLLMClient, TextBlock, ToolUseBlock, parse_backend_response
from orchestrator.models import ChatMessage, Conversation
from shared.exceptions import ReasoningBackendError


class FakeBedrockClient:
    def __init__(self, body):
        self.body = body
        self.calls = []

    async def invoke_messages(self, **kwargs):
        self.calls.append(kwargs)
        return self.body


def test_parse_text_and_tool_use():
    body = {
        "content": [
            {"type": "text", "text": "Let me check."},
            {"type": "tool_use", "id": "toolu_1", "name": "get_trend", "input": {"metric": "cost"}},
        ],
        "stop_reason": "tool_use",
    }

    turn = parse_backend_response(body)

    assert turn.stop_reason == "tool_use"
    assert turn.texts == ["Let me check."]
    assert turn.tool_uses == [ToolUseBlock(id="toolu_1", name="get_trend", input={"metric": "cost"})]
    assert turn.tool_uses[0].to_request().tool_name == "get_trend"
    assert turn.to_backend_content() == body["content"]


def test_parse_ignores_unknown_blocks_and_bad_input():
    turn = parse_backend_response({
        "content": [
            {"type": "thinking", "thinking": "hmm"},
            {"type": "tool_use", "id": "toolu_2", "name": "get_summary_stats", "input": "oops"},
        ],
        "stop_reason": "tool_use",
    })

    assert turn.texts == []
    assert turn.tool_uses[0].input == {}


@pytest.mark.parametrize("body", [
    None,
    {"stop_reason": "end_turn"},
    {"content": [{"type": "tool_use", "name": "get_trend"}]},
])
def test_parse_rejects_malformed_responses(body):
    with pytest.raises(ReasoningBackendError):
        parse_backend_response(body)


@pytest.mark.asyncio
async def test_create_turn_sends_conversation_and_tools():
    bedrock = FakeBedrockClient({"content": [{"type": "text", "text": "Done."}], "stop_reason": "end_turn"})
    client = ReasoningLLMClient(config=OrchestratorConfig(llm_temperature=0.1), bedrock_client=bedrock)
    conversation = Conversation(messages=(ChatMessage(role="user", content="How many shipments?"),))
    tools = [{"name": "get_summary_stats", "description": "Stats", "input_schema": {"type": "object"}}]

    turn = await client.create_turn("system", conversation, tools, max_tokens=2048)

    assert turn.content == [TextBlock(text="Done.")]
    call = bedrock.calls[0]
    assert call["messages"] == [{"role": "user", "content": "How many shipments?"}]
    assert call["system_prompt"] == "system"
    assert call["tools"] == tools
    assert call["temperature"] == 0.1
    assert call["max_tokens"] == 2048


def test_empty_text_blocks_are_not_echoed():
    turn = parse_backend_response({
        "content": [
            {"type": "text", "text": ""},
            {"type": "tool_use", "id": "toolu_3", "name": "get_summary_stats", "input": {}},
        ],
        "stop_reason": "tool_use",
    })

    assert turn.to_backend_content() == [
        {"type": "tool_use", "id": "toolu_3", "name": "get_summary_stats", "input": {}},
    ]
