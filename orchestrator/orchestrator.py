"""Main orchestration logic: a bounded, multi-turn tool-calling loop."""
from typing import Dict, Any, Optional, List, Sequence, Union, Callable
from datetime import datetime
import asyncio
import json
import time
import structlog

from answer_generator.synthesizer import ResponseSynthesizer
from data_store.client import AnalyticsStore
from orchestrator.classifier import Classifier, QuestionClassifier
from orchestrator.config import OrchestratorConfig
from orchestrator.llm_client import ReasoningBackend
from orchestrator.models import (
    ChatMessage,
    Conversation,
    InvestigationResult,
    LoopState,
    ReasoningStep,
    ToolInvocationRequest,
)
from orchestrator.prompts import SystemPromptLoader
from tool_executor.config import ToolExecutorConfig
from tool_executor.executor import ToolExecutor
from tool_registry.definitions import ToolRegistry, default_registry
from visualization.mapper import VisualizationMapper

logger = structlog.get_logger()


class _Checkpoint:
    """Latest completed loop state, read when the request times out."""

    def __init__(self, state: LoopState):
        self.state = state


def build_conversation(
    history: Optional[Sequence[Union[ChatMessage, Dict[str, Any]]]],
    question: str
) -> Conversation:
    messages = [m if isinstance(m, ChatMessage) else ChatMessage.model_validate(m) for m in (history or [])]
    messages.append(ChatMessage(role="user", content=question))
    return Conversation(messages=tuple(messages))


class InvestigationOrchestrator:
    """Routes a question, drives the reasoning backend through tool calls and packages the result."""

    def __init__(
        self,
        backend: ReasoningBackend,
        store: AnalyticsStore,
        classifier: Optional[Classifier] = None,
        mapper: Optional[VisualizationMapper] = None,
        synthesizer: Optional[ResponseSynthesizer] = None,
        prompt_loader: Optional[SystemPromptLoader] = None,
        config: Optional[OrchestratorConfig] = None,
        registry: Optional[ToolRegistry] = None,
        executor_config: Optional[ToolExecutorConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
        perf_counter: Callable[[], float] = time.perf_counter
    ):
        self.backend = backend
        self.store = store
        self.config = config or OrchestratorConfig()
        self.classifier = classifier or QuestionClassifier()
        self.mapper = mapper or VisualizationMapper()
        self.synthesizer = synthesizer or ResponseSynthesizer()
        self.prompt_loader = prompt_loader or SystemPromptLoader(
            store,
            setting_key=self.config.system_prompt_setting_key,
            ttl_seconds=self.config.system_prompt_cache_ttl_seconds
        )
        self.registry = registry or default_registry()
        self.executor_config = executor_config or ToolExecutorConfig()
        self.clock = clock
        self.perf_counter = perf_counter
        self.tool_schemas = self.registry.backend_schemas()

    async def investigate(
        self,
        question: str,
        customer_id: str,
        user_id: Optional[str] = None,
        conversation_history: Optional[Sequence[Union[ChatMessage, Dict[str, Any]]]] = None,
        force_mode: Optional[str] = None
    ) -> InvestigationResult:
        """Answer one question. Tool and backend failures degrade the answer instead of raising."""
        started_at = self.perf_counter()

        outcome = self.classifier.classify(question, force_mode)
        mode, classification = outcome.mode, outcome.classification
        logger.info(
            "Starting investigation",
            mode=mode,
            detected_mode=classification.mode,
            user_id=user_id,
            confidence=classification.confidence,
            reason=classification.reason
        )

        initial = LoopState(
            conversation=build_conversation(conversation_history, question),
            steps=(ReasoningStep(type="routing", content=f"Mode: {mode} ({classification.reason})"),)
        )
        executor = ToolExecutor(
            self.store,
            customer_id,
            registry=self.registry,
            config=self.executor_config,
            clock=self.clock
        )
        checkpoint = _Checkpoint(initial)

        timeout = self.config.request_timeout_seconds
        try:
            state = await asyncio.wait_for(
                self._run(checkpoint, executor, mode),
                timeout=timeout if timeout and timeout > 0 else None
            )
        except asyncio.TimeoutError:
            latest = checkpoint.state
            logger.warning("Investigation timed out", turns_used=latest.turns_used, timeout_seconds=timeout)
            state = latest.evolve(termination_reason="timeout", answer=latest.last_text)

        logger.info(
            "Investigation finished",
            termination_reason=state.termination_reason,
            turns_used=state.turns_used,
            tool_call_count=state.tool_call_count,
            visualizations=len(state.visualizations)
        )
        return self.synthesizer.synthesize(state, mode, classification, started_at, self.registry.version)

    async def _run(self, checkpoint: _Checkpoint, executor: ToolExecutor, mode: str) -> LoopState:
        system_prompt = await self.prompt_loader.load()
        max_turns = self.config.max_turns_for(mode)
        max_tokens = self.config.max_tokens_for(mode)

        state = checkpoint.state
        for _ in range(max_turns):
            state = await self.run_turn(state, executor, system_prompt, max_tokens, max_turns)
            checkpoint.state = state
            if state.is_terminal:
                return state

        logger.info("Turn budget exhausted", max_turns=max_turns)
        return state.evolve(termination_reason="turn_budget", answer=state.last_text)

    async def run_turn(
        self,
        state: LoopState,
        executor: ToolExecutor,
        system_prompt: str,
        max_tokens: int,
        max_turns: Optional[int] = None
    ) -> LoopState:
        """One backend round-trip plus its tool executions; returns the next state."""
        turn_number = state.turns_used + 1
        logger.info("Reasoning turn", turn=turn_number, max_turns=max_turns)

        try:
            turn = await self.backend.create_turn(system_prompt, state.conversation, self.tool_schemas, max_tokens)
        except Exception as e:
            logger.error("Reasoning backend call failed", turn=turn_number, error=str(e), exc_info=True)
            return state.evolve(
                turns_used=turn_number,
                termination_reason="backend_error",
                backend_error=str(e) or type(e).__name__,
                answer=state.last_text
            )

        texts = turn.texts
        steps = state.steps + tuple(
            ReasoningStep(type="thinking", content=text[:self.config.thinking_summary_chars])
            for text in texts
        )
        last_text = texts[-1] if texts else state.last_text

        tool_uses = turn.tool_uses
        if turn.stop_reason == "end_turn" or not tool_uses:
            return state.evolve(
                steps=steps,
                turns_used=turn_number,
                last_text=last_text,
                answer=texts[0] if texts else state.last_text,
                termination_reason="completion"
            )

        requests = [block.to_request() for block in tool_uses]
        results = await self._execute_all(executor, requests)

        visualizations = []
        result_blocks = []
        for request, result in zip(requests, results):
            logger.info("Tool call", tool=request.tool_name, failed="error" in result)
            visualization = self.mapper.map(request.tool_name, request.input, result)
            if visualization is not None:
                visualizations.append(visualization)

            serialized = json.dumps(result, default=str)
            steps += (
                ReasoningStep(type="tool_call", content=f"Calling {request.tool_name}", tool_name=request.tool_name),
                ReasoningStep(
                    type="tool_result",
                    content=serialized[:self.config.tool_result_summary_chars],
                    tool_name=request.tool_name
                ),
            )
            block = {"type": "tool_result", "tool_use_id": request.id, "content": serialized}
            if "error" in result:
                block["is_error"] = True
            result_blocks.append(block)

        conversation = state.conversation.append(
            ChatMessage(role="assistant", content=turn.to_backend_content()),
            ChatMessage(role="user", content=result_blocks)
        )
        return state.evolve(
            conversation=conversation,
            steps=steps,
            visualizations=state.visualizations + tuple(visualizations),
            tool_call_count=state.tool_call_count + len(requests),
            turns_used=turn_number,
            last_text=last_text
        )

    async def _execute_all(
        self,
        executor: ToolExecutor,
        requests: List[ToolInvocationRequest]
    ) -> List[Dict[str, Any]]:
        """Run sibling tool calls; results come back in request order."""
        if self.config.parallel_tool_calls and len(requests) > 1:
            return list(await asyncio.gather(*(executor.execute(r.tool_name, r.input) for r in requests)))
        results = []
        for request in requests:
            results.append(await executor.execute(request.tool_name, request.input))
        return results
