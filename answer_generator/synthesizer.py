"""Assembles the final investigation result from the reasoning loop's output."""
import time
import uuid
from typing import Callable, List, Optional

import structlog

from answer_generator.config import SynthesizerConfig
from answer_generator.followups import FollowUpExtractor, FollowUpStrategy
from orchestrator.models import (
    Classification,
    FollowUpQuestion,
    InvestigationMetadata,
    InvestigationResult,
    LoopState,
)

logger = structlog.get_logger()


class ResponseSynthesizer:
    """Builds the InvestigationResult. Never raises."""

    def __init__(
        self,
        config: Optional[SynthesizerConfig] = None,
        extractor: Optional[FollowUpStrategy] = None,
        id_factory: Optional[Callable[[], str]] = None,
        perf_counter: Callable[[], float] = time.perf_counter
    ):
        self.config = config or SynthesizerConfig()
        self.extractor = extractor or FollowUpExtractor(
            max_questions=self.config.max_follow_ups,
            min_length=self.config.min_follow_up_length
        )
        self.id_factory = id_factory or (lambda: str(uuid.uuid4()))
        self.perf_counter = perf_counter

    def synthesize(
        self,
        state: LoopState,
        mode: str,
        classification: Classification,
        started_at: float,
        tool_registry_version: str
    ) -> InvestigationResult:
        answer = state.answer if state.answer is not None else state.last_text
        try:
            return InvestigationResult(
                answer=self._clean_answer(answer),
                reasoning=list(state.steps),
                visualizations=list(state.visualizations),
                follow_ups=self.follow_ups(answer),
                metadata=InvestigationMetadata(
                    processing_time_ms=self._elapsed_ms(started_at),
                    tool_call_count=state.tool_call_count,
                    mode=mode,
                    classification=classification,
                    turns_used=state.turns_used,
                    termination_reason=state.termination_reason or "turn_budget",
                    backend_error=state.backend_error,
                    tool_registry_version=tool_registry_version
                )
            )
        except Exception as e:
            logger.error("Failed to synthesize response, returning minimal result", error=str(e), exc_info=True)
            return self.minimal_result(answer or "", mode, classification, started_at, tool_registry_version, state)

    def follow_ups(self, answer: str) -> List[FollowUpQuestion]:
        questions = self.extractor.extract(answer or "")
        if not questions:
            questions = list(self.config.fallback_follow_ups)
        return [FollowUpQuestion(id=self.id_factory(), question=q) for q in questions]

    def minimal_result(
        self,
        answer: str,
        mode: str,
        classification: Classification,
        started_at: float,
        tool_registry_version: str,
        state: Optional[LoopState] = None
    ) -> InvestigationResult:
        """The answer alone, with empty supplementary fields."""
        safe_mode = mode if mode in ("quick", "deep", "visual") else "deep"
        return InvestigationResult(
            answer=answer,
            metadata=InvestigationMetadata(
                processing_time_ms=self._elapsed_ms(started_at),
                tool_call_count=state.tool_call_count if state else 0,
                mode=safe_mode,
                classification=classification,
                turns_used=state.turns_used if state else 0,
                termination_reason=(state.termination_reason if state else None) or "turn_budget",
                backend_error=state.backend_error if state else None,
                tool_registry_version=tool_registry_version
            )
        )

    def _elapsed_ms(self, started_at: float) -> int:
        return max(int((self.perf_counter() - started_at) * 1000), 0)

    def _clean_answer(self, answer: str) -> str:
        cleaned = answer or ""
        while "\n\n\n" in cleaned:
            cleaned = cleaned.replace("\n\n\n", "\n\n")
        return cleaned.strip()
