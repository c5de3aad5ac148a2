"""Follow-up question extraction from the final answer text."""
import re
from typing import List, Protocol

FOLLOW_UP_SECTION = re.compile(r"follow[- ]?up questions?:?\s*\n([\s\S]*?)(?:\n\n|$)", re.IGNORECASE)
LIST_MARKER = re.compile(r"^[-\d.)*]+\s*")


class FollowUpStrategy(Protocol):
    def extract(self, answer: str) -> List[str]:
        ...


class FollowUpExtractor:
    """Pulls questions out of a "Follow-up questions:" section."""

    def __init__(self, max_questions: int = 3, min_length: int = 10):
        self.max_questions = max_questions
        self.min_length = min_length

    def extract(self, answer: str) -> List[str]:
        match = FOLLOW_UP_SECTION.search(answer or "")
        if not match:
            return []

        lines = [line for line in match.group(1).split("\n") if line.strip()]
        questions = []
        for line in lines[:self.max_questions]:
            cleaned = LIST_MARKER.sub("", line.strip()).strip()
            if len(cleaned) > self.min_length:
                questions.append(cleaned)
        return questions
