"""Question classification into processing modes."""
import re
from typing import List, NamedTuple, Optional, Pattern, Protocol, Tuple

from orchestrator.models import Classification

LONG_QUESTION_LENGTH = 100
MODES = ("quick", "deep", "visual")


class ClassificationOutcome(NamedTuple):
    classification: Classification
    mode: str


class Classifier(Protocol):
    def classify(self, question: str, force_mode: Optional[str] = None) -> ClassificationOutcome:
        ...


def _compile(*patterns: str) -> List[Pattern]:
    return [re.compile(p, re.IGNORECASE) for p in patterns]


# Checked in order, first match wins; visual precedes deep.
PATTERN_FAMILIES: Tuple[Tuple[str, float, str, List[Pattern]], ...] = (
    ("quick", 0.8, "Simple factual question", _compile(
        r"^(how many|what('?s| is) the (total|count|number)|count of)",
        r"^(what|who) (is|are) (the )?(top|best|worst|highest|lowest)",
        r"simple|quick|fast|just tell me",
    )),
    ("visual", 0.85, "Visualization requested", _compile(
        r"show me|visualize|chart|graph|plot|display|breakdown",
        r"over time|trend|by (month|week|day|year)",
        r"compare|vs|versus|distribution",
        r"treemap|heatmap|heat map|calendar|radar|waterfall",
        r"map|state|geographic|region|choropleth",
        r"flow|lane|route|origin.+destination",
    )),
    ("deep", 0.9, "Analytical investigation needed", _compile(
        r"why|how come|explain|analyze|investigate|dig into",
        r"root cause|problem|issue|anomal",
        r"understand|figure out|what('?s| is) (happening|going on|wrong)",
    )),
)


class QuestionClassifier:
    """Regex heuristics mapping a question onto quick, visual or deep mode."""

    def __init__(self, families=PATTERN_FAMILIES, long_question_length: int = LONG_QUESTION_LENGTH):
        self.families = families
        self.long_question_length = long_question_length

    def detect(self, question: str) -> Classification:
        text = (question or "").strip().lower()
        for mode, confidence, reason, patterns in self.families:
            if any(p.search(text) for p in patterns):
                return Classification(mode=mode, confidence=confidence, reason=reason)
        if len(text) > self.long_question_length:
            return Classification(mode="deep", confidence=0.7, reason="Complex question")
        return Classification(mode="deep", confidence=0.6, reason="Default to thorough analysis")

    def classify(self, question: str, force_mode: Optional[str] = None) -> ClassificationOutcome:
        """Detect the mode; an explicit ``force_mode`` wins but detection is still reported."""
        detected = self.detect(question)
        mode = force_mode if force_mode in MODES else detected.mode
        return ClassificationOutcome(classification=detected, mode=mode)
