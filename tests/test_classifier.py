import pytest

from orchestrator.classifier import QuestionClassifier


@pytest.fixture
def classifier():
    return QuestionClassifier()


@pytest.mark.parametrize("question", [
    "How many shipments last month?",
    "What is the total cost this quarter?",
    "what's the number of carriers we use",
    "Who are the top carriers?",
    "Just tell me the spend",
])
def test_quick_questions(classifier, question):
    """Factual questions route to quick mode, every time"""
    first = classifier.classify(question)
    second = classifier.classify(question)

    assert first.mode == "quick"
    assert first.classification.confidence == 0.8
    assert first.classification.reason == "Simple factual question"
    assert first == second


@pytest.mark.parametrize("question", [
    "Show me a treemap of cost by carrier",
    "Spend over time for LTL",
    "Which lanes carry the most freight?",
    "Map of retail by destination",
])
def test_visual_questions(classifier, question):
    outcome = classifier.classify(question)

    assert outcome.mode == "visual"
    assert outcome.classification.confidence == 0.85


def test_deep_question(classifier):
    outcome = classifier.classify("Why did costs spike?")

    assert outcome.mode == "deep"
    assert outcome.classification.confidence == 0.9
    assert outcome.classification.reason == "Analytical investigation needed"


def test_visual_checked_before_deep(classifier):
    """A chart request wins over analytical wording"""
    outcome = classifier.classify("why did volume drop, show me a chart")

    assert outcome.mode == "visual"


def test_long_question_fallback(classifier):
    question = (
        "Tell me about our freight spending patterns for the northeast accounts "
        "during the last several fiscal quarters please"
    )
    assert len(question) > 100

    outcome = classifier.classify(question)

    assert outcome.mode == "deep"
    assert outcome.classification.confidence == 0.7
    assert outcome.classification.reason == "Complex question"


def test_default_fallback(classifier):
    outcome = classifier.classify("Tell me about carriers")

    assert outcome.mode == "deep"
    assert outcome.classification.confidence == 0.6
    assert outcome.classification.reason == "Default to thorough analysis"


def test_force_mode_overrides_but_detection_is_kept(classifier):
    outcome = classifier.classify("Why did costs spike?", force_mode="quick")

    assert outcome.mode == "quick"
    assert outcome.classification.mode == "deep"


def test_unknown_force_mode_is_ignored(classifier):
    outcome = classifier.classify("How many shipments?", force_mode="turbo")

    assert outcome.mode == "quick"
