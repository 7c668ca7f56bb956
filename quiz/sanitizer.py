"""
Quiz Sanitizer
==============

Turns the loosely-typed JSON an AI provider returns into a ``QuizData`` that
can always be rendered. Nothing in here raises: unusable input ends up as the
fixed "generation failed" quiz so the UI always has something to show.
"""

import json
import logging
import math
from typing import Any, Dict, List, Optional

from models.quiz_models import (
    KnowledgeCheckQuestion,
    PersonalityOption,
    PersonalityOutcome,
    PersonalityQuestion,
    QuizData,
    QuizResultTier,
    QuizType,
)

logger = logging.getLogger(__name__)

DEFAULT_QUIZ_TITLE = "Test Your Knowledge"
DEFAULT_EXPLANATION = "No explanation provided."

FALLBACK_QUESTION_TEXT = "The AI could not generate a valid quiz for this post. What would you like to do?"
FALLBACK_OPTIONS = ["Regenerate the quiz", "Try a different post"]
FALLBACK_EXPLANATION = "Use the Regenerate button to ask the AI for a new quiz."
FALLBACK_RESULT = QuizResultTier(
    score_threshold=0,
    title="Quiz Generation Failed",
    feedback="Something went wrong while generating this quiz. Please regenerate it before publishing.",
)

DEFAULT_RESULT_TIER = QuizResultTier(
    score_threshold=0,
    title="Keep Learning!",
    feedback="You scored {score} out of {total}. Review the article and give it another try!",
)


def extract_json_object(text: str) -> Optional[Dict[str, Any]]:
    """
    Returns the first well-formed JSON object embedded in ``text``.

    AI providers often wrap JSON in prose or markdown fences, so every ``{`` is
    tried as a starting point until one decodes to an object.
    """
    if not isinstance(text, str):
        return None

    decoder = json.JSONDecoder(strict=False)
    start = text.find("{")
    while start != -1:
        try:
            value, _ = decoder.raw_decode(text, start)
            if isinstance(value, dict):
                return value
        except ValueError:
            pass
        start = text.find("{", start + 1)
    return None


def _coerce_int(value: Any) -> Optional[int]:
    """Parses ints, integral floats and numeric strings; anything else is None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            try:
                number = float(text)
            except ValueError:
                return None
            return int(number) if math.isfinite(number) else None
    return None


def _text(value: Any) -> str:
    """Non-empty string form of ``value``, or '' for missing/blank values."""
    if value is None or isinstance(value, (dict, list)):
        return ""
    return str(value).strip()


def _option_text(option: Any) -> str:
    # Models sometimes answer with personality-style {"text": ...} options.
    if isinstance(option, dict):
        return _text(option.get("text"))
    return "" if option is None else str(option)


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _sanitize_knowledge_question(raw: Dict[str, Any]) -> Optional[KnowledgeCheckQuestion]:
    question_text = _text(raw.get("questionText"))
    options = _as_list(raw.get("options"))
    if not question_text or len(options) < 2:
        return None

    options = [_option_text(option) for option in options]

    index = _coerce_int(raw.get("correctAnswerIndex"))
    if index is None or not 0 <= index < len(options):
        index = 0

    explanation = raw.get("explanation")
    explanation = DEFAULT_EXPLANATION if explanation is None or explanation == "" else str(explanation)

    return KnowledgeCheckQuestion(
        question_text=question_text,
        options=options,
        correct_answer_index=index,
        explanation=explanation,
    )


def _sanitize_personality_question(raw: Dict[str, Any]) -> Optional[PersonalityQuestion]:
    question_text = _text(raw.get("questionText"))
    if not question_text:
        return None

    options = []
    for option in _as_list(raw.get("options")):
        if isinstance(option, dict):
            text, points_for = _text(option.get("text")), _text(option.get("pointsFor"))
        else:
            text, points_for = _text(option), ""
        if text:
            options.append(PersonalityOption(text=text, points_for=points_for))

    if len(options) < 2:
        return None
    return PersonalityQuestion(question_text=question_text, options=options)


def _sanitize_results(raw_results: Any) -> List[QuizResultTier]:
    tiers = []
    for raw in _as_list(raw_results):
        if not isinstance(raw, dict):
            continue
        threshold = _coerce_int(raw.get("scoreThreshold"))
        title, feedback = _text(raw.get("title")), _text(raw.get("feedback"))
        if threshold is None or not title or not feedback:
            continue
        # A negative threshold matches every score, which is what 0 means.
        tiers.append(QuizResultTier(score_threshold=max(threshold, 0), title=title, feedback=feedback))
    return tiers


def _sanitize_outcomes(raw_outcomes: Any) -> List[PersonalityOutcome]:
    outcomes = []
    seen_ids = set()
    for raw in _as_list(raw_outcomes):
        if not isinstance(raw, dict):
            continue
        outcome_id = _text(raw.get("id"))
        title, description = _text(raw.get("title")), _text(raw.get("description"))
        if not outcome_id or not title or not description or outcome_id in seen_ids:
            continue
        seen_ids.add(outcome_id)
        outcomes.append(PersonalityOutcome(id=outcome_id, title=title, description=description))
    return outcomes


def build_fallback_quiz() -> QuizData:
    """The single-question quiz shown when the AI response was unusable."""
    return QuizData(
        quiz_title=DEFAULT_QUIZ_TITLE,
        quiz_type=QuizType.KNOWLEDGE_CHECK,
        questions=[
            KnowledgeCheckQuestion(
                question_text=FALLBACK_QUESTION_TEXT,
                options=list(FALLBACK_OPTIONS),
                correct_answer_index=0,
                explanation=FALLBACK_EXPLANATION,
            )
        ],
        results=[QuizResultTier(FALLBACK_RESULT.score_threshold, FALLBACK_RESULT.title, FALLBACK_RESULT.feedback)],
    )


def sanitize_quiz_data(raw: Any) -> QuizData:
    """
    Normalizes a decoded AI response into a ``QuizData``.

    1. Title and type defaults (type is personality only on an exact match).
    2. Questions without text or with fewer than two options are dropped;
       knowledge-check answer indexes outside the options fall back to 0.
    3. Result tiers (knowledge checks) and outcomes (personality) are filtered.
    4. No surviving questions -> the fixed fallback quiz.
    5. Knowledge checks always end up with a zero-threshold tier.
    """
    if not isinstance(raw, dict):
        raw = {}

    quiz_title = _text(raw.get("quizTitle")) or DEFAULT_QUIZ_TITLE
    quiz_type = QuizType.PERSONALITY if raw.get("quizType") == QuizType.PERSONALITY.value else QuizType.KNOWLEDGE_CHECK

    sanitize_question = (
        _sanitize_personality_question if quiz_type == QuizType.PERSONALITY else _sanitize_knowledge_question
    )
    questions = []
    for raw_question in _as_list(raw.get("questions")):
        if not isinstance(raw_question, dict):
            continue
        question = sanitize_question(raw_question)
        if question is not None:
            questions.append(question)

    if not questions:
        logger.warning("AI response contained no usable questions; using the fallback quiz.")
        return build_fallback_quiz()

    if quiz_type == QuizType.PERSONALITY:
        return QuizData(
            quiz_title=quiz_title,
            quiz_type=quiz_type,
            questions=questions,
            outcomes=_sanitize_outcomes(raw.get("outcomes")),
        )

    results = _sanitize_results(raw.get("results"))
    if not any(tier.score_threshold == 0 for tier in results):
        results.insert(0, QuizResultTier(
            DEFAULT_RESULT_TIER.score_threshold, DEFAULT_RESULT_TIER.title, DEFAULT_RESULT_TIER.feedback
        ))

    return QuizData(quiz_title=quiz_title, quiz_type=quiz_type, questions=questions, results=results)
