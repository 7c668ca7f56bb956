"""
Result resolution shared by the in-app preview and the rendered widget.
"""

from typing import Dict, List, Optional, Sequence

from models.quiz_models import PersonalityOutcome, QuizData, QuizResultTier

FALLBACK_OUTCOME_TITLE = "You're One of a Kind!"
FALLBACK_OUTCOME_DESCRIPTION = "Your answers didn't point to a single result, which makes you a little bit of everything."


def score_knowledge_check(quiz: QuizData, answers: Sequence[Optional[int]]) -> int:
    """Counts answers matching ``correct_answer_index``. Unanswered questions are ``None``."""
    return sum(
        1 for question, answer in zip(quiz.questions, answers)
        if answer is not None and answer == question.correct_answer_index
    )


def resolve_result_tier(results: List[QuizResultTier], score: int) -> Optional[QuizResultTier]:
    """Highest tier whose threshold the score reaches."""
    for tier in sorted(results or [], key=lambda t: t.score_threshold, reverse=True):
        if score >= tier.score_threshold:
            return tier
    return None


def format_feedback(text: str, score: int, total: int) -> str:
    return text.replace("{score}", str(score)).replace("{total}", str(total))


def tally_personality(quiz: QuizData, answers: Sequence[Optional[int]]) -> Dict[str, int]:
    """One point per answered question for the outcome its option points to, in answer order."""
    tally: Dict[str, int] = {}
    for question, answer in zip(quiz.questions, answers):
        if answer is None or not 0 <= answer < len(question.options):
            continue
        outcome_id = question.options[answer].points_for
        tally[outcome_id] = tally.get(outcome_id, 0) + 1
    return tally


def resolve_personality_outcome(outcomes: List[PersonalityOutcome], tally: Dict[str, int]) -> PersonalityOutcome:
    """
    Outcome with the highest tally; ties go to the id counted first.
    Unknown ids (or an empty tally) resolve to a generic outcome instead of failing.
    """
    winner = None
    best = 0
    for outcome_id, points in tally.items():
        if winner is None or points > best:
            winner, best = outcome_id, points

    match = next((o for o in outcomes or [] if o.id == winner), None) if winner is not None else None
    if match:
        return match
    return PersonalityOutcome(id=winner or "", title=FALLBACK_OUTCOME_TITLE, description=FALLBACK_OUTCOME_DESCRIPTION)
