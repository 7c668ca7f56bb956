"""
Quiz Balance Metrics
====================

This module summarizes a generated quiz into a table and a distribution so
editors can spot lopsided quizzes before publishing, e.g. a knowledge check
whose correct answer is almost always option A, or a personality quiz where
one outcome can barely be reached.
"""

import collections
import string
from typing import Tuple

import pandas as pd

from models.quiz_models import QuizData

UNMAPPED_OUTCOME = "Unmapped"


def option_letter(index: int) -> str:
    return string.ascii_uppercase[index] if index < len(string.ascii_uppercase) else str(index + 1)


def calculate_quiz_metrics(quiz: QuizData) -> Tuple[pd.DataFrame, pd.Series]:
    """
    Returns:
    1. One row per question.
    2. Knowledge checks: how often each option position is the correct one.
       Personality quizzes: how many options award points to each outcome.
    """
    rows = []
    distribution = collections.OrderedDict()

    if quiz.is_personality:
        outcome_ids = [outcome.id for outcome in quiz.outcomes or []]
        for outcome_id in outcome_ids:
            distribution[outcome_id] = 0

        for question_idx, question in enumerate(quiz.questions):
            entry = {"Question": f"Q{question_idx + 1}", "Text": question.question_text,
                     "Options": len(question.options)}
            covered = set()
            for option in question.options:
                key = option.points_for if option.points_for in outcome_ids else UNMAPPED_OUTCOME
                distribution[key] = distribution.get(key, 0) + 1
                covered.add(key)
            entry["Outcomes Covered"] = len(covered - {UNMAPPED_OUTCOME})
            rows.append(entry)
    else:
        for question_idx, question in enumerate(quiz.questions):
            letter = option_letter(question.correct_answer_index)
            rows.append({
                "Question": f"Q{question_idx + 1}",
                "Text": question.question_text,
                "Options": len(question.options),
                "Correct Option": letter,
            })
            distribution[letter] = distribution.get(letter, 0) + 1
        distribution = collections.OrderedDict(sorted(distribution.items()))

    df = pd.DataFrame(rows)
    series = pd.Series(distribution, dtype="int64")
    return df, series


def has_position_bias(quiz: QuizData, threshold: float = 0.6) -> bool:
    """True when one position holds more than ``threshold`` of the correct answers (4+ questions)."""
    if quiz.is_personality or len(quiz.questions) < 4:
        return False
    _, distribution = calculate_quiz_metrics(quiz)
    return bool(distribution.max() / len(quiz.questions) > threshold)
