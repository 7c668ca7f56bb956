"""
Data Models for Generated Quizzes
=================================

This module defines the structures a quiz takes once an AI response has been
sanitized. All models are implemented as dataclasses; ``QuizData.to_dict``
produces the camelCase shape used on the wire and inside the rendered widget.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union


class QuizType(str, Enum):
    KNOWLEDGE_CHECK = "knowledge-check"
    PERSONALITY = "personality"


class QuizDifficulty(str, Enum):
    EASY = "Easy"
    CHALLENGING = "Challenging"


@dataclass
class KnowledgeCheckQuestion:
    question_text: str
    options: List[str] = field(default_factory=list)
    correct_answer_index: int = 0
    explanation: str = ""

    def to_dict(self):
        return {
            "questionText": self.question_text,
            "options": list(self.options),
            "correctAnswerIndex": self.correct_answer_index,
            "explanation": self.explanation,
        }


@dataclass
class PersonalityOption:
    text: str
    points_for: str

    def to_dict(self):
        return {"text": self.text, "pointsFor": self.points_for}


@dataclass
class PersonalityQuestion:
    question_text: str
    options: List[PersonalityOption] = field(default_factory=list)

    def to_dict(self):
        return {
            "questionText": self.question_text,
            "options": [option.to_dict() for option in self.options],
        }


@dataclass
class QuizResultTier:
    score_threshold: int
    title: str
    feedback: str

    def to_dict(self):
        return {"scoreThreshold": self.score_threshold, "title": self.title, "feedback": self.feedback}


@dataclass
class PersonalityOutcome:
    id: str
    title: str
    description: str

    def to_dict(self):
        return {"id": self.id, "title": self.title, "description": self.description}


Question = Union[KnowledgeCheckQuestion, PersonalityQuestion]


@dataclass
class QuizData:
    """
    A quiz that is safe to render.

    ``results`` is only set for knowledge checks and ``outcomes`` only for
    personality quizzes.
    """
    quiz_title: str
    quiz_type: QuizType
    questions: List[Question] = field(default_factory=list)
    results: Optional[List[QuizResultTier]] = None
    outcomes: Optional[List[PersonalityOutcome]] = None

    @property
    def is_personality(self) -> bool:
        return self.quiz_type == QuizType.PERSONALITY

    def to_dict(self):
        data = {
            "quizTitle": self.quiz_title,
            "quizType": self.quiz_type.value,
            "questions": [question.to_dict() for question in self.questions],
        }
        if self.results is not None:
            data["results"] = [tier.to_dict() for tier in self.results]
        if self.outcomes is not None:
            data["outcomes"] = [outcome.to_dict() for outcome in self.outcomes]
        return data
