"""
Quiz generation: prompt -> streamed AI response -> sanitized QuizData.
"""

import logging
from typing import Callable, Optional

from ai.prompts import build_quiz_prompt
from models.quiz_models import QuizData, QuizDifficulty
from models.wordpress_models import WordPressPost
from quiz.sanitizer import extract_json_object, sanitize_quiz_data

logger = logging.getLogger(__name__)


async def generate_quiz(ai_client, post: WordPressPost, difficulty: QuizDifficulty = QuizDifficulty.EASY,
                        quiz_type: str = "auto", feedback: str = "", previous_quiz: Optional[QuizData] = None,
                        on_chunk: Optional[Callable[[str], None]] = None) -> QuizData:
    """
    Streams a quiz from ``ai_client`` and sanitizes it.

    ``on_chunk`` receives the accumulated text after every fragment. Provider
    errors propagate; an unusable response becomes the fallback quiz.
    """
    prompt = build_quiz_prompt(post.title, post.content, difficulty, quiz_type, feedback, previous_quiz)

    text = ""
    async for fragment in ai_client.stream(prompt):
        text += fragment
        if on_chunk:
            on_chunk(text)

    raw = extract_json_object(text)
    if raw is None:
        logger.warning(f"AI response for post {post.id} contained no JSON object: {text[:150]!r}")
    return sanitize_quiz_data(raw)
