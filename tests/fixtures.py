"""
Shared test data: raw AI payloads, WordPress REST payloads and small fakes.
"""
import copy

import httpx

from models.wordpress_models import WordPressConfig, WordPressPost

KNOWLEDGE_PAYLOAD = {
    "quizTitle": "How Well Do You Know Sourdough?",
    "quizType": "knowledge-check",
    "questions": [
        {
            "questionText": "What makes sourdough rise?",
            "options": ["Baking soda", "Wild yeast", "Eggs"],
            "correctAnswerIndex": 1,
            "explanation": "A starter carries wild yeast and bacteria.",
        },
        {
            "questionText": "How often should a starter be fed at room temperature?",
            "options": ["Daily", "Monthly"],
            "correctAnswerIndex": 0,
            "explanation": "Daily feeding keeps it active.",
        },
    ],
    "results": [
        {"scoreThreshold": 0, "title": "Keep Kneading", "feedback": "You got {score} of {total}."},
        {"scoreThreshold": 2, "title": "Master Baker", "feedback": "Perfect {score}/{total}!"},
    ],
}

PERSONALITY_PAYLOAD = {
    "quizTitle": "What Kind of Baker Are You?",
    "quizType": "personality",
    "questions": [
        {
            "questionText": "Pick a weekend plan",
            "options": [
                {"text": "Try a new recipe", "pointsFor": "explorer"},
                {"text": "Perfect an old one", "pointsFor": "classic"},
            ],
        },
        {
            "questionText": "Pick a flour",
            "options": [
                {"text": "Einkorn", "pointsFor": "explorer"},
                {"text": "All-purpose", "pointsFor": "classic"},
            ],
        },
    ],
    "outcomes": [
        {"id": "explorer", "title": "The Explorer", "description": "Always trying something new."},
        {"id": "classic", "title": "The Classicist", "description": "Tradition done right."},
    ],
}

POST_CONTENT = (
    "<h2>Getting Started</h2>\n"
    "<p>Sourdough needs only flour, water and salt.</p>\n"
    "<p>Feed your starter every day.</p>\n"
    "<p>Bake once it doubles.</p>"
)

WP_CONFIG = WordPressConfig(url="https://blog.example.com", username="editor", app_password="abcd efgh")


def knowledge_payload():
    return copy.deepcopy(KNOWLEDGE_PAYLOAD)


def personality_payload():
    return copy.deepcopy(PERSONALITY_PAYLOAD)


def raw_post(post_id=7, content=POST_CONTENT, title="Sourdough Basics", with_image=False):
    raw = {
        "id": post_id,
        "title": {"rendered": title},
        "content": {"raw": content, "rendered": f"<div>{content}</div>"},
        "link": f"https://blog.example.com/?p={post_id}",
    }
    if with_image:
        raw["_embedded"] = {"wp:featuredmedia": [{"source_url": "https://blog.example.com/bread.jpg"}]}
    return raw


def make_post(post_id=7, content=POST_CONTENT, tool_id=None, has_tool=None):
    return WordPressPost(
        id=post_id,
        title="Sourdough Basics",
        content=content,
        link=f"https://blog.example.com/?p={post_id}",
        has_tool=tool_id is not None if has_tool is None else has_tool,
        tool_id=tool_id,
    )


def json_response(data, status_code=200):
    return httpx.Response(status_code, json=data)


class FakeLlm:
    """Returns a fixed completion (or raises ``error``) and records prompts."""

    def __init__(self, response="", error=None):
        self.response = response
        self.error = error
        self.prompts = []

    async def complete(self, prompt, json_mode=False):
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return self.response


class FakeStreamingAi:
    """Yields ``fragments`` from ``stream`` (then raises ``error``) and records prompts."""

    def __init__(self, fragments=(), error=None):
        self.fragments = list(fragments)
        self.error = error
        self.prompts = []

    async def stream(self, prompt):
        self.prompts.append(prompt)
        for fragment in self.fragments:
            yield fragment
        if self.error:
            raise self.error


def split_text(text, size=17):
    return [text[i:i + size] for i in range(0, len(text), size)]
