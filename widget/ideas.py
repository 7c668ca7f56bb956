"""
Tool idea suggestions: prompt -> AI completion -> up to three ``ToolIdea``.
"""

import logging
from typing import Any, List

from ai.prompts import build_ideas_prompt
from ai.providers import AiProviderError
from models.widget_models import TOOL_ICONS, ToolIdea
from models.wordpress_models import WordPressPost
from quiz.sanitizer import extract_json_object

logger = logging.getLogger(__name__)

MAX_IDEAS = 3


def _one_line(value: Any) -> str:
    return " ".join(str(value).split())


def parse_tool_ideas(text: str) -> List[ToolIdea]:
    """
    Reads the ideas from an AI response. The list may sit under any key; the
    first list in the JSON object is used and entries without a title,
    description and icon are skipped.
    """
    data = extract_json_object(text)
    if data is None:
        return []
    entries = next((value for value in data.values() if isinstance(value, list)), [])

    ideas = []
    for entry in entries:
        if not isinstance(entry, dict) or not all(key in entry for key in ("title", "description", "icon")):
            logger.warning(f"Skipping malformed tool idea: {str(entry)[:80]!r}")
            continue
        title = _one_line(entry["title"])
        if not title:
            continue
        icon = _one_line(entry["icon"]).lower()
        ideas.append(ToolIdea(title=title, description=_one_line(entry["description"]),
                              icon=icon if icon in TOOL_ICONS else "idea"))
    return ideas[:MAX_IDEAS]


async def suggest_tool_ideas(ai_client, post: WordPressPost) -> List[ToolIdea]:
    """Asks ``ai_client`` for tool ideas for ``post``. Raises AiProviderError when none are usable."""
    response = await ai_client.complete(build_ideas_prompt(post.title, post.content), json_mode=True)
    ideas = parse_tool_ideas(response)
    if not ideas:
        logger.warning(f"No usable tool ideas for post {post.id}: {str(response)[:150]!r}")
        raise AiProviderError("The AI did not return valid tool ideas in the expected format. Please try again.")
    return ideas
