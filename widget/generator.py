"""
Custom widget generation: prompt -> streamed AI response -> HTML snippet.

The snippet is themed through a ``--accent-color`` CSS variable, so changing
the theme color afterwards only rewrites that one declaration.
"""

import re
from typing import Callable, Optional

from ai.prompts import build_html_snippet_prompt
from models.widget_models import ToolIdea
from models.wordpress_models import WordPressPost
from quiz.renderer import DEFAULT_THEME_COLOR, hex_to_hsl

_FENCE = re.compile(r"^\s*```[a-zA-Z]*\s*\n(.*?)\n?\s*```\s*$", re.DOTALL)
_ACCENT_DECLARATION = re.compile(r"(--accent-color:\s*)[^;]+(;)")


def hsl_string(theme_color: str) -> str:
    """'#3b82f6' -> '217 91% 60%', the form the snippets use inside ``hsl(...)``."""
    hsl = hex_to_hsl(theme_color) or hex_to_hsl(DEFAULT_THEME_COLOR)
    h, s, l = hsl
    return f"{h} {s}% {l}%"


def clean_html_snippet(text: str) -> str:
    """Removes a markdown fence around the snippet, if the model added one."""
    match = _FENCE.match(text)
    return (match.group(1) if match else text).strip()


def apply_theme_color(snippet: str, theme_color: str) -> str:
    if hex_to_hsl(theme_color) is None:
        return snippet
    value = hsl_string(theme_color)
    return _ACCENT_DECLARATION.sub(lambda m: m.group(1) + value + m.group(2), snippet, count=1)


async def generate_html_snippet(ai_client, post: WordPressPost, idea: ToolIdea,
                                theme_color: str = DEFAULT_THEME_COLOR,
                                on_chunk: Optional[Callable[[str], None]] = None) -> str:
    """
    Streams the widget for ``idea`` from ``ai_client``.

    ``on_chunk`` receives the accumulated text after every fragment. Provider
    errors propagate.
    """
    prompt = build_html_snippet_prompt(post.title, post.content, idea, hsl_string(theme_color))

    text = ""
    async for fragment in ai_client.stream(prompt):
        text += fragment
        if on_chunk:
            on_chunk(text)
    return clean_html_snippet(text)
