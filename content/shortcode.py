"""
Tool References in Post Content
===============================

Two formats have been used to attach a tool to a post:

* the shortcode ``[contentforge_tool id="123"]`` pointing at a ``cf_tool`` post,
* the older inline embed, a ``<div data-wp-seo-optimizer-tool="true">`` block.

Removal is idempotent: content without a reference comes back unchanged.
"""

import re
from typing import Optional, Tuple

from bs4 import BeautifulSoup, NavigableString, Tag

# Case-insensitive; tolerates extra whitespace and ', " or missing quotes.
# e.g. [contentforge_tool id="123"], [ contentforge_tool id='456' ], [contentforge_tool id=789]
SHORTCODE_PATTERN = re.compile(r"""\[\s*contentforge_tool\s+id\s*=\s*["']?(\d+)["']?\s*.*?\]""", re.IGNORECASE)

LEGACY_TOOL_ATTRIBUTE = "data-wp-seo-optimizer-tool"
TAILWIND_CDN = "cdn.tailwindcss.com"


class ShortcodeNotFoundError(Exception):
    """A shortcode was expected in the post but is no longer there (stale post data)."""


def build_shortcode(tool_id: int) -> str:
    return f'[contentforge_tool id="{int(tool_id)}"]'


def find_tool_id(content: str) -> Optional[int]:
    match = SHORTCODE_PATTERN.search(content or "")
    return int(match.group(1)) if match else None


def remove_shortcodes(content: str) -> str:
    return SHORTCODE_PATTERN.sub("", content or "")


def has_legacy_embed(content: str) -> bool:
    if not content or LEGACY_TOOL_ATTRIBUTE not in content:
        return False
    soup = BeautifulSoup(content, "html.parser")
    return soup.find(attrs={LEGACY_TOOL_ATTRIBUTE: "true"}) is not None


def _is_blank(node) -> bool:
    return isinstance(node, NavigableString) and not node.strip()


def _remove_adjacent_tailwind_script(node: Tag) -> None:
    """Older embeds left the Tailwind CDN script next to the tool instead of inside it."""
    for direction in ("previous_sibling", "next_sibling"):
        sibling = getattr(node, direction)
        while sibling is not None and _is_blank(sibling):
            sibling = getattr(sibling, direction)
        if isinstance(sibling, Tag) and sibling.name == "script" and TAILWIND_CDN in (sibling.get("src") or ""):
            sibling.decompose()
            return


def remove_legacy_embed(content: str) -> str:
    if not has_legacy_embed(content):
        return content

    soup = BeautifulSoup(content, "html.parser")
    for embed in soup.find_all(attrs={LEGACY_TOOL_ATTRIBUTE: "true"}):
        _remove_adjacent_tailwind_script(embed)
        embed.decompose()
    return str(soup)


def remove_tool_reference(content: str, expect_shortcode: bool = False) -> Tuple[str, Optional[int]]:
    """
    Strips every tool reference from ``content``.

    Returns the new content and the tool id the shortcode pointed at (if any).
    Raises ``ShortcodeNotFoundError`` only when ``expect_shortcode`` is set and
    no shortcode is present; otherwise a missing reference is not an error.
    """
    tool_id = find_tool_id(content)
    if expect_shortcode and tool_id is None:
        raise ShortcodeNotFoundError(
            "The tool shortcode could not be found in this post. "
            "The post may have been edited elsewhere; refresh the post list and try again."
        )

    if tool_id is not None:
        content = remove_shortcodes(content)
    return remove_legacy_embed(content), tool_id
