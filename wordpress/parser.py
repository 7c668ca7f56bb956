"""
WordPress REST Response Parser
==============================

Turns raw ``wp/v2/posts`` JSON into ``WordPressPost`` objects and provides the
text helpers the prompts need.
"""

from bs4 import BeautifulSoup

from content.shortcode import find_tool_id, has_legacy_embed
from models.wordpress_models import WordPressPost


def strip_html(html: str) -> str:
    """Visible text of an HTML fragment, whitespace collapsed."""
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for element in soup(["script", "style"]):
        element.decompose()
    return " ".join(soup.get_text(" ").split())


def _rendered(field) -> str:
    if isinstance(field, dict):
        return field.get("rendered") or ""
    return field or ""


def parse_post(raw: dict) -> WordPressPost:
    """
    Builds a post from the REST payload.

    With ``context=edit`` WordPress returns the unprocessed ``content.raw``,
    which still contains the shortcode; ``content.rendered`` has it expanded.
    """
    content_field = raw.get("content") or {}
    if isinstance(content_field, dict) and content_field.get("raw") is not None:
        content = content_field["raw"]
    else:
        content = _rendered(content_field)

    featured_media = (raw.get("_embedded") or {}).get("wp:featuredmedia") or []
    featured_image_url = None
    if featured_media and isinstance(featured_media[0], dict):
        featured_image_url = featured_media[0].get("source_url")

    tool_id = find_tool_id(content)

    return WordPressPost(
        id=int(raw["id"]),
        title=_rendered(raw.get("title")),
        content=content,
        link=raw.get("link") or "",
        featured_image_url=featured_image_url,
        has_tool=tool_id is not None or has_legacy_embed(content),
        tool_id=tool_id,
    )
