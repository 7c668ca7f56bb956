"""
Data Models for WordPress Access
================================

Connection settings and the trimmed-down view of a post that the app works
with. Post content is treated as opaque HTML text.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class WordPressConfig:
    url: str
    username: str
    app_password: str

    @property
    def api_root(self) -> str:
        base = self.url if self.url.endswith("/") else f"{self.url}/"
        return f"{base}wp-json/wp/v2/"


@dataclass
class WordPressPost:
    id: int
    title: str
    content: str
    link: str
    featured_image_url: Optional[str] = None
    has_tool: bool = False
    tool_id: Optional[int] = None  # ID of the cf_tool post referenced by the shortcode
