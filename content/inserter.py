"""
Content Inserter
================

Decides where a generated tool goes inside a post and splices it in.

Insertion points are offsets into the post's own source: one before the first
content block and one after every block. A block wrapped in Gutenberg
delimiters (``<!-- wp:paragraph -->`` ... ``<!-- /wp:paragraph -->``) counts
together with its delimiters, so nothing is ever placed inside one.

For the AI model, a copy of the post carries a numbered sentinel comment
(``<!-- CFORGE_MARKER_n -->``) at each point. The model picks a sentinel by
name and the content is spliced into the original string at the matching
offset; the rest of the post is kept byte for byte. When the model fails in
any way the content is appended to the end of the post, so it is never lost.
"""

import logging
import math
import re
import uuid
from typing import List, Optional, Tuple

from bs4 import BeautifulSoup, Tag

from ai.prompts import build_insertion_prompt
from content.shortcode import LEGACY_TOOL_ATTRIBUTE
from quiz.sanitizer import extract_json_object

logger = logging.getLogger(__name__)

BLOCK_TAGS = ("p", "h2", "h3", "h4", "ul", "ol", "blockquote")
MARKER_PREFIX = "CFORGE_MARKER_"
MARKER_PATTERN = re.compile(r"<!--\s*" + MARKER_PREFIX + r"\d+\s*-->")
BLOCK_OPENER_PATTERN = re.compile(r"<!--\s*wp:[^>]*-->\s*\Z")
BLOCK_CLOSER_PATTERN = re.compile(r"\s*<!--\s*/wp:[^>]*-->")
DEFAULT_MAX_PROMPT_CHARS = 12000


def marker_token(name: str) -> str:
    return f"<!-- {name} -->"


def marker_names(count: int) -> List[str]:
    return [f"{MARKER_PREFIX}{number}" for number in range(count)]


def strip_markers(html: str) -> str:
    return MARKER_PATTERN.sub("", html)


def find_blocks(soup: BeautifulSoup) -> List[Tag]:
    """Top-level content blocks, or the outermost ones when the post is wrapped in a container."""
    container = soup.body or soup
    blocks = [child for child in container.children if isinstance(child, Tag) and child.name in BLOCK_TAGS]
    if blocks:
        return blocks
    return [
        element for element in container.find_all(BLOCK_TAGS)
        if not any(parent.name in BLOCK_TAGS for parent in element.parents)
    ]


def _line_starts(html: str) -> List[int]:
    return [0] + [match.end() for match in re.finditer("\n", html)]


def _block_end(html: str, name: str, start: int) -> Optional[int]:
    """Offset just past the end tag matching the start tag at ``start``."""
    tag_pattern = re.compile(r"<(/?)" + re.escape(name) + r"(?=[\s/>])[^>]*>", re.IGNORECASE)
    depth = 0
    for match in tag_pattern.finditer(html, start):
        if match.group(1):
            depth -= 1
            if depth == 0:
                return match.end()
        elif not match.group(0).endswith("/>"):
            depth += 1
    return None


def insertion_offsets(html: str) -> List[int]:
    """
    Offsets in ``html`` where new content may go: before the first block, then
    after each block. Blocks whose end tag cannot be found are skipped.
    """
    soup = BeautifulSoup(html, "html.parser")
    line_starts = _line_starts(html)
    offsets = []
    for block in find_blocks(soup):
        if block.sourceline is None:
            continue
        start = line_starts[block.sourceline - 1] + block.sourcepos
        end = _block_end(html, block.name, start)
        if end is None:
            logger.debug(f"No end tag for <{block.name}> at offset {start}, skipping it")
            continue

        if not offsets:
            opener = BLOCK_OPENER_PATTERN.search(html, 0, start)
            offsets.append(opener.start() if opener else start)
        closer = BLOCK_CLOSER_PATTERN.match(html, end)
        offsets.append(closer.end() if closer else end)
    return offsets


class ContentInserter:
    """
    ``llm`` is anything with ``async complete(prompt, json_mode=False) -> str``.
    Without one, the content goes after the middle block.
    """

    def __init__(self, llm=None, max_prompt_chars: int = DEFAULT_MAX_PROMPT_CHARS):
        self.llm = llm
        self.max_prompt_chars = max_prompt_chars

    def mark_document(self, html: str, offsets: Optional[List[int]] = None) -> Tuple[str, List[str]]:
        """Copy of ``html`` with sentinels at every insertion point, plus the sentinel names in order."""
        html = html or ""
        if offsets is None:
            offsets = insertion_offsets(html)
        names = marker_names(len(offsets))

        # Sentinels already sitting in the post are left out of the copy.
        pieces = []
        previous = 0
        for offset, name in zip(offsets, names):
            pieces.append(strip_markers(html[previous:offset]))
            pieces.append(marker_token(name))
            previous = offset
        pieces.append(strip_markers(html[previous:]))
        return "".join(pieces), names

    @staticmethod
    def default_marker(names: List[str]) -> Optional[str]:
        block_count = len(names) - 1
        if block_count < 2:
            return None
        # After the middle block (0-based floor(N/2)), i.e. sentinel number floor(N/2) + 1.
        return names[math.floor(block_count / 2) + 1]

    async def choose_marker(self, marked_html: str, names: List[str], description: str) -> Optional[str]:
        prompt = build_insertion_prompt(marked_html, description, self.max_prompt_chars)
        try:
            response = await self.llm.complete(prompt, json_mode=True)
        except Exception as e:
            logger.warning(f"Insertion point request failed, appending instead: {e}")
            return None

        data = extract_json_object(response)
        name = data.get("marker") if data else None
        if not isinstance(name, str) or name.strip() not in names:
            logger.warning(f"AI returned no usable insertion marker ({str(response)[:120]!r}), appending instead.")
            return None
        return name.strip()

    async def insert(self, html: str, content: str, description: str = "") -> str:
        html = html or ""
        offsets = insertion_offsets(html)

        marker = None
        if offsets:
            marked_html, names = self.mark_document(html, offsets)
            if self.llm is None:
                marker = self.default_marker(names)
            else:
                marker = await self.choose_marker(marked_html, names, description)

        if marker is None:
            return self.append(html, content)

        offset = offsets[names.index(marker)]
        logger.info(f"Inserting content at {marker} (offset {offset})")
        return f"{html[:offset]}\n\n{content}\n\n{html[offset:]}"

    @staticmethod
    def append(html: str, content: str) -> str:
        if not html.strip():
            return content
        return f"{html}\n\n{content}"


def build_isolated_embed(snippet: str) -> str:
    """
    Wraps ``snippet`` in a uniquely named custom element whose shadow root holds
    the snippet, so the page's styles and the tool's styles stay apart.
    """
    tag_name = f"cf-tool-{uuid.uuid4().hex[:12]}"
    escaped = (snippet.replace("\\", "\\\\")
               .replace("`", "\\`")
               .replace("${", "\\${")
               .replace("</script", "<\\/script"))

    return f"""<div {LEGACY_TOOL_ATTRIBUTE}="true" style="margin: 2.5em 0; clear: both;">
<{tag_name}></{tag_name}>
<script>
(function () {{
  if (customElements.get('{tag_name}')) return;
  var template = document.createElement('template');
  template.innerHTML = `{escaped}`;
  customElements.define('{tag_name}', class extends HTMLElement {{
    constructor() {{
      super();
      this.attachShadow({{ mode: 'open' }});
      this.shadowRoot.appendChild(template.content.cloneNode(true));
    }}
  }});
}})();
</script>
</div>"""
