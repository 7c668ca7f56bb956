"""
WordPressClient Module (Async)
==============================

REST access to a WordPress site using httpx.AsyncClient and an Application
Password. Besides posts, the client manages ``cf_tool`` posts: the custom
post type that stores a rendered tool and is embedded with the
``[contentforge_tool id="..."]`` shortcode.
"""

import logging
from typing import List

import httpx

from models.wordpress_models import WordPressConfig, WordPressPost
from wordpress.parser import parse_post

logger = logging.getLogger(__name__)

TOOL_POST_TYPE = "cf_tool"
POST_FIELDS = "id,title,content,link,_links,_embedded"

SETUP_PHP_SNIPPET = """
// Creates a Custom Post Type for ContentForge AI Tools
function contentforge_register_tool_cpt() {
    $args = array(
        'public'       => false,
        'show_ui'      => true,
        'label'        => 'ContentForge Tools',
        'menu_icon'    => 'dashicons-lightbulb',
        'supports'     => array( 'title', 'editor' ),
        'show_in_rest' => true, // CRITICAL: Expose to the REST API
    );
    register_post_type( 'cf_tool', $args );
}
add_action( 'init', 'contentforge_register_tool_cpt' );

// Creates the [contentforge_tool] shortcode
function contentforge_tool_shortcode( $atts ) {
    $atts = shortcode_atts( array( 'id' => '' ), $atts, 'contentforge_tool' );
    if ( empty( $atts['id'] ) || ! is_numeric( $atts['id'] ) ) {
        return '<!-- ContentForge Tool: Invalid ID -->';
    }
    $tool_post = get_post( (int) $atts['id'] );
    if ( ! $tool_post || 'cf_tool' !== $tool_post->post_type || 'publish' !== $tool_post->post_status ) {
        return '<!-- ContentForge Tool: Tool not found or not published -->';
    }
    // Return the raw content, bypassing WordPress content filters
    return $tool_post->post_content;
}
add_shortcode( 'contentforge_tool', 'contentforge_tool_shortcode' );
""".strip()


NOT_WORDPRESS_MESSAGE = (
    "The site did not return a WordPress REST API response. Check that the URL points to a WordPress site "
    "and that its REST API is enabled."
)


class WordPressError(Exception):
    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class ToolSetupRequiredError(WordPressError):
    """The site does not expose the cf_tool post type yet."""


def _decode(response: httpx.Response, convert):
    """Applies ``convert`` to the JSON body. A body that is not the expected REST payload raises WordPressError."""
    try:
        return convert(response.json())
    except (ValueError, KeyError, TypeError, AttributeError) as e:
        logger.error(f"Unexpected response from {response.request.url}: {response.text[:150]!r}")
        raise WordPressError(NOT_WORDPRESS_MESSAGE, response.status_code) from e


class WordPressClient:
    def __init__(self, config: WordPressConfig, transport: httpx.AsyncBaseTransport = None, timeout: float = 60.0):
        self.config = config
        self.client = httpx.AsyncClient(
            base_url=config.api_root,
            auth=httpx.BasicAuth(config.username, config.app_password),
            headers={"User-Agent": "ContentForge/1.0"},
            follow_redirects=True,
            timeout=timeout,
            transport=transport,
        )

    async def _request(self, method: str, endpoint: str, **kwargs) -> httpx.Response:
        try:
            return await self.client.request(method, endpoint, **kwargs)
        except httpx.TransportError as e:
            logger.error(f"WordPress request {method} {endpoint} failed: {e}")
            raise WordPressError(
                "A network error occurred. Check the site URL and that the WordPress server is reachable."
            ) from e

    async def fetch_posts(self) -> List[WordPressPost]:
        response = await self._request("GET", "posts", params={
            "_fields": POST_FIELDS,
            "per_page": 100,
            "status": "publish",
            "context": "edit",
            "_embed": "wp:featuredmedia",
        })

        if response.status_code == 401:
            raise WordPressError("Authentication failed. Please check your username and Application Password.", 401)
        if response.status_code == 404:
            raise WordPressError(
                "Could not find the WordPress REST API endpoint. Ensure your URL is correct and REST API is not disabled.",
                404,
            )
        if response.is_error:
            raise WordPressError(f"Failed to fetch posts. Status: {response.status_code}", response.status_code)

        return _decode(response, lambda body: [parse_post(raw) for raw in body])

    async def fetch_post(self, post_id: int) -> WordPressPost:
        response = await self._request("GET", f"posts/{post_id}", params={"context": "edit", "_fields": POST_FIELDS})
        if response.status_code in (401, 403):
            raise WordPressError("Authentication failed. You may not have permission to edit this post.",
                                 response.status_code)
        if response.status_code == 404:
            raise WordPressError(f"Post {post_id} no longer exists.", 404)
        if response.is_error:
            raise WordPressError(f"Failed to fetch post. Status: {response.status_code}", response.status_code)
        return _decode(response, parse_post)

    async def update_post(self, post_id: int, content: str) -> WordPressPost:
        response = await self._request("POST", f"posts/{post_id}", json={"content": content})
        if response.status_code in (401, 403):
            raise WordPressError("Authentication failed. You may not have permission to edit this post.",
                                 response.status_code)
        if response.is_error:
            raise WordPressError(f"Failed to update post. Status: {response.status_code}", response.status_code)
        return _decode(response, parse_post)

    async def check_tool_support(self) -> bool:
        """True when the cf_tool post type from SETUP_PHP_SNIPPET is available over REST."""
        response = await self._request("GET", TOOL_POST_TYPE, params={"per_page": 1, "_fields": "id"})
        if response.status_code == 401:
            raise WordPressError("Authentication failed. Please check your username and Application Password.", 401)
        return response.is_success

    async def create_tool(self, title: str, html: str) -> int:
        response = await self._request("POST", TOOL_POST_TYPE, json={
            "title": title,
            "content": html,
            "status": "publish",
        })
        if response.status_code == 404:
            raise ToolSetupRequiredError(
                "The ContentForge helper is not installed on this site. Complete the one-time setup first.", 404
            )
        if response.status_code in (401, 403):
            raise WordPressError("Authentication failed. You may not have permission to create tools.",
                                 response.status_code)
        if response.is_error:
            raise WordPressError(f"Failed to save the tool. Status: {response.status_code}", response.status_code)
        return _decode(response, lambda body: int(body["id"]))

    async def delete_tool(self, tool_id: int) -> bool:
        """Deletes a cf_tool post. Returns False when it was already gone."""
        response = await self._request("DELETE", f"{TOOL_POST_TYPE}/{tool_id}", params={"force": "true"})
        if response.status_code in (404, 410):
            logger.info(f"Tool {tool_id} was already deleted.")
            return False
        if response.status_code in (401, 403):
            raise WordPressError("Authentication failed. You may not have permission to delete tools.",
                                 response.status_code)
        if response.is_error:
            raise WordPressError(f"Failed to delete the tool. Status: {response.status_code}", response.status_code)
        return True

    async def close(self):
        """Closes the async client session."""
        await self.client.aclose()
