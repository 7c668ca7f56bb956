"""
Data Management
===============

Persistence (pickle files, read at startup and written after changes) and the
actions behind the UI buttons. Actions take the current ``AppState``, do their
network work and return the next state; network failures are turned into
``SET_ERROR`` here so the UI only has to show ``state.error``.
"""
import logging
import os
import pickle
from dataclasses import replace
from datetime import datetime
from typing import Callable, Optional

from ai.providers import AI_PROVIDERS, AiClient, AiProvider, AiProviderError, AiSettings
from content.inserter import ContentInserter, build_isolated_embed
from content.shortcode import ShortcodeNotFoundError, build_shortcode, remove_tool_reference
from dashboard.state import (
    AppState, CONFIGURE_SUCCESS, DELETE_COMPLETE, GENERATE_CHUNK, GENERATE_COMPLETE, GENERATE_START,
    GET_IDEAS_START, GET_IDEAS_SUCCESS, INSERT_START, INSERT_SUCCESS, INVALID, POSTS_REFRESHED, SET_ERROR,
    SET_VALIDATION_STATUS, SNIPPET_COMPLETE, SNIPPET_START, START_DELETING, START_LOADING, VALID, VALIDATING,
    reduce,
)
from models.wordpress_models import WordPressConfig
from quiz.generator import generate_quiz
from quiz.renderer import render_quiz_html
from widget.generator import apply_theme_color, generate_html_snippet
from widget.ideas import suggest_tool_ideas
from wordpress.client import WordPressClient, WordPressError

logger = logging.getLogger(__name__)

NETWORK_ERRORS = (WordPressError, AiProviderError, ShortcodeNotFoundError)


def get_data_dir() -> str:
    return os.getenv("CONTENTFORGE_DATA_DIR", ".")


def get_ai_config_path() -> str:
    return os.path.join(get_data_dir(), "ai_config.pkl")


def get_posts_cache_path() -> str:
    return os.path.join(get_data_dir(), "posts_cache.pkl")


# ==========================================
# PERSISTENCE
# ==========================================

def load_ai_config(state: AppState, path: str = None) -> AppState:
    """Applies saved provider settings (and environment keys) to a fresh state."""
    path = path or get_ai_config_path()
    saved = {}
    if os.path.exists(path):
        try:
            with open(path, "rb") as f:
                saved = pickle.load(f)
        except (OSError, pickle.UnpicklingError, EOFError) as e:
            logger.error(f"Failed to load AI config from {path}: {e}")

    env_keys = {provider.value: os.getenv(f"{provider.name}_API_KEY", "") for provider in AiProvider}
    keys = dict(state.api_keys)
    for provider, key in {**env_keys, **(saved.get("api_keys") or {})}.items():
        if provider in keys and key:
            keys[provider] = key

    try:
        provider = AiProvider(saved.get("selected_provider", state.selected_provider))
    except ValueError:
        provider = state.selected_provider

    validation = dict(state.api_validation)
    validation.update({p: VALID for p in saved.get("validated", []) if p in validation and keys.get(p)})

    return replace(
        state,
        api_keys=keys,
        api_validation=validation,
        selected_provider=provider,
        openrouter_model=saved.get("openrouter_model") or os.getenv("OPENROUTER_MODEL", state.openrouter_model),
    )


def save_ai_config(state: AppState, path: str = None) -> None:
    path = path or get_ai_config_path()
    config = {
        "api_keys": dict(state.api_keys),
        "selected_provider": state.selected_provider.value,
        "openrouter_model": state.openrouter_model,
        "validated": [p for p, status in state.api_validation.items() if status == VALID],
    }
    with open(path, "wb") as f:
        pickle.dump(config, f)


def save_posts_cache(posts, path: str = None) -> None:
    path = path or get_posts_cache_path()
    with open(path, "wb") as f:
        pickle.dump({"timestamp": datetime.now(), "posts": list(posts)}, f)


def load_posts_cache(path: str = None):
    """Returns (timestamp, posts) or None when there is no cache."""
    path = path or get_posts_cache_path()
    if not os.path.exists(path):
        return None
    with open(path, "rb") as f:
        cache = pickle.load(f)
    return cache["timestamp"], cache["posts"]


# ==========================================
# CLIENT FACTORIES
# ==========================================

def ai_settings_from_state(state: AppState) -> AiSettings:
    provider = state.selected_provider
    return AiSettings(provider=provider, api_key=state.api_keys.get(provider.value, ""),
                      model=state.openrouter_model)


def make_ai_client(state: AppState) -> AiClient:
    return AiClient(ai_settings_from_state(state))


def make_wp_client(config: WordPressConfig) -> WordPressClient:
    return WordPressClient(config)


# ==========================================
# ACTIONS
# ==========================================

async def validate_provider(state: AppState, provider: AiProvider, ai_factory: Callable = make_ai_client) -> AppState:
    state = reduce(state, SET_VALIDATION_STATUS, {"provider": provider, "status": VALIDATING})
    client = ai_factory(replace(state, selected_provider=AiProvider(provider)))
    try:
        is_valid = await client.validate_api_key()
    finally:
        await client.close()

    state = reduce(state, SET_VALIDATION_STATUS, {"provider": provider, "status": VALID if is_valid else INVALID})
    if is_valid:
        save_ai_config(state)
    return state


async def connect_to_wordpress(state: AppState, config: WordPressConfig,
                               wp_factory: Callable = make_wp_client) -> AppState:
    state = reduce(state, START_LOADING)
    client = wp_factory(config)
    try:
        posts = await client.fetch_posts()
        if not posts:
            return reduce(state, SET_ERROR, "Connected successfully, but no posts were found.")
        tool_support = await client.check_tool_support()
    except WordPressError as e:
        return reduce(state, SET_ERROR, str(e))
    finally:
        await client.close()

    save_posts_cache(posts)
    return reduce(state, CONFIGURE_SUCCESS, {"config": config, "posts": posts, "setup_required": not tool_support})


async def refresh_posts(state: AppState, wp_factory: Callable = make_wp_client) -> AppState:
    if state.wp_config is None:
        return state
    client = wp_factory(state.wp_config)
    try:
        posts = await client.fetch_posts()
    except WordPressError as e:
        return reduce(state, SET_ERROR, str(e))
    finally:
        await client.close()
    save_posts_cache(posts)
    return reduce(state, POSTS_REFRESHED, posts)


async def generate_quiz_action(state: AppState, on_state: Optional[Callable[[AppState], None]] = None,
                               ai_factory: Callable = make_ai_client) -> AppState:
    """Generates (or regenerates, when feedback is set) the quiz for the selected post."""
    if state.selected_post is None:
        return state

    state = reduce(state, GENERATE_START)
    client = ai_factory(state)

    def on_chunk(text):
        nonlocal state
        state = reduce(state, GENERATE_CHUNK, text)
        if on_state:
            on_state(state)

    try:
        quiz = await generate_quiz(
            client,
            state.selected_post,
            difficulty=state.quiz_difficulty,
            quiz_type=state.quiz_type,
            feedback=state.regeneration_feedback,
            previous_quiz=state.quiz_data,
            on_chunk=on_chunk,
        )
    except AiProviderError as e:
        logger.error(f"Quiz generation failed: {e}")
        return reduce(state, SET_ERROR, f"Failed to generate the quiz with {AI_PROVIDERS[state.selected_provider].name}. {e}")
    finally:
        await client.close()

    return reduce(state, GENERATE_COMPLETE, quiz)


async def suggest_ideas_action(state: AppState, ai_factory: Callable = make_ai_client) -> AppState:
    """Asks the AI provider for up to three widget ideas for the selected post."""
    if state.selected_post is None:
        return state

    state = reduce(state, GET_IDEAS_START)
    client = ai_factory(state)
    try:
        ideas = await suggest_tool_ideas(client, state.selected_post)
    except AiProviderError as e:
        logger.error(f"Tool idea suggestion failed: {e}")
        return reduce(state, SET_ERROR, f"Failed to get suggestions from {AI_PROVIDERS[state.selected_provider].name}. {e}")
    finally:
        await client.close()

    return reduce(state, GET_IDEAS_SUCCESS, ideas)


async def generate_snippet_action(state: AppState, on_state: Optional[Callable[[AppState], None]] = None,
                                  ai_factory: Callable = make_ai_client) -> AppState:
    """Streams the HTML widget for the selected idea."""
    if state.selected_post is None or state.selected_idea is None:
        return state

    state = reduce(state, SNIPPET_START)
    client = ai_factory(state)

    def on_chunk(text):
        nonlocal state
        state = reduce(state, GENERATE_CHUNK, text)
        if on_state:
            on_state(state)

    try:
        snippet = await generate_html_snippet(client, state.selected_post, state.selected_idea,
                                              theme_color=state.theme_color, on_chunk=on_chunk)
    except AiProviderError as e:
        logger.error(f"Widget generation failed: {e}")
        return reduce(state, SET_ERROR, f"Failed to generate HTML with {AI_PROVIDERS[state.selected_provider].name}. {e}")
    finally:
        await client.close()

    if not snippet:
        return reduce(state, SET_ERROR, "The AI returned an empty widget. Please try again.")
    return reduce(state, SNIPPET_COMPLETE, snippet)


async def insert_quiz_action(state: AppState, wp_factory: Callable = make_wp_client,
                             ai_factory: Callable = make_ai_client) -> AppState:
    """Renders the quiz with the edited title and places it in the selected post."""
    if state.wp_config is None or state.selected_post is None or state.quiz_data is None:
        return state

    title = state.editable_quiz_title.strip() or state.quiz_data.quiz_title
    quiz = replace(state.quiz_data, quiz_title=title)
    rendered = render_quiz_html(quiz, state.theme_color)
    return await _place_tool(state, title, rendered, build_isolated_embed(rendered), f'Quiz: "{title}"',
                             wp_factory, ai_factory)


async def insert_widget_action(state: AppState, wp_factory: Callable = make_wp_client,
                               ai_factory: Callable = make_ai_client) -> AppState:
    """Places the generated widget, in the current theme color, in the selected post."""
    if state.wp_config is None or state.selected_post is None or state.selected_idea is None \
            or not state.html_snippet:
        return state

    idea = state.selected_idea
    embed = build_isolated_embed(apply_theme_color(state.html_snippet, state.theme_color))
    return await _place_tool(state, idea.title, embed, embed,
                             f'Interactive tool: "{idea.title}". {idea.description}', wp_factory, ai_factory)


async def _place_tool(state: AppState, title: str, tool_html: str, inline_html: str, description: str,
                      wp_factory: Callable, ai_factory: Callable) -> AppState:
    """
    Stores ``tool_html`` and places it in the selected post.

    With the helper installed it is saved as a cf_tool post and the post gets a
    shortcode; otherwise ``inline_html`` is embedded in the post. The post is
    re-fetched first so edits made since the last sync are kept, and it is only
    updated after everything before it succeeded.
    """
    state = reduce(state, INSERT_START)
    post = state.selected_post

    wp = wp_factory(state.wp_config)
    ai = ai_factory(state)
    created_tool_id = None
    post_updated = False
    try:
        current = await wp.fetch_post(post.id)
        content, old_tool_id = remove_tool_reference(current.content)

        if state.setup_required:
            snippet = inline_html
        else:
            created_tool_id = await wp.create_tool(title, tool_html)
            snippet = build_shortcode(created_tool_id)

        new_content = await ContentInserter(llm=ai).insert(content, snippet, description=description)
        await wp.update_post(post.id, new_content)
        post_updated = True

        if old_tool_id is not None:
            await _discard_tool(wp, old_tool_id)
        posts = await wp.fetch_posts()
    except NETWORK_ERRORS as e:
        if created_tool_id is not None and not post_updated:
            await _discard_tool(wp, created_tool_id)
        return reduce(state, SET_ERROR, str(e))
    finally:
        await wp.close()
        await ai.close()

    save_posts_cache(posts)
    updated_post = next((p for p in posts if p.id == post.id), post)
    return reduce(state, INSERT_SUCCESS, {"posts": posts, "updated_post": updated_post})


async def _discard_tool(wp: WordPressClient, tool_id: int) -> None:
    try:
        await wp.delete_tool(tool_id)
    except WordPressError as e:
        logger.warning(f"Could not remove unused tool {tool_id}: {e}")


async def delete_tool_action(state: AppState, post_id: int, wp_factory: Callable = make_wp_client) -> AppState:
    """Removes the tool from a post. A tool that is already gone counts as removed."""
    if state.wp_config is None:
        return state
    cached = next((p for p in state.posts if p.id == post_id), None)
    if cached is None:
        return state

    state = reduce(state, START_DELETING, post_id)
    wp = wp_factory(state.wp_config)
    try:
        current = await wp.fetch_post(post_id)
        new_content, tool_id = remove_tool_reference(current.content, expect_shortcode=cached.tool_id is not None)
        if new_content != current.content:
            await wp.update_post(post_id, new_content)
        if tool_id is not None:
            await wp.delete_tool(tool_id)
        posts = await wp.fetch_posts()
    except NETWORK_ERRORS as e:
        return reduce(state, SET_ERROR, str(e))
    finally:
        await wp.close()

    save_posts_cache(posts)
    return reduce(state, DELETE_COMPLETE, {"posts": posts})
