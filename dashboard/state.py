"""
Application State
=================

The whole app state lives in one frozen ``AppState`` value. It only changes
through ``reduce(state, action, payload)``, which returns a new value; the UI
keeps the current value in ``st.session_state``.
"""

from dataclasses import dataclass, field, replace
from enum import IntEnum
from typing import Dict, Optional, Tuple

from ai.providers import AiProvider
from models.quiz_models import QuizData, QuizDifficulty
from models.widget_models import ToolIdea
from models.wordpress_models import WordPressConfig, WordPressPost
from quiz.renderer import DEFAULT_THEME_COLOR


class Step(IntEnum):
    CONFIGURE = 1
    ANALYZE = 2
    GENERATE = 3


STEP_DESCRIPTIONS = {
    Step.CONFIGURE: ("Configure Connection", "Connect to your WordPress site."),
    Step.ANALYZE: ("Analyze & Select", "Choose a post to build a quiz or widget for."),
    Step.GENERATE: ("Generate & Insert", "Generate the quiz or widget and update your post."),
}

# Status values
IDLE, LOADING, ERROR, SUCCESS = "idle", "loading", "error", "success"
# API key validation values
VALIDATION_IDLE, VALIDATING, VALID, INVALID = "idle", "validating", "valid", "invalid"

QUIZ_TYPE_CHOICES = ("auto", "knowledge-check", "personality")
# What gets built for the selected post
QUIZ, WIDGET = "quiz", "widget"
TOOL_KINDS = (QUIZ, WIDGET)


def _empty_keys() -> Dict[str, str]:
    return {provider.value: "" for provider in AiProvider}


def _idle_validation() -> Dict[str, str]:
    return {provider.value: VALIDATION_IDLE for provider in AiProvider}


@dataclass(frozen=True)
class AppState:
    current_step: Step = Step.CONFIGURE
    status: str = IDLE
    inserting_status: str = IDLE
    error: Optional[str] = None
    deleting_post_id: Optional[int] = None

    # AI provider
    api_keys: Dict[str, str] = field(default_factory=_empty_keys)
    api_validation: Dict[str, str] = field(default_factory=_idle_validation)
    selected_provider: AiProvider = AiProvider.GEMINI
    openrouter_model: str = ""

    # WordPress
    wp_config: Optional[WordPressConfig] = None
    posts: Tuple[WordPressPost, ...] = ()
    post_search_query: str = ""
    selected_post: Optional[WordPressPost] = None
    setup_required: bool = False

    # Generation
    quiz_data: Optional[QuizData] = None
    raw_response: str = ""
    editable_quiz_title: str = ""
    regeneration_feedback: str = ""
    theme_color: str = DEFAULT_THEME_COLOR
    quiz_difficulty: QuizDifficulty = QuizDifficulty.EASY
    quiz_type: str = "auto"

    # Custom widget
    tool_kind: str = QUIZ
    tool_ideas: Tuple[ToolIdea, ...] = ()
    selected_idea: Optional[ToolIdea] = None
    html_snippet: str = ""

    @property
    def filtered_posts(self) -> Tuple[WordPressPost, ...]:
        query = self.post_search_query.strip().lower()
        if not query:
            return self.posts
        return tuple(post for post in self.posts if query in post.title.lower())

    @property
    def is_api_key_valid(self) -> bool:
        return self.api_validation.get(self.selected_provider.value) == VALID

    @property
    def is_busy(self) -> bool:
        return self.status == LOADING or self.inserting_status == LOADING


# Actions
RESET = "RESET"
RESET_TO_ANALYZE = "RESET_TO_ANALYZE"
START_LOADING = "START_LOADING"
SET_ERROR = "SET_ERROR"
CLEAR_ERROR = "CLEAR_ERROR"
CONFIGURE_SUCCESS = "CONFIGURE_SUCCESS"
POSTS_REFRESHED = "POSTS_REFRESHED"
SELECT_POST = "SELECT_POST"
GENERATE_START = "GENERATE_START"
GENERATE_CHUNK = "GENERATE_CHUNK"
GENERATE_COMPLETE = "GENERATE_COMPLETE"
SET_QUIZ_TITLE = "SET_QUIZ_TITLE"
SET_THEME_COLOR = "SET_THEME_COLOR"
SET_DIFFICULTY = "SET_DIFFICULTY"
SET_QUIZ_TYPE = "SET_QUIZ_TYPE"
SET_FEEDBACK = "SET_FEEDBACK"
INSERT_START = "INSERT_START"
INSERT_SUCCESS = "INSERT_SUCCESS"
START_DELETING = "START_DELETING"
DELETE_COMPLETE = "DELETE_COMPLETE"
SET_POST_SEARCH_QUERY = "SET_POST_SEARCH_QUERY"
SET_PROVIDER = "SET_PROVIDER"
SET_API_KEY = "SET_API_KEY"
SET_OPENROUTER_MODEL = "SET_OPENROUTER_MODEL"
SET_VALIDATION_STATUS = "SET_VALIDATION_STATUS"
SET_TOOL_KIND = "SET_TOOL_KIND"
GET_IDEAS_START = "GET_IDEAS_START"
GET_IDEAS_SUCCESS = "GET_IDEAS_SUCCESS"
SELECT_IDEA = "SELECT_IDEA"
SNIPPET_START = "SNIPPET_START"
SNIPPET_COMPLETE = "SNIPPET_COMPLETE"


def _find_post(posts, post_id) -> Optional[WordPressPost]:
    return next((post for post in posts if post.id == post_id), None)


def reduce(state: AppState, action: str, payload=None) -> AppState:
    """Returns the state after ``action``. Unknown actions leave the state unchanged."""
    if action == RESET:
        # API settings survive a reset
        return AppState(
            api_keys=state.api_keys,
            api_validation=state.api_validation,
            selected_provider=state.selected_provider,
            openrouter_model=state.openrouter_model,
        )
    if action == RESET_TO_ANALYZE:
        return replace(state, current_step=Step.ANALYZE, status=IDLE, inserting_status=IDLE, error=None,
                       deleting_post_id=None, selected_post=None, quiz_data=None, raw_response="",
                       editable_quiz_title="", regeneration_feedback="", tool_ideas=(), selected_idea=None,
                       html_snippet="")
    if action == START_LOADING:
        return replace(state, status=LOADING, error=None)
    if action == SET_ERROR:
        return replace(state, status=ERROR, inserting_status=IDLE, error=payload, deleting_post_id=None)
    if action == CLEAR_ERROR:
        return replace(state, status=IDLE, error=None)
    if action == CONFIGURE_SUCCESS:
        return replace(state, status=IDLE, error=None, current_step=Step.ANALYZE, wp_config=payload["config"],
                       posts=tuple(payload["posts"]), setup_required=payload.get("setup_required", False))
    if action == POSTS_REFRESHED:
        posts = tuple(payload)
        selected = _find_post(posts, state.selected_post.id) if state.selected_post else None
        return replace(state, posts=posts, selected_post=selected)
    if action == SELECT_POST:
        return replace(state, selected_post=payload, current_step=Step.GENERATE, quiz_data=None, raw_response="",
                       editable_quiz_title="", regeneration_feedback="", inserting_status=IDLE, error=None,
                       status=IDLE, tool_ideas=(), selected_idea=None, html_snippet="")
    if action == GENERATE_START:
        return replace(state, status=LOADING, raw_response="", error=None, inserting_status=IDLE)
    if action == GENERATE_CHUNK:
        return replace(state, raw_response=payload)
    if action == GENERATE_COMPLETE:
        return replace(state, status=IDLE, quiz_data=payload, editable_quiz_title=payload.quiz_title,
                       regeneration_feedback="")
    if action == SET_QUIZ_TITLE:
        return replace(state, editable_quiz_title=payload)
    if action == SET_THEME_COLOR:
        return replace(state, theme_color=payload)
    if action == SET_DIFFICULTY:
        return replace(state, quiz_difficulty=QuizDifficulty(payload))
    if action == SET_QUIZ_TYPE:
        return replace(state, quiz_type=payload if payload in QUIZ_TYPE_CHOICES else "auto")
    if action == SET_FEEDBACK:
        return replace(state, regeneration_feedback=payload)
    if action == INSERT_START:
        return replace(state, inserting_status=LOADING, error=None)
    if action == INSERT_SUCCESS:
        posts = tuple(payload["posts"])
        return replace(state, inserting_status=SUCCESS, status=IDLE, posts=posts,
                       selected_post=payload["updated_post"])
    if action == START_DELETING:
        return replace(state, status=LOADING, deleting_post_id=payload, error=None)
    if action == DELETE_COMPLETE:
        posts = tuple(payload["posts"])
        deleted_selected = state.selected_post is not None and state.selected_post.id == state.deleting_post_id
        if deleted_selected:
            return replace(state, status=IDLE, deleting_post_id=None, posts=posts, selected_post=None,
                           tool_ideas=(), selected_idea=None, html_snippet="")
        return replace(state, status=IDLE, deleting_post_id=None, posts=posts)
    if action == SET_POST_SEARCH_QUERY:
        return replace(state, post_search_query=payload)
    if action == SET_PROVIDER:
        return replace(state, selected_provider=AiProvider(payload))
    if action == SET_API_KEY:
        provider, key = AiProvider(payload["provider"]).value, payload["key"]
        validation = dict(state.api_validation)
        if state.api_keys.get(provider) != key:
            validation[provider] = VALIDATION_IDLE
        return replace(state, api_keys={**state.api_keys, provider: key}, api_validation=validation)
    if action == SET_OPENROUTER_MODEL:
        return replace(state, openrouter_model=payload)
    if action == SET_VALIDATION_STATUS:
        provider = AiProvider(payload["provider"]).value
        return replace(state, api_validation={**state.api_validation, provider: payload["status"]})
    if action == SET_TOOL_KIND:
        return replace(state, tool_kind=payload if payload in TOOL_KINDS else QUIZ, inserting_status=IDLE)
    if action == GET_IDEAS_START:
        return replace(state, status=LOADING, error=None, tool_ideas=(), selected_idea=None, html_snippet="")
    if action == GET_IDEAS_SUCCESS:
        return replace(state, status=IDLE, tool_ideas=tuple(payload))
    if action == SELECT_IDEA:
        return replace(state, selected_idea=payload, html_snippet="", raw_response="", inserting_status=IDLE)
    if action == SNIPPET_START:
        return replace(state, status=LOADING, raw_response="", html_snippet="", error=None, inserting_status=IDLE)
    if action == SNIPPET_COMPLETE:
        return replace(state, status=IDLE, html_snippet=payload)
    return state
