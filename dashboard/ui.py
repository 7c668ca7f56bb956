"""
UI
==

This module implements the Streamlit UI. Every widget callback goes through
``dispatch`` so the app state only changes via ``reduce``.
"""
import asyncio
import html
import os
from dataclasses import replace

import pandas as pd
import plotly.express as px
import streamlit as st
import streamlit.components.v1 as components
from streamlit_autorefresh import st_autorefresh

from ai.providers import AI_PROVIDERS, AiProvider
from analytics.metrics import calculate_quiz_metrics, has_position_bias, option_letter
from content.inserter import build_isolated_embed
from dashboard.data_management import (
    connect_to_wordpress, delete_tool_action, generate_quiz_action, generate_snippet_action, insert_quiz_action,
    insert_widget_action, load_ai_config, load_posts_cache, refresh_posts, save_ai_config, suggest_ideas_action,
    validate_provider,
)
from dashboard.state import (
    AppState, CLEAR_ERROR, LOADING, POSTS_REFRESHED, QUIZ_TYPE_CHOICES, RESET, RESET_TO_ANALYZE, SELECT_IDEA,
    SELECT_POST, SET_API_KEY, SET_DIFFICULTY, SET_FEEDBACK, SET_OPENROUTER_MODEL, SET_POST_SEARCH_QUERY, SET_PROVIDER,
    SET_QUIZ_TITLE, SET_QUIZ_TYPE, SET_THEME_COLOR, SET_TOOL_KIND, STEP_DESCRIPTIONS, SUCCESS, TOOL_KINDS, Step,
    VALID, VALIDATING, WIDGET, INVALID, reduce,
)
from models.quiz_models import QuizDifficulty
from models.wordpress_models import WordPressConfig
from quiz.renderer import render_quiz_html
from quiz.scoring import (
    format_feedback, resolve_personality_outcome, resolve_result_tier, score_knowledge_check, tally_personality,
)
from widget.generator import apply_theme_color
from wordpress.client import SETUP_PHP_SNIPPET

QUIZ_TYPE_LABELS = {
    "auto": "Let the AI decide",
    "knowledge-check": "Knowledge check",
    "personality": "Personality quiz",
}

TOOL_KIND_LABELS = {
    "quiz": "Quiz",
    "widget": "Custom widget",
}

IDEA_ICONS = {"calculator": "🧮", "chart": "📊", "list": "📋", "idea": "💡"}


# ==========================================
# STATE
# ==========================================

def initialize_session_state():
    """Initializes page config and session variables."""
    st.set_page_config(page_title="ContentForge AI", page_icon="✨", layout="wide")

    if 'app_state' not in st.session_state:
        st.session_state.app_state = load_ai_config(AppState())
    if 'last_auto_refresh' not in st.session_state:
        st.session_state.last_auto_refresh = 0
    if 'confirm_delete' not in st.session_state:
        st.session_state.confirm_delete = None
    if 'last_sync' not in st.session_state:
        st.session_state.last_sync = None


def get_state() -> AppState:
    return st.session_state.app_state


def set_state(state: AppState):
    st.session_state.app_state = state


def dispatch(action, payload=None):
    set_state(reduce(get_state(), action, payload))


# ==========================================
# SIDEBAR
# ==========================================

def render_provider_settings(state: AppState):
    st.header("AI Provider")
    providers = list(AiProvider)
    provider = st.selectbox(
        "Provider",
        providers,
        index=providers.index(state.selected_provider),
        format_func=lambda p: AI_PROVIDERS[p].name,
        disabled=state.is_busy,
    )
    if provider != state.selected_provider:
        dispatch(SET_PROVIDER, provider)
        save_ai_config(get_state())
        st.rerun()

    key = st.text_input(f"{AI_PROVIDERS[provider].name} API Key", type="password",
                        value=state.api_keys.get(provider.value, ""))
    if key != state.api_keys.get(provider.value, ""):
        dispatch(SET_API_KEY, {"provider": provider, "key": key})

    if AI_PROVIDERS[provider].requires_model_field:
        model = st.text_input("Model", value=state.openrouter_model,
                              placeholder=AI_PROVIDERS[provider].default_model)
        if model != state.openrouter_model:
            dispatch(SET_OPENROUTER_MODEL, model)

    validation = get_state().api_validation.get(provider.value)
    if st.button("🔑 Save & Validate Key", disabled=not key or validation == VALIDATING):
        with st.spinner("Validating key..."):
            set_state(asyncio.run(validate_provider(get_state(), provider)))
        st.rerun()

    if validation == VALID:
        st.success("Key is valid.")
    elif validation == INVALID:
        st.error("This key was rejected by the provider.")
    else:
        st.caption("Your keys are kept on this machine only.")


def render_sidebar():
    with st.sidebar:
        st.title("✨ ContentForge AI")
        render_provider_settings(get_state())

        state = get_state()
        if state.wp_config is None:
            return

        st.divider()
        st.header("WordPress")
        st.caption(f"Connected to {state.wp_config.url}")
        if st.session_state.last_sync:
            st.caption(f"Last sync: {st.session_state.last_sync}")

        if st.button("📂 Load Last Sync"):
            load_local_cache()

        enable_auto_sync = st.checkbox("Enable Auto-sync", value=False)
        interval = st.slider("Interval (minutes)", 2, 10, 5, disabled=not enable_auto_sync)
        if enable_auto_sync:
            refresh_count = st_autorefresh(interval=interval * 60 * 1000, key="wp_auto_sync")
            if refresh_count > st.session_state.last_auto_refresh and not state.is_busy:
                st.session_state.last_auto_refresh = refresh_count
                sync_posts()

        if st.button("🔄 Sync Now", disabled=state.is_busy):
            sync_posts()
            st.rerun()

        st.divider()
        if st.button("↩️ Start Over"):
            dispatch(RESET)
            st.rerun()


def sync_posts():
    set_state(asyncio.run(refresh_posts(get_state())))
    st.session_state.last_sync = pd.Timestamp.now().strftime('%H:%M:%S')


def load_local_cache():
    cache = load_posts_cache()
    if cache is None:
        st.error("Cache file not found.")
        return
    timestamp, posts = cache
    dispatch(POSTS_REFRESHED, posts)
    st.session_state.last_sync = f"Cache: {timestamp.strftime('%H:%M:%S')}"
    st.success("Posts loaded from local cache!")
    st.rerun()


# ==========================================
# STEPS
# ==========================================

def render_stepper(current_step: Step):
    columns = st.columns(len(Step))
    for column, step in zip(columns, Step):
        title, description = STEP_DESCRIPTIONS[step]
        marker = "✅" if step < current_step else ("🔵" if step == current_step else "⚪")
        column.markdown(f"**{marker} {step.value}. {title}**  \n{description}")
    st.divider()


def render_error(state: AppState):
    if state.error:
        st.error(f"Error: {state.error}")


def render_configure_step(state: AppState):
    st.subheader("Connect to WordPress")
    st.write("Enter your site details to begin. Use an Application Password from your WordPress profile, "
             "not your main password.")

    with st.form("wp_connect"):
        url = st.text_input("WordPress Site URL", value=os.getenv("WP_URL", ""), placeholder="https://example.com")
        user = st.text_input("WordPress Username", value=os.getenv("WP_USER", ""))
        app_password = st.text_input("Application Password", type="password",
                                     value=os.getenv("WP_APP_PASSWORD", ""), placeholder="xxxx xxxx xxxx xxxx")
        submitted = st.form_submit_button("🚀 Connect & Fetch Posts", disabled=not state.is_api_key_valid)

    if not state.is_api_key_valid:
        st.warning("Please save and validate your API key before connecting to WordPress.")

    if submitted:
        config = WordPressConfig(url=url.strip(), username=user.strip(), app_password=app_password.strip())
        with st.status("Connecting and fetching posts from WordPress...", expanded=False):
            set_state(asyncio.run(connect_to_wordpress(get_state(), config)))
        st.session_state.last_sync = pd.Timestamp.now().strftime('%H:%M:%S')
        st.rerun()

    render_error(state)


def render_setup_instructions():
    with st.expander("⚠️ One-time WordPress setup required", expanded=True):
        st.write(
            "Your site does not expose the ContentForge tool type yet. Quizzes will be embedded inline until you "
            "add the snippet below with a code snippet plugin (e.g. WPCode Lite): set the code type to "
            "**PHP Snippet**, insertion to **Auto Insert / Run Everywhere**, activate it, then reconnect."
        )
        st.code(SETUP_PHP_SNIPPET, language="php")


def render_post_row(state: AppState, post):
    deleting = state.deleting_post_id == post.id
    with st.container(border=True):
        column1, column2, column3 = st.columns([6, 2, 2])
        with column1:
            st.markdown(f"**{html.unescape(post.title)}**")
            badge = "🟢 Quiz injected" if post.has_tool else "⚪ No quiz"
            st.caption(f"{badge} · [{post.link.split('://')[-1]}]({post.link})")
        if column2.button("Select", key=f"select_{post.id}", disabled=state.is_busy):
            dispatch(SELECT_POST, post)
            st.rerun()
        if post.has_tool and column3.button("🗑️ Delete Quiz", key=f"delete_{post.id}", disabled=state.is_busy):
            st.session_state.confirm_delete = post.id

        if st.session_state.confirm_delete == post.id and not deleting:
            st.warning(f'Delete the quiz from "{html.unescape(post.title)}"? This cannot be undone.')
            col_yes, col_no = st.columns(2)
            if col_yes.button("Yes, delete", key=f"confirm_{post.id}"):
                st.session_state.confirm_delete = None
                with st.spinner("Deleting..."):
                    set_state(asyncio.run(delete_tool_action(get_state(), post.id)))
                st.rerun()
            if col_no.button("Cancel", key=f"cancel_{post.id}"):
                st.session_state.confirm_delete = None
                st.rerun()


def render_analyze_step(state: AppState):
    if state.setup_required:
        render_setup_instructions()

    st.subheader("Select a Post")
    query = st.text_input("Search posts by title", value=state.post_search_query)
    if query != state.post_search_query:
        dispatch(SET_POST_SEARCH_QUERY, query)
        state = get_state()

    render_error(state)

    posts = state.filtered_posts
    c1, c2 = st.columns(2)
    c1.metric("Posts", len(posts))
    c2.metric("With Quiz", sum(1 for p in posts if p.has_tool))

    if not posts:
        st.info("No posts match your search.")
    with st.container(height=610):
        for post in posts:
            render_post_row(state, post)


def render_generation_options(state: AppState):
    c1, c2, c3 = st.columns(3)
    difficulties = list(QuizDifficulty)
    difficulty = c1.radio("Difficulty", difficulties, index=difficulties.index(state.quiz_difficulty),
                          format_func=lambda d: d.value, horizontal=True, disabled=state.is_busy)
    if difficulty != state.quiz_difficulty:
        dispatch(SET_DIFFICULTY, difficulty)

    quiz_type = c2.selectbox("Quiz type", QUIZ_TYPE_CHOICES, index=QUIZ_TYPE_CHOICES.index(state.quiz_type),
                             format_func=QUIZ_TYPE_LABELS.get, disabled=state.is_busy)
    if quiz_type != state.quiz_type:
        dispatch(SET_QUIZ_TYPE, quiz_type)

    color = c3.color_picker("Accent color", value=state.theme_color)
    if color != state.theme_color:
        dispatch(SET_THEME_COLOR, color)


def run_generation():
    with st.status("Generating quiz...", expanded=True) as status:
        placeholder = st.empty()

        def show_progress(partial_state):
            placeholder.code(partial_state.raw_response[-1500:], language="json")

        set_state(asyncio.run(generate_quiz_action(get_state(), on_state=show_progress)))
        if get_state().error:
            status.update(label="Generation failed.", state="error")
        else:
            status.update(label="Quiz ready!", state="complete", expanded=False)
    st.rerun()


def render_quiz_preview(state: AppState):
    """Interactive preview using the same result rules as the published widget."""
    quiz = state.quiz_data
    with st.form(f"quiz_preview_{id(quiz)}"):
        answers = []
        for idx, question in enumerate(quiz.questions):
            labels = question.options if not quiz.is_personality else [o.text for o in question.options]
            choice = st.radio(f"{idx + 1}. {question.question_text}", range(len(labels)), index=None,
                              format_func=lambda i, labels=labels: f"{option_letter(i)}. {labels[i]}",
                              key=f"preview_{id(quiz)}_{idx}")
            answers.append(choice)
        submitted = st.form_submit_button("See my result")

    if not submitted:
        return
    if quiz.is_personality:
        outcome = resolve_personality_outcome(quiz.outcomes, tally_personality(quiz, answers))
        st.success(f"**{outcome.title}**\n\n{outcome.description}")
    else:
        score = score_knowledge_check(quiz, answers)
        tier = resolve_result_tier(quiz.results, score)
        st.success(f"**{tier.title}**\n\n{format_feedback(tier.feedback, score, len(quiz.questions))}")
        for idx, question in enumerate(quiz.questions):
            mark = "✅" if answers[idx] == question.correct_answer_index else "❌"
            st.caption(f"{mark} Q{idx + 1}: {question.explanation}")


def render_quiz_balance(state: AppState):
    quiz = state.quiz_data
    questions_df, distribution = calculate_quiz_metrics(quiz)
    st.dataframe(questions_df.set_index("Question"), width="stretch")

    if has_position_bias(quiz):
        st.warning("Most correct answers share the same position. Consider regenerating with feedback.")

    label = "Outcome" if quiz.is_personality else "Correct Option"
    df_plot = pd.DataFrame({label: distribution.index, "Count": distribution.values})
    fig = px.bar(df_plot, x=label, y="Count", color=label)
    fig.update_layout(height=260, margin=dict(l=10, r=10, t=10, b=10), showlegend=False)
    st.plotly_chart(fig, width="stretch", key="quiz_balance")


def run_snippet_generation():
    with st.status("Generating widget...", expanded=True) as status:
        placeholder = st.empty()

        def show_progress(partial_state):
            placeholder.code(partial_state.raw_response[-1500:], language="html")

        set_state(asyncio.run(generate_snippet_action(get_state(), on_state=show_progress)))
        if get_state().error:
            status.update(label="Generation failed.", state="error")
        else:
            status.update(label="Widget ready!", state="complete", expanded=False)
    st.rerun()


def render_idea_cards(state: AppState):
    columns = st.columns(len(state.tool_ideas))
    for idx, (column, idea) in enumerate(zip(columns, state.tool_ideas)):
        with column.container(border=True):
            st.markdown(f"### {IDEA_ICONS.get(idea.icon, IDEA_ICONS['idea'])} {idea.title}")
            st.write(idea.description)
            if st.button("Build this", key=f"idea_{idx}", disabled=state.is_busy):
                dispatch(SELECT_IDEA, idea)
                st.rerun()


def render_widget_step(state: AppState):
    color = st.color_picker("Accent color", value=state.theme_color)
    if color != state.theme_color:
        dispatch(SET_THEME_COLOR, color)
        state = get_state()

    idea = state.selected_idea
    if idea is None:
        render_error(state)
        if st.button("💡 Suggest Tool Ideas", type="primary", disabled=state.is_busy):
            with st.spinner("Reading the post and brainstorming..."):
                set_state(asyncio.run(suggest_ideas_action(get_state())))
            st.rerun()
        if state.tool_ideas:
            render_idea_cards(state)
        return

    st.markdown(f"**Implementing idea:** {idea.title}  \n{idea.description}")
    if st.button("← Other ideas", disabled=state.is_busy):
        dispatch(SELECT_IDEA, None)
        st.rerun()

    if not state.html_snippet:
        render_error(state)
        if st.button("✨ Generate Widget", type="primary", disabled=state.is_busy):
            run_snippet_generation()
        return

    themed = apply_theme_color(state.html_snippet, state.theme_color)
    preview_tab, code_tab = st.tabs(["👁️ Preview", "🧾 Code"])
    with preview_tab:
        components.html(build_isolated_embed(themed), height=640, scrolling=True)
    with code_tab:
        st.code(themed, language="html")

    render_error(state)
    if st.button("Regenerate", disabled=state.is_busy):
        run_snippet_generation()

    if st.button("📥 Insert into Post", type="primary", disabled=state.is_busy, key="insert_widget"):
        with st.status("Placing the widget in your post...", expanded=False):
            set_state(asyncio.run(insert_widget_action(get_state())))
        st.rerun()


def render_success(state: AppState):
    post = state.selected_post
    st.balloons()
    what = "Widget" if state.tool_kind == WIDGET else "Quiz"
    st.success(f'{what} inserted into "{html.unescape(post.title)}". [View post]({post.link})')
    if st.button(f"Create Another {what}"):
        dispatch(RESET_TO_ANALYZE)
        st.rerun()


def render_generate_step(state: AppState):
    post = state.selected_post
    if post is None:
        st.info("Missing post selection. Please pick a post first.")
        if st.button("Back to posts"):
            dispatch(RESET_TO_ANALYZE)
            st.rerun()
        return

    if state.inserting_status == SUCCESS:
        render_success(state)
        return

    st.subheader(html.unescape(post.title))
    if st.button("← Back to posts", disabled=state.is_busy):
        dispatch(RESET_TO_ANALYZE)
        st.rerun()

    kind = st.radio("Build", TOOL_KINDS, index=TOOL_KINDS.index(state.tool_kind), format_func=TOOL_KIND_LABELS.get,
                    horizontal=True, disabled=state.is_busy)
    if kind != state.tool_kind:
        dispatch(SET_TOOL_KIND, kind)
        state = get_state()
    if state.tool_kind == WIDGET:
        render_widget_step(state)
        return

    render_generation_options(state)

    if state.quiz_data is None:
        render_error(state)
        if st.button("✨ Generate Quiz", type="primary", disabled=state.is_busy):
            run_generation()
        return

    title = st.text_input("Quiz title", value=state.editable_quiz_title)
    if title != state.editable_quiz_title:
        dispatch(SET_QUIZ_TITLE, title)
        state = get_state()

    preview_tab, html_tab, balance_tab, raw_tab = st.tabs(["👁️ Preview", "🌐 Rendered", "📊 Balance", "🧾 Raw"])
    with preview_tab:
        render_quiz_preview(state)
    with html_tab:
        quiz = replace(state.quiz_data, quiz_title=title.strip() or state.quiz_data.quiz_title)
        rendered = render_quiz_html(quiz, state.theme_color)
        components.html(rendered, height=640, scrolling=True)
    with balance_tab:
        render_quiz_balance(state)
    with raw_tab:
        st.code(state.raw_response or "", language="json")

    render_error(state)

    with st.expander("🔁 Regenerate"):
        feedback = st.text_area("What should change?", value=state.regeneration_feedback,
                                placeholder="e.g. make the questions harder, focus on the second half of the post")
        if feedback != state.regeneration_feedback:
            dispatch(SET_FEEDBACK, feedback)
        if st.button("Regenerate", disabled=state.is_busy):
            run_generation()

    if st.button("📥 Insert into Post", type="primary", disabled=state.is_busy):
        with st.status("Placing the quiz in your post...", expanded=False):
            set_state(asyncio.run(insert_quiz_action(get_state())))
        st.rerun()


def run_app_ui():
    initialize_session_state()
    render_sidebar()

    state = get_state()
    render_stepper(state.current_step)

    if state.current_step == Step.CONFIGURE:
        render_configure_step(state)
    elif state.current_step == Step.ANALYZE:
        render_analyze_step(state)
    else:
        render_generate_step(state)

    if state.error and state.status != LOADING and st.button("Dismiss error"):
        dispatch(CLEAR_ERROR)
        st.rerun()
