"""
Unit tests for the dashboard actions, with fake WordPress and AI clients.
"""
import json
import os
import tempfile
import unittest
from dataclasses import replace
from unittest.mock import patch

import httpx

from ai.providers import AiProvider, AiProviderError
from content.shortcode import LEGACY_TOOL_ATTRIBUTE, find_tool_id
from dashboard.data_management import (
    connect_to_wordpress, delete_tool_action, generate_quiz_action, generate_snippet_action, insert_quiz_action,
    insert_widget_action, load_ai_config, load_posts_cache, save_ai_config, suggest_ideas_action, validate_provider,
)
from dashboard.state import (
    CONFIGURE_SUCCESS, ERROR, IDLE, INVALID, SELECT_IDEA, SELECT_POST, SET_THEME_COLOR, SET_TOOL_KIND, SUCCESS,
    VALID, WIDGET, AppState, Step, reduce,
)
from models.widget_models import ToolIdea
from quiz.sanitizer import sanitize_quiz_data
from tests.fixtures import POST_CONTENT, WP_CONFIG, knowledge_payload, make_post
from wordpress.client import WordPressClient, WordPressError


class FakeWordPress:
    """Minimal stand-in for WordPressClient keeping posts in memory."""

    def __init__(self, posts=(), tool_support=True, fail_on=None):
        self.posts = {post.id: post for post in posts}
        self.tool_support = tool_support
        self.fail_on = fail_on
        self.calls = []
        self.closed = False
        self.next_tool_id = 11

    def _call(self, name, *args):
        self.calls.append((name,) + args)
        if self.fail_on == name:
            raise WordPressError(f"{name} failed")

    async def fetch_posts(self):
        self._call("fetch_posts")
        return list(self.posts.values())

    async def fetch_post(self, post_id):
        self._call("fetch_post", post_id)
        return self.posts[post_id]

    async def update_post(self, post_id, content):
        self._call("update_post", post_id, content)
        tool_id = find_tool_id(content)
        self.posts[post_id] = make_post(post_id, content=content, tool_id=tool_id,
                                        has_tool=tool_id is not None or LEGACY_TOOL_ATTRIBUTE in content)
        return self.posts[post_id]

    async def check_tool_support(self):
        self._call("check_tool_support")
        return self.tool_support

    async def create_tool(self, title, html):
        self._call("create_tool", title, html)
        return self.next_tool_id

    async def delete_tool(self, tool_id):
        self._call("delete_tool", tool_id)
        return True

    async def close(self):
        self.closed = True

    def called(self, name):
        return [call for call in self.calls if call[0] == name]


class FakeAi:

    def __init__(self, completion="", fragments=(), valid=True, error=None):
        self.completion = completion
        self.fragments = list(fragments)
        self.valid = valid
        self.error = error
        self.closed = False

    async def complete(self, prompt, json_mode=False):
        return self.completion

    async def stream(self, prompt):
        for fragment in self.fragments:
            yield fragment
        if self.error:
            raise self.error

    async def validate_api_key(self):
        return self.valid

    async def close(self):
        self.closed = True


class DataManagementTestCase(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.data_dir = tempfile.TemporaryDirectory()
        self.addCleanup(self.data_dir.cleanup)
        env = patch.dict(os.environ, {"CONTENTFORGE_DATA_DIR": self.data_dir.name})
        env.start()
        self.addCleanup(env.stop)
        for provider in AiProvider:
            os.environ.pop(f"{provider.name}_API_KEY", None)
        os.environ.pop("OPENROUTER_MODEL", None)

    def generated_state(self, post, setup_required=False):
        state = reduce(AppState(), CONFIGURE_SUCCESS,
                       {"config": WP_CONFIG, "posts": [post], "setup_required": setup_required})
        state = reduce(state, SELECT_POST, post)
        quiz = sanitize_quiz_data(knowledge_payload())
        return replace(state, quiz_data=quiz, editable_quiz_title="Edited Title")


class TestAiConfig(DataManagementTestCase):

    async def test_validate_saves_and_restores(self):
        state = replace(AppState(), api_keys={**AppState().api_keys, "openai": "sk-1"})

        state = await validate_provider(state, AiProvider.OPENAI, ai_factory=lambda s: FakeAi(valid=True))

        self.assertEqual(state.api_validation["openai"], VALID)
        restored = load_ai_config(AppState())
        self.assertEqual(restored.api_keys["openai"], "sk-1")
        self.assertEqual(restored.api_validation["openai"], VALID)

    async def test_invalid_key_is_not_saved(self):
        fake = FakeAi(valid=False)
        state = await validate_provider(AppState(), "anthropic", ai_factory=lambda s: fake)

        self.assertEqual(state.api_validation["anthropic"], INVALID)
        self.assertTrue(fake.closed)
        self.assertFalse(os.path.exists(os.path.join(self.data_dir.name, "ai_config.pkl")))

    def test_environment_keys(self):
        with patch.dict(os.environ, {"GEMINI_API_KEY": "env-key", "OPENROUTER_MODEL": "x/y"}):
            state = load_ai_config(AppState())
        self.assertEqual(state.api_keys["gemini"], "env-key")
        self.assertEqual(state.openrouter_model, "x/y")
        self.assertFalse(state.is_api_key_valid)

    def test_saved_provider_and_model(self):
        state = replace(AppState(), selected_provider=AiProvider.OPENROUTER, openrouter_model="a/b")
        save_ai_config(state)

        restored = load_ai_config(AppState())

        self.assertEqual(restored.selected_provider, AiProvider.OPENROUTER)
        self.assertEqual(restored.openrouter_model, "a/b")


class TestConnect(DataManagementTestCase):

    async def test_connect_caches_posts(self):
        wp = FakeWordPress([make_post(1)], tool_support=False)

        state = await connect_to_wordpress(AppState(), WP_CONFIG, wp_factory=lambda config: wp)

        self.assertEqual(state.current_step, Step.ANALYZE)
        self.assertTrue(state.setup_required)
        self.assertTrue(wp.closed)
        _, cached = load_posts_cache()
        self.assertEqual([post.id for post in cached], [1])

    async def test_connect_without_posts(self):
        state = await connect_to_wordpress(AppState(), WP_CONFIG, wp_factory=lambda config: FakeWordPress())

        self.assertEqual(state.status, ERROR)
        self.assertIn("no posts", state.error)
        self.assertEqual(state.current_step, Step.CONFIGURE)

    async def test_connect_failure(self):
        wp = FakeWordPress(fail_on="fetch_posts")
        state = await connect_to_wordpress(AppState(), WP_CONFIG, wp_factory=lambda config: wp)
        self.assertEqual(state.error, "fetch_posts failed")
        self.assertTrue(wp.closed)

    async def test_connect_to_a_site_without_rest_api(self):
        def factory(config):
            return WordPressClient(config, transport=httpx.MockTransport(
                lambda request: httpx.Response(200, text="<html>Not WordPress</html>")))

        state = await connect_to_wordpress(AppState(), WP_CONFIG, wp_factory=factory)

        self.assertEqual(state.status, ERROR)
        self.assertIn("did not return a WordPress REST API response", state.error)
        self.assertEqual(state.current_step, Step.CONFIGURE)


class TestGenerate(DataManagementTestCase):

    async def test_generation_streams_progress(self):
        post = make_post(1)
        state = reduce(reduce(AppState(), CONFIGURE_SUCCESS, {"config": WP_CONFIG, "posts": [post]}),
                       SELECT_POST, post)
        text = json.dumps(knowledge_payload())
        ai = FakeAi(fragments=[text[:40], text[40:]])
        seen = []

        state = await generate_quiz_action(state, on_state=lambda s: seen.append(s.raw_response), ai_factory=lambda s: ai)

        self.assertEqual(seen, [text[:40], text])
        self.assertEqual(state.status, IDLE)
        self.assertEqual(state.editable_quiz_title, "How Well Do You Know Sourdough?")
        self.assertTrue(ai.closed)

    async def test_generation_error(self):
        post = make_post(1)
        state = reduce(AppState(), SELECT_POST, post)
        ai = FakeAi(error=AiProviderError("API Error: 401 - bad key"))

        state = await generate_quiz_action(state, ai_factory=lambda s: ai)

        self.assertEqual(state.status, ERROR)
        self.assertIn("bad key", state.error)
        self.assertIsNone(state.quiz_data)


class TestInsert(DataManagementTestCase):

    async def test_insert_replaces_old_tool(self):
        post = make_post(1, content=POST_CONTENT + '\n[contentforge_tool id="3"]', tool_id=3)
        wp = FakeWordPress([post])
        ai = FakeAi(completion='{"marker": "CFORGE_MARKER_1"}')

        state = await insert_quiz_action(self.generated_state(post), wp_factory=lambda c: wp, ai_factory=lambda s: ai)

        self.assertEqual(state.inserting_status, SUCCESS)
        self.assertEqual(wp.called("create_tool")[0][1], "Edited Title")
        self.assertIn("Edited Title", wp.called("create_tool")[0][2])
        content = wp.called("update_post")[0][2]
        self.assertEqual(content.count("[contentforge_tool"), 1)
        self.assertIn('[contentforge_tool id="11"]', content)
        self.assertLess(content.index("</h2>"), content.index('[contentforge_tool id="11"]'))
        self.assertEqual(wp.called("delete_tool"), [("delete_tool", 3)])
        self.assertEqual(state.selected_post.tool_id, 11)
        self.assertTrue(wp.closed and ai.closed)

    async def test_inline_embed_when_setup_missing(self):
        post = make_post(1)
        wp = FakeWordPress([post])

        state = await insert_quiz_action(self.generated_state(post, setup_required=True),
                                         wp_factory=lambda c: wp, ai_factory=lambda s: FakeAi(completion="?"))

        self.assertEqual(state.inserting_status, SUCCESS)
        self.assertEqual(wp.called("create_tool"), [])
        content = wp.called("update_post")[0][2]
        self.assertTrue(content.startswith(POST_CONTENT))
        self.assertIn(f'{LEGACY_TOOL_ATTRIBUTE}="true"', content)

    async def test_failed_update_discards_new_tool(self):
        post = make_post(1)
        wp = FakeWordPress([post], fail_on="update_post")

        state = await insert_quiz_action(self.generated_state(post), wp_factory=lambda c: wp,
                                         ai_factory=lambda s: FakeAi())

        self.assertEqual(state.status, ERROR)
        self.assertEqual(state.inserting_status, IDLE)
        self.assertEqual(state.error, "update_post failed")
        self.assertEqual(wp.called("delete_tool"), [("delete_tool", 11)])

    async def test_failure_after_update_keeps_new_tool(self):
        post = make_post(1)
        wp = FakeWordPress([post], fail_on="fetch_posts")

        state = await insert_quiz_action(self.generated_state(post), wp_factory=lambda c: wp,
                                         ai_factory=lambda s: FakeAi())

        self.assertEqual(state.status, ERROR)
        self.assertEqual(wp.called("delete_tool"), [])

    async def test_insert_uses_latest_post_content(self):
        cached = make_post(1)
        wp = FakeWordPress([make_post(1, content='<p>Edited on the site.</p>\n[contentforge_tool id="5"]', tool_id=5)])

        state = await insert_quiz_action(self.generated_state(cached), wp_factory=lambda c: wp,
                                         ai_factory=lambda s: FakeAi())

        self.assertEqual(state.inserting_status, SUCCESS)
        self.assertEqual(wp.called("fetch_post"), [("fetch_post", 1)])
        content = wp.called("update_post")[0][2]
        self.assertTrue(content.startswith("<p>Edited on the site.</p>"))
        self.assertNotIn("Sourdough needs", content)
        self.assertNotIn('id="5"', content)
        self.assertIn('[contentforge_tool id="11"]', content)
        self.assertEqual(wp.called("delete_tool"), [("delete_tool", 5)])

    async def test_old_tool_cleanup_failure_keeps_insert(self):
        post = make_post(1, content=POST_CONTENT + '\n[contentforge_tool id="3"]', tool_id=3)
        wp = FakeWordPress([post], fail_on="delete_tool")

        state = await insert_quiz_action(self.generated_state(post), wp_factory=lambda c: wp,
                                         ai_factory=lambda s: FakeAi())

        self.assertEqual(state.inserting_status, SUCCESS)
        self.assertIsNone(state.error)
        self.assertEqual(wp.called("delete_tool"), [("delete_tool", 3)])
        self.assertEqual(state.selected_post.tool_id, 11)


class TestWidget(DataManagementTestCase):
    IDEA = ToolIdea("Hydration Calculator", "Works out water for any flour weight.", "calculator")
    SNIPPET = '<style>.tool-container { --accent-color: 217 91% 60%; }</style><div class="tool-container">Calc</div>'

    def widget_state(self, post, setup_required=False):
        state = reduce(AppState(), CONFIGURE_SUCCESS,
                       {"config": WP_CONFIG, "posts": [post], "setup_required": setup_required})
        state = reduce(reduce(state, SELECT_POST, post), SET_TOOL_KIND, WIDGET)
        return replace(reduce(state, SELECT_IDEA, self.IDEA), html_snippet=self.SNIPPET)

    async def test_suggest_ideas(self):
        ideas = [{"title": f"Tool {n}", "description": "Does things.", "icon": "list"} for n in range(4)]
        ai = FakeAi(completion=json.dumps({"ideas": ideas}))
        state = reduce(AppState(), SELECT_POST, make_post(1))

        state = await suggest_ideas_action(state, ai_factory=lambda s: ai)

        self.assertEqual(state.status, IDLE)
        self.assertEqual([idea.title for idea in state.tool_ideas], ["Tool 0", "Tool 1", "Tool 2"])
        self.assertTrue(ai.closed)

    async def test_suggest_ideas_error(self):
        state = reduce(AppState(), SELECT_POST, make_post(1))

        state = await suggest_ideas_action(state, ai_factory=lambda s: FakeAi(completion="No ideas."))

        self.assertEqual(state.status, ERROR)
        self.assertIn("Failed to get suggestions", state.error)
        self.assertEqual(state.tool_ideas, ())

    async def test_generate_snippet_streams_progress(self):
        state = replace(self.widget_state(make_post(1)), html_snippet="")
        ai = FakeAi(fragments=["```html\n", self.SNIPPET, "\n```"])
        seen = []

        state = await generate_snippet_action(state, on_state=lambda s: seen.append(s.raw_response),
                                              ai_factory=lambda s: ai)

        self.assertEqual(len(seen), 3)
        self.assertEqual(state.status, IDLE)
        self.assertEqual(state.html_snippet, self.SNIPPET)
        self.assertTrue(ai.closed)

    async def test_generate_snippet_error(self):
        state = self.widget_state(make_post(1))
        ai = FakeAi(error=AiProviderError("API Error: 429 - slow down"))

        state = await generate_snippet_action(state, ai_factory=lambda s: ai)

        self.assertEqual(state.status, ERROR)
        self.assertIn("slow down", state.error)

    async def test_insert_widget_as_tool(self):
        post = make_post(1)
        wp = FakeWordPress([post])
        state = reduce(self.widget_state(post), SET_THEME_COLOR, "#ff0000")

        state = await insert_widget_action(state, wp_factory=lambda c: wp, ai_factory=lambda s: FakeAi())

        self.assertEqual(state.inserting_status, SUCCESS)
        _, title, html = wp.called("create_tool")[0]
        self.assertEqual(title, "Hydration Calculator")
        self.assertIn("--accent-color: 0 100% 50%;", html)
        self.assertIn("attachShadow", html)
        self.assertEqual(wp.called("update_post")[0][2], f'{POST_CONTENT}\n\n[contentforge_tool id="11"]')

    async def test_insert_widget_inline(self):
        post = make_post(1)
        wp = FakeWordPress([post])

        state = await insert_widget_action(self.widget_state(post, setup_required=True),
                                           wp_factory=lambda c: wp, ai_factory=lambda s: FakeAi())

        self.assertEqual(state.inserting_status, SUCCESS)
        self.assertEqual(wp.called("create_tool"), [])
        content = wp.called("update_post")[0][2]
        self.assertTrue(content.startswith(POST_CONTENT))
        self.assertEqual(content.count(f'{LEGACY_TOOL_ATTRIBUTE}="true"'), 1)
        self.assertIn("tool-container", content)

    async def test_nothing_to_insert(self):
        state = replace(self.widget_state(make_post(1)), html_snippet="")
        self.assertIs(await insert_widget_action(state, wp_factory=lambda c: FakeWordPress()), state)


class TestDelete(DataManagementTestCase):

    async def test_delete_removes_shortcode_and_tool(self):
        post = make_post(2, content='<p>A</p>[contentforge_tool id="9"]<p>B</p>', tool_id=9)
        wp = FakeWordPress([post])
        state = reduce(AppState(), CONFIGURE_SUCCESS, {"config": WP_CONFIG, "posts": [post]})

        state = await delete_tool_action(state, 2, wp_factory=lambda c: wp)

        self.assertEqual(wp.called("update_post"), [("update_post", 2, "<p>A</p><p>B</p>")])
        self.assertEqual(wp.called("delete_tool"), [("delete_tool", 9)])
        self.assertIsNone(state.deleting_post_id)
        self.assertFalse(state.posts[0].has_tool)

    async def test_stale_post_reports_error(self):
        cached = make_post(2, content='<p>A</p>[contentforge_tool id="9"]', tool_id=9)
        wp = FakeWordPress([make_post(2, content="<p>A</p>")])
        state = reduce(AppState(), CONFIGURE_SUCCESS, {"config": WP_CONFIG, "posts": [cached]})

        state = await delete_tool_action(state, 2, wp_factory=lambda c: wp)

        self.assertEqual(state.status, ERROR)
        self.assertIn("shortcode could not be found", state.error)
        self.assertEqual(wp.called("update_post"), [])
        self.assertEqual(wp.called("delete_tool"), [])

    async def test_legacy_embed_is_removed_without_tool_delete(self):
        content = '<p>A</p><div data-wp-seo-optimizer-tool="true">quiz</div>'
        post = make_post(2, content=content, has_tool=True)
        wp = FakeWordPress([post])
        state = reduce(AppState(), CONFIGURE_SUCCESS, {"config": WP_CONFIG, "posts": [post]})

        await delete_tool_action(state, 2, wp_factory=lambda c: wp)

        self.assertEqual(wp.called("update_post"), [("update_post", 2, "<p>A</p>")])
        self.assertEqual(wp.called("delete_tool"), [])

    async def test_unknown_post_is_ignored(self):
        state = reduce(AppState(), CONFIGURE_SUCCESS, {"config": WP_CONFIG, "posts": []})
        self.assertIs(await delete_tool_action(state, 99, wp_factory=lambda c: FakeWordPress()), state)


if __name__ == '__main__':
    unittest.main()
