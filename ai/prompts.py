"""
Prompt text sent to the AI providers.
"""

from typing import Optional

from content.shortcode import TAILWIND_CDN
from models.quiz_models import QuizData, QuizDifficulty
from models.widget_models import TOOL_ICONS, ToolIdea
from wordpress.parser import strip_html

POST_CONTEXT_CHARS = 8000
SNIPPET_CONTEXT_CHARS = 4000

QUIZ_JSON_SHAPE = """{
  "quizTitle": "string",
  "quizType": "knowledge-check" | "personality",
  "questions": [
    // knowledge-check:
    { "questionText": "string", "options": ["string", "..."], "correctAnswerIndex": 0, "explanation": "string" }
    // personality:
    { "questionText": "string", "options": [{ "text": "string", "pointsFor": "outcome id" }] }
  ],
  // knowledge-check only. Include a tier with "scoreThreshold": 0.
  "results": [{ "scoreThreshold": 0, "title": "string", "feedback": "string using {score} and {total}" }],
  // personality only
  "outcomes": [{ "id": "string", "title": "string", "description": "string" }]
}"""

_DIFFICULTY_GUIDANCE = {
    QuizDifficulty.EASY: "Questions should check the main ideas of the post. Keep wording simple and distractors clearly wrong.",
    QuizDifficulty.CHALLENGING: "Questions should test deeper understanding and application of the details in the post. "
                                "Distractors must be plausible.",
}

_TYPE_GUIDANCE = {
    "auto": "Choose the quiz type that fits the post best: a knowledge check for informational or educational "
            "content, a personality quiz for lifestyle, preference or self-discovery topics.",
    "knowledge-check": "Create a knowledge-check quiz.",
    "personality": "Create a personality quiz.",
}


def build_quiz_prompt(post_title: str, post_content: str, difficulty: QuizDifficulty = QuizDifficulty.EASY,
                      quiz_type: str = "auto", feedback: str = "", previous_quiz: Optional[QuizData] = None) -> str:
    clean_content = strip_html(post_content)[:POST_CONTEXT_CHARS]
    difficulty = QuizDifficulty(difficulty)

    revision = ""
    if previous_quiz is not None and feedback.strip():
        revision = f"""
    **Revision Request:**
    A previous version of this quiz was titled "{previous_quiz.quiz_title}". The editor asked for these changes:
    "{feedback.strip()}"
    Apply the changes while keeping everything that was not mentioned.
    """

    return f"""
    You are an expert instructional designer who writes engaging quizzes for blog readers.

    Analyze the following blog post.
    Title: "{post_title}"
    Content: "{clean_content}"

    **Task:**
    Write an interactive quiz based strictly on the post. {_TYPE_GUIDANCE.get(quiz_type, _TYPE_GUIDANCE["auto"])}
    Difficulty: {difficulty.value}. {_DIFFICULTY_GUIDANCE[difficulty]}

    **Rules:**
    1.  Write 5 to 8 questions. Every question must have 3 or 4 options.
    2.  Knowledge checks: vary the position of the correct answer, explain every answer in one or two sentences,
        and provide 2 to 4 result tiers including one with "scoreThreshold": 0.
    3.  Personality quizzes: provide 3 or 4 outcomes with unique ids, and make every option's "pointsFor"
        one of those ids.
    {revision}
    Respond with ONLY a valid JSON object in this shape:
    {QUIZ_JSON_SHAPE}
    Ensure the JSON is well-formed and contains no unescaped control characters within strings.
    """


def build_insertion_prompt(marked_html: str, description: str, max_chars: int) -> str:
    document = marked_html[:max_chars]

    return f"""
    You are an expert content strategist. Find the best place to insert an interactive quiz or tool into a blog post.

    The post below contains numbered markers written as HTML comments, like <!-- CFORGE_MARKER_3 -->.
    Each marker is a possible insertion point.

    **Blog Post:**
    {document}

    **Content to Insert:**
    {description or "An interactive element about the post."}

    **Guidelines:**
    1.  It should come right after the content it relates to has been covered.
    2.  Never place it between a heading and its first paragraph.
    3.  When in doubt, prefer a point after the main body of the post.

    Respond with ONLY a JSON object naming exactly one marker that appears in the post, for example:
    {{"marker": "CFORGE_MARKER_3"}}
    """


def build_ideas_prompt(post_title: str, post_content: str) -> str:
    clean_content = strip_html(post_content)[:POST_CONTEXT_CHARS]

    return f"""
    Analyze the following blog post.
    Title: "{post_title}"
    Content: "{clean_content}"

    Suggest three distinct interactive HTML tool ideas that would be valuable and engaging for the reader of
    this post. Each tool must relate directly to the post and be buildable as self-contained HTML, CSS and JavaScript.

    For each idea:
    1.  Give a short, catchy title.
    2.  Describe what the tool does in one sentence, on a single line.
    3.  Pick an icon name from this list: [{", ".join(TOOL_ICONS)}].

    Respond with ONLY a valid JSON object in this shape:
    {{"ideas": [{{"title": "...", "description": "...", "icon": "..."}}]}}
    Ensure the JSON is well-formed and contains no unescaped control characters within strings.
    """


def build_html_snippet_prompt(post_title: str, post_content: str, idea: ToolIdea, accent_hsl: str) -> str:
    clean_content = strip_html(post_content)[:SNIPPET_CONTEXT_CHARS]

    return f"""
    You are a senior front-end engineer and UI designer who builds polished, self-contained web components
    with Tailwind CSS.

    Generate one complete, self-contained HTML snippet for an interactive tool. The snippet is placed inside a
    Shadow DOM, so the output must be ONLY the raw HTML code.

    **Tool Request:**
    *   Blog Post Title: "{post_title}"
    *   Tool Idea: "{idea.title}"
    *   Description: "{idea.description}"
    *   Content Context: "{clean_content}"
    *   Primary Accent Color (HSL): {accent_hsl}

    **Design:**
    1.  Modern and clean: generous spacing, soft shadows, rounded corners.
    2.  Immediate feedback on every interaction, with subtle transitions on hover and focus.
    3.  Styled for both light and dark mode with Tailwind's `dark:` variants.
    4.  Fully responsive and keyboard accessible, with visible focus states.

    **Technical Rules:**
    1.  No wrappers: do not include ```html fences, `<html>`, `<head>` or `<body>`.
    2.  Start with `<script src="https://{TAILWIND_CDN}"></script>` followed by a single `<style>` block.
    3.  The `<style>` block contains `:host {{ display: block; }}` and, on `.tool-container`, the accent color
        variable `--accent-color: {accent_hsl};`. Use it in classes like `bg-[hsl(var(--accent-color))]`.
    4.  The root element has the class `tool-container`.
    5.  All JavaScript goes in one `<script>` tag at the very end, using event listeners instead of inline handlers.

    Now generate the complete HTML snippet for the "{idea.title}" tool.
    """
