"""
Static Quiz Renderer
====================

Renders a ``QuizData`` into a self-contained HTML + CSS + JS bundle. The
bundle is what gets stored in WordPress; the structured quiz is discarded
after rendering.

The embedded script follows the same rules as ``quiz.scoring``: result tiers
are checked from the highest threshold down, feedback supports ``{score}`` and
``{total}``, and personality ties go to the outcome counted first.
"""

import html
import json
import re
import uuid
from typing import Optional, Tuple

from models.quiz_models import QuizData
from quiz.scoring import FALLBACK_OUTCOME_DESCRIPTION, FALLBACK_OUTCOME_TITLE

DEFAULT_THEME_COLOR = "#3b82f6"

_HEX_COLOR = re.compile(r"^#?([0-9a-f]{2})([0-9a-f]{2})([0-9a-f]{2})$", re.IGNORECASE)
_SHORT_HEX_COLOR = re.compile(r"^#?([0-9a-f])([0-9a-f])([0-9a-f])$", re.IGNORECASE)
_PLACEHOLDER = re.compile(r"__(ID|ACCENT|TITLE|FALLBACK|DATA)__")


def hex_to_hsl(hex_color: str) -> Optional[Tuple[int, int, int]]:
    """'#3b82f6' -> (217, 91, 60). Returns None for anything that isn't a 3/6 digit hex color."""
    if not isinstance(hex_color, str):
        return None
    match = _HEX_COLOR.match(hex_color.strip())
    if match:
        r, g, b = (int(part, 16) for part in match.groups())
    else:
        match = _SHORT_HEX_COLOR.match(hex_color.strip())
        if not match:
            return None
        r, g, b = (int(part * 2, 16) for part in match.groups())

    r, g, b = r / 255, g / 255, b / 255
    high, low = max(r, g, b), min(r, g, b)
    h = s = 0.0
    l = (high + low) / 2
    if high != low:
        d = high - low
        s = d / (2 - high - low) if l > 0.5 else d / (high + low)
        if high == r:
            h = (g - b) / d + (6 if g < b else 0)
        elif high == g:
            h = (b - r) / d + 2
        else:
            h = (r - g) / d + 4
        h /= 6
    return round(h * 360), round(s * 100), round(l * 100)


def _script_safe_json(data) -> str:
    # Keeps "</script>" and HTML comments inside strings from ending the script block.
    return (json.dumps(data, ensure_ascii=False)
            .replace("<", "\\u003c")
            .replace(">", "\\u003e")
            .replace("&", "\\u0026"))


_TEMPLATE = """<div class="cf-quiz" id="__ID__" style="--cf-accent: __ACCENT__;">
<style>
#__ID__ { font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, Helvetica, Arial, sans-serif; max-width: 720px; margin: 2.5em auto; padding: 1.75em; border-radius: 1rem; border: 1px solid hsl(var(--cf-accent) / 0.25); box-shadow: 0 10px 30px rgba(15, 23, 42, 0.08); background: #fff; color: #1e293b; }
#__ID__ .cf-quiz-title { margin: 0 0 1em; font-size: 1.5em; font-weight: 800; color: hsl(var(--cf-accent)); }
#__ID__ .cf-quiz-progress { font-size: 0.85em; color: #64748b; margin-bottom: 0.5em; }
#__ID__ .cf-quiz-question { font-size: 1.15em; font-weight: 700; margin-bottom: 1em; }
#__ID__ .cf-quiz-option { display: block; width: 100%; text-align: left; margin: 0.5em 0; padding: 0.85em 1em; border-radius: 0.75rem; border: 1px solid #cbd5e1; background: #f8fafc; color: inherit; font: inherit; cursor: pointer; transition: all 0.2s; }
#__ID__ .cf-quiz-option:hover:not(:disabled), #__ID__ .cf-quiz-option:focus-visible { border-color: hsl(var(--cf-accent)); outline: none; box-shadow: 0 0 0 2px hsl(var(--cf-accent) / 0.35); }
#__ID__ .cf-quiz-option.is-correct { border-color: #16a34a; background: #dcfce7; }
#__ID__ .cf-quiz-option.is-wrong { border-color: #dc2626; background: #fee2e2; }
#__ID__ .cf-quiz-explanation { margin-top: 1em; padding: 0.85em 1em; border-radius: 0.75rem; background: hsl(var(--cf-accent) / 0.08); }
#__ID__ .cf-quiz-next { margin-top: 1.25em; padding: 0.7em 1.4em; border: 0; border-radius: 0.75rem; background: hsl(var(--cf-accent)); color: #fff; font: inherit; font-weight: 700; cursor: pointer; }
#__ID__ .cf-quiz-result h3 { margin: 0 0 0.5em; color: hsl(var(--cf-accent)); }
@media (prefers-color-scheme: dark) {
  #__ID__ { background: #0f172a; color: #e2e8f0; border-color: hsl(var(--cf-accent) / 0.4); }
  #__ID__ .cf-quiz-option { background: #1e293b; border-color: #334155; }
  #__ID__ .cf-quiz-option.is-correct { background: #14532d; }
  #__ID__ .cf-quiz-option.is-wrong { background: #7f1d1d; }
}
</style>
<h2 class="cf-quiz-title">__TITLE__</h2>
<div class="cf-quiz-body" aria-live="polite"></div>
<script>
(function () {
  function findRoot() {
    var found = document.getElementById("__ID__");
    if (found) return found;
    // Inline embeds live inside a shadow root.
    var hosts = document.querySelectorAll("*");
    for (var i = 0; i < hosts.length; i++) {
      if (hosts[i].shadowRoot && (found = hosts[i].shadowRoot.getElementById("__ID__"))) return found;
    }
    return null;
  }
  var root = findRoot();
  if (!root || root.dataset.ready) return;
  root.dataset.ready = "1";
  var quiz = __DATA__;
  var fallbackOutcome = __FALLBACK__;
  var body = root.querySelector(".cf-quiz-body");
  var current = 0, score = 0, tally = {}, order = [];

  function el(tag, cls, text) {
    var node = document.createElement(tag);
    if (cls) node.className = cls;
    if (text !== undefined) node.textContent = text;
    return node;
  }

  function showQuestion() {
    var question = quiz.questions[current];
    body.innerHTML = "";
    body.appendChild(el("div", "cf-quiz-progress", "Question " + (current + 1) + " of " + quiz.questions.length));
    body.appendChild(el("div", "cf-quiz-question", question.questionText));
    question.options.forEach(function (option, index) {
      var label = typeof option === "string" ? option : option.text;
      var button = el("button", "cf-quiz-option", label);
      button.type = "button";
      button.addEventListener("click", function () { answer(index); });
      body.appendChild(button);
    });
  }

  function answer(index) {
    var question = quiz.questions[current];
    var buttons = body.querySelectorAll(".cf-quiz-option");
    buttons.forEach(function (button) { button.disabled = true; });
    if (quiz.quizType === "personality") {
      var key = question.options[index].pointsFor;
      if (!(key in tally)) { tally[key] = 0; order.push(key); }
      tally[key] += 1;
      return next();
    }
    if (index === question.correctAnswerIndex) score += 1;
    buttons[question.correctAnswerIndex].classList.add("is-correct");
    if (index !== question.correctAnswerIndex) buttons[index].classList.add("is-wrong");
    body.appendChild(el("div", "cf-quiz-explanation", question.explanation));
    var nextButton = el("button", "cf-quiz-next", current + 1 < quiz.questions.length ? "Next question" : "See my result");
    nextButton.type = "button";
    nextButton.addEventListener("click", next);
    body.appendChild(nextButton);
    nextButton.focus();
  }

  function next() {
    current += 1;
    if (current < quiz.questions.length) return showQuestion();
    showResult();
  }

  function showResult() {
    var title, text;
    if (quiz.quizType === "personality") {
      var winner = null, best = 0;
      order.forEach(function (key) { if (winner === null || tally[key] > best) { winner = key; best = tally[key]; } });
      var outcome = (quiz.outcomes || []).filter(function (o) { return o.id === winner; })[0] || fallbackOutcome;
      title = outcome.title; text = outcome.description;
    } else {
      var total = quiz.questions.length;
      var tiers = (quiz.results || []).slice().sort(function (a, b) { return b.scoreThreshold - a.scoreThreshold; });
      var tier = tiers.filter(function (t) { return score >= t.scoreThreshold; })[0];
      title = tier.title;
      text = tier.feedback.split("{score}").join(String(score)).split("{total}").join(String(total));
    }
    body.innerHTML = "";
    var result = el("div", "cf-quiz-result");
    result.appendChild(el("h3", null, title));
    result.appendChild(el("p", null, text));
    var restart = el("button", "cf-quiz-next", "Take the quiz again");
    restart.type = "button";
    restart.addEventListener("click", function () { current = 0; score = 0; tally = {}; order = []; showQuestion(); });
    result.appendChild(restart);
    body.appendChild(result);
  }

  showQuestion();
})();
</script>
</div>"""


def render_quiz_html(quiz: QuizData, theme_color: str = DEFAULT_THEME_COLOR) -> str:
    hsl = hex_to_hsl(theme_color) or hex_to_hsl(DEFAULT_THEME_COLOR)
    widget_id = f"cf-quiz-{uuid.uuid4().hex[:12]}"
    fallback = {"title": FALLBACK_OUTCOME_TITLE, "description": FALLBACK_OUTCOME_DESCRIPTION}

    values = {
        "ID": widget_id,
        "ACCENT": f"{hsl[0]} {hsl[1]}% {hsl[2]}%",
        "TITLE": html.escape(quiz.quiz_title),
        "FALLBACK": _script_safe_json(fallback),
        "DATA": _script_safe_json(quiz.to_dict()),
    }
    # Single pass, so placeholder-like text inside the quiz is never expanded.
    return _PLACEHOLDER.sub(lambda match: values[match.group(1)], _TEMPLATE)
