"""Title and snippet rendering for search results."""

from __future__ import annotations

import re
from html import escape
from typing import Iterable, List

from .html import clean_html, extract_title as _raw_title
from .lemmas import LemmaExtractor

SNIPPET_MAX_TEXT: int = 1000
SNIPPET_WINDOW_RADIUS: int = 50
SNIPPET_FALLBACK_WORDS: int = 30
NO_TITLE = "Без названия"


def extract_title(markup: str | None) -> str:
    return _raw_title(markup) or NO_TITLE


def _highlight(fragment: str, needle: str) -> str:
    parts = re.split(f"({re.escape(needle)})", fragment, flags=re.IGNORECASE)
    out: List[str] = []
    for idx, part in enumerate(parts):
        # нечётные элементы split() - совпадения
        out.append(f"<b>{escape(part)}</b>" if idx % 2 else escape(part))
    return "".join(out)


def generate_snippet(
    markup: str | None,
    query: str,
    query_lemmas: Iterable[str],
    extractor: LemmaExtractor,
) -> str:
    """Render a short, HTML-escaped excerpt of the page with query matches in ``<b>``.

    The literal query is preferred; if it does not occur verbatim the first
    words of the page are returned with words sharing a lemma with the query
    highlighted.
    """
    text = clean_html(markup)[:SNIPPET_MAX_TEXT]
    needle = (query or "").strip()
    pos = text.lower().find(needle.lower()) if needle else -1
    if pos >= 0:
        start = max(0, pos - SNIPPET_WINDOW_RADIUS)
        end = min(len(text), pos + len(needle) + SNIPPET_WINDOW_RADIUS)
        snippet = _highlight(text[start:end], needle)
        if start > 0:
            snippet = "..." + snippet
        if end < len(text):
            snippet += "..."
        return snippet

    lemmas = set(query_lemmas)
    words = text.split()
    rendered = []
    for word in words[:SNIPPET_FALLBACK_WORDS]:
        if extractor.contains_lemmas(word, lemmas):
            rendered.append(f"<b>{escape(word)}</b>")
        else:
            rendered.append(escape(word))
    snippet = " ".join(rendered)
    if len(words) > SNIPPET_FALLBACK_WORDS:
        snippet += "..."
    return snippet
