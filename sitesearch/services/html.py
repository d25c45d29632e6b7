"""BeautifulSoup helpers for page text, titles and links."""

from __future__ import annotations

import re
from typing import List

from bs4 import BeautifulSoup

_WS_RE = re.compile(r"\s+")

NON_CONTENT_TAGS = ("script", "style", "noscript", "template")


def parse_document(markup: str | None) -> BeautifulSoup:
    return BeautifulSoup(markup or "", "html.parser")


def document_text(soup: BeautifulSoup) -> str:
    for tag in soup(list(NON_CONTENT_TAGS)):
        tag.decompose()
    return _WS_RE.sub(" ", soup.get_text(separator=" ", strip=True)).strip()


def clean_html(markup: str | None) -> str:
    """Strip markup and return whitespace-normalized plain text."""
    if not markup:
        return ""
    return document_text(parse_document(markup))


def extract_title(markup: str | None) -> str:
    soup = parse_document(markup)
    if soup.title is None:
        return ""
    return _WS_RE.sub(" ", soup.title.get_text(strip=True)).strip()


def extract_links(soup: BeautifulSoup) -> List[str]:
    return [a.get("href", "") for a in soup.find_all("a", href=True)]
