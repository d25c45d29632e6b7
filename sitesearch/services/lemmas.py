"""Lemma extraction for indexing and query parsing.

Text is lower-cased, everything outside the Russian alphabet becomes
whitespace, and each remaining token is reduced to its normal form through the
morphology adapter. Functional parts of speech (interjections, prepositions,
conjunctions) are dropped entirely.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from functools import lru_cache
from typing import Dict, Iterable, List, Optional, Set

from .html import clean_html
from .morphology import MorphologyAdapter, WordAnalysis

FUNCTIONAL_GRAMMEMES = frozenset({"INTJ", "PREP", "CONJ"})

_NON_ALPHABET_RE = re.compile(r"[^а-яё\s]+")

LOGGER = logging.getLogger("sitesearch.lemmas")


class LemmaExtractor:
    def __init__(self, morphology: Optional[MorphologyAdapter] = None, cache_size: int = 65536) -> None:
        self.morphology = morphology or MorphologyAdapter()
        self._analyze = lru_cache(maxsize=cache_size)(self._analyze_uncached)

    # ------------------------------------------------------------------
    # Токенизация и морфология
    # ------------------------------------------------------------------
    @staticmethod
    def tokens(text: str | None) -> List[str]:
        return _NON_ALPHABET_RE.sub(" ", (text or "").lower()).split()

    def _analyze_uncached(self, word: str) -> tuple[WordAnalysis, ...]:
        try:
            analyses = tuple(self.morphology.analyze(word))
        except Exception as exc:  # noqa: BLE001 - unknown tokens are skipped
            LOGGER.debug("Morphology failed for %r: %s", word, exc)
            return ()
        if any(a.grammemes & FUNCTIONAL_GRAMMEMES for a in analyses):
            return ()
        return analyses

    # ------------------------------------------------------------------
    # Публичное API
    # ------------------------------------------------------------------
    def extract_counts(self, text: str | None) -> Dict[str, int]:
        """Map each lemma to its number of occurrences in ``text``."""
        counts: Counter[str] = Counter()
        for word in self.tokens(text):
            analyses = self._analyze(word)
            if analyses and analyses[0].normal_form:
                counts[analyses[0].normal_form] += 1
        return dict(counts)

    def extract_set(self, text: str | None) -> Set[str]:
        """Distinct lemmas of ``text``, including every normal form of ambiguous words."""
        lemmas: Set[str] = set()
        for word in self.tokens(text):
            lemmas.update(a.normal_form for a in self._analyze(word) if a.normal_form)
        return lemmas

    def contains_lemmas(self, text: str | None, lemmas: Iterable[str]) -> bool:
        wanted = set(lemmas)
        return bool(wanted) and not self.extract_set(text).isdisjoint(wanted)

    @staticmethod
    def clean_html(markup: str | None) -> str:
        return clean_html(markup)
