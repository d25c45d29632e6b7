"""Russian morphology adapter backed by *pymorphy3*."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import FrozenSet, List, Optional

import pymorphy3


@dataclass(frozen=True)
class WordAnalysis:
    normal_form: str
    grammemes: FrozenSet[str]


class MorphologyAdapter:
    """Return normal forms and grammatical tags for a single token.

    The analyzer loads its dictionaries on first use; construction is cheap so
    the adapter can be created at import time of the bootstrap module.
    """

    def __init__(self, analyzer: Optional[pymorphy3.MorphAnalyzer] = None) -> None:
        self._analyzer = analyzer
        self._lock = threading.Lock()

    @property
    def analyzer(self) -> pymorphy3.MorphAnalyzer:
        if self._analyzer is None:
            with self._lock:
                if self._analyzer is None:
                    self._analyzer = pymorphy3.MorphAnalyzer(lang="ru")
        return self._analyzer

    def analyze(self, word: str) -> List[WordAnalysis]:
        return [
            WordAnalysis(normal_form=parse.normal_form, grammemes=frozenset(parse.tag.grammemes))
            for parse in self.analyzer.parse(word)
        ]
