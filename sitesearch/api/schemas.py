"""Response envelopes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

from ..services.indexing import IndexingResult
from ..services.search import SearchResponse
from ..services.statistics import Statistics


@dataclass
class Envelope:
    result: bool
    error: str | None = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"result": self.result}
        if self.error is not None:
            payload["error"] = self.error
        return payload


def success() -> Envelope:
    return Envelope(True)


def failure(message: str) -> Envelope:
    return Envelope(False, message)


def from_indexing(result: IndexingResult) -> Envelope:
    return success() if result.ok else failure(result.error or "error")


def statistics(stats: Statistics) -> Dict[str, Any]:
    return {"result": True, "statistics": stats.to_dict()}


def search(response: SearchResponse) -> Dict[str, Any]:
    return response.to_dict()
