"""SiteSearch: site crawler, lemma index and TF-IDF search."""

from .app import create_app
from .bootstrap import AppContext, build_context

__all__ = ["create_app", "AppContext", "build_context"]
