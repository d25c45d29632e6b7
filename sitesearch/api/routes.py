"""Flask blueprint exposing the SiteSearch API."""

from __future__ import annotations

from flask import Blueprint, jsonify, request

from ..bootstrap import AppContext
from . import schemas


def _int_arg(name: str, default: int) -> int:
    try:
        return int(request.args.get(name, default))
    except (TypeError, ValueError):
        return default


def create_blueprint(ctx: AppContext) -> Blueprint:
    bp = Blueprint("sitesearch_api", __name__)

    @bp.route("/statistics", methods=["GET"])
    def statistics():
        return jsonify(schemas.statistics(ctx.statistics.get_statistics()))

    @bp.route("/startIndexing", methods=["GET"])
    def start_indexing():
        result = ctx.indexing.start_indexing()
        return jsonify(schemas.from_indexing(result).to_dict()), (200 if result.ok else 400)

    @bp.route("/stopIndexing", methods=["GET"])
    def stop_indexing():
        result = ctx.indexing.stop_indexing()
        return jsonify(schemas.from_indexing(result).to_dict()), (200 if result.ok else 400)

    @bp.route("/indexPage", methods=["POST"])
    def index_page():
        url = request.args.get("url") or request.form.get("url") or ""
        result = ctx.indexing.index_page(url)
        return jsonify(schemas.from_indexing(result).to_dict()), (200 if result.ok else 400)

    @bp.route("/search", methods=["GET"])
    def search():
        response = ctx.search.search(
            request.args.get("query", ""),
            request.args.get("site") or None,
            offset=_int_arg("offset", 0),
            limit=_int_arg("limit", 20),
        )
        return jsonify(schemas.search(response))

    return bp
