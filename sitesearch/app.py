"""Flask application entry point for SiteSearch."""

from __future__ import annotations

import atexit
import json
import logging

import click
from flask import Flask, current_app, jsonify
from werkzeug.exceptions import HTTPException

from .api.routes import create_blueprint
from .bootstrap import AppContext, build_context
from .config import AppConfig, load_config
from .services.logging import configure_logging

LOGGER = logging.getLogger("sitesearch.app")


def _context() -> AppContext:
    return current_app.extensions["sitesearch"]


def create_app(config: AppConfig | None = None, context: AppContext | None = None) -> Flask:
    if context is None:
        context = build_context(config or load_config())
    config = context.config

    app = Flask(__name__)
    app.config["SECRET_KEY"] = config.secret_key
    app.config["LOG_LEVEL"] = config.log_level
    app.config["SITESEARCH_CONFIG"] = config
    app.extensions["sitesearch"] = context
    configure_logging(app, config.log_file_path, level=config.log_level)

    app.register_blueprint(create_blueprint(context), url_prefix="/api")

    @app.errorhandler(Exception)
    def handle_error(exc: Exception):
        if isinstance(exc, HTTPException):
            return jsonify({"result": False, "error": exc.description}), exc.code
        app.logger.exception("Unhandled error: %s", exc)
        return jsonify({"result": False, "error": str(exc) or exc.__class__.__name__}), 500

    _register_cli(app)
    atexit.register(context.shutdown)
    return app


def _register_cli(app: Flask) -> None:
    @app.cli.command("init-db")
    def init_db():
        _context().database.create_all()
        click.echo("База данных инициализирована.")

    @app.cli.command("start-indexing")
    @click.option("--timeout", type=float, default=None, help="Максимальное время ожидания, секунды.")
    def start_indexing(timeout):
        ctx = _context()
        result = ctx.indexing.start_indexing()
        if not result.ok:
            raise click.ClickException(result.error or "error")
        click.echo(f"Индексация запущена для {len(ctx.config.sites)} сайтов.")
        if not ctx.indexing.wait(timeout):
            ctx.indexing.stop_indexing()
            click.echo("Индексация остановлена по таймауту.")
            return
        click.echo("Индексация завершена.")

    @app.cli.command("index-page")
    @click.argument("url", type=str)
    def index_page(url):
        result = _context().indexing.index_page(url)
        if not result.ok:
            raise click.ClickException(result.error or "error")
        click.echo(f"Страница {url} проиндексирована.")

    @app.cli.command("search")
    @click.argument("query", type=str)
    @click.option("--site", default=None, help="Искать только по этому сайту.")
    @click.option("--offset", type=int, default=0, show_default=True)
    @click.option("--limit", type=int, default=20, show_default=True)
    def search(query, site, offset, limit):
        response = _context().search.search(query, site, offset=offset, limit=limit)
        if not response.result:
            raise click.ClickException(response.error or "error")
        if not response.data:
            click.echo("Совпадений не найдено.")
            return
        click.echo(f"Найдено {response.count}, показано {len(response.data)}:")
        for idx, item in enumerate(response.data, start=offset + 1):
            click.echo(f"{idx}. {item.relevance:.4f} {item.site}{item.uri} {item.title}")

    @app.cli.command("stats")
    def stats():
        payload = _context().statistics.get_statistics().to_dict()
        click.echo(json.dumps(payload, indent=2, ensure_ascii=False))


if __name__ == "__main__":
    app = create_app()
    app.run(host="0.0.0.0", port=8080)
