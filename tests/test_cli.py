import json


def test_stats_command(app, seed):
    seed.site()
    result = app.test_cli_runner().invoke(args=["stats"])
    assert result.exit_code == 0
    assert json.loads(result.output)["total"]["sites"] == 1


def test_start_indexing_and_search_commands(app):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["start-indexing", "--timeout", "10"])
    assert result.exit_code == 0
    assert "Индексация завершена." in result.output

    result = runner.invoke(args=["search", "кот", "--limit", "1"])
    assert result.exit_code == 0
    assert "Найдено 2, показано 1" in result.output
    assert "/cats" in result.output


def test_search_command_reports_errors(app):
    result = app.test_cli_runner().invoke(args=["search", "кот"])
    assert result.exit_code != 0
    assert "no indexed sites" in result.output


def test_index_page_command_rejects_foreign_url(app):
    result = app.test_cli_runner().invoke(args=["index-page", "http://elsewhere.test/"])
    assert result.exit_code != 0
    assert "could not index page" in result.output
