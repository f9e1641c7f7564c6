import json
import logging
import sys
import threading
import time

import pytest

from arthouse_discovery import cli
from arthouse_discovery.service import ImpressionRecorder

RECORDS = [
    {
        '_id': 'jeanne-dielman',
        'title': 'Jeanne Dielman, 23 quai du Commerce, 1080 Bruxelles',
        'year': 1975,
        'country': 'Belgium',
        'genres': ['Drama'],
        'directors': ['Chantal Akerman'],
        'synopsis': 'A widow follows a rigorous, austere routine over three days.',
        'popularity': 6.0,
        'voteAverage': 7.6,
        'voteCount': 900,
        'tier': 1,
    },
    {
        '_id': 'blockbuster',
        'title': 'Explosion Force',
        'year': 2019,
        'country': 'USA',
        'genres': ['Action', 'Adventure'],
        'directors': ['Someone'],
        'synopsis': 'Heroes save the world.',
        'popularity': 400.0,
        'voteAverage': 5.5,
        'voteCount': 150000,
        'tier': 3,
    },
]


def _run(monkeypatch, *argv):
    monkeypatch.setattr(sys, "argv", ["prog", *argv])
    cli.main()


@pytest.fixture
def loaded(fresh_db, tmp_path, monkeypatch):
    source = tmp_path / "films.json"
    source.write_text(json.dumps(RECORDS))
    _run(monkeypatch, "import", str(source))
    _run(monkeypatch, "migrate")
    return fresh_db


def test_main_dispatches_to_subcommand(monkeypatch):
    called = {}

    def fake_stats(args):
        called["command"] = args.command

    monkeypatch.setattr(cli, "cmd_stats", fake_stats)
    _run(monkeypatch, "stats")

    assert called["command"] == "stats"


def test_cli_prune_arguments(monkeypatch):
    called = []
    monkeypatch.setattr(cli, "cmd_prune", called.append)
    _run(monkeypatch, "prune", "--threshold", "40", "--dry-run", "--report", "out.json")

    args = called[0]
    assert args.threshold == 40
    assert args.dry_run is True
    assert args.report == "out.json"


def test_cli_combined_arguments(monkeypatch):
    called = []
    monkeypatch.setattr(cli, "cmd_combined", called.append)
    _run(monkeypatch, "combined", "1970s", "slow", "bleak", "--limit", "5", "--page", "2")

    args = called[0]
    assert args.decade == "1970s"
    assert args.moods == ["slow", "bleak"]
    assert (args.limit, args.page) == (5, 2)


def test_import_and_migrate_fill_derived_fields(loaded):
    films = {f.id: f for f in loaded.load_films()}
    jeanne = films['jeanne-dielman']
    assert 'austere' in jeanne.derived_tags
    assert jeanne.arthouse_score > 60
    assert jeanne.base_canon_score > 0
    assert max(jeanne.moods.values()) == 1.0
    assert films['blockbuster'].arthouse_score == 0


def test_export_writes_catalog(loaded, tmp_path, monkeypatch):
    target = tmp_path / "export.json"
    _run(monkeypatch, "export", str(target))

    data = json.loads(target.read_text())
    assert [f['id'] for f in data['films']] == ['jeanne-dielman', 'blockbuster']
    assert 'exported_at' in data


def test_prune_dry_run_keeps_films(loaded, tmp_path, monkeypatch):
    report_path = tmp_path / "report.json"
    _run(monkeypatch, "prune", "--dry-run", "--report", str(report_path))

    report = json.loads(report_path.read_text())
    assert report['dry_run'] is True
    assert [e['id'] for e in report['to_remove']] == ['blockbuster']
    assert len(loaded.load_films()) == 2


def test_prune_removes_only_uncurated_films(loaded, tmp_path, monkeypatch):
    _run(monkeypatch, "prune", "--report", str(tmp_path / "report.json"))
    assert [f.id for f in loaded.load_films()] == ['jeanne-dielman']


def test_prune_report_defaults_to_database_directory(loaded, tmp_path, monkeypatch):
    _run(monkeypatch, "prune", "--dry-run")

    reports = list(tmp_path.glob("prune-report-*.json"))
    assert len(reports) == 1
    assert json.loads(reports[0].read_text())["dry_run"] is True


def test_explore_prints_and_counts(loaded, monkeypatch, caplog):
    caplog.set_level(logging.INFO)
    _run(monkeypatch, "explore", "--sort", "influence", "--limit", "1")

    assert "Jeanne Dielman" in caplog.text
    counts = {f.id: f.show_count for f in loaded.load_films()}
    assert counts == {'jeanne-dielman': 1, 'blockbuster': 0}


def test_decade_json_output(loaded, monkeypatch, caplog):
    caplog.set_level(logging.INFO)
    _run(monkeypatch, "decade", "1970s", "--json", "--no-record")

    assert '"decade": 1970' in caplog.text
    assert all(f.show_count == 0 for f in loaded.load_films())


def test_breakdown_and_moods(loaded, monkeypatch, caplog):
    caplog.set_level(logging.INFO)
    _run(monkeypatch, "breakdown", "jeanne")
    assert "Country:" in caplog.text
    assert "keep" in caplog.text

    caplog.clear()
    _run(monkeypatch, "moods")
    assert "austere" in caplog.text


def test_invalid_request_exits_with_usage_error(loaded, monkeypatch):
    with pytest.raises(SystemExit) as excinfo:
        _run(monkeypatch, "decade", "seventies")
    assert excinfo.value.code == 2


def test_page_prints_before_show_counts_are_written(loaded, monkeypatch, caplog):
    caplog.set_level(logging.INFO)
    released = threading.Event()
    written = []

    def slow_record(ids):
        released.wait(timeout=10)
        written.extend(ids)
        return len(ids)

    monkeypatch.setattr(cli, "ImpressionRecorder", lambda: ImpressionRecorder(record=slow_record))
    monkeypatch.setattr(sys, "argv", ["prog", "explore", "--limit", "1"])
    runner = threading.Thread(target=cli.main)
    runner.start()
    try:
        deadline = time.monotonic() + 5
        while "Explore (curated)" not in caplog.text and time.monotonic() < deadline:
            time.sleep(0.01)
        assert "Explore (curated)" in caplog.text
        assert written == []
    finally:
        released.set()
        runner.join(timeout=10)

    assert not runner.is_alive()
    assert len(written) == 1
