import importlib

import pytest

from arthouse_discovery import config


@pytest.fixture(autouse=True)
def restore_config(monkeypatch):
    yield
    monkeypatch.undo()
    importlib.reload(config)


def test_env_overrides_and_validation(monkeypatch):
    monkeypatch.setenv("ARTHOUSE_REFERENCE_YEAR", "2030")
    monkeypatch.setenv("ARTHOUSE_MIN_CONTEXT_SCORE", "-5")  # should clamp to min
    monkeypatch.setenv("ARTHOUSE_PAGE_LIMIT", "0")  # min clamp

    cfg = importlib.reload(config)

    assert cfg.CANON_REFERENCE_YEAR == 2030
    assert cfg.MIN_CONTEXT_SCORE == 0.0
    assert cfg.DEFAULT_PAGE_LIMIT == 1


def test_db_path_respects_env(fresh_config, tmp_path):
    assert fresh_config.DB_PATH == tmp_path / "test.db"


def test_invalid_env_values_fall_back_to_defaults(monkeypatch):
    monkeypatch.setenv("ARTHOUSE_REFERENCE_YEAR", "next-year")
    monkeypatch.setenv("ARTHOUSE_MIN_CONTEXT_SCORE", "oops")
    monkeypatch.setenv("ARTHOUSE_PRUNE_THRESHOLD", "bad-int")

    cfg = importlib.reload(config)

    assert cfg.CANON_REFERENCE_YEAR == 2025
    assert cfg.MIN_CONTEXT_SCORE == 30.0
    assert cfg.ARTHOUSE_PRUNE_THRESHOLD == 60


def test_inverted_recency_window_uses_defaults(monkeypatch):
    monkeypatch.setenv("ARTHOUSE_RECENCY_START", "2020")
    monkeypatch.setenv("ARTHOUSE_RECENCY_END", "2010")

    cfg = importlib.reload(config)

    assert (cfg.RECENCY_START_YEAR, cfg.RECENCY_END_YEAR) == (2015, 2025)


def test_weights_sum_to_one():
    for weights in (config.CANON_WEIGHTS, config.EXPLORE_WEIGHTS, config.DECADE_WEIGHTS,
                    config.MOOD_WEIGHTS, config.COMBINED_WEIGHTS):
        assert sum(weights.values()) == pytest.approx(1.0)
