import importlib
import sys
from pathlib import Path

import pytest

# Ensure the package under test is importable without installation
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))


@pytest.fixture
def fresh_config(monkeypatch, tmp_path):
    """
    Reload config with a temporary database path to keep tests isolated.
    """
    db_path = tmp_path / "test.db"
    monkeypatch.setenv("ARTHOUSE_DB", str(db_path))
    import arthouse_discovery.config as config

    importlib.reload(config)
    yield config

    # Restore module-level defaults for tests that import constants directly
    monkeypatch.undo()
    importlib.reload(config)


@pytest.fixture
def fresh_db(monkeypatch, tmp_path):
    """
    Reload config/database modules with a temp DB and cleanly close the pool after use.
    """
    db_path = tmp_path / "test.db"
    monkeypatch.setenv("ARTHOUSE_DB", str(db_path))

    import arthouse_discovery.config as config
    import arthouse_discovery.database as database

    importlib.reload(config)
    importlib.reload(database)

    yield database
    database.close_pool()


@pytest.fixture
def make_film():
    """Factory for Film records with neutral defaults; keyword arguments override fields."""
    from arthouse_discovery.film import Film

    def _make(**overrides):
        data = {
            'id': 'film-1',
            'title': 'Film',
            'year': 1970,
            'country': 'France',
            'genres': ['Drama'],
            'directors': ['Someone'],
            'popularity': 10.0,
            'vote_average': 7.0,
            'vote_count': 1000,
            'tier': 3,
        }
        data.update(overrides)
        return Film.from_dict(data)

    return _make
