import sqlite3
import json
import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from .config import DB_PATH
from .film import Film

logger = logging.getLogger(__name__)

# SQLite allows 999 bound parameters per statement
CHUNK_SIZE = 900

# Columns stored as JSON text
JSON_COLUMNS = ('keywords', 'genres', 'directors', 'derived_tags', 'moods', 'festival_wins', 'movements')

FILM_COLUMNS = (
    'id', 'title', 'year', 'decade', 'synopsis', 'keywords', 'genres', 'country', 'directors',
    'popularity', 'vote_average', 'vote_count', 'tier',
    'derived_tags', 'moods', 'base_canon_score', 'arthouse_score', 'depth_score',
    'formal_innovation', 'cultural_influence', 'festival_wins', 'movements',
    'show_count', 'last_shown_at',
)

DERIVED_COLUMNS = ('derived_tags', 'moods', 'base_canon_score', 'arthouse_score', 'show_count', 'last_shown_at')


class ConnectionPool:
    """
    One SQLite connection per thread, with transaction nesting tracked per thread.

    The impression recorder writes show counts from its worker threads while
    the calling thread reads the catalog, so each thread gets its own handle.
    """

    def __init__(self, db_path):
        self._db_path = db_path
        self._lock = threading.Lock()
        self._connections: dict[int, sqlite3.Connection] = {}
        self._transaction_depth: dict[int, int] = {}

    def _create_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row

        conn.execute("PRAGMA busy_timeout = 5000")
        conn.execute("PRAGMA journal_mode = WAL")  # Readers don't block the show-count writer
        conn.execute("PRAGMA synchronous = NORMAL")

        return conn

    def get_connection(self) -> sqlite3.Connection:
        """Get the current thread's connection, opening it on first use."""
        thread_id = threading.get_ident()
        with self._lock:
            conn = self._connections.get(thread_id)
            if conn is None:
                conn = self._create_connection()
                self._connections[thread_id] = conn
                self._transaction_depth[thread_id] = 0
                logger.debug(f"Opened connection for thread {thread_id} ({len(self._connections)} open)")
            return conn

    def get_transaction_depth(self) -> int:
        return self._transaction_depth.get(threading.get_ident(), 0)

    def increment_transaction_depth(self):
        thread_id = threading.get_ident()
        with self._lock:
            self._transaction_depth[thread_id] = self._transaction_depth.get(thread_id, 0) + 1

    def decrement_transaction_depth(self):
        thread_id = threading.get_ident()
        with self._lock:
            depth = self._transaction_depth.get(thread_id, 1)
            self._transaction_depth[thread_id] = max(0, depth - 1)

    def close_all(self):
        """Close every thread's connection."""
        with self._lock:
            for thread_id, conn in list(self._connections.items()):
                try:
                    conn.close()
                except sqlite3.Error as e:
                    logger.warning(f"Error closing connection for thread {thread_id}: {e}")

            self._connections.clear()
            self._transaction_depth.clear()
            logger.debug("Connection pool closed")


# Global pool instance
_pool: ConnectionPool | None = None
_pool_lock = threading.Lock()


def init_db() -> None:
    DB_PATH.parent.mkdir(exist_ok=True, parents=True)
    with get_db() as conn:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS films (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL DEFAULT '',
                year INTEGER,
                decade INTEGER,
                synopsis TEXT,
                keywords TEXT,      -- JSON list
                genres TEXT,        -- JSON list
                country TEXT,
                directors TEXT,     -- JSON list, primary director first
                popularity REAL DEFAULT 0,
                vote_average REAL DEFAULT 0,
                vote_count INTEGER DEFAULT 0,
                tier INTEGER DEFAULT 3
            );

            CREATE INDEX IF NOT EXISTS idx_film_title ON films(title);
            CREATE INDEX IF NOT EXISTS idx_film_tier ON films(tier);
        """)

        _migrate_films_table(conn)

        conn.executescript("""
            CREATE INDEX IF NOT EXISTS idx_film_decade ON films(decade);
            CREATE INDEX IF NOT EXISTS idx_film_arthouse ON films(arthouse_score);
            CREATE INDEX IF NOT EXISTS idx_film_canon ON films(base_canon_score);
        """)


def _migrate_films_table(conn):
    """Add discovery columns to a films table created before they existed."""
    cursor = conn.cursor()
    cursor.execute("PRAGMA table_info(films)")
    existing_columns = {row[1] for row in cursor.fetchall()}

    new_columns = {
        'derived_tags': 'TEXT',
        'moods': 'TEXT',
        'base_canon_score': 'INTEGER DEFAULT 0',
        'arthouse_score': 'INTEGER DEFAULT 0',
        'depth_score': 'REAL DEFAULT 50',
        'formal_innovation': 'REAL DEFAULT 0',
        'cultural_influence': 'REAL DEFAULT 0',
        'festival_wins': 'TEXT',
        'movements': 'TEXT',
        'show_count': 'INTEGER DEFAULT 0',
        'last_shown_at': 'TEXT',
    }

    for col_name, col_type in new_columns.items():
        if col_name not in existing_columns:
            try:
                conn.execute(f"ALTER TABLE films ADD COLUMN {col_name} {col_type}")
                logger.debug(f"Added column '{col_name}' to films table")
            except sqlite3.Error as e:
                logger.warning(f"Could not add column '{col_name}': {e}")


def _get_pool() -> ConnectionPool:
    """Get or create the global connection pool."""
    global _pool
    if _pool is None:
        with _pool_lock:
            if _pool is None:
                DB_PATH.parent.mkdir(exist_ok=True, parents=True)
                _pool = ConnectionPool(DB_PATH)
    return _pool


@contextmanager
def get_db(read_only: bool = False):
    """
    Get database connection with proper transaction handling.

    Args:
        read_only: If True, skip commit on exit (optimization for read operations)

    Handles nested calls correctly:
    - Only the outermost context commits/rollbacks
    - Inner contexts are no-ops for transaction control
    """
    pool = _get_pool()
    conn = pool.get_connection()

    is_outermost = pool.get_transaction_depth() == 0
    pool.increment_transaction_depth()

    try:
        yield conn

        if is_outermost and not read_only:
            conn.commit()

    except Exception:
        if is_outermost:
            conn.rollback()
        raise

    finally:
        pool.decrement_transaction_depth()


def close_pool():
    """Close the connection pool. Call on application shutdown."""
    global _pool
    if _pool is not None:
        _pool.close_all()
        _pool = None


def load_json(val, default=None):
    """Safely load JSON from db field."""
    if default is None:
        default = []
    if not val:
        return default
    if isinstance(val, (list, dict)):
        return val
    try:
        return json.loads(val)
    except (json.JSONDecodeError, TypeError) as e:
        logger.warning(f"Failed to parse JSON '{str(val)[:50]}...': {e}")
        return default


def _row_to_film(row: sqlite3.Row) -> Film:
    data = dict(row)
    for col in JSON_COLUMNS:
        data[col] = load_json(data.get(col), {} if col == 'moods' else [])
    return Film.from_dict(data)


def _film_to_params(film: Film) -> dict:
    data = film.to_dict()
    for col in JSON_COLUMNS:
        data[col] = json.dumps(data[col])
    return {col: data[col] for col in FILM_COLUMNS}


def upsert_films(films: list[Film]) -> int:
    """Insert or replace whole film rows, counters included."""
    if not films:
        return 0

    columns = ', '.join(FILM_COLUMNS)
    placeholders = ', '.join(f':{c}' for c in FILM_COLUMNS)
    with get_db() as conn:
        conn.executemany(
            f"INSERT OR REPLACE INTO films ({columns}) VALUES ({placeholders})",
            [_film_to_params(f) for f in films],
        )
    logger.debug(f"Upserted {len(films)} films")
    return len(films)


def load_films(decade: int | None = None) -> list[Film]:
    """Load the catalog, or a single decade of it, in insertion order."""
    with get_db(read_only=True) as conn:
        if decade is None:
            rows = conn.execute("SELECT * FROM films ORDER BY rowid").fetchall()
        else:
            rows = conn.execute("SELECT * FROM films WHERE decade = ? ORDER BY rowid", (decade,)).fetchall()
    return [_row_to_film(r) for r in rows]


def find_films_by_title(fragment: str) -> list[Film]:
    """Case-insensitive title substring search."""
    with get_db(read_only=True) as conn:
        rows = conn.execute(
            "SELECT * FROM films WHERE title LIKE ? ORDER BY year",
            (f"%{fragment}%",),
        ).fetchall()
    return [_row_to_film(r) for r in rows]


def update_derived_fields(films: list[Film]) -> int:
    """Write cached scores, tags and moods back for already-stored films."""
    if not films:
        return 0

    assignments = ', '.join(f"{c} = :{c}" for c in DERIVED_COLUMNS)
    rows = []
    for film in films:
        params = _film_to_params(film)
        rows.append({c: params[c] for c in DERIVED_COLUMNS + ('id',)})

    with get_db() as conn:
        conn.executemany(f"UPDATE films SET {assignments} WHERE id = :id", rows)
    return len(films)


def record_impressions(film_ids: list[str], shown_at: datetime | None = None) -> int:
    """
    Bump show_count and stamp last_shown_at for served films.

    Concurrent bumps are plain increments without cross-request locking;
    an occasional lost update is acceptable for this counter.
    """
    if not film_ids:
        return 0

    stamp = (shown_at or datetime.now(timezone.utc)).isoformat()
    updated = 0
    with get_db() as conn:
        for i in range(0, len(film_ids), CHUNK_SIZE):
            chunk = film_ids[i:i + CHUNK_SIZE]
            placeholders = ','.join('?' * len(chunk))
            cursor = conn.execute(
                f"UPDATE films SET show_count = COALESCE(show_count, 0) + 1, last_shown_at = ? "
                f"WHERE id IN ({placeholders})",
                [stamp, *chunk],
            )
            updated += cursor.rowcount
    return updated


def delete_films(film_ids: list[str]) -> int:
    if not film_ids:
        return 0

    deleted = 0
    with get_db() as conn:
        for i in range(0, len(film_ids), CHUNK_SIZE):
            chunk = film_ids[i:i + CHUNK_SIZE]
            placeholders = ','.join('?' * len(chunk))
            cursor = conn.execute(f"DELETE FROM films WHERE id IN ({placeholders})", chunk)
            deleted += cursor.rowcount
    logger.debug(f"Deleted {deleted} films")
    return deleted


def catalog_stats() -> dict:
    """Film count, per-tier counts and average arthouse score."""
    with get_db(read_only=True) as conn:
        total = conn.execute("SELECT COUNT(*) FROM films").fetchone()[0]
        tiers = {
            row['tier']: row['n']
            for row in conn.execute("SELECT tier, COUNT(*) AS n FROM films GROUP BY tier ORDER BY tier")
        }
        avg = conn.execute("SELECT AVG(arthouse_score) FROM films").fetchone()[0]
    return {
        'total': total,
        'tiers': tiers,
        'avg_arthouse_score': round(avg, 1) if avg is not None else None,
    }


def run_maintenance(vacuum: bool = True, analyze: bool = True) -> None:
    """
    Run optional VACUUM/ANALYZE after bulk writes.
    Uses a dedicated connection to avoid interfering with pooled transactions.
    """
    if not vacuum and not analyze:
        return

    conn = sqlite3.connect(DB_PATH)
    try:
        if vacuum:
            conn.execute("VACUUM")
        if analyze:
            conn.execute("ANALYZE")
        conn.commit()
    finally:
        conn.close()
