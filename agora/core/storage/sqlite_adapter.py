import sqlite3
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from agora.utils.logger import get_logger

logger = get_logger("storage.sqlite")


class SQLiteAdapter:
    """
    SQLite backend for the event journal.

    Holds append-only event rows, one per published marketplace event.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._conn_local = threading.local()

        if not self.db_path.parent.exists():
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._init_schema()
        logger.debug(f"SQLite journal ready at {self.db_path}")

    def _get_conn(self) -> sqlite3.Connection:
        """Get or create connection for current thread."""
        if not hasattr(self._conn_local, "conn"):
            self._conn_local.conn = sqlite3.connect(
                self.db_path,
                timeout=30.0,
                check_same_thread=False
            )
            self._conn_local.conn.row_factory = sqlite3.Row
            # WAL lets indexers read while the engine appends
            self._conn_local.conn.execute("PRAGMA journal_mode=WAL;")
            self._conn_local.conn.execute("PRAGMA synchronous=NORMAL;")
        return self._conn_local.conn

    def _init_schema(self):
        """Initialize database schema."""
        conn = self._get_conn()
        with conn:
            # seq restarts for every engine, so rows are keyed by journal_id
            # and grouped into runs (one per attached engine)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS events (
                    journal_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    run INTEGER NOT NULL,
                    seq INTEGER NOT NULL,
                    event_id BLOB NOT NULL,
                    event_type TEXT NOT NULL,
                    sale_id INTEGER NOT NULL,
                    timestamp INTEGER NOT NULL,
                    payload TEXT NOT NULL,
                    UNIQUE (run, seq)
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_events_sale ON events(sale_id);")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_events_type ON events(event_type);")

    # =========================================================================
    # Events
    # =========================================================================

    def save_event(
        self,
        run: int,
        seq: int,
        event_id: bytes,
        event_type: str,
        sale_id: int,
        timestamp: int,
        payload: str,
    ) -> int:
        """Append one event row; returns its journal_id."""
        conn = self._get_conn()
        with conn:
            cursor = conn.execute(
                "INSERT INTO events (run, seq, event_id, event_type, sale_id, timestamp, payload) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (run, seq, event_id, event_type, sale_id, timestamp, payload)
            )
        return cursor.lastrowid

    def get_events(
        self,
        run: Optional[int] = None,
        sale_id: Optional[int] = None,
        event_type: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Events in journal order, optionally filtered."""
        query = "SELECT * FROM events"
        clauses, params = [], []
        if run is not None:
            clauses.append("run = ?")
            params.append(run)
        if sale_id is not None:
            clauses.append("sale_id = ?")
            params.append(sale_id)
        if event_type is not None:
            clauses.append("event_type = ?")
            params.append(event_type)
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY journal_id ASC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        conn = self._get_conn()
        cursor = conn.execute(query, params)
        return [dict(row) for row in cursor]

    def count_events(self) -> int:
        conn = self._get_conn()
        cursor = conn.execute("SELECT COUNT(*) as cnt FROM events")
        return cursor.fetchone()['cnt']

    def last_run(self) -> int:
        """Highest run number recorded so far, 0 for an empty journal."""
        conn = self._get_conn()
        cursor = conn.execute("SELECT MAX(run) as run FROM events")
        return cursor.fetchone()['run'] or 0

    def close(self):
        conn = getattr(self._conn_local, "conn", None)
        if conn is not None:
            conn.close()
            del self._conn_local.conn
