import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime

logger = logging.getLogger(__name__)


class Database:
    def __init__(self, db_name="ems.db"):
        """
        Initialize the SQLite-backed key-value store.
        Use ":memory:" for a throwaway store (tests, smoke runs).
        """
        self.db_name = db_name
        self.conn = sqlite3.connect(db_name, check_same_thread=False)
        self.lock = threading.RLock()
        self.create_tables()

    def create_tables(self):
        """Create the key-value table."""
        with self.lock:
            cursor = self.conn.cursor()
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            ''')
            self.conn.commit()

    @contextmanager
    def transaction(self):
        """Hold the lock and commit on success, roll back on failure."""
        with self.lock:
            cursor = self.conn.cursor()
            try:
                yield cursor
                self.conn.commit()
            except Exception:
                self.conn.rollback()
                logger.error("Transaction rolled back", exc_info=True)
                raise

    def get_item(self, key):
        """Retrieve the raw value stored under a key, or None."""
        with self.lock:
            cursor = self.conn.cursor()
            cursor.execute('SELECT value FROM kv_store WHERE key = ?', (key,))
            row = cursor.fetchone()
        return row[0] if row else None

    def set_item(self, key, value):
        """Store a raw value under a key."""
        self.set_many({key: value})

    def set_many(self, items):
        """Store several keys in one transaction; either all land or none do."""
        stamp = datetime.now().isoformat()
        with self.transaction() as cursor:
            for key, value in items.items():
                cursor.execute('''
                    INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                ''', (key, value, stamp))

    def remove_item(self, key):
        """Delete a key. Returns True if it existed."""
        with self.transaction() as cursor:
            cursor.execute('DELETE FROM kv_store WHERE key = ?', (key,))
            return cursor.rowcount > 0

    def keys(self):
        """List all stored keys."""
        with self.lock:
            cursor = self.conn.cursor()
            cursor.execute('SELECT key FROM kv_store ORDER BY key')
            return [row[0] for row in cursor.fetchall()]

    def ping(self):
        """Round-trip a throwaway key to check the store is writable."""
        self.set_item("ems_health_check", "test")
        self.remove_item("ems_health_check")
        return True

    def close(self):
        """Close the database connection."""
        self.conn.close()
