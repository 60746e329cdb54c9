import sqlite3
import datetime
import os
from typing import Dict, Tuple
from lockcomp.core.lock_database import LockDatabase
from lockcomp.services.base_service import ILockStore
from lockcomp.logger import logger

class LockStore(ILockStore):
    def __init__(self, db_path: str = "data/locks.db"):
        self.db_path = db_path
        self.connection = None

    def initialize(self) -> bool:
        try:
            directory = os.path.dirname(self.db_path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            self.connection = sqlite3.connect(self.db_path)
            self._create_tables()
            logger.info(f"LockStore: Connected to {self.db_path}")
            return True
        except Exception as e:
            logger.error(f"LockStore: Failed to initialize: {e}")
            return False

    def shutdown(self) -> None:
        if self.connection:
            self.connection.close()
            self.connection = None

    def _create_tables(self):
        cursor = self.connection.cursor()

        # One row per (action, context); key is "{action_id}_{context}"
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS lock_entries (
                key TEXT PRIMARY KEY,
                mean_lock REAL NOT NULL,
                sample_count INTEGER NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        self.connection.commit()

    def read_entries(self) -> Dict[str, Tuple[float, int]]:
        if not self.connection: return {}
        try:
            cursor = self.connection.cursor()
            cursor.execute("SELECT key, mean_lock, sample_count FROM lock_entries")
            return {key: (mean_lock, sample_count) for key, mean_lock, sample_count in cursor.fetchall()}
        except Exception as e:
            logger.error(f"LockStore: Error reading entries: {e}")
            return {}

    def load_into(self, db: LockDatabase) -> int:
        loaded = db.load(self.read_entries())
        logger.info(f"LockStore: Loaded {loaded} lock entries")
        return loaded

    def save_from(self, db: LockDatabase) -> bool:
        if not self.connection: return False
        try:
            cursor = self.connection.cursor()
            now = datetime.datetime.now().isoformat()
            cursor.executemany("""
                INSERT INTO lock_entries (key, mean_lock, sample_count, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    mean_lock = excluded.mean_lock,
                    sample_count = excluded.sample_count,
                    updated_at = excluded.updated_at
            """, [(key, mean_lock, sample_count, now) for key, (mean_lock, sample_count) in db.to_dict().items()])
            self.connection.commit()
            logger.debug(f"LockStore: Saved {len(db)} lock entries")
            return True
        except Exception as e:
            logger.error(f"LockStore: Error saving entries: {e}")
            return False
