import copy
import json
import logging
import os
import tempfile
from contextlib import contextmanager
from typing import Any, Dict, List

import psycopg2
from psycopg2.extras import DictCursor, execute_values

from .booking_utils import parse_datetime, to_iso
from .error_utils import StorageError

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
logger = logging.getLogger(__name__)

# Every backend speaks the same "read all / write all" contract over plain appointment records
Records = List[Dict[str, Any]]


class MemoryStorage:
    """Keeps the records in process. Lost on restart."""

    def __init__(self, records: Records = None):
        self._records = copy.deepcopy(records or [])

    def read_all(self) -> Records:
        return copy.deepcopy(self._records)

    def write_all(self, records: Records) -> None:
        self._records = copy.deepcopy(records)


class JsonFileStorage:
    """
    Stores the records as a JSON array in a single file. The file is created holding an empty array if it doesn't exist.
    """

    def __init__(self, path: str):
        self.path = os.path.abspath(path)
        if not os.path.exists(self.path):
            logger.info("Creating data file: %s", self.path)
            self.write_all([])

    def read_all(self) -> Records:
        try:
            with open(self.path, "r", encoding="utf-8") as file:
                records = json.load(file)
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Reading %s failed: %s", self.path, e)
            raise StorageError(path=self.path) from e
        if not isinstance(records, list):
            logger.error("Data file %s does not hold a JSON array", self.path)
            raise StorageError(path=self.path)
        return records

    def write_all(self, records: Records) -> None:
        # Write to a temp file in the same directory then swap it in so readers never see a half written file
        directory = os.path.dirname(self.path)
        tmp_path = None
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as file:
                json.dump(records, file, indent=2)
            os.replace(tmp_path, self.path)
        except (OSError, TypeError, ValueError) as e:
            logger.error("Writing %s failed: %s", self.path, e)
            if tmp_path and os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise StorageError(path=self.path) from e


class PostgresStorage:
    """
    Stores the records in an 'appointments' table. write_all swaps the whole table content inside one transaction.
    """

    def __init__(self, dsn: str):
        self.dsn = dsn
        self._setup_schema()

    @contextmanager
    def _database_connect(self):
        """
        Internal function to manage the Postgres database connections.
        The connection context commits on success and rolls back on error.
        """
        try:
            connection = psycopg2.connect(self.dsn)
        except psycopg2.Error as e:
            logger.error("Database connection failed: %s", e.args)
            raise StorageError() from e
        try:
            with connection:
                yield connection
        except psycopg2.Error as e:
            logger.error("Database operation failed: %s", e.args)
            raise StorageError() from e
        finally:
            connection.close()

    def read_all(self) -> Records:
        query = "SELECT id, name, email, date_time, reason, created_at FROM appointments ORDER BY id"
        logger.info("Executing query: %s", query)
        with self._database_connect() as conn:
            with conn.cursor(cursor_factory=DictCursor) as cursor:
                cursor.execute(query)
                rows = cursor.fetchall()
        return [
            {
                "id": row["id"],
                "name": row["name"],
                "email": row["email"],
                "dateTime": to_iso(row["date_time"]),
                "reason": row["reason"],
                "createdAt": to_iso(row["created_at"]),
            }
            for row in rows
        ]

    def write_all(self, records: Records) -> None:
        rows = [
            (r["id"], r["name"], r["email"], parse_datetime(r["dateTime"]), r.get("reason", ""),
             parse_datetime(r["createdAt"]))
            for r in records
        ]
        query = "INSERT INTO appointments (id, name, email, date_time, reason, created_at) VALUES %s"
        logger.info("Executing query: %s", query)
        with self._database_connect() as conn:
            with conn.cursor() as cursor:
                cursor.execute("DELETE FROM appointments;")
                if rows:
                    execute_values(cursor, query, rows)

    def _setup_schema(self):
        """
        Internal function to set-up the database schema if the table does not exist.
        """
        with self._database_connect() as conn:
            with conn.cursor() as cursor:
                cursor.execute("""
                    SELECT COUNT(*)
                    FROM information_schema.tables
                    WHERE table_schema = 'public' AND table_name = 'appointments';
                """)
                if cursor.fetchone()[0] == 0:
                    logger.info("Setting up the schema.")
                    cursor.execute("""
                        CREATE TABLE appointments (
                        id bigint PRIMARY KEY,
                        name text NOT NULL,
                        email text NOT NULL,
                        date_time timestamp with time zone NOT NULL,
                        reason text NOT NULL DEFAULT '',
                        created_at timestamp with time zone NOT NULL);
                    """)


def build_storage(config) -> Any:
    """
    Pick the storage backend named by BOOKING_STORAGE in the given config mapping.
    """
    backend = (config.get("BOOKING_STORAGE") or "memory").lower()
    match backend:
        case "memory":
            return MemoryStorage()
        case "file":
            return JsonFileStorage(config.get("BOOKING_DATA_FILE") or "data.json")
        case "postgres":
            dsn = config.get("DATABASE_URL")
            if not dsn:
                raise ValueError("DATABASE_URL must be set for postgres storage")
            return PostgresStorage(dsn)
        case _:
            raise ValueError(f"Unknown storage backend: {backend}")
