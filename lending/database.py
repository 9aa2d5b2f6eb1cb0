import logging
import sqlite3
from contextlib import contextmanager
from typing import Iterator, Optional

from lending.config import settings

logger = logging.getLogger(__name__)


def _casefold(value: Optional[str]) -> Optional[str]:
    return value.casefold() if value is not None else None


def resolve_db_file(db_file: Optional[str] = None) -> str:
    return db_file or settings.database_file


def get_db_connection(db_file: Optional[str] = None) -> sqlite3.Connection:
    """Open a connection to the SQLite database.

    Rows come back as ``sqlite3.Row``, foreign keys are enforced and a
    ``casefold`` SQL function is registered for case-insensitive matching
    that also works outside ASCII (SQLite's own ``lower`` and ``LIKE`` do not).
    Transactions are controlled explicitly by :func:`unit_of_work`.
    """
    conn = sqlite3.connect(resolve_db_file(db_file), isolation_level=None, timeout=30)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    conn.create_function("casefold", 1, _casefold, deterministic=True)
    return conn


def create_tables(db_file: Optional[str] = None) -> None:
    """Create the users, books and loans tables and their indexes if missing."""
    conn = get_db_connection(db_file)
    try:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS users (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                login TEXT UNIQUE NOT NULL
            );

            CREATE TABLE IF NOT EXISTS books (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                author TEXT NOT NULL,
                issue_year INTEGER NOT NULL,
                isbn TEXT NOT NULL,
                number_of_pieces INTEGER NOT NULL CHECK(number_of_pieces >= 0)
            );

            CREATE TABLE IF NOT EXISTS loans (
                id TEXT PRIMARY KEY,
                book_id TEXT NOT NULL,
                user_id INTEGER NOT NULL,
                borrowed_date TEXT NOT NULL,
                returned_date TEXT,
                FOREIGN KEY (book_id) REFERENCES books(id) ON DELETE RESTRICT
            );

            CREATE UNIQUE INDEX IF NOT EXISTS ux_books_isbn ON books(isbn);
            CREATE UNIQUE INDEX IF NOT EXISTS ux_books_name_author_isbn ON books(name, author, isbn);

            CREATE INDEX IF NOT EXISTS idx_loans_book_id ON loans(book_id);
            CREATE INDEX IF NOT EXISTS idx_loans_user_id ON loans(user_id);
            CREATE INDEX IF NOT EXISTS idx_loans_book_id_returned_date ON loans(book_id, returned_date);

            -- at most one active loan per (book, user)
            CREATE UNIQUE INDEX IF NOT EXISTS ux_loans_active_book_user
                ON loans(book_id, user_id) WHERE returned_date IS NULL;
        """)
    finally:
        conn.close()


def initialize_database(db_file: Optional[str] = None) -> None:
    """Initialize the database, creating tables when needed."""
    create_tables(db_file)
    logger.debug("Database initialized at %s", resolve_db_file(db_file))


@contextmanager
def session(db_file: Optional[str] = None) -> Iterator[sqlite3.Connection]:
    """Yield a connection for read-only work and always close it."""
    conn = get_db_connection(db_file)
    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def unit_of_work(db_file: Optional[str] = None) -> Iterator[sqlite3.Connection]:
    """Yield a connection inside a single write transaction.

    ``BEGIN IMMEDIATE`` takes SQLite's reserved lock before the first read, so
    the checks a caller performs inside the block and the write that follows
    are serialized against every other unit of work on the same file.
    The transaction commits when the block exits normally and rolls back on
    any exception, cancellation included.
    """
    conn = get_db_connection(db_file)
    try:
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except BaseException:
            conn.rollback()
            raise
        else:
            conn.commit()
    finally:
        conn.close()
