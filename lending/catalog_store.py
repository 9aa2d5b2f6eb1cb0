import sqlite3
from typing import Iterable, List, Optional, Sequence, Tuple

from lending.book import Book
from lending.config import settings
from lending.views import clamp_paging

BOOK_COLUMNS = "b.id, b.name, b.author, b.issue_year, b.isbn, b.number_of_pieces"

# Rows with a blank id, name, author or isbn are never listed or suggested.
_COMPLETE_ROW = (
    "b.id <> '' AND b.name <> '' AND b.author <> '' AND b.isbn <> ''"
)

_ACTIVE_LOANS_FOR_BOOK = (
    "(SELECT COUNT(*) FROM loans l WHERE l.book_id = b.id AND l.returned_date IS NULL)"
)


def _contains(column: str) -> str:
    return f"instr(casefold({column}), ?) > 0"


class CatalogStore:
    """Book records on one open connection."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def get_by_id(self, book_id: str) -> Optional[Book]:
        row = self.conn.execute(
            f"SELECT {BOOK_COLUMNS} FROM books b WHERE b.id = ?", (book_id,)
        ).fetchone()
        return Book.from_row(row) if row else None

    def get_by_ids(self, book_ids: Optional[Sequence[str]]) -> List[Book]:
        if not book_ids:
            return []
        unique_ids = list(dict.fromkeys(book_ids))
        placeholders = ", ".join("?" for _ in unique_ids)
        rows = self.conn.execute(
            f"SELECT {BOOK_COLUMNS} FROM books b WHERE b.id IN ({placeholders})",
            unique_ids,
        ).fetchall()
        return [Book.from_row(row) for row in rows]

    def exists(self, book_id: str) -> bool:
        row = self.conn.execute("SELECT 1 FROM books WHERE id = ?", (book_id,)).fetchone()
        return row is not None

    def exists_by_name_author_isbn(self, name: str, author: str, isbn: str) -> bool:
        row = self.conn.execute(
            "SELECT 1 FROM books WHERE name = ? AND author = ? AND isbn = ?",
            (name, author, isbn),
        ).fetchone()
        return row is not None

    def add(self, book: Book) -> None:
        self.conn.execute(
            """
            INSERT INTO books (id, name, author, issue_year, isbn, number_of_pieces)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (book.id, book.name, book.author, book.issue_year, book.isbn, book.number_of_pieces),
        )

    def count(self) -> int:
        return self.conn.execute("SELECT COUNT(*) FROM books").fetchone()[0]

    def get_filtered(
        self,
        page_number: int,
        page_size: int,
        name: Optional[str] = None,
        author: Optional[str] = None,
        isbn: Optional[str] = None,
        sort_by: Optional[str] = None,
        sort_direction: Optional[str] = None,
        only_available: bool = False,
        search_terms: Optional[Iterable[str]] = None,
    ) -> Tuple[List[Book], int]:
        """Return one page of books and the total number of matches.

        Non-blank ``search_terms`` are ANDed together and each must match the
        name, author or ISBN of the book; in that mode the individual filters
        are ignored. Otherwise non-blank ``name``, ``author`` and ``isbn`` are
        ANDed substring filters. All matching is case-insensitive.
        """
        clauses = [_COMPLETE_ROW]
        params: List[object] = []

        terms = [t.strip() for t in (search_terms or []) if t and t.strip()]
        if terms:
            for term in terms:
                clauses.append(f"({_contains('b.name')} OR {_contains('b.author')} OR {_contains('b.isbn')})")
                folded = term.casefold()
                params.extend([folded, folded, folded])
        else:
            for column, value in (("b.name", name), ("b.author", author), ("b.isbn", isbn)):
                if value and value.strip():
                    clauses.append(_contains(column))
                    params.append(value.strip().casefold())

        if only_available:
            clauses.append(f"b.number_of_pieces > {_ACTIVE_LOANS_FOR_BOOK}")

        where = " AND ".join(clauses)
        total = self.conn.execute(
            f"SELECT COUNT(*) FROM books b WHERE {where}", params
        ).fetchone()[0]

        page, size = clamp_paging(page_number, page_size)
        order = self._order_clause(sort_by, sort_direction)
        rows = self.conn.execute(
            f"SELECT {BOOK_COLUMNS} FROM books b WHERE {where} {order} LIMIT ? OFFSET ?",
            [*params, size, (page - 1) * size],
        ).fetchall()
        return [Book.from_row(row) for row in rows], total

    @staticmethod
    def _order_clause(sort_by: Optional[str], sort_direction: Optional[str]) -> str:
        direction = "DESC" if (sort_direction or "").strip().lower() == "desc" else "ASC"
        key = (sort_by or "").strip().lower()
        if key == "author":
            primary, secondary = "b.author", "b.name"
        else:
            primary, secondary = "b.name", "b.author"
        return (
            f"ORDER BY casefold({primary}) {direction}, {primary} {direction}, "
            f"casefold({secondary}) ASC, b.id ASC"
        )

    def name_suggestions(self, prefix: Optional[str], limit: Optional[int] = None) -> List[str]:
        return self._suggestions("name", prefix, limit)

    def author_suggestions(self, prefix: Optional[str], limit: Optional[int] = None) -> List[str]:
        return self._suggestions("author", prefix, limit)

    def _suggestions(self, column: str, prefix: Optional[str], limit: Optional[int]) -> List[str]:
        if prefix is None or not prefix.strip():
            return []
        rows = self.conn.execute(
            f"""
            SELECT value FROM (
                SELECT DISTINCT b.{column} AS value FROM books b
                WHERE {_COMPLETE_ROW} AND instr(casefold(b.{column}), ?) = 1
            )
            ORDER BY casefold(value), value
            LIMIT ?
            """,
            (prefix.casefold(), limit or settings.suggestion_limit),
        ).fetchall()
        return [row["value"] for row in rows]
