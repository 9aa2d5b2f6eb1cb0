import sqlite3
from typing import Dict, List, Optional, Sequence, Tuple

from lending.book import Book
from lending.loan import Loan, format_timestamp
from lending.views import clamp_paging

LOAN_COLUMNS = "l.id, l.book_id, l.user_id, l.borrowed_date, l.returned_date"

# Book columns aliased so that a joined row can feed both Loan.from_row and Book.from_row.
_JOINED_COLUMNS = (
    "l.id AS loan_id, l.book_id, l.user_id, l.borrowed_date, l.returned_date, "
    "b.id AS id, b.name, b.author, b.issue_year, b.isbn, b.number_of_pieces"
)


def _pair(row: sqlite3.Row) -> Tuple[Loan, Book]:
    data = dict(row)
    loan = Loan.from_row({**data, "id": data["loan_id"]})
    return loan, Book.from_row(data)


class LoanStore:
    """Loan records on one open connection."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def active_count_by_book(self, book_id: str) -> int:
        return self.conn.execute(
            "SELECT COUNT(*) FROM loans WHERE book_id = ? AND returned_date IS NULL",
            (book_id,),
        ).fetchone()[0]

    def active_counts_by_books(
        self, book_ids: Optional[Sequence[str]], user_id: int
    ) -> Dict[str, Tuple[int, int]]:
        """Map each book id with active loans to ``(total_active, user_active)``.

        Books without any active loan are absent from the result.
        """
        if not book_ids:
            return {}
        unique_ids = list(dict.fromkeys(book_ids))
        placeholders = ", ".join("?" for _ in unique_ids)
        rows = self.conn.execute(
            f"""
            SELECT book_id,
                   COUNT(*) AS total_count,
                   SUM(CASE WHEN user_id = ? THEN 1 ELSE 0 END) AS user_count
            FROM loans
            WHERE book_id IN ({placeholders}) AND returned_date IS NULL
            GROUP BY book_id
            """,
            [user_id, *unique_ids],
        ).fetchall()
        return {row["book_id"]: (row["total_count"], row["user_count"]) for row in rows}

    def oldest_active_loan(self, book_id: str, user_id: int) -> Optional[Loan]:
        row = self.conn.execute(
            f"""
            SELECT {LOAN_COLUMNS} FROM loans l
            WHERE l.book_id = ? AND l.user_id = ? AND l.returned_date IS NULL
            ORDER BY l.borrowed_date ASC, l.rowid ASC
            LIMIT 1
            """,
            (book_id, user_id),
        ).fetchone()
        return Loan.from_row(row) if row else None

    def add(self, loan: Loan) -> None:
        self.conn.execute(
            """
            INSERT INTO loans (id, book_id, user_id, borrowed_date, returned_date)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                loan.id,
                loan.book_id,
                loan.user_id,
                format_timestamp(loan.borrowed_date),
                format_timestamp(loan.returned_date) if loan.returned_date else None,
            ),
        )

    def mark_returned(self, loan: Loan) -> None:
        """Persist ``loan.returned_date``; only an active row is updated."""
        self.conn.execute(
            "UPDATE loans SET returned_date = ? WHERE id = ? AND returned_date IS NULL",
            (format_timestamp(loan.returned_date), loan.id),
        )

    def user_borrowed(self, user_id: int) -> List[Tuple[Loan, Book]]:
        """Active loans of a user joined with their books, oldest borrow first."""
        rows = self.conn.execute(
            f"""
            SELECT {_JOINED_COLUMNS}
            FROM loans l JOIN books b ON b.id = l.book_id
            WHERE l.user_id = ? AND l.returned_date IS NULL
            ORDER BY l.borrowed_date ASC, l.rowid ASC
            """,
            (user_id,),
        ).fetchall()
        return [_pair(row) for row in rows]

    def user_returned(self, user_id: int) -> List[Tuple[Loan, Book]]:
        """Returned loans of a user joined with their books, latest return first."""
        rows = self.conn.execute(
            f"""
            SELECT {_JOINED_COLUMNS}
            FROM loans l JOIN books b ON b.id = l.book_id
            WHERE l.user_id = ? AND l.returned_date IS NOT NULL
            ORDER BY l.returned_date DESC, l.rowid DESC
            """,
            (user_id,),
        ).fetchall()
        return [_pair(row) for row in rows]

    def user_history_paged(
        self, user_id: int, include_returned: bool, page_number: int, page_size: int
    ) -> Tuple[List[Tuple[Loan, Book]], int]:
        """One page of a user's loans, latest borrow first, plus the total count."""
        where = "l.user_id = ?"
        if not include_returned:
            where += " AND l.returned_date IS NULL"

        total = self.conn.execute(
            f"SELECT COUNT(*) FROM loans l JOIN books b ON b.id = l.book_id WHERE {where}",
            (user_id,),
        ).fetchone()[0]

        page, size = clamp_paging(page_number, page_size)
        rows = self.conn.execute(
            f"""
            SELECT {_JOINED_COLUMNS}
            FROM loans l JOIN books b ON b.id = l.book_id
            WHERE {where}
            ORDER BY l.borrowed_date DESC, l.rowid DESC
            LIMIT ? OFFSET ?
            """,
            (user_id, size, (page - 1) * size),
        ).fetchall()
        return [_pair(row) for row in rows], total

    def all_user_stats(self) -> Dict[int, Tuple[int, int]]:
        """Map user id to ``(borrowed_count, returned_count)`` for users with any loan."""
        rows = self.conn.execute(
            """
            SELECT user_id,
                   SUM(CASE WHEN returned_date IS NULL THEN 1 ELSE 0 END) AS borrowed_count,
                   SUM(CASE WHEN returned_date IS NOT NULL THEN 1 ELSE 0 END) AS returned_count
            FROM loans
            GROUP BY user_id
            """
        ).fetchall()
        return {row["user_id"]: (row["borrowed_count"], row["returned_count"]) for row in rows}
