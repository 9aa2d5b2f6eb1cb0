import logging
import sqlite3
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence

from lending.catalog_store import CatalogStore
from lending.database import session, unit_of_work
from lending.loan import Loan, utcnow
from lending.loan_store import LoanStore
from lending.results import Result
from lending.views import BorrowResult, BorrowStatus, LoanHistoryItem, Page, clamp_paging


def available_copies(number_of_pieces: int, active_loans: int) -> int:
    """Copies left on the shelf; never negative even if history over-allocated."""
    return max(0, number_of_pieces - active_loans)


def _not_found(book_id: str) -> str:
    return f"Book with ID '{book_id}' not found."


class LoanService:
    """Borrow/return state machine and the per-user views over loans.

    Every mutation re-reads the book and its loans inside one
    :func:`lending.database.unit_of_work`, so the availability and ownership
    checks and the write they guard commit together or not at all.
    """

    def __init__(
        self,
        db_file: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.db_file = db_file
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock or utcnow

    # ------------------------- Mutations ------------------------- #
    def borrow(self, book_id: str, user_id: int) -> Result[BorrowResult]:
        log_extra = {"book_id": book_id, "user_id": user_id}
        try:
            with unit_of_work(self.db_file) as conn:
                books = CatalogStore(conn)
                loans = LoanStore(conn)

                book = books.get_by_id(book_id)
                if book is None:
                    self.logger.warning(
                        "Borrow failed: book not found. BookId=%s, UserId=%s", book_id, user_id, extra=log_extra
                    )
                    return Result.not_found(_not_found(book_id))

                active = loans.active_count_by_book(book_id)
                if book.number_of_pieces - active <= 0:
                    self.logger.warning(
                        "Borrow failed: no copies available. BookId=%s, UserId=%s", book_id, user_id, extra=log_extra
                    )
                    return Result.conflict(
                        f"No available copies of this book. Currently {active} out of "
                        f"{book.number_of_pieces} are borrowed."
                    )

                if loans.oldest_active_loan(book_id, user_id) is not None:
                    self.logger.warning(
                        "Borrow failed: user already has this book. BookId=%s, UserId=%s",
                        book_id, user_id, extra=log_extra,
                    )
                    return Result.conflict("You already have this book borrowed.")

                loan = Loan(book_id=book_id, user_id=user_id, borrowed_date=self.clock())
                loans.add(loan)
        except sqlite3.Error:
            self.logger.exception("Error borrowing book: BookId=%s, UserId=%s", book_id, user_id, extra=log_extra)
            raise

        self.logger.info(
            "User %s borrowed book %s, LoanId=%s", user_id, book_id, loan.id,
            extra={**log_extra, "loan_id": loan.id},
        )
        return Result.success(
            BorrowResult(
                loan_id=loan.id,
                book_id=loan.book_id,
                user_id=loan.user_id,
                borrowed_date=loan.borrowed_date,
                message="Book borrowed successfully",
            ),
            message="Book borrowed successfully",
        )

    def return_book(self, book_id: str, user_id: int) -> Result[None]:
        log_extra = {"book_id": book_id, "user_id": user_id}
        try:
            with unit_of_work(self.db_file) as conn:
                loans = LoanStore(conn)
                loan = loans.oldest_active_loan(book_id, user_id)
                if loan is None:
                    self.logger.warning(
                        "Return failed: no active loan. BookId=%s, UserId=%s", book_id, user_id, extra=log_extra
                    )
                    return Result.conflict("You don't have an active loan for this book.")

                if not CatalogStore(conn).exists(book_id):
                    self.logger.error(
                        "Book not found for return: BookId=%s, UserId=%s", book_id, user_id, extra=log_extra
                    )
                    return Result.not_found(_not_found(book_id))

                loan.mark_returned(self.clock())
                loans.mark_returned(loan)
        except sqlite3.Error:
            self.logger.exception("Error returning book: BookId=%s, UserId=%s", book_id, user_id, extra=log_extra)
            raise

        self.logger.info(
            "User %s returned book %s, LoanId=%s", user_id, book_id, loan.id,
            extra={**log_extra, "loan_id": loan.id},
        )
        return Result.success(message="Book returned successfully")

    # ------------------------- Availability ------------------------- #
    def borrow_status(self, book_id: str, user_id: int) -> Result[BorrowStatus]:
        with session(self.db_file) as conn:
            book = CatalogStore(conn).get_by_id(book_id)
            if book is None:
                return Result.not_found(_not_found(book_id))
            counts = LoanStore(conn).active_counts_by_books([book_id], user_id)

        total, mine = counts.get(book_id, (0, 0))
        return Result.success(
            BorrowStatus(
                book_id=book_id,
                is_borrowed_by_user=mine > 0,
                active_loan_count=mine,
                available_count=available_copies(book.number_of_pieces, total),
            )
        )

    def borrow_status_batch(self, book_ids: Optional[Sequence[str]], user_id: int) -> Dict[str, BorrowStatus]:
        """Status for each id that names an existing book; unknown ids are skipped."""
        if not book_ids:
            return {}
        with session(self.db_file) as conn:
            books = CatalogStore(conn).get_by_ids(book_ids)
            counts = LoanStore(conn).active_counts_by_books(book_ids, user_id)

        result: Dict[str, BorrowStatus] = {}
        for book in books:
            total, mine = counts.get(book.id, (0, 0))
            result[book.id] = BorrowStatus(
                book_id=book.id,
                is_borrowed_by_user=mine > 0,
                active_loan_count=mine,
                available_count=available_copies(book.number_of_pieces, total),
            )
        return result

    def available_count(self, book_id: str) -> Result[int]:
        with session(self.db_file) as conn:
            book = CatalogStore(conn).get_by_id(book_id)
            if book is None:
                return Result.not_found(_not_found(book_id))
            active = LoanStore(conn).active_count_by_book(book_id)
        return Result.success(available_copies(book.number_of_pieces, active))

    # ------------------------- History ------------------------- #
    def user_borrowed_books(self, user_id: int) -> List[LoanHistoryItem]:
        with session(self.db_file) as conn:
            pairs = LoanStore(conn).user_borrowed(user_id)
        items = [LoanHistoryItem.from_pair(loan, book) for loan, book in pairs]
        self.logger.info("Retrieved %d borrowed books for user %s", len(items), user_id, extra={"user_id": user_id})
        return items

    def user_returned_books(self, user_id: int) -> List[LoanHistoryItem]:
        with session(self.db_file) as conn:
            pairs = LoanStore(conn).user_returned(user_id)
        items = [LoanHistoryItem.from_pair(loan, book) for loan, book in pairs]
        self.logger.info("Retrieved %d returned books for user %s", len(items), user_id, extra={"user_id": user_id})
        return items

    def user_loan_history(self, user_id: int, page_number: int, page_size: int) -> Page[LoanHistoryItem]:
        page, size = clamp_paging(page_number, page_size)
        with session(self.db_file) as conn:
            pairs, total = LoanStore(conn).user_history_paged(user_id, True, page, size)
        return Page(
            items=[LoanHistoryItem.from_pair(loan, book) for loan, book in pairs],
            total_count=total,
            page_number=page,
            page_size=size,
        )
