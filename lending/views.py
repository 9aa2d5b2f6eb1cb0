"""Plain values exchanged between the services and their callers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Generic, List, Optional, Tuple, TypeVar

from lending.book import Book
from lending.config import settings
from lending.loan import Loan

T = TypeVar("T")

MIN_PAGE_SIZE = 1
# largest OFFSET SQLite accepts as an INTEGER
MAX_OFFSET = 2**63 - 1


def clamp_paging(page_number: int, page_size: int) -> Tuple[int, int]:
    """Clamp to page >= 1 and 1 <= size <= max page size (oversized requests truncate).

    Page numbers whose offset would overflow SQLite are capped; such a page is simply empty.
    """
    size = max(MIN_PAGE_SIZE, min(settings.max_page_size, page_size))
    page = min(max(1, page_number), MAX_OFFSET // size + 1)
    return page, size


@dataclass
class Page(Generic[T]):
    items: List[T]
    total_count: int
    page_number: int
    page_size: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items": [item.to_dict() if hasattr(item, "to_dict") else item for item in self.items],
            "total_count": self.total_count,
            "page_number": self.page_number,
            "page_size": self.page_size,
        }


@dataclass
class ListBooksRequest:
    """Catalog search request.

    ``search`` holds comma-separated terms, each of which must match the name,
    author or ISBN of a book. When it yields no terms the individual
    ``name``/``author``/``isbn`` filters apply instead.
    """

    page_number: int = 1
    page_size: int = field(default_factory=lambda: settings.default_page_size)
    search: Optional[str] = None
    name: Optional[str] = None
    author: Optional[str] = None
    isbn: Optional[str] = None
    sort_by: Optional[str] = None
    sort_direction: Optional[str] = None
    only_available: bool = False

    def search_terms(self) -> List[str]:
        if not self.search or not self.search.strip():
            return []
        return [t.strip() for t in self.search.split(",") if t.strip()]


@dataclass
class BookView:
    id: str
    name: str
    author: str
    issue_year: int
    isbn: str
    number_of_pieces: int

    @staticmethod
    def from_book(book: Book) -> "BookView":
        return BookView(
            id=book.id,
            name=book.name,
            author=book.author,
            issue_year=book.issue_year,
            isbn=book.isbn,
            number_of_pieces=book.number_of_pieces,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "author": self.author,
            "issue_year": self.issue_year,
            "isbn": self.isbn,
            "number_of_pieces": self.number_of_pieces,
        }


@dataclass
class BorrowResult:
    loan_id: str
    book_id: str
    user_id: int
    borrowed_date: datetime
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "loan_id": self.loan_id,
            "book_id": self.book_id,
            "user_id": self.user_id,
            "borrowed_date": self.borrowed_date.isoformat(),
            "message": self.message,
        }


@dataclass
class BorrowStatus:
    """Per-user lens on a book: ``active_loan_count`` is the user's own count."""

    book_id: str
    is_borrowed_by_user: bool
    active_loan_count: int
    available_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "book_id": self.book_id,
            "is_borrowed_by_user": self.is_borrowed_by_user,
            "active_loan_count": self.active_loan_count,
            "available_count": self.available_count,
        }


@dataclass
class LoanHistoryItem:
    loan_id: str
    book_id: str
    name: str
    author: str
    issue_year: int
    isbn: str
    borrowed_date: datetime
    returned_date: Optional[datetime] = None

    @staticmethod
    def from_pair(loan: Loan, book: Book) -> "LoanHistoryItem":
        return LoanHistoryItem(
            loan_id=loan.id,
            book_id=loan.book_id,
            name=book.name,
            author=book.author,
            issue_year=book.issue_year,
            isbn=book.isbn,
            borrowed_date=loan.borrowed_date,
            returned_date=loan.returned_date,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "loan_id": self.loan_id,
            "book_id": self.book_id,
            "name": self.name,
            "author": self.author,
            "issue_year": self.issue_year,
            "isbn": self.isbn,
            "borrowed_date": self.borrowed_date.isoformat(),
            "returned_date": self.returned_date.isoformat() if self.returned_date else None,
        }


@dataclass
class UserLoanStats:
    user_id: int
    user_name: str
    borrowed_count: int = 0
    returned_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "user_name": self.user_name,
            "borrowed_count": self.borrowed_count,
            "returned_count": self.returned_count,
        }
