import logging
import sqlite3
from typing import List, Optional

from lending.book import Book
from lending.catalog_store import CatalogStore
from lending.database import session, unit_of_work
from lending.results import Result
from lending.views import BookView, ListBooksRequest, Page, clamp_paging


class CatalogService:
    """Creates books and searches the catalog."""

    def __init__(self, db_file: Optional[str] = None, logger: Optional[logging.Logger] = None) -> None:
        self.db_file = db_file
        self.logger = logger or logging.getLogger(__name__)

    def list_books(self, request: ListBooksRequest) -> Page[BookView]:
        page_number, page_size = clamp_paging(request.page_number, request.page_size)
        terms = request.search_terms()
        # search terms take over from the individual field filters
        name = author = isbn = None
        if not terms:
            name, author, isbn = request.name, request.author, request.isbn

        try:
            with session(self.db_file) as conn:
                items, total = CatalogStore(conn).get_filtered(
                    page_number,
                    page_size,
                    name=name,
                    author=author,
                    isbn=isbn,
                    sort_by=request.sort_by,
                    sort_direction=request.sort_direction,
                    only_available=request.only_available,
                    search_terms=terms,
                )
        except sqlite3.Error:
            self.logger.exception("Error listing books")
            raise

        return Page(
            items=[BookView.from_book(b) for b in items],
            total_count=total,
            page_number=page_number,
            page_size=page_size,
        )

    def get_book(self, book_id: str) -> Result[BookView]:
        with session(self.db_file) as conn:
            book = CatalogStore(conn).get_by_id(book_id)
        if book is None:
            return Result.not_found(f"Book with ID '{book_id}' not found.")
        return Result.success(BookView.from_book(book))

    def create_book(
        self,
        name: str,
        author: str,
        issue_year: int,
        isbn: str,
        number_of_pieces: int,
    ) -> Result[BookView]:
        """Add a book unless the (name, author, isbn) combination already exists.

        Input format (ISBN checksum, lengths, year range) is checked by
        ``lending.validators.validate_new_book`` before this is called.
        """
        book = Book(
            name=name,
            author=author,
            issue_year=issue_year,
            isbn=isbn,
            number_of_pieces=number_of_pieces,
        )
        try:
            with unit_of_work(self.db_file) as conn:
                store = CatalogStore(conn)
                if store.exists_by_name_author_isbn(name, author, isbn):
                    self.logger.warning(
                        "Duplicate book: Name=%s, Author=%s, ISBN=%s", name, author, isbn,
                        extra={"isbn": isbn},
                    )
                    return Result.conflict(
                        f"A book with the combination of Name '{name}', Author '{author}', "
                        f"and ISBN '{isbn}' already exists."
                    )
                store.add(book)
        except sqlite3.IntegrityError as e:
            if "UNIQUE" not in str(e):
                self.logger.exception("Error adding book: Name=%s, Author=%s, ISBN=%s", name, author, isbn)
                raise
            # the triple is free but the ISBN alone is taken by another book
            self.logger.warning("Duplicate ISBN: ISBN=%s", isbn, extra={"isbn": isbn})
            return Result.conflict(f"A book with ISBN '{isbn}' already exists.")
        except sqlite3.Error:
            self.logger.exception("Error adding book: Name=%s, Author=%s, ISBN=%s", name, author, isbn)
            raise

        self.logger.info("Book created: Id=%s, Name=%s", book.id, book.name, extra={"book_id": book.id})
        return Result.success(BookView.from_book(book), message="Book created successfully")

    def name_suggestions(self, prefix: Optional[str]) -> List[str]:
        with session(self.db_file) as conn:
            return CatalogStore(conn).name_suggestions(prefix)

    def author_suggestions(self, prefix: Optional[str]) -> List[str]:
        with session(self.db_file) as conn:
            return CatalogStore(conn).author_suggestions(prefix)
