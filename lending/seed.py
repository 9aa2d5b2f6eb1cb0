import logging
from typing import Dict, List, Optional

from lending.book import Book
from lending.catalog_store import CatalogStore
from lending.database import initialize_database, unit_of_work
from lending.user_store import UserDirectory
from lending.validators import ISBNValidator

logger = logging.getLogger(__name__)

DEMO_USERS = [
    (1, "simpleUser"),
    (2, "adminUser"),
    (3, "apiUser"),
]

# name, author, issue year, middle ISBN digits, copies
DEMO_BOOKS = [
    ("Osudová noc", "Eva Nováková", 2018, "802490001", 12),
    ("Řeka stínů", "Jan Černý", 2019, "802490002", 8),
    ("Harry Potter and the Philosopher's Stone", "J. K. Rowling", 1997, "074753269", 5),
    ("Harry Potter and the Chamber of Secrets", "J. K. Rowling", 1998, "074753849", 4),
    ("The Casual Vacancy", "J. K. Rowling", 2012, "031622853", 2),
    ("Dune", "Frank Herbert", 1965, "044117271", 3),
    ("The C Programming Language", "Brian W. Kernighan", 1988, "013110362", 2),
    ("Clean Code", "Robert C. Martin", 2008, "013235088", 3),
    ("Sapiens", "Yuval Noah Harari", 2014, "009959008", 1),
    ("Ulysses", "James Joyce", 1922, "019953567", 0),
]


def seed_demo_data(db_file: Optional[str] = None) -> Dict[str, int]:
    """Insert demo users and books into empty tables; existing data is left alone.

    Returns how many users and books were inserted.
    """
    initialize_database(db_file)
    inserted = {"users": 0, "books": 0}
    with unit_of_work(db_file) as conn:
        users = UserDirectory(conn)
        if users.count() == 0:
            for user_id, login in DEMO_USERS:
                users.add(login, user_id=user_id)
            inserted["users"] = len(DEMO_USERS)
        else:
            logger.info("Users already exist in database. Skipping seed.")

        books = CatalogStore(conn)
        if books.count() == 0:
            for book in demo_books():
                books.add(book)
            inserted["books"] = len(DEMO_BOOKS)
        else:
            logger.info("Books already exist in database. Skipping seed.")

    logger.info("Seeded %d users and %d books", inserted["users"], inserted["books"])
    return inserted


def demo_books() -> List[Book]:
    return [
        Book(
            name=name,
            author=author,
            issue_year=year,
            isbn=ISBNValidator.generate_isbn13("978", middle),
            number_of_pieces=copies,
        )
        for name, author, year, middle, copies in DEMO_BOOKS
    ]
