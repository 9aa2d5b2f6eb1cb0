from datetime import datetime, timedelta, timezone
from itertools import count

import pytest

from lending.database import initialize_database
from lending.services.admin_service import AdminService
from lending.services.catalog_service import CatalogService
from lending.services.loan_service import LoanService
from lending.validators import ISBNValidator


class StepClock:
    """Deterministic clock: every call is one second after the previous one."""

    def __init__(self, start=None):
        self.current = start or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        value = self.current
        self.current = self.current + timedelta(seconds=1)
        return value


@pytest.fixture
def db_file(tmp_path, request):
    # unique database file per test
    path = str(tmp_path / f"test_{request.node.name}.db")
    initialize_database(path)
    return path


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def catalog(db_file):
    return CatalogService(db_file)


@pytest.fixture
def loans(db_file, clock):
    return LoanService(db_file, clock=clock)


@pytest.fixture
def admin(db_file):
    return AdminService(db_file)


@pytest.fixture
def make_book(catalog):
    """Create a book with a fresh valid ISBN and return its view."""
    serial = count(1)

    def _make(name="Book", author="Author", issue_year=2000, copies=1, isbn=None):
        if isbn is None:
            isbn = ISBNValidator.generate_isbn13("978", f"{next(serial):09d}")
        result = catalog.create_book(name, author, issue_year, isbn, copies)
        assert result.ok, result.message
        return result.value

    return _make
