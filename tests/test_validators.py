import pytest

from lending.validators import ISBNValidator, validate_book_id, validate_new_book


@pytest.mark.parametrize("isbn", [
    "9780131101630",
    "9781566199094",
    "978-0-13-110163-0",
    "978 1566 199094",
])
def test_valid_isbn13(isbn):
    assert ISBNValidator.is_valid_isbn13(isbn)


@pytest.mark.parametrize("isbn", [
    "9780131101631",   # wrong check digit
    "978013110163",    # 12 digits
    "97801311016300",  # 14 digits
    "978013110163X",
    "978\t0131101630",
    "9780131101630\n",
    "978\u00a00131101630",
    "",
    None,
    "٩٧٨٠١٣١١٠١٦٣٠",   # Arabic-Indic digits
])
def test_invalid_isbn13(isbn):
    assert not ISBNValidator.is_valid_isbn13(isbn)


def test_compute_check_digit():
    assert ISBNValidator.compute_check_digit("978013110163") == 0
    assert ISBNValidator.compute_check_digit("978156619909") == 4


def test_compute_check_digit_rejects_bad_input():
    with pytest.raises(ValueError):
        ISBNValidator.compute_check_digit("97801311016")
    with pytest.raises(ValueError):
        ISBNValidator.compute_check_digit("97801311016a")


def test_generate_isbn13_is_hyphenated_and_valid():
    isbn = ISBNValidator.generate_isbn13("978", "013110163")
    assert isbn == "978-01-3110163-0"
    assert ISBNValidator.is_valid_isbn13(isbn)


def test_generate_isbn13_requires_twelve_digits():
    with pytest.raises(ValueError):
        ISBNValidator.generate_isbn13("978", "0131")


def test_validate_new_book_ok():
    assert validate_new_book("Dune", "Frank Herbert", 1965, "9780131101630", 3, current_year=2024) == []


def test_validate_new_book_collects_every_error():
    errors = validate_new_book("  ", None, None, "123", -1, current_year=2024)
    assert "Name is required" in errors
    assert "Author is required" in errors
    assert "IssueYear is required" in errors
    assert "ISBN must be a valid ISBN-13 format" in errors
    assert "Number of Pieces must be greater than or equal to 0" in errors


def test_validate_new_book_year_range():
    assert validate_new_book("A", "B", 999, "9780131101630", 1, current_year=2024) == [
        "IssueYear must be greater than or equal to 1000"
    ]
    assert validate_new_book("A", "B", 2025, "9780131101630", 1, current_year=2024) == [
        "IssueYear must be less than or equal to 2024"
    ]
    assert validate_new_book("A", "B", 2024, "9780131101630", 0, current_year=2024) == []


def test_validate_new_book_lengths():
    errors = validate_new_book("n" * 301, "a" * 201, 2000, "9780131101630", 1, current_year=2024)
    assert errors == [
        "Name must not exceed 300 characters",
        "Author must not exceed 200 characters",
    ]


def test_validate_book_id():
    assert validate_book_id("") == ["BookId is required"]
    assert validate_book_id("abc") == []
