import re
from datetime import datetime, timezone
from typing import List, Optional

NAME_MAX_LENGTH = 300
AUTHOR_MAX_LENGTH = 200
ISBN_MAX_LENGTH = 50
MIN_ISSUE_YEAR = 1000


class ISBNValidator:
    """ISBN-13 (EAN-13) validation and check digit helpers."""

    @staticmethod
    def normalize_isbn(raw: Optional[str]) -> str:
        if raw is None:
            return ""
        return re.sub(r"[- ]", "", raw)

    @staticmethod
    def compute_check_digit(first12: str) -> int:
        if len(first12) != 12 or not first12.isascii() or not first12.isdigit():
            raise ValueError("ISBN-12 must be exactly 12 digits")
        total = 0
        for i, ch in enumerate(first12):
            factor = 1 if i % 2 == 0 else 3
            total += factor * int(ch)
        return (10 - (total % 10)) % 10

    @staticmethod
    def is_valid_isbn13(isbn: Optional[str]) -> bool:
        s = ISBNValidator.normalize_isbn(isbn)
        # str.isdigit accepts non-ASCII digits such as '٣', which are rejected here
        if len(s) != 13 or not s.isascii() or not s.isdigit():
            return False
        return ISBNValidator.compute_check_digit(s[:12]) == int(s[12])

    @staticmethod
    def generate_isbn13(prefix: str, middle: str) -> str:
        """Build a valid hyphenated ISBN-13 (``978-XX-XXXXXXX-C``) from 12 digits."""
        first12 = ISBNValidator.normalize_isbn(f"{prefix}{middle}")
        if len(first12) != 12:
            raise ValueError(f"Combined prefix and middle digits must be 12 characters, got: {len(first12)}")
        full = first12 + str(ISBNValidator.compute_check_digit(first12))
        return f"{full[0:3]}-{full[3:5]}-{full[5:12]}-{full[12]}"


def validate_new_book(
    name: Optional[str],
    author: Optional[str],
    issue_year: Optional[int],
    isbn: Optional[str],
    number_of_pieces: Optional[int],
    current_year: Optional[int] = None,
) -> List[str]:
    """Return the validation messages for a create-book request (empty when valid)."""
    year_limit = current_year or datetime.now(timezone.utc).year
    errors: List[str] = []

    if name is None or not name.strip():
        errors.append("Name is required")
    elif len(name) > NAME_MAX_LENGTH:
        errors.append(f"Name must not exceed {NAME_MAX_LENGTH} characters")

    if author is None or not author.strip():
        errors.append("Author is required")
    elif len(author) > AUTHOR_MAX_LENGTH:
        errors.append(f"Author must not exceed {AUTHOR_MAX_LENGTH} characters")

    if issue_year is None:
        errors.append("IssueYear is required")
    elif issue_year < MIN_ISSUE_YEAR:
        errors.append(f"IssueYear must be greater than or equal to {MIN_ISSUE_YEAR}")
    elif issue_year > year_limit:
        errors.append(f"IssueYear must be less than or equal to {year_limit}")

    if isbn is None or not isbn.strip():
        errors.append("ISBN is required")
    elif len(isbn) > ISBN_MAX_LENGTH:
        errors.append(f"ISBN must not exceed {ISBN_MAX_LENGTH} characters")
    elif not ISBNValidator.is_valid_isbn13(isbn):
        errors.append("ISBN must be a valid ISBN-13 format")

    if number_of_pieces is None:
        errors.append("Number of Pieces is required")
    elif number_of_pieces < 0:
        errors.append("Number of Pieces must be greater than or equal to 0")

    return errors


def validate_book_id(book_id: Optional[str]) -> List[str]:
    if book_id is None or not book_id.strip():
        return ["BookId is required"]
    return []
