from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from lending.book import new_id


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Serialize a timestamp as UTC ISO-8601 with fixed microsecond precision.

    A fixed width keeps lexical order in the database equal to time order.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value)


@dataclass
class Loan:
    """One borrow of one book by one user. Active while ``returned_date`` is None."""

    book_id: str
    user_id: int
    borrowed_date: datetime
    returned_date: Optional[datetime] = None
    id: str = field(default_factory=new_id)

    @property
    def is_active(self) -> bool:
        return self.returned_date is None

    def mark_returned(self, when: Optional[datetime] = None) -> None:
        self.returned_date = when or utcnow()

    @staticmethod
    def from_row(row: Mapping[str, Any]) -> "Loan":
        return Loan(
            id=row["id"],
            book_id=row["book_id"],
            user_id=int(row["user_id"]),
            borrowed_date=parse_timestamp(row["borrowed_date"]),
            returned_date=parse_timestamp(row["returned_date"]),
        )
