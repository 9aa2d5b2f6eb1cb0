from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Mapping


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class Book:
    """A catalog entry. ``number_of_pieces`` is the count of owned copies."""

    name: str
    author: str
    issue_year: int
    isbn: str
    number_of_pieces: int = 0
    id: str = field(default_factory=new_id)

    @staticmethod
    def from_row(row: Mapping[str, Any]) -> "Book":
        return Book(
            id=row["id"],
            name=row["name"],
            author=row["author"],
            issue_year=int(row["issue_year"]),
            isbn=row["isbn"],
            number_of_pieces=int(row["number_of_pieces"]),
        )
