import sqlite3
from dataclasses import dataclass
from typing import List, Optional


@dataclass
class User:
    id: int
    login: str


class UserDirectory:
    """Users known to the library; loans refer to them by id only."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def add(self, login: str, user_id: Optional[int] = None) -> User:
        cursor = self.conn.execute(
            "INSERT INTO users (id, login) VALUES (?, ?)", (user_id, login)
        )
        return User(id=cursor.lastrowid if user_id is None else user_id, login=login)

    def get(self, user_id: int) -> Optional[User]:
        row = self.conn.execute("SELECT id, login FROM users WHERE id = ?", (user_id,)).fetchone()
        return User(id=row["id"], login=row["login"]) if row else None

    def count(self) -> int:
        return self.conn.execute("SELECT COUNT(*) FROM users").fetchone()[0]

    def list_for_admin(self, name_filter: Optional[str] = None) -> List[User]:
        """All users, optionally restricted to logins containing ``name_filter`` (any case)."""
        sql = "SELECT id, login FROM users"
        params: List[object] = []
        if name_filter and name_filter.strip():
            sql += " WHERE instr(casefold(login), ?) > 0"
            params.append(name_filter.strip().casefold())
        rows = self.conn.execute(sql + " ORDER BY id", params).fetchall()
        return [User(id=row["id"], login=row["login"]) for row in rows]
