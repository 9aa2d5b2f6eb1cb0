import json
import os
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from lending.main import app
from lending.ui_helpers import OUTPUT_MODE_ENV

runner = CliRunner()


@pytest.fixture(autouse=True)
def plain_output():
    # --output writes the mode to the environment, reset it around each test
    os.environ.pop(OUTPUT_MODE_ENV, None)
    yield
    os.environ.pop(OUTPUT_MODE_ENV, None)


@pytest.fixture
def invoke(db_file):
    def _invoke(*args):
        return runner.invoke(app, ["--db-file", db_file, *args])
    return _invoke


def _add(invoke, name="Dune", isbn="9780131101630", copies="1"):
    result = invoke("add", "--name", name, "--author", "Frank Herbert", "--year", "1965",
                    "--isbn", isbn, "--copies", copies)
    assert result.exit_code == 0, result.stdout
    return result.stdout.strip().rsplit("(ID ", 1)[1].rstrip(")")


def test_list_no_books(invoke):
    result = invoke("list")
    assert result.exit_code == 0
    assert "No books found." in result.stdout


def test_init_db(tmp_path):
    db_file = str(tmp_path / "fresh.db")
    result = runner.invoke(app, ["--db-file", db_file, "init-db"])
    assert result.exit_code == 0
    assert f"Database ready at {db_file}" in result.stdout


def test_add_book_success(invoke):
    result = invoke("add", "--name", "Dune", "--author", "Frank Herbert", "--year", "1965",
                    "--isbn", "978-0-13-110163-0", "--copies", "2")
    assert result.exit_code == 0
    assert "Successfully added: Dune by Frank Herbert" in result.stdout


def test_add_book_invalid(invoke):
    result = invoke("add", "--name", "Dune", "--author", "Frank Herbert", "--year", "1965",
                    "--isbn", "9780131101631")
    assert result.exit_code == 1
    assert "Validation failed" in result.stdout
    assert "ISBN must be a valid ISBN-13 format" in result.stdout


def test_add_duplicate(invoke):
    _add(invoke)
    result = invoke("add", "--name", "Dune", "--author", "Frank Herbert", "--year", "1965",
                    "--isbn", "9780131101630")
    assert result.exit_code == 1
    assert "already exists" in result.stdout


def test_list_plain_and_json(invoke, db_file):
    book_id = _add(invoke, copies="3")

    result = invoke("list", "--search", "dune")
    assert result.exit_code == 0
    assert f"{book_id} | Dune by Frank Herbert (1965) 9780131101630 [3]" in result.stdout
    assert "Page 1 (1 of 1 books)" in result.stdout

    result = runner.invoke(app, ["--output", "json", "--db-file", db_file, "list"])
    assert result.exit_code == 0
    payload = json.loads(result.stdout.strip().splitlines()[-1])
    assert payload["total_count"] == 1
    assert payload["items"][0]["id"] == book_id


def test_borrow_status_return(invoke):
    book_id = _add(invoke)

    result = invoke("borrow", book_id, "--user", "1")
    assert result.exit_code == 0
    assert "Book borrowed successfully" in result.stdout

    result = invoke("borrow", book_id, "--user", "2")
    assert result.exit_code == 1
    assert "No available copies of this book. Currently 1 out of 1 are borrowed." in result.stdout

    result = invoke("status", book_id, "--user", "1")
    assert "Borrowed by you: yes" in result.stdout
    assert "Available copies: 0" in result.stdout

    result = invoke("return", book_id, "--user", "1")
    assert result.exit_code == 0
    assert "Book returned successfully" in result.stdout

    result = invoke("return", book_id, "--user", "1")
    assert result.exit_code == 1
    assert "You don't have an active loan for this book." in result.stdout


def test_borrow_missing_book(invoke):
    result = invoke("borrow", "nope", "--user", "1")
    assert result.exit_code == 1
    assert "Book with ID 'nope' not found." in result.stdout


def test_history_views(invoke):
    book_id = _add(invoke)
    invoke("borrow", book_id, "--user", "4")

    result = invoke("history", "--user", "4", "--view", "borrowed")
    assert "Dune by Frank Herbert - borrowed" in result.stdout
    assert "not returned" in result.stdout

    result = invoke("history", "--user", "4", "--view", "returned")
    assert "No loans found." in result.stdout

    result = invoke("history", "--user", "4", "--view", "sideways")
    assert result.exit_code == 2


def test_seed_and_users(invoke):
    result = invoke("seed")
    assert result.exit_code == 0
    assert "Seeded 3 users and 10 books." in result.stdout

    result = invoke("users", "--filter", "user")
    assert result.exit_code == 0
    lines = result.stdout.strip().splitlines()
    assert lines == [
        "2 adminUser: borrowed 0, returned 0",
        "3 apiUser: borrowed 0, returned 0",
        "1 simpleUser: borrowed 0, returned 0",
    ]


@patch("subprocess.run")
@patch("webbrowser.open")
def test_serve_command(mock_webbrowser_open, mock_subprocess_run, invoke):
    result = invoke("serve")
    assert result.exit_code == 0
    assert "Starting API on" in result.stdout
    mock_webbrowser_open.assert_called_once()
    args = mock_subprocess_run.call_args[0][0]
    assert "lending.api:app" in args


def test_borrow_blank_book_id(invoke):
    result = invoke("borrow", "  ", "--user", "1")
    assert result.exit_code == 1
    assert "BookId is required" in result.stdout
