import os
import subprocess
import sys
import webbrowser
from typing import Optional

import typer

from lending.config import configure_logging, settings
from lending.database import initialize_database
from lending.results import ErrorKind, LendingError, Result
from lending.seed import seed_demo_data
from lending.services.admin_service import AdminService
from lending.services.catalog_service import CatalogService
from lending.services.loan_service import LoanService
from lending.ui_helpers import (
    print_book_page,
    print_loans,
    print_message,
    print_status,
    print_user_stats,
    set_output_mode,
)
from lending.validators import validate_book_id, validate_new_book
from lending.views import ListBooksRequest

APP_NAME = "Lending Library CLI"

app = typer.Typer(help=APP_NAME)

# Database file selected with --db-file; None falls back to settings.database_file
_state = {"db_file": None}


def _db_file() -> Optional[str]:
    return _state["db_file"]


def _unwrap_or_exit(result: Result):
    """Return the value of a successful result, otherwise report it and exit with code 1."""
    try:
        return result.unwrap()
    except LendingError as e:
        if e.kind is ErrorKind.VALIDATION:
            print_message("Validation failed", success=False, errors=e.errors)
        else:
            print_message(e.message, success=False)
        raise typer.Exit(code=1)


def _check_book_id(book_id: str) -> None:
    errors = validate_book_id(book_id)
    if errors:
        _unwrap_or_exit(Result.invalid(errors))


@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    ),
    db_file: Optional[str] = typer.Option(
        None,
        "--db-file",
        help="SQLite database file (default: LIBRARY_DB_FILE or library.db)",
    ),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level, e.g. DEBUG"),
):
    """Global options for the CLI (output mode, database file)."""
    if output:
        set_output_mode(output)
    _state["db_file"] = db_file
    configure_logging(log_level)


@app.command("init-db")
def cli_init_db():
    """Create the database tables if they do not exist."""
    initialize_database(_db_file())
    print_message(f"Database ready at {_db_file() or settings.database_file}")


@app.command("seed")
def cli_seed():
    """Insert demo users and books into an empty database."""
    inserted = seed_demo_data(_db_file())
    print_message(f"Seeded {inserted['users']} users and {inserted['books']} books.")


@app.command("list")
def cli_list(
    search: Optional[str] = typer.Option(None, "--search", "-s", help="Comma-separated terms (name, author or ISBN)"),
    name: Optional[str] = typer.Option(None, "--name", help="Filter by name"),
    author: Optional[str] = typer.Option(None, "--author", "-a", help="Filter by author"),
    isbn: Optional[str] = typer.Option(None, "--isbn", help="Filter by ISBN"),
    sort_by: Optional[str] = typer.Option(None, "--sort-by", help="name | author"),
    sort_direction: Optional[str] = typer.Option(None, "--sort-direction", help="asc | desc"),
    only_available: bool = typer.Option(False, "--available", help="Only books with free copies"),
    page: int = typer.Option(1, "--page", "-p"),
    page_size: int = typer.Option(settings.default_page_size, "--page-size"),
):
    """List catalog books with search, filters and paging."""
    initialize_database(_db_file())
    page_result = CatalogService(_db_file()).list_books(
        ListBooksRequest(
            page_number=page,
            page_size=page_size,
            search=search,
            name=name,
            author=author,
            isbn=isbn,
            sort_by=sort_by,
            sort_direction=sort_direction,
            only_available=only_available,
        )
    )
    print_book_page(page_result.to_dict())


@app.command("add")
def cli_add(
    name: str = typer.Option(..., "--name", help="Book name"),
    author: str = typer.Option(..., "--author", help="Author"),
    issue_year: int = typer.Option(..., "--year", help="Year of issue"),
    isbn: str = typer.Option(..., "--isbn", help="ISBN-13, hyphens allowed"),
    copies: int = typer.Option(1, "--copies", help="Number of owned copies"),
):
    """Add a book to the catalog."""
    errors = validate_new_book(name, author, issue_year, isbn, copies)
    if errors:
        _unwrap_or_exit(Result.invalid(errors))

    initialize_database(_db_file())
    book = _unwrap_or_exit(
        CatalogService(_db_file()).create_book(name.strip(), author.strip(), issue_year, isbn.strip(), copies)
    )
    print_message(f"Successfully added: {book.name} by {book.author} (ID {book.id})")


@app.command("borrow")
def cli_borrow(
    book_id: str = typer.Argument(..., help="Book ID"),
    user_id: int = typer.Option(..., "--user", "-u", help="Acting user ID"),
):
    """Borrow a copy of a book for a user."""
    _check_book_id(book_id)
    initialize_database(_db_file())
    loan = _unwrap_or_exit(LoanService(_db_file()).borrow(book_id, user_id))
    print_message(f"{loan.message}. Loan ID {loan.loan_id}")


@app.command("return")
def cli_return(
    book_id: str = typer.Argument(..., help="Book ID"),
    user_id: int = typer.Option(..., "--user", "-u", help="Acting user ID"),
):
    """Return a borrowed book."""
    _check_book_id(book_id)
    initialize_database(_db_file())
    result = LoanService(_db_file()).return_book(book_id, user_id)
    _unwrap_or_exit(result)
    print_message(result.message)


@app.command("status")
def cli_status(
    book_id: str = typer.Argument(..., help="Book ID"),
    user_id: int = typer.Option(..., "--user", "-u", help="Acting user ID"),
):
    """Show availability of a book and whether the user holds it."""
    _check_book_id(book_id)
    initialize_database(_db_file())
    status = _unwrap_or_exit(LoanService(_db_file()).borrow_status(book_id, user_id))
    print_status(status.to_dict())


@app.command("history")
def cli_history(
    user_id: int = typer.Option(..., "--user", "-u", help="Acting user ID"),
    view: str = typer.Option("all", "--view", help="all | borrowed | returned"),
    page: int = typer.Option(1, "--page", "-p"),
    page_size: int = typer.Option(settings.default_page_size, "--page-size"),
):
    """Show a user's loans."""
    initialize_database(_db_file())
    loans = LoanService(_db_file())
    view = view.strip().lower()
    if view == "borrowed":
        print_loans([i.to_dict() for i in loans.user_borrowed_books(user_id)], title="Borrowed")
    elif view == "returned":
        print_loans([i.to_dict() for i in loans.user_returned_books(user_id)], title="Returned")
    elif view == "all":
        history = loans.user_loan_history(user_id, page, page_size)
        print_loans([i.to_dict() for i in history.items], title="Loan history")
    else:
        print_message(f"Unknown view: {view}. Use all, borrowed or returned.", success=False)
        raise typer.Exit(code=2)


@app.command("users")
def cli_users(
    name_filter: Optional[str] = typer.Option(None, "--filter", "-f", help="Substring of the user name"),
    sort_by: Optional[str] = typer.Option(None, "--sort-by", help="name | borrowedCount"),
    sort_direction: Optional[str] = typer.Option(None, "--sort-direction", help="asc | desc"),
):
    """List users with borrowed/returned counts."""
    initialize_database(_db_file())
    stats = AdminService(_db_file()).users_with_stats(name_filter, sort_by, sort_direction)
    print_user_stats([s.to_dict() for s in stats])


@app.command("serve")
def cli_serve(
    open_browser: bool = typer.Option(True, "--browser/--no-browser", help="Open the API docs in a browser"),
    reload: bool = typer.Option(False, "--reload", help="Restart the server on code changes"),
):
    """Start the HTTP API with uvicorn."""
    host = settings.api_host
    port = int(settings.api_port)
    url = f"http://{host}:{port}/docs"
    print(f"Starting API on {url}")
    if open_browser:
        webbrowser.open(url)

    env = dict(os.environ)
    if _db_file():
        env["LIBRARY_DB_FILE"] = _db_file()
    args = [
        sys.executable,
        "-m", "uvicorn",
        "lending.api:app",
        "--host", host,
        "--port", str(port),
    ]
    if reload:
        args.append("--reload")
    subprocess.run(args, env=env)


if __name__ == "__main__":
    app()
