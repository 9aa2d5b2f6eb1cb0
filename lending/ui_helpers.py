import os
import json
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.table import Table
from rich.panel import Panel

# Environment variable to control CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LENDING_CLI_OUTPUT"

_console = Console()


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False))


def print_book_page(page: Dict[str, Any]) -> None:
    """Print one page of the catalog in the current output mode.

    - plain: 'ID | Name by Author (Year) ISBN [copies]' lines, then a page footer
    - json: the page dictionary as-is
    - rich: a Rich table with the page footer as caption
    """
    mode = get_output_mode()
    items = page.get("items", [])

    if mode == "json":
        _print_json(page)
        return

    if not items:
        print("No books found.")
        return

    footer = f"Page {page['page_number']} ({len(items)} of {page['total_count']} books)"
    if mode == "rich":
        table = Table(title="📚 Books", caption=footer, show_lines=True, header_style="bold cyan")
        table.add_column("ID", style="dim", no_wrap=True)
        table.add_column("Name", style="white")
        table.add_column("Author", style="white")
        table.add_column("Year", justify="right")
        table.add_column("ISBN", style="magenta", no_wrap=True)
        table.add_column("Copies", justify="right", style="green")
        for b in items:
            table.add_row(b["id"], b["name"], b["author"], str(b["issue_year"]), b["isbn"], str(b["number_of_pieces"]))
        _console.print(table)
    else:
        for b in items:
            print(f"{b['id']} | {b['name']} by {b['author']} ({b['issue_year']}) {b['isbn']} [{b['number_of_pieces']}]")
        print(footer)


def print_loans(items: List[Dict[str, Any]], title: str = "Loans") -> None:
    mode = get_output_mode()

    if mode == "json":
        _print_json(items)
        return

    if not items:
        print("No loans found.")
        return

    if mode == "rich":
        table = Table(title=f"📖 {title}", show_lines=True, header_style="bold cyan")
        table.add_column("Name", style="white")
        table.add_column("Author", style="white")
        table.add_column("Borrowed", style="yellow")
        table.add_column("Returned", style="green")
        for item in items:
            table.add_row(item["name"], item["author"], item["borrowed_date"], item["returned_date"] or "-")
        _console.print(table)
    else:
        for item in items:
            returned = item["returned_date"] or "not returned"
            print(f"{item['name']} by {item['author']} - borrowed {item['borrowed_date']}, {returned}")


def print_status(status: Dict[str, Any]) -> None:
    mode = get_output_mode()
    if mode == "json":
        _print_json(status)
    elif mode == "rich":
        content = (
            f"[bold]Borrowed by you:[/] {'yes' if status['is_borrowed_by_user'] else 'no'}\n"
            f"[bold]Your active loans:[/] {status['active_loan_count']}\n"
            f"[bold]Available copies:[/] {status['available_count']}"
        )
        _console.print(Panel.fit(content, title=f"📊 {status['book_id']}", border_style="blue"))
    else:
        print(f"Borrowed by you: {'yes' if status['is_borrowed_by_user'] else 'no'}")
        print(f"Your active loans: {status['active_loan_count']}")
        print(f"Available copies: {status['available_count']}")


def print_user_stats(stats: List[Dict[str, Any]]) -> None:
    """Print per-user borrowed/returned counts in the current output mode."""
    mode = get_output_mode()

    if mode == "json":
        _print_json(stats)
        return

    if not stats:
        print("No users found.")
        return

    if mode == "rich":
        table = Table(title="👥 Users", header_style="bold cyan")
        table.add_column("ID", justify="right")
        table.add_column("User", style="white")
        table.add_column("Borrowed", justify="right", style="yellow")
        table.add_column("Returned", justify="right", style="green")
        for s in stats:
            table.add_row(str(s["user_id"]), s["user_name"], str(s["borrowed_count"]), str(s["returned_count"]))
        _console.print(table)
    else:
        for s in stats:
            print(f"{s['user_id']} {s['user_name']}: borrowed {s['borrowed_count']}, returned {s['returned_count']}")


def print_message(message: str, success: bool = True, errors: Optional[List[str]] = None) -> None:
    mode = get_output_mode()
    if mode == "json":
        payload: Dict[str, Any] = {"success": success, "message": message}
        if errors:
            payload["errors"] = errors
        _print_json(payload)
    elif mode == "rich":
        style = "bold green" if success else "bold red"
        _console.print(f"[{style}]{message}[/]")
        for error in errors or []:
            _console.print(f"  [red]- {error}[/]")
    else:
        print(message if success else f"Error: {message}")
        for error in errors or []:
            print(f"  - {error}")
