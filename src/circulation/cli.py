"""Command-line interface for circulation.

Built with Typer for commands and Rich for output.
"""

from typing import NoReturn, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import get_config
from .db import get_db
from .exceptions import CirculationError
from .log import configure_logging

# Create the main app
app = typer.Typer(
    name="circulation",
    help="Track library books and the members who borrow them.",
    no_args_is_help=True,
)

# Create sub-apps for command groups
book_app = typer.Typer(help="Manage catalog books.")
app.add_typer(book_app, name="book")

member_app = typer.Typer(help="Manage library members.")
app.add_typer(member_app, name="member")

loan_app = typer.Typer(help="Borrow and return books.")
app.add_typer(loan_app, name="loan")

report_app = typer.Typer(help="Lending reports.")
app.add_typer(report_app, name="report")

# Rich console for pretty output
console = Console()


@app.callback()
def setup(
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Log level (defaults to CIRCULATION_LOG_LEVEL)"
    ),
) -> None:
    """Track library books and the members who borrow them."""
    configure_logging(log_level.upper() if log_level else None)


# ============================================================================
# Helper Functions
# ============================================================================


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[bold red]Error:[/bold red] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[bold green]Success:[/bold green] {message}")


def fail(error: Exception) -> NoReturn:
    """Report a failed command and exit with status 1."""
    if isinstance(error, ValidationError):
        for err in error.errors():
            field = ".".join(str(p) for p in err["loc"])
            print_error(f"{field}: {err['msg']}")
    elif isinstance(error, CirculationError):
        print_error(error.message)
    else:
        print_error(str(error))
    raise typer.Exit(1)


def format_book_table(books: list, title: str = "Books") -> Table:
    """Create a rich table for displaying books."""
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim", justify="right")
    table.add_column("Title", style="cyan", no_wrap=False, max_width=40)
    table.add_column("Author", style="green", max_width=25)
    table.add_column("Available", justify="right")

    for book in books:
        amount = str(book.amount) if book.amount else "[red]0[/red]"
        table.add_row(str(book.id), book.title, book.author, amount)

    return table


def format_member_table(members: list, title: str = "Members") -> Table:
    """Create a rich table for displaying members."""
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim", justify="right")
    table.add_column("Name", style="cyan")
    table.add_column("Member since")

    for member in members:
        table.add_row(
            str(member.id),
            member.name,
            member.membership_date.strftime("%Y-%m-%d %H:%M"),
        )

    return table


# ============================================================================
# Book Commands
# ============================================================================


@book_app.command("add")
def book_add(
    title: str = typer.Option(..., "--title", "-t", help="Book title"),
    author: str = typer.Option(..., "--author", "-a", help="Author (Name Surname)"),
) -> None:
    """Register a copy of a book. Existing title/author pairs gain a copy."""
    from .catalog import BookCreate, CatalogManager

    try:
        book = CatalogManager(get_db()).create_book(BookCreate(title=title, author=author))
    except (ValidationError, CirculationError) as e:
        fail(e)

    print_success(f"{book.title} by {book.author} (id {book.id}), {book.amount} available")


@book_app.command("update")
def book_update(
    book_id: int = typer.Argument(..., help="Book ID"),
    title: Optional[str] = typer.Option(None, "--title", "-t", help="New title"),
    author: Optional[str] = typer.Option(None, "--author", "-a", help="New author"),
    amount: Optional[int] = typer.Option(None, "--amount", "-n", help="Available copies"),
) -> None:
    """Update a book."""
    from .catalog import BookUpdate, CatalogManager

    try:
        book = CatalogManager(get_db()).update_book(
            book_id, BookUpdate(title=title, author=author, amount=amount)
        )
    except (ValidationError, CirculationError) as e:
        fail(e)

    print_success(f"Updated: {book.title} by {book.author}, {book.amount} available")


@book_app.command("delete")
def book_delete(
    book_id: int = typer.Argument(..., help="Book ID"),
) -> None:
    """Delete a book that nobody holds."""
    from .catalog import CatalogManager

    try:
        CatalogManager(get_db()).delete_book(book_id)
    except CirculationError as e:
        fail(e)

    print_success(f"Deleted book {book_id}")


@book_app.command("show")
def book_show(
    book_id: int = typer.Argument(..., help="Book ID"),
) -> None:
    """Show a book."""
    from .catalog import CatalogManager

    try:
        book = CatalogManager(get_db()).get_book(book_id)
    except CirculationError as e:
        fail(e)

    console.print(Panel(
        f"[bold cyan]{book.title}[/bold cyan]\n"
        f"by [green]{book.author}[/green]\n\n"
        f"Available copies: {book.amount}",
        title=f"Book {book.id}",
    ))


@book_app.command("list")
def book_list(
    title: Optional[str] = typer.Option(None, "--title", "-t", help="Filter by title"),
    author: Optional[str] = typer.Option(None, "--author", "-a", help="Filter by author"),
    page: int = typer.Option(0, "--page", "-p", min=0, help="Page number"),
    size: int = typer.Option(20, "--size", "-s", min=1, help="Page size"),
) -> None:
    """List books."""
    from .catalog import CatalogManager

    result = CatalogManager(get_db()).list_books(title=title, author=author, page=page, size=size)

    if not result.items:
        console.print("[dim]No books found[/dim]")
        return

    console.print(format_book_table(result.items))
    console.print(f"[dim]Page {result.page + 1} of {result.pages} ({result.total} books)[/dim]")


@book_app.command("borrowed")
def book_borrowed(
    counts: bool = typer.Option(False, "--counts", "-c", help="Show copies on loan"),
) -> None:
    """List titles currently on loan."""
    from .catalog import CatalogManager

    titles = CatalogManager(get_db()).borrowed_titles(with_counts=counts)

    if not titles:
        console.print("[dim]No books on loan[/dim]")
        return

    table = Table(title="Borrowed Titles", show_header=True, header_style="bold magenta")
    table.add_column("Title", style="cyan")
    if counts:
        table.add_column("On loan", justify="right")

    for entry in titles:
        if counts:
            table.add_row(entry.title, str(entry.amount_borrowed))
        else:
            table.add_row(entry.title)

    console.print(table)


# ============================================================================
# Member Commands
# ============================================================================


@member_app.command("add")
def member_add(
    name: str = typer.Argument(..., help="Member name"),
) -> None:
    """Register a new member."""
    from .membership import MemberCreate, MembershipManager

    try:
        member = MembershipManager(get_db()).create_member(MemberCreate(name=name))
    except (ValidationError, CirculationError) as e:
        fail(e)

    print_success(f"Added member {member.name} (id {member.id})")


@member_app.command("update")
def member_update(
    member_id: int = typer.Argument(..., help="Member ID"),
    name: str = typer.Option(..., "--name", help="New name"),
) -> None:
    """Rename a member."""
    from .membership import MembershipManager, MemberUpdate

    try:
        member = MembershipManager(get_db()).update_member(member_id, MemberUpdate(name=name))
    except (ValidationError, CirculationError) as e:
        fail(e)

    print_success(f"Updated member {member.id}: {member.name}")


@member_app.command("delete")
def member_delete(
    member_id: int = typer.Argument(..., help="Member ID"),
) -> None:
    """Delete a member who holds no books."""
    from .membership import MembershipManager

    try:
        MembershipManager(get_db()).delete_member(member_id)
    except CirculationError as e:
        fail(e)

    print_success(f"Deleted member {member_id}")


@member_app.command("show")
def member_show(
    member_id: int = typer.Argument(..., help="Member ID"),
) -> None:
    """Show a member and the books they hold."""
    from .membership import MembershipManager

    manager = MembershipManager(get_db())
    try:
        member = manager.get_member(member_id)
        books = manager.borrowed_books(member_id=member_id)
    except CirculationError as e:
        fail(e)

    console.print(Panel(
        f"[bold cyan]{member.name}[/bold cyan]\n"
        f"Member since {member.membership_date.strftime('%Y-%m-%d')}\n"
        f"Holding {len(books)} of {get_config().borrow_limit} allowed",
        title=f"Member {member.id}",
    ))
    if books:
        console.print(format_book_table(books, title="Held Books"))


@member_app.command("list")
def member_list(
    name: Optional[str] = typer.Option(None, "--name", help="Exact name filter"),
    page: int = typer.Option(0, "--page", "-p", min=0, help="Page number"),
    size: int = typer.Option(20, "--size", "-s", min=1, help="Page size"),
) -> None:
    """List members."""
    from .membership import MembershipManager

    result = MembershipManager(get_db()).list_members(name=name, page=page, size=size)

    if not result.items:
        console.print("[dim]No members found[/dim]")
        return

    console.print(format_member_table(result.items))
    console.print(f"[dim]Page {result.page + 1} of {result.pages} ({result.total} members)[/dim]")


@member_app.command("books")
def member_books(
    member_id: Optional[int] = typer.Argument(None, help="Member ID"),
    name: Optional[str] = typer.Option(None, "--name", help="Look the member up by name"),
) -> None:
    """List books held by a member, given an ID or --name."""
    from .membership import MembershipManager

    if (member_id is None) == (name is None):
        print_error("Give either a member ID or --name")
        raise typer.Exit(1)

    try:
        books = MembershipManager(get_db()).borrowed_books(member_id=member_id, name=name)
    except CirculationError as e:
        fail(e)

    if not books:
        console.print("[dim]No books held[/dim]")
        return

    console.print(format_book_table(books, title="Held Books"))


# ============================================================================
# Loan Commands
# ============================================================================


def _print_held(books: list) -> None:
    if books:
        console.print(format_book_table(books, title="Now holding"))
    else:
        console.print("[dim]Member now holds no books[/dim]")


@loan_app.command("toggle")
def loan_toggle(
    member_id: int = typer.Argument(..., help="Member ID"),
    book_id: int = typer.Argument(..., help="Book ID"),
) -> None:
    """Borrow a book, or return it if the member already holds it."""
    from .lending import LendingEngine

    try:
        books = LendingEngine(get_db()).toggle_loan(member_id, book_id)
    except CirculationError as e:
        fail(e)

    held = any(b.id == book_id for b in books)
    print_success(f"Book {book_id} {'borrowed' if held else 'returned'}")
    _print_held(books)


@loan_app.command("borrow")
def loan_borrow(
    member_id: int = typer.Argument(..., help="Member ID"),
    book_id: int = typer.Argument(..., help="Book ID"),
) -> None:
    """Borrow a book."""
    from .lending import LendingEngine

    try:
        books = LendingEngine(get_db()).borrow_book(member_id, book_id)
    except CirculationError as e:
        fail(e)

    print_success(f"Book {book_id} borrowed")
    _print_held(books)


@loan_app.command("return")
def loan_return(
    member_id: int = typer.Argument(..., help="Member ID"),
    book_id: int = typer.Argument(..., help="Book ID"),
) -> None:
    """Return a borrowed book."""
    from .lending import LendingEngine

    try:
        books = LendingEngine(get_db()).return_book(member_id, book_id)
    except CirculationError as e:
        fail(e)

    print_success(f"Book {book_id} returned")
    _print_held(books)


# ============================================================================
# Report Commands
# ============================================================================


@report_app.command("stats")
def report_stats() -> None:
    """Show lending statistics."""
    from .reports import ReportManager

    stats = ReportManager(get_db()).get_stats()

    console.print(Panel(
        f"Titles: {stats.total_titles}\n"
        f"Available copies: {stats.available_copies}\n"
        f"Copies on loan: {stats.copies_on_loan}\n\n"
        f"Members: {stats.total_members}\n"
        f"Members with loans: {stats.members_with_loans}\n"
        f"At borrow limit ({stats.borrow_limit}): {stats.members_at_limit}",
        title="Lending Statistics",
    ))


@app.command()
def version() -> None:
    """Show version information."""
    from . import __version__

    console.print(f"circulation version {__version__}")


# ============================================================================
# Main Entry Point
# ============================================================================


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
