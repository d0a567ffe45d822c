"""
Main CLI application using Typer.
"""

import logging
from datetime import date, time
from pathlib import Path
from typing import Annotated, NoReturn, Optional, Tuple

import pendulum
import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ..adapters.memory_store import MemoryStore
from ..adapters.sql_store import SqlStore
from ..config import AppConfig, get_default_config_path
from ..domain.blocked_ranges import BlockRequest
from ..domain.exceptions import SchedulingError, StoreError
from ..domain.models import END_OF_DAY, START_OF_DAY, CustomerInfo, SlotState
from ..services.scheduling import SchedulingService

app = typer.Typer(
    name="appointmentcore",
    help="Manage appointment availability, bookings and blocked periods",
    add_completion=False
)

console = Console()

# One message per error code; the generic one is reserved for storage failures
ERROR_MESSAGES = {
    "invalid_date_range": "The end date must not be earlier than the start date.",
    "invalid_interval": "The start time must be earlier than the end time.",
    "slot_unavailable": "This time is not available. Please pick another one.",
    "slot_conflict": "This time has just been booked by someone else. Please pick another one.",
    "reschedule_limit_exceeded": "A third reschedule is not possible. The booking has been cancelled.",
    "invalid_transition": "The booking cannot be changed in its current status.",
    "service_not_found": "No such service.",
    "booking_not_found": "No such booking.",
    "blocked_range_not_found": "No such blocked period.",
    "store_busy": "The schedule is busy right now. Please try again.",
}

STATE_STYLES = {
    SlotState.FREE: "green",
    SlotState.TAKEN: "red",
    SlotState.BLOCKED: "dim",
}

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml"),
]
MockOption = Annotated[
    bool,
    typer.Option("--mock", help="Use an empty in-memory store instead of the database."),
]


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _load_config(config_file: Optional[Path]) -> AppConfig:
    config_path = config_file or get_default_config_path()
    try:
        config = AppConfig.load_from_yaml(config_path)
    except (FileNotFoundError, ValueError, ValidationError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    _configure_logging(config.log_level)
    return config


def _load(config_file: Optional[Path], mock: bool) -> Tuple[AppConfig, SchedulingService]:
    """Load configuration and build the scheduling service."""
    config = _load_config(config_file)

    lock_timeout = config.scheduling.lock_timeout_seconds
    if mock:
        console.print("[yellow]⚠  MOCK MODE: using an empty in-memory store[/yellow]\n")
        store = MemoryStore(lock_timeout=lock_timeout)
    else:
        store = SqlStore(config.database_url, lock_timeout=lock_timeout)

    return config, SchedulingService.from_config(config, store)


def _fail(error: SchedulingError) -> NoReturn:
    """Print the message belonging to a scheduling error and exit."""
    if isinstance(error, StoreError):
        message = ERROR_MESSAGES.get(error.code, StoreError.default_message)
    else:
        message = ERROR_MESSAGES.get(error.code, str(error))
    console.print(f"[bold red]✗[/bold red] {message}")
    logging.getLogger(__name__).debug("Scheduling error %s: %s", error.code, error)
    raise typer.Exit(1)


def _parse_date(value: str) -> date:
    try:
        return pendulum.from_format(value, "YYYY-MM-DD").date()
    except ValueError as e:
        raise typer.BadParameter(f"Expected YYYY-MM-DD, got {value!r}") from e


def _parse_time(value: str) -> time:
    try:
        return pendulum.from_format(value, "HH:mm").time()
    except ValueError as e:
        raise typer.BadParameter(f"Expected HH:MM, got {value!r}") from e


@app.command()
def services(config_file: ConfigOption = None):
    """
    List the configured services.
    """
    config = _load_config(config_file)

    table = Table(title="Services", show_header=True, header_style="bold cyan")
    table.add_column("ID", style="bold yellow")
    table.add_column("Name")
    table.add_column("Duration", justify="right")
    table.add_column("Price", justify="right")
    table.add_column("Active")

    for service in sorted(config.service_catalog().values(), key=lambda s: s.name):
        table.add_row(
            service.id,
            service.name,
            f"{service.duration_minutes} min",
            "free" if service.is_free else f"{service.price:,}",
            "yes" if service.active else "no",
        )

    console.print()
    console.print(table)
    console.print()


@app.command()
def slots(
    service_id: Annotated[str, typer.Argument(help="Service identifier")],
    day: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    grid: Annotated[bool, typer.Option("--grid", help="Show taken and blocked slots too.")] = False,
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Show bookable slots of a service on a date.

    Examples:

        appointmentcore slots consultation 2024-03-12
        appointmentcore slots consultation 2024-03-12 --grid
    """
    _, scheduler = _load(config_file, mock)
    target = _parse_date(day)

    try:
        found = scheduler.get_slot_grid(service_id, target) if grid else scheduler.get_available_slots(service_id, target)
    except SchedulingError as e:
        _fail(e)

    console.print()
    if not found:
        console.print("[yellow]⚠ No available times on this day.[/yellow]\n")
        return

    if grid:
        for slot in found:
            style = STATE_STYLES[slot.state]
            console.print(f"  [{style}]{slot.label}  {slot.state.value}[/{style}]")
    else:
        console.print(f"[bold green]✓ {len(found)} available slot(s):[/bold green]\n")
        for slot in found:
            console.print(f"  {slot.format_display()}")
    console.print()


@app.command()
def book(
    service_id: Annotated[str, typer.Argument(help="Service identifier")],
    day: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    start: Annotated[str, typer.Argument(help="Start time (HH:MM)")],
    name: Annotated[str, typer.Option("--name", help="Customer name")],
    email: Annotated[str, typer.Option("--email", help="Customer email")],
    phone: Annotated[Optional[str], typer.Option("--phone", help="Customer phone")] = None,
    notes: Annotated[Optional[str], typer.Option("--notes", help="Booking notes")] = None,
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Book a slot for a customer.
    """
    _, scheduler = _load(config_file, mock)

    try:
        customer = CustomerInfo(name=name, email=email, phone=phone, notes=notes)
    except ValidationError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    try:
        booking = scheduler.create_booking(service_id, _parse_date(day), _parse_time(start), customer)
    except SchedulingError as e:
        _fail(e)

    console.print(
        f"\n[green]✓ Booking {booking.id} created ({booking.status.value}).[/green]\n"
    )


@app.command()
def confirm(
    booking_id: Annotated[str, typer.Argument(help="Booking identifier")],
    config_file: ConfigOption = None,
):
    """
    Confirm a pending booking.
    """
    _, scheduler = _load(config_file, mock=False)
    try:
        scheduler.confirm_booking(booking_id)
    except SchedulingError as e:
        _fail(e)
    console.print("\n[green]✓ Booking confirmed.[/green]\n")


@app.command()
def reschedule(
    booking_id: Annotated[str, typer.Argument(help="Booking identifier")],
    day: Annotated[str, typer.Argument(help="New date (YYYY-MM-DD)")],
    start: Annotated[str, typer.Argument(help="New start time (HH:MM)")],
    config_file: ConfigOption = None,
):
    """
    Move a confirmed booking. A third attempt cancels the booking instead.
    """
    _, scheduler = _load(config_file, mock=False)

    try:
        result = scheduler.reschedule_booking(booking_id, _parse_date(day), _parse_time(start))
    except SchedulingError as e:
        _fail(e)

    if result.auto_cancelled:
        console.print(f"\n[bold red]✗ {ERROR_MESSAGES[result.error_code]}[/bold red]\n")
        raise typer.Exit(2)

    if result.remaining_reschedules == 0:
        console.print(
            "\n[yellow]✓ Rescheduled. This was the last allowed change; "
            "another reschedule will cancel the booking.[/yellow]\n"
        )
    else:
        console.print(
            f"\n[green]✓ Rescheduled ({result.remaining_reschedules} change(s) left).[/green]\n"
        )


@app.command()
def cancel(
    booking_id: Annotated[str, typer.Argument(help="Booking identifier")],
    config_file: ConfigOption = None,
):
    """
    Cancel a booking and release its slot.
    """
    _, scheduler = _load(config_file, mock=False)
    try:
        scheduler.cancel_booking(booking_id)
    except SchedulingError as e:
        _fail(e)
    console.print("\n[green]✓ Booking cancelled.[/green]\n")


@app.command()
def complete(
    booking_id: Annotated[str, typer.Argument(help="Booking identifier")],
    config_file: ConfigOption = None,
):
    """
    Mark a past confirmed booking as completed.
    """
    _, scheduler = _load(config_file, mock=False)
    try:
        scheduler.complete_booking(booking_id)
    except SchedulingError as e:
        _fail(e)
    console.print("\n[green]✓ Booking completed.[/green]\n")


@app.command()
def bookings(
    service_id: Annotated[Optional[str], typer.Option("--service", help="Only this service")] = None,
    day: Annotated[Optional[str], typer.Option("--date", help="Only this date (YYYY-MM-DD)")] = None,
    config_file: ConfigOption = None,
):
    """
    List bookings.
    """
    _, scheduler = _load(config_file, mock=False)
    try:
        found = scheduler.list_bookings(
            service_id=service_id,
            day=_parse_date(day) if day else None,
        )
    except SchedulingError as e:
        _fail(e)

    if not found:
        console.print("[yellow]No bookings found.[/yellow]")
        return

    table = Table(title="Bookings", show_header=True, header_style="bold cyan")
    table.add_column("ID", style="dim")
    table.add_column("Service")
    table.add_column("Date")
    table.add_column("Time")
    table.add_column("Customer")
    table.add_column("Status")
    table.add_column("Changes", justify="right")

    for booking in found:
        table.add_row(
            booking.id,
            booking.service_id,
            booking.scheduled_date.isoformat(),
            booking.scheduled_time.strftime("%H:%M"),
            f"{booking.customer_name} <{booking.customer_email}>",
            booking.status.value,
            str(booking.reschedule_count),
        )

    console.print()
    console.print(table)
    console.print()


@app.command()
def block(
    start_date: Annotated[str, typer.Argument(help="First blocked date (YYYY-MM-DD)")],
    end_date: Annotated[Optional[str], typer.Argument(help="Last blocked date (YYYY-MM-DD)")] = None,
    start: Annotated[Optional[str], typer.Option("--from", help="Start time on the first day (HH:MM)")] = None,
    end: Annotated[Optional[str], typer.Option("--to", help="End time on the last day (HH:MM)")] = None,
    all_day: Annotated[bool, typer.Option("--all-day", help="Block whole days.")] = False,
    reason: Annotated[Optional[str], typer.Option("--reason", help="Shown to operators")] = None,
    config_file: ConfigOption = None,
):
    """
    Block time on one date or across a range of dates.

    Examples:

        appointmentcore block 2024-03-11 --all-day --reason Holiday
        appointmentcore block 2024-03-10 2024-03-12 --from 18:00 --to 09:00
    """
    _, scheduler = _load(config_file, mock=False)

    first = _parse_date(start_date)
    request = BlockRequest(
        start_date=first,
        end_date=_parse_date(end_date) if end_date else first,
        start_time=_parse_time(start) if start else START_OF_DAY,
        end_time=_parse_time(end) if end else END_OF_DAY,
        all_day=all_day,
        reason=reason,
    )

    try:
        saved = scheduler.block_time_range(request)
    except SchedulingError as e:
        _fail(e)

    console.print(f"\n[green]✓ {len(saved)} day(s) blocked.[/green]")
    for blocked_range in saved:
        console.print(f"  {blocked_range.id}  {blocked_range.describe()}")
    console.print()


@app.command()
def unblock(
    range_id: Annotated[str, typer.Argument(help="Blocked period identifier")],
    config_file: ConfigOption = None,
):
    """
    Delete a blocked period.
    """
    _, scheduler = _load(config_file, mock=False)
    try:
        scheduler.delete_blocked_range(range_id)
    except SchedulingError as e:
        _fail(e)
    console.print("\n[green]✓ Blocked period deleted.[/green]\n")


@app.command()
def blocked(
    from_date: Annotated[Optional[str], typer.Option("--from", help="Only from this date (YYYY-MM-DD)")] = None,
    config_file: ConfigOption = None,
):
    """
    List blocked periods.
    """
    _, scheduler = _load(config_file, mock=False)
    try:
        found = scheduler.list_blocked_ranges(_parse_date(from_date) if from_date else None)
    except SchedulingError as e:
        _fail(e)

    if not found:
        console.print("[yellow]No blocked periods.[/yellow]")
        return

    table = Table(title="Blocked periods", show_header=True, header_style="bold cyan")
    table.add_column("ID", style="dim")
    table.add_column("Period", style="bold yellow")
    table.add_column("Reason")

    for blocked_range in found:
        table.add_row(blocked_range.id, blocked_range.describe(), blocked_range.reason or "")

    console.print()
    console.print(table)
    console.print()


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]appointmentcore[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
