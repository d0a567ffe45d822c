"""
Tests for the command line interface.
"""

import pendulum
import pytest
from typer.testing import CliRunner

from appointmentcore.cli.app import app

runner = CliRunner()


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "config.yaml"
    availability = "\n".join(
        f'  - {{day_of_week: {day}, start_time: "09:00", end_time: "17:00"}}' for day in range(7)
    )
    path.write_text(
        f"""
timezone: Europe/Budapest
database_url: sqlite:///{tmp_path / 'appointments.db'}
log_level: WARNING
services:
  - id: consultation
    name: Free consultation
    duration_minutes: 30
availability:
{availability}
""",
        encoding="utf-8",
    )
    return str(path)


@pytest.fixture
def next_week() -> str:
    return pendulum.today("Europe/Budapest").add(days=7).to_date_string()


class TestCli:
    """Tests for the typer application."""

    def test_services(self, config_path):
        result = runner.invoke(app, ["services", "--config", config_path])

        assert result.exit_code == 0
        assert "consultation" in result.output

    def test_missing_config(self, tmp_path):
        result = runner.invoke(app, ["services", "--config", str(tmp_path / "nope.yaml")])

        assert result.exit_code == 1
        assert "Config file not found" in result.output

    def test_book_and_list(self, config_path, next_week):
        booked = runner.invoke(
            app,
            ["book", "consultation", next_week, "10:00", "--name", "Anna", "--email", "anna@example.com",
             "--config", config_path],
        )
        assert booked.exit_code == 0
        assert "confirmed" in booked.output

        listed = runner.invoke(app, ["bookings", "--config", config_path])
        assert listed.exit_code == 0
        assert "Bookings" in listed.output

        again = runner.invoke(
            app,
            ["book", "consultation", next_week, "10:00", "--name", "Bela", "--email", "bela@example.com",
             "--config", config_path],
        )
        assert again.exit_code == 1
        assert "just been booked" in again.output

    def test_slots(self, config_path, next_week):
        result = runner.invoke(app, ["slots", "consultation", next_week, "--config", config_path])

        assert result.exit_code == 0
        assert "16 available slot(s)" in result.output

    def test_block_and_unblock(self, config_path, next_week):
        blocked = runner.invoke(
            app, ["block", next_week, "--all-day", "--reason", "Holiday", "--config", config_path]
        )
        assert blocked.exit_code == 0
        assert "1 day(s) blocked" in blocked.output

        slots = runner.invoke(app, ["slots", "consultation", next_week, "--config", config_path])
        assert "No available times" in slots.output

        range_id = blocked.output.split("blocked.")[1].split()[0]
        removed = runner.invoke(app, ["unblock", range_id, "--config", config_path])
        assert removed.exit_code == 0

    def test_invalid_block_interval(self, config_path, next_week):
        result = runner.invoke(
            app, ["block", next_week, "--from", "13:00", "--to", "12:00", "--config", config_path]
        )

        assert result.exit_code == 1
        assert "start time must be earlier" in result.output

    def test_unknown_booking(self, config_path):
        result = runner.invoke(app, ["cancel", "missing", "--config", config_path])

        assert result.exit_code == 1
        assert "No such booking" in result.output
