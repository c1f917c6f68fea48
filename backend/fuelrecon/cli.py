# Overview: Flask CLI command groups for station setup, reconciliation scans and shift alerts.

# backend/fuelrecon/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to "fuelrecon:create_app".
# - Use: python -m flask <group> <command> [options]
#
# Station setup:
# - python -m flask stations create --code ST-01 --name "Highway 12" --type GAS --max-shifts 2
#   Create a station.
# - python -m flask stations list [--all]
#   List stations (use --all to include inactive).
#
# Reconciliation:
# - python -m flask recon scan --station-id 1 --start 2026-03-01 --end 2026-03-31
#   List days with flagged discrepancies or negative stock.
# - python -m flask recon daily-scan --station-id 1 --start 2026-03-01 --end 2026-03-31
#   Recheck and store daily meter vs transaction anomalies.
# - python -m flask recon pending [--station-id 1]
#   List unreviewed nozzle and daily anomalies.
#
# Shifts:
# - python -m flask shifts overdue [--station-id 1]
#   List CLOSED shifts past the lock window.

import click
from flask.cli import with_appcontext

from .services import anomaly_service, reconciliation_service, shift_service, station_service
from .validation import ReconError


@click.group('stations')
def stations_group():
    """Station setup commands."""


@stations_group.command('create')
@click.option('--code', required=True, help='Unique station code')
@click.option('--name', required=True, help='Display name')
@click.option('--type', 'station_type', default='FULL', type=click.Choice(['FULL', 'SIMPLE', 'GAS'], case_sensitive=False))
@click.option('--max-shifts', default=1, type=int, help='Shifts per day (1-3)')
@click.option('--nozzles', 'nozzle_count', default=4, type=int, help='Nozzle count (1-4)')
@click.option('--tanks', 'tank_count', default=3, type=int, help='Tank count (gas stations)')
@with_appcontext
def create_station_cli(code, name, station_type, max_shifts, nozzle_count, tank_count):
    """Create a station."""
    try:
        station = station_service.create_station(
            code=code,
            name=name,
            station_type=station_type,
            max_shifts=max_shifts,
            nozzle_count=nozzle_count,
            tank_count=tank_count,
        )
    except ReconError as e:
        raise click.ClickException(e.message)
    click.echo(f"Created station {station.code} (id={station.id}, type={station.station_type})")


@stations_group.command('list')
@click.option('--all', 'include_inactive', is_flag=True, help='Include inactive stations')
@with_appcontext
def list_stations_cli(include_inactive):
    """List stations."""
    stations = station_service.list_stations(include_inactive=include_inactive)
    if not stations:
        click.echo("No stations found.")
        return
    for s in stations:
        status = "active" if s.is_active else "inactive"
        click.echo(f"  {s.id:>4}  {s.code:<12} {s.name:<30} {s.station_type:<7} shifts={s.max_shifts} nozzles={s.nozzle_count} [{status}]")


@click.group('recon')
def recon_group():
    """Reconciliation commands."""


@recon_group.command('scan')
@click.option('--station-id', required=True, type=int)
@click.option('--start', required=True, help='First date (YYYY-MM-DD)')
@click.option('--end', required=True, help='Last date (YYYY-MM-DD)')
@with_appcontext
def scan_cli(station_id, start, end):
    """Report days with flagged discrepancies or negative stock."""
    try:
        anomalies = reconciliation_service.scan_anomalies(station_id, start, end)
    except ReconError as e:
        raise click.ClickException(e.message)

    if not anomalies:
        click.echo("No anomalies found.")
        return
    for day in anomalies:
        click.echo(f"{day['business_date']}:")
        for d in day["flagged"]:
            click.echo(f"  {d['kind']:<22} computed={d['computed']} reference={d['reference']} diff={d['diff']}")
        if day["stock"] and day["stock"]["is_anomaly"]:
            click.echo(f"  negative stock level {day['stock']['level']}")
        for warning in day["continuity_warnings"]:
            click.echo(f"  {warning}")


@recon_group.command('daily-scan')
@click.option('--station-id', required=True, type=int)
@click.option('--start', required=True, help='First date (YYYY-MM-DD)')
@click.option('--end', required=True, help='Last date (YYYY-MM-DD)')
@with_appcontext
def daily_scan_cli(station_id, start, end):
    """Recheck daily meter vs transaction anomalies and store the result."""
    try:
        result = anomaly_service.scan_daily_anomalies(station_id, start, end)
    except ReconError as e:
        raise click.ClickException(e.message)
    click.echo(f"Scanned {result['scanned']} day(s), {result['found']} anomalous.")


@recon_group.command('pending')
@click.option('--station-id', type=int, default=None)
@with_appcontext
def pending_cli(station_id):
    """List anomalies awaiting review."""
    nozzle = anomaly_service.pending_nozzle_anomalies(station_id)
    daily = anomaly_service.pending_daily_anomalies(station_id)
    if not nozzle and not daily:
        click.echo("No pending anomalies.")
        return
    for a in nozzle:
        click.echo(
            f"  nozzle {a.id:>5}  shift={a.shift_id} nozzle={a.nozzle_number} "
            f"sold={a.sold_liters} avg={a.average_liters} {a.percent_diff}% {a.severity}"
        )
    for a in daily:
        click.echo(
            f"  daily  {a.id:>5}  station={a.station_id} date={a.business_date.isoformat()} "
            f"diff={a.difference} {a.severity}"
        )


@click.group('shifts')
def shifts_group():
    """Shift inspection commands."""


@shifts_group.command('overdue')
@click.option('--station-id', type=int, default=None)
@with_appcontext
def overdue_cli(station_id):
    """List CLOSED shifts that have passed the lock window."""
    shifts = shift_service.list_overdue_closed_shifts(station_id=station_id)
    if not shifts:
        click.echo("No overdue shifts.")
        return
    for s in shifts:
        day = s.station_day
        click.echo(
            f"  shift {s.id:>5}  station={day.station_id} date={day.business_date.isoformat()} "
            f"#{s.shift_number} closed_at={s.closed_at.isoformat()} by={s.closed_by}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(stations_group)
    app.cli.add_command(recon_group)
    app.cli.add_command(shifts_group)
