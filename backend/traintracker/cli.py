"""Train Tracker CLI for community train-crossing reports.

Commands:
  init-db          create database tables
  status           consensus and latest report from the database
  report           submit a simulated report
  check-zone       run the polygon geofence on a coordinate
  check-crossing   run the crossing-distance geofence on a coordinate
  geofence         list configured zones and crossings
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table


app = typer.Typer(
    name="traintracker",
    help="Community train-crossing reports with safety-first consensus.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
console = Console()

_STATUS_LABELS = {
    True: "[bold red]TRAIN CROSSING[/bold red]",
    False: "[bold green]CLEAR[/bold green]",
    None: "[dim]UNKNOWN[/dim]",
}


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command("init-db")
def init_db_command():
    """Create database tables."""
    from traintracker.database import init_db

    try:
        with console.status("[bold]Creating database..."):
            init_db()
    except Exception as e:
        console.print(f"[red]Database setup failed: {e}[/red]")
        raise typer.Exit(1)
    console.print("[green]Database ready.[/green]")


@app.command("status")
def status():
    """Show the current consensus and the latest report."""
    from traintracker.database import SessionLocal
    from traintracker.modules import report_service
    from traintracker.modules.consensus import explain_consensus

    now = datetime.now(timezone.utc)
    db = SessionLocal()
    try:
        result = report_service.current_consensus(db, now)
        latest = report_service.latest_report(db)
    finally:
        db.close()

    console.print(f"[bold]Consensus:[/bold] {_STATUS_LABELS[result.status]}")
    console.print(f"  {explain_consensus(result)}")
    console.print(
        f"  Confidence: {result.confidence.value}  "
        f"(crossing {result.counts.crossing}, clear {result.counts.clear}, total {result.counts.total})"
    )
    if latest:
        kind = "crossing" if latest.is_train_crossing else "clear"
        console.print(f"\n[bold]Latest report:[/bold] #{latest.id} {kind} at {latest.reported_at}")
    else:
        console.print("\n[yellow]No reports yet[/yellow]")


@app.command("report")
def report(
    crossing: bool = typer.Option(..., "--crossing/--clear", help="Train crossing or tracks clear"),
    user: str = typer.Option("cli", "--user", help="Simulated user name"),
):
    """Submit a simulated report (skips the geofence gate)."""
    from traintracker.database import SessionLocal
    from traintracker.modules import report_service

    db = SessionLocal()
    try:
        created = report_service.create_report(
            db,
            is_train_crossing=crossing,
            now=datetime.now(timezone.utc),
            user_ip_address=f"127.0.0.1-{user}",
            user_agent=f"SimulatedUser/{user}",
            session_id=report_service.new_session_id(user),
        )
        console.print(
            f"[green]Report #{created.id} recorded[/green] "
            f"({'crossing' if crossing else 'clear'})"
        )
    finally:
        db.close()


@app.command("check-zone")
def check_zone(
    lat: float = typer.Argument(..., help="Latitude"),
    lng: float = typer.Argument(..., help="Longitude"),
    accuracy: float = typer.Option(10.0, "--accuracy", help="GPS accuracy in metres"),
    include_test_zones: Optional[bool] = typer.Option(
        None, "--include-test-zones/--no-test-zones", help="Override ALLOW_TEST_ZONES"
    ),
):
    """Check a coordinate against the polygon reporting zones."""
    from traintracker.modules.geofence import nearest_zone, validate_zone
    from traintracker.modules.geofence_loader import get_geofence_snapshot
    from traintracker.utils.geo import GeoPoint

    snapshot = get_geofence_snapshot()
    point = GeoPoint(lat, lng)
    result = validate_zone(point, accuracy, snapshot.zones, snapshot.config, include_test_zones)
    _print_verdict(result.is_valid, result.reason)

    allow_test = snapshot.config.allow_test_zones if include_test_zones is None else include_test_zones
    nearest = nearest_zone(point, snapshot.zones, allow_test)
    if nearest:
        zone, distance = nearest
        console.print(f"  Nearest zone centre: {zone.name} ({distance:.0f}m)")


@app.command("check-crossing")
def check_crossing(
    lat: float = typer.Argument(..., help="Latitude"),
    lng: float = typer.Argument(..., help="Longitude"),
    accuracy: float = typer.Option(10.0, "--accuracy", help="GPS accuracy in metres"),
):
    """Check a coordinate against the crossing-distance geofence."""
    from traintracker.modules.crossing_geofence import describe_distance, validate_crossing
    from traintracker.modules.geofence_loader import get_geofence_snapshot
    from traintracker.utils.geo import GeoPoint, distance_between

    snapshot = get_geofence_snapshot()
    point = GeoPoint(lat, lng)

    table = Table(title="Distances to crossings")
    table.add_column("Crossing", style="cyan")
    table.add_column("Distance (m)", justify="right")
    table.add_column("In range")
    for crossing in snapshot.crossings:
        distance = distance_between(point, crossing.point)
        in_range = distance <= snapshot.config.max_distance_meters
        table.add_row(crossing.name, f"{distance:.0f}", "[green]yes[/green]" if in_range else "no")
    console.print(table)

    result = validate_crossing(point, accuracy, snapshot.crossings, snapshot.config)
    _print_verdict(result.is_valid, result.reason)
    console.print(f"  {describe_distance(point, snapshot.crossings)}")


@app.command("geofence")
def geofence():
    """List configured zones and crossings."""
    from traintracker.modules.geofence import polygon_center
    from traintracker.modules.geofence_loader import get_geofence_snapshot

    snapshot = get_geofence_snapshot()
    cfg = snapshot.config
    console.print(
        f"[bold]Geofence[/bold] enforce={cfg.enforce}  "
        f"max_distance={cfg.max_distance_meters:.0f}m  min_accuracy={cfg.min_accuracy_meters:.0f}m"
    )

    zones = Table(title="Zones")
    zones.add_column("ID", style="cyan")
    zones.add_column("Name")
    zones.add_column("Vertices", justify="right")
    zones.add_column("Centre")
    zones.add_column("Flags")
    for z in snapshot.zones:
        centre = polygon_center(z.polygon)
        flags = ", ".join(f for f, on in (("test", z.is_test_zone), ("inactive", not z.is_active)) if on)
        zones.add_row(z.id, z.name, str(len(z.polygon)), f"{centre.lat:.5f}, {centre.lng:.5f}", flags)
    console.print(zones)

    crossings = Table(title="Crossings")
    crossings.add_column("ID", style="cyan")
    crossings.add_column("Name")
    crossings.add_column("Location")
    for c in snapshot.crossings:
        crossings.add_row(c.id, c.name, f"{c.lat:.6f}, {c.lng:.6f}")
    console.print(crossings)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _print_verdict(is_valid: bool, reason: str) -> None:
    if is_valid:
        console.print(f"[green]ACCEPTED[/green] {reason}")
    else:
        console.print(f"[red]REJECTED[/red] {reason}")


if __name__ == "__main__":
    app()
