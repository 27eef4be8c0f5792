"""Events subcommand: create, list, odds, resolve."""

from __future__ import annotations

import typer

from poolmarket.market import views
from poolmarket.market.admin import AdminService
from poolmarket.market.engine import MarketEngine
from poolmarket.market.errors import MarketError
from poolmarket.storage.store import Store

app = typer.Typer(help="Market events: create, inspect, resolve")


def _open_store(ctx: typer.Context) -> Store:
    settings = ctx.obj["settings"]
    return Store(settings.db_path, lock_timeout_sec=settings.lock_timeout_sec)


@app.command("create")
def create(
    ctx: typer.Context,
    title: str = typer.Argument(..., help="Market question"),
    description: str = typer.Option("", "--description", "-d"),
    outcome: list[str] | None = typer.Option(
        None, "--outcome", "-o", help="Outcome label (repeat for multi events; omit for Yes/No)"
    ),
) -> None:
    """Create an event. Two or more --outcome options make it a multi-outcome event."""
    store = _open_store(ctx)
    try:
        event_type = "multi" if outcome else "binary"
        event, odds = AdminService(store).create_event(title, description, event_type, outcome)
        typer.echo(f"Created event {event.event_id}: {event.title}")
        for o in odds:
            typer.echo(f"  {o.outcome_id:>4}  {o.label:<20} {o.odds:6.2f}%")
    except MarketError as e:
        typer.echo(f"Error: {e}")
        raise typer.Exit(1)
    finally:
        store.close()


@app.command("list")
def list_events(ctx: typer.Context) -> None:
    """List events with current odds."""
    store = _open_store(ctx)
    try:
        with store.reading() as conn:
            rows = views.list_events(conn)
        for e in rows:
            odds = "  ".join(f"{o.label} {o.odds:.2f}%" for o in e.odds)
            typer.echo(f"  {e.event_id:>4}  [{e.status.value}]  {e.title[:50]}  {odds}")
        typer.echo(f"Total: {len(rows)} events")
    finally:
        store.close()


@app.command("odds")
def odds(ctx: typer.Context, event_id: int = typer.Argument(..., help="Event ID")) -> None:
    """Show live odds and pool shares for one event."""
    store = _open_store(ctx)
    try:
        for o in MarketEngine(store).get_odds(event_id):
            typer.echo(f"  {o.outcome_id:>4}  {o.label:<20} {o.odds:6.2f}%  shares={o.shares:.0f}")
    finally:
        store.close()


@app.command("resolve")
def resolve(
    ctx: typer.Context,
    event_id: int = typer.Argument(..., help="Event ID"),
    winner: int = typer.Option(..., "--winner", "-w", help="Winning outcome ID"),
) -> None:
    """Resolve an event and pay out its pool."""
    store = _open_store(ctx)
    try:
        result = MarketEngine(store).resolve(event_id, winner)
        typer.echo(f"Resolved event {event_id}; winning outcome {winner}")
        for uo in result.user_outcomes:
            status = "refund" if uo.refund else ("won" if uo.won else "lost")
            typer.echo(f"  user {uo.user_id:>4}  {status:<6}  {uo.payout} pts")
    except MarketError as e:
        typer.echo(f"Error: {e}")
        raise typer.Exit(1)
    finally:
        store.close()
