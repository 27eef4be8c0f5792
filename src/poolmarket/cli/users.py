"""Users subcommand: create, list, set-balance."""

from __future__ import annotations

import typer

from poolmarket.market.admin import AdminService
from poolmarket.market.errors import MarketError
from poolmarket.storage import users as user_store
from poolmarket.storage.store import Store

app = typer.Typer(help="User accounts and balances")


@app.command("create")
def create(
    ctx: typer.Context,
    username: str = typer.Argument(..., help="Username"),
    balance: int | None = typer.Option(None, "--balance", "-b", help="Starting balance (default from config)"),
    admin: bool = typer.Option(False, "--admin", help="Grant admin rights"),
) -> None:
    """Create a user account."""
    settings = ctx.obj["settings"]
    store = Store(settings.db_path, lock_timeout_sec=settings.lock_timeout_sec)
    try:
        service = AdminService(store, starting_balance=settings.starting_balance)
        user = service.create_user(username, balance=balance, is_admin=admin)
        typer.echo(f"Created user {user.user_id} ({user.username}) with {user.balance} pts")
    except MarketError as e:
        typer.echo(f"Error: {e}")
        raise typer.Exit(1)
    finally:
        store.close()


@app.command("list")
def list_users(ctx: typer.Context) -> None:
    """List users and balances."""
    settings = ctx.obj["settings"]
    store = Store(settings.db_path, lock_timeout_sec=settings.lock_timeout_sec)
    try:
        with store.reading() as conn:
            rows = user_store.list_users(conn)
        for u in rows:
            flag = " [admin]" if u.is_admin else ""
            typer.echo(f"  {u.user_id:>4}  {u.username:<20} {u.balance:>8}{flag}")
        typer.echo(f"Total: {len(rows)} users")
    finally:
        store.close()


@app.command("set-balance")
def set_balance(
    ctx: typer.Context,
    user_id: int = typer.Argument(..., help="User ID"),
    balance: int = typer.Argument(..., help="New balance"),
) -> None:
    """Override a user's balance."""
    settings = ctx.obj["settings"]
    store = Store(settings.db_path, lock_timeout_sec=settings.lock_timeout_sec)
    try:
        user = AdminService(store).set_balance(user_id, balance)
        typer.echo(f"User {user.user_id} balance set to {user.balance}")
    except MarketError as e:
        typer.echo(f"Error: {e}")
        raise typer.Exit(1)
    finally:
        store.close()
