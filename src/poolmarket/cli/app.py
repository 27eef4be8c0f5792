"""poolmarket command line: global options and subcommand registration."""

from pathlib import Path

import typer

from poolmarket.config import get_settings
from poolmarket.config.settings import configure_logging

app = typer.Typer(
    name="poolmarket",
    help="PoolMarket - social pari-mutuel prediction market server.",
    no_args_is_help=True,
)


@app.callback()
def main(
    ctx: typer.Context,
    config_dir: Path | None = typer.Option(
        None, "--config-dir", "-C", help="Config directory (default: ./config or package config)"
    ),
    profile: str | None = typer.Option(
        None, "--profile", "-p", help="Config profile (e.g. dev) to overlay on default.toml"
    ),
) -> None:
    """Configure logging and store options in context."""
    settings = get_settings(profile, config_dir)
    configure_logging(settings)
    ctx.obj = {"settings": settings, "config_dir": config_dir, "profile": profile}


# Subcommand groups
from poolmarket.cli import events, serve, users  # noqa: E402

app.add_typer(serve.app, name="serve")
app.add_typer(users.app, name="users")
app.add_typer(events.app, name="events")


def run() -> None:
    app()


if __name__ == "__main__":
    run()
