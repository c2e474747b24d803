"""Operator CLI for EasyScrapy using Typer."""

import asyncio
import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from .utils import setup_logging

# Load .env from project directory only
_env_path = Path(__file__).parent.parent / ".env"
load_dotenv(_env_path, override=False)

# CLI styles
STYLE_HEADER = "bold blue"
STYLE_SUCCESS = "bold green"
STYLE_WARNING = "bold yellow"
STYLE_ERROR = "bold red"

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="easyscrapy",
    help="EasyScrapy - operator tasks for the scraping backend.",
    add_completion=False,
)
console = Console()


def _run(coro):
    """Run a coroutine and dispose of the engine afterwards."""
    from easyscrapy.db.session import engine

    async def runner():
        try:
            return await coro
        finally:
            await engine.dispose()

    return asyncio.run(runner())


@app.callback()
def main(verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Verbose output")] = False):
    setup_logging(verbose)


@app.command("init-db")
def init_db():
    """Create all tables (development; production uses Alembic)."""
    from easyscrapy.seed import create_tables

    _run(create_tables())
    console.print(f"[{STYLE_SUCCESS}]Tables created.[/{STYLE_SUCCESS}]")


@app.command("seed-packs")
def seed_packs_cmd():
    """Replace the pack catalog with the built-in definitions."""
    from easyscrapy.db.session import async_session_factory
    from easyscrapy.services.pack_service import seed_packs

    async def _seed():
        async with async_session_factory() as db:
            return [(p.id, p.nb_downloads, p.price, p.price_label) for p in await seed_packs(db)]

    rows = _run(_seed())
    table = Table(title="Packs", header_style=STYLE_HEADER)
    for column in ("Id", "Downloads", "Price (MGA)", "Label"):
        table.add_column(column)
    for pack_id, downloads, price, label in rows:
        table.add_row(pack_id, str(downloads), f"{price:,.0f}", label)
    console.print(table)


@app.command("create-admin")
def create_admin(
    email: Annotated[str, typer.Option(help="Admin email")],
    password: Annotated[
        Optional[str], typer.Option(help="Admin password", prompt=True, hide_input=True, confirmation_prompt=True)
    ] = None,
):
    """Create an admin account, or promote an existing user."""
    from easyscrapy.db.session import async_session_factory
    from easyscrapy.seed import ensure_admin

    if not password or len(password) < 8:
        console.print(f"[{STYLE_ERROR}]Password must be at least 8 characters.[/{STYLE_ERROR}]")
        raise typer.Exit(1)

    async def _create():
        async with async_session_factory() as db:
            return await ensure_admin(db, email, password)

    user_id, created = _run(_create())
    if created:
        console.print(f"[{STYLE_SUCCESS}]Admin created (id={user_id}).[/{STYLE_SUCCESS}]")
    else:
        console.print(f"[{STYLE_WARNING}]User already existed, promoted to admin (id={user_id}).[/{STYLE_WARNING}]")


@app.command("expire-trials")
def expire_trials():
    """Remove unused trial credits past their expiry date."""
    from easyscrapy.db.session import async_session_factory
    from easyscrapy.services.credit_service import expire_trial_credits

    async def _expire():
        async with async_session_factory() as db:
            return await expire_trial_credits(db)

    count = _run(_expire())
    console.print(f"[{STYLE_SUCCESS}]Expired trial credits for {count} user(s).[/{STYLE_SUCCESS}]")


@app.command()
def stats():
    """Show session, payment and credit statistics."""
    from easyscrapy.db.session import async_session_factory
    from easyscrapy.services.admin_service import get_stats

    async def _stats():
        async with async_session_factory() as db:
            return await get_stats(db)

    data = _run(_stats())
    sessions = data["sessions"]

    table = Table(title="EasyScrapy", header_style=STYLE_HEADER, show_header=False)
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Sessions", str(sessions["total"]))
    table.add_row("Completed", str(sessions["completed"]))
    table.add_row("Failed", str(sessions["failed"]))
    table.add_row("Paid", str(sessions["paid"]))
    table.add_row("Success rate", f"{sessions['success_rate']}%")
    table.add_row("Stripe revenue (EUR)", f"{sessions['revenue']:.2f}")
    table.add_row("Users (active / total)", f"{data['users']['active']} / {data['users']['total']}")
    table.add_row("Credits outstanding", f"{data['credits']['outstanding']}")
    table.add_row("Credits consumed", f"{data['credits']['consumed']}")
    console.print(table)

    if sessions["method_stats"]:
        methods = ", ".join(f"{k}: {v}" for k, v in sessions["method_stats"].items())
        console.print(f"Payment methods: {methods}")


@app.command("purge-dataset")
def purge_dataset(session_id: Annotated[str, typer.Argument(help="Session whose actor dataset to delete")]):
    """Delete the actor platform dataset of a session (stored items are kept)."""
    from easyscrapy.db.session import async_session_factory
    from easyscrapy.services.actor_client import ActorClient, ActorClientError
    from easyscrapy.services.session_service import SessionRepository

    async def _purge():
        async with async_session_factory() as db:
            repo = SessionRepository(db)
            session = await repo.get(session_id)
            if not session or not session.dataset_id:
                return None
            await ActorClient().delete_dataset(session.dataset_id)
            return session.dataset_id

    try:
        dataset_id = _run(_purge())
    except ActorClientError as e:
        console.print(f"[{STYLE_ERROR}]Failed: {e}[/{STYLE_ERROR}]")
        raise typer.Exit(1)
    if dataset_id is None:
        console.print(f"[{STYLE_WARNING}]Session not found or has no dataset.[/{STYLE_WARNING}]")
        raise typer.Exit(1)
    console.print(f"[{STYLE_SUCCESS}]Dataset {dataset_id} deleted.[/{STYLE_SUCCESS}]")


if __name__ == "__main__":
    app()
