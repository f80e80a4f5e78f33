"""Typer CLI for Planwise-Engine."""

import asyncio
from datetime import datetime
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(name="planwise", help="Planwise-Engine: subscription entitlement resolution")
console = Console()


def _parse_date(value: Optional[str], name: str) -> Optional[datetime]:
    from planwise_engine.common.clock import ensure_utc

    if value is None:
        return None
    try:
        return ensure_utc(datetime.fromisoformat(value))
    except ValueError:
        raise typer.BadParameter(f"{name} must be an ISO-8601 datetime, got {value!r}")


def _setup() -> None:
    from planwise_engine.common.config import get_settings
    from planwise_engine.common.logging import setup_logging

    setup_logging(get_settings().log_level)


@app.command()
def status(
    activation: Optional[str] = typer.Option(None, help="Activation date (ISO-8601)"),
    expiration: Optional[str] = typer.Option(None, help="Expiration date (ISO-8601)"),
    cancellation: Optional[str] = typer.Option(None, help="Cancellation date (ISO-8601)"),
    trial_end: Optional[str] = typer.Option(None, help="Trial end date (ISO-8601)"),
    now: Optional[str] = typer.Option(None, help="Evaluate at this instant instead of the current time"),
):
    """Compute a subscription status from its dates (offline, no DB required)."""
    from planwise_engine.common.clock import utcnow
    from planwise_engine.subscriptions.status import compute_status

    result = compute_status(
        _parse_date(now, "--now") or utcnow(),
        activation_date=_parse_date(activation, "--activation"),
        expiration_date=_parse_date(expiration, "--expiration"),
        cancellation_date=_parse_date(cancellation, "--cancellation"),
        trial_end_date=_parse_date(trial_end, "--trial-end"),
    )
    console.print(f"[bold]{result.value}[/bold]")


@app.command("init-db")
def init_db():
    """Create all database tables."""
    _setup()
    from planwise_engine.deps import get_db

    async def _run() -> None:
        db = get_db()
        await db.init()
        try:
            await db.create_all()
        finally:
            await db.close()

    asyncio.run(_run())
    console.print("[bold green]Database initialized[/bold green]")


@app.command()
def seed():
    """Load the sample catalog (skips entities that already exist)."""
    _setup()
    from planwise_engine.catalog.templates import seed_sample_catalog
    from planwise_engine.deps import get_catalog_service, get_db

    async def _run() -> int:
        db = get_db()
        await db.init()
        try:
            await db.create_all()
            async with db.get_session() as session:
                return await seed_sample_catalog(session, get_catalog_service())
        finally:
            await db.close()

    created = asyncio.run(_run())
    console.print(f"[bold green]Seeded[/bold green] {created} plan(s)")


@app.command()
def transitions():
    """Move subscriptions whose period ended onto their plan's transition cycle."""
    _setup()
    from planwise_engine.deps import get_db, get_subscription_service

    async def _run() -> int:
        db = get_db()
        await db.init()
        try:
            async with db.get_session() as session:
                return await get_subscription_service().process_automatic_transitions(session)
        finally:
            await db.close()

    moved = asyncio.run(_run())
    console.print(f"[bold green]Transitioned[/bold green] {moved} subscription(s)")


@app.command()
def check(
    customer: str = typer.Argument(..., help="Customer key"),
    product: str = typer.Argument(..., help="Product key"),
    feature: Optional[str] = typer.Option(None, help="Explain a single feature"),
):
    """Show the resolved feature values for a customer in a product."""
    _setup()
    from planwise_engine.deps import get_db, get_feature_checker

    checker = get_feature_checker()

    async def _run():
        db = get_db()
        await db.init()
        try:
            async with db.get_session() as session:
                if feature is not None:
                    return await checker.explain_value_for_customer(
                        session, customer, product, feature
                    )
                return await checker.get_all_features_for_customer(session, customer, product)
        finally:
            await db.close()

    result = asyncio.run(_run())

    if feature is not None:
        if result is None:
            console.print("[bold red]NOT_FOUND[/bold red]: unknown customer, product or feature")
            raise typer.Exit(1)
        origin = f" via {result.subscription_key}" if result.subscription_key else ""
        console.print(f"[bold]{result.feature_key}[/bold] = {result.value} ({result.source}{origin})")
        return

    if not result:
        console.print("[yellow]No features resolved (unknown customer or product)[/yellow]")
        raise typer.Exit(1)

    table = Table(title=f"{customer} / {product}")
    table.add_column("Feature")
    table.add_column("Value")
    for key, value in result.items():
        table.add_row(key, value)
    console.print(table)


if __name__ == "__main__":
    app()
