"""Click-based CLI for crypto-alerter.

Thin wrapper around library modules: the price check lives in ``checker``,
persistence in ``storage``, delivery in ``notify``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys

import click
from rich.console import Console
from rich.table import Table

from crypto_alerter.core.exceptions import CryptoAlerterError

console = Console(stderr=True)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run_async(coro):
    """Run an async coroutine from synchronous Click code.

    Library errors become a red message and exit code 1.
    """
    try:
        return asyncio.run(coro)
    except CryptoAlerterError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)


def _load_config(ctx: click.Context):
    """Load config lazily, caching on first call."""
    if "config" not in ctx.obj:
        from crypto_alerter.core import load_config

        try:
            ctx.obj["config"] = load_config(config_path=ctx.obj.get("config_path"))
        except CryptoAlerterError as e:
            console.print(f"[red]Configuration error:[/red] {e}")
            sys.exit(1)
    return ctx.obj["config"]


async def _create_store_async(config):
    """Create and initialize storage from config."""
    from crypto_alerter.storage import create_store

    return await create_store(config.storage)


def _format_price(value: float) -> str:
    from crypto_alerter.notify import format_price

    return format_price(value)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    envvar="CRYPTO_ALERTER_CONFIG",
    default=None,
    help="Path to crypto-alerter.yml config file.",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable debug logging.",
)
@click.version_option(package_name="crypto-alerter")
@click.pass_context
def cli(ctx: click.Context, config: str | None, verbose: bool) -> None:
    """Crypto Alerter: email alerts when tracked coins rise past a threshold."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose


# ---------------------------------------------------------------------------
# check
# ---------------------------------------------------------------------------


@cli.command()
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice(["table", "json"], case_sensitive=False),
    default="table",
    help="Output format.",
)
@click.pass_context
def check(ctx: click.Context, output_format: str) -> None:
    """Run one price check. Point cron or a scheduler at this."""
    config = _load_config(ctx)

    async def _run():
        from crypto_alerter.checker import run_price_check

        store = await _create_store_async(config)
        try:
            return await run_price_check(config, store)
        finally:
            await store.close()

    result = _run_async(_run())

    if output_format == "json":
        click.echo(json.dumps(result.model_dump(mode="json"), indent=2))
    else:
        _output_check_table(result)

    if result.failed_subscriptions:
        sys.exit(2)


def _output_check_table(result) -> None:
    """Print check results as a Rich table."""
    if result.subscriptions_checked == 0 and not result.failed_subscriptions:
        console.print("[yellow]No alert settings found.[/yellow]")
        return

    console.print(
        f"Checked prices for [bold]{result.assets_checked}[/bold] cryptocurrencies "
        f"across {result.subscriptions_checked} subscriptions"
    )
    if result.alerts:
        table = Table(title="Alerts")
        table.add_column("Subscriber", style="bold")
        table.add_column("Coin")
        table.add_column("Previous", justify="right")
        table.add_column("Current", justify="right")
        table.add_column("Change", justify="right", style="green")

        for a in result.alerts:
            table.add_row(
                a.subscription_id,
                f"{a.crypto} ({a.symbol.upper()})",
                _format_price(a.previous_price),
                _format_price(a.current_price),
                f"+{a.percentage_change:.2f}%",
            )
        console.print(table)
    else:
        console.print("No thresholds crossed.")

    if result.notifications_failed:
        console.print(
            f"[yellow]{result.notifications_failed} alert(s) could not be emailed.[/yellow]"
        )
    if result.failed_subscriptions:
        console.print(
            "[red]Skipped subscriptions:[/red] " + ", ".join(result.failed_subscriptions)
        )


# ---------------------------------------------------------------------------
# subscriptions
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("subscriber_id")
@click.option("--email", "-e", required=True, help="Where alerts are sent.")
@click.option(
    "--cryptos",
    "-k",
    required=True,
    help="Comma-separated CoinGecko ids, e.g. bitcoin,ethereum.",
)
@click.option("--threshold", "-t", type=float, default=3.0, help="Percent rise that fires.")
@click.option("--interval", "-i", type=int, default=15, help="Check interval in minutes.")
@click.pass_context
def subscribe(
    ctx: click.Context,
    subscriber_id: str,
    email: str,
    cryptos: str,
    threshold: float,
    interval: int,
) -> None:
    """Create or replace a subscriber's alert settings."""
    from datetime import UTC, datetime

    from pydantic import ValidationError

    from crypto_alerter.core import Subscription, SubscriptionRequest

    config = _load_config(ctx)
    try:
        request = SubscriptionRequest(
            email=email,
            threshold=threshold,
            interval=interval,
            cryptos=[c for c in cryptos.split(",") if c.strip()],
        )
        subscription = Subscription.from_request(
            subscriber_id, request, created_at=datetime.now(UTC)
        )
    except ValidationError as e:
        raise click.BadParameter(str(e)) from e

    async def _run():
        store = await _create_store_async(config)
        try:
            await store.save_subscription(subscription)
        finally:
            await store.close()

    _run_async(_run())
    console.print(
        f"[green]Settings saved[/green] for [bold]{subscription.id}[/bold]: "
        f"{', '.join(subscription.cryptos)} at +{subscription.threshold:g}%"
    )


@cli.command()
@click.argument("subscriber_id")
@click.pass_context
def unsubscribe(ctx: click.Context, subscriber_id: str) -> None:
    """Delete a subscriber's settings. Alert history is kept."""
    config = _load_config(ctx)

    async def _run():
        store = await _create_store_async(config)
        try:
            return await store.delete_subscription(subscriber_id)
        finally:
            await store.close()

    if not _run_async(_run()):
        console.print(f"[red]No settings found for '{subscriber_id}'.[/red]")
        sys.exit(1)
    console.print(f"[green]Settings deleted[/green] for [bold]{subscriber_id}[/bold]")


@cli.command()
@click.pass_context
def subscriptions(ctx: click.Context) -> None:
    """List every subscription."""
    config = _load_config(ctx)

    async def _run():
        store = await _create_store_async(config)
        try:
            return await store.list_subscriptions()
        finally:
            await store.close()

    rows = _run_async(_run())
    if not rows:
        console.print("[yellow]No subscriptions.[/yellow]")
        return

    table = Table(title="Subscriptions")
    table.add_column("ID", style="bold")
    table.add_column("Email")
    table.add_column("Cryptos")
    table.add_column("Threshold", justify="right")
    table.add_column("Interval", justify="right")
    table.add_column("Last checked")

    for s in rows:
        table.add_row(
            s.id,
            s.email,
            ", ".join(s.cryptos),
            f"{s.threshold:g}%",
            f"{s.interval}m",
            s.last_checked_at.isoformat(timespec="seconds") if s.last_checked_at else "never",
        )
    console.print(table)


# ---------------------------------------------------------------------------
# history
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--subscriber", "-s", "subscriber_id", default=None, help="Filter by subscriber.")
@click.option("--limit", "-n", type=click.IntRange(1, 500), default=50, help="Max rows.")
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice(["table", "json"], case_sensitive=False),
    default="table",
)
@click.pass_context
def history(
    ctx: click.Context, subscriber_id: str | None, limit: int, output_format: str
) -> None:
    """Show recent alerts, newest first."""
    config = _load_config(ctx)

    async def _run():
        store = await _create_store_async(config)
        try:
            return await store.list_alerts(limit=limit, subscription_id=subscriber_id)
        finally:
            await store.close()

    alerts = _run_async(_run())

    if output_format == "json":
        click.echo(json.dumps([a.model_dump(mode="json") for a in alerts], indent=2))
        return

    if not alerts:
        console.print("[yellow]No alerts yet.[/yellow]")
        return

    table = Table(title="Alert History")
    table.add_column("Time")
    table.add_column("Subscriber", style="bold")
    table.add_column("Coin")
    table.add_column("Previous", justify="right")
    table.add_column("Current", justify="right")
    table.add_column("Change", justify="right", style="green")

    for a in alerts:
        table.add_row(
            a.timestamp.isoformat(timespec="seconds"),
            a.subscription_id,
            f"{a.crypto} ({a.symbol.upper()})",
            _format_price(a.previous_price),
            _format_price(a.current_price),
            f"+{a.percentage_change:.2f}%",
        )
    console.print(table)


# ---------------------------------------------------------------------------
# test-email
# ---------------------------------------------------------------------------


@cli.command("test-email")
@click.argument("recipient")
@click.pass_context
def test_email(ctx: click.Context, recipient: str) -> None:
    """Send a sample Bitcoin alert to RECIPIENT."""
    config = _load_config(ctx)

    async def _run():
        from crypto_alerter.notify import EmailNotifier

        async with EmailNotifier(config.email) as notifier:
            return await notifier.notify(recipient, "Bitcoin", "btc", 30000, 33000, 10)

    if not _run_async(_run()):
        console.print(f"[red]Failed to send email to {recipient}.[/red]")
        sys.exit(1)
    console.print(f"[green]Email sent![/green] Check {recipient}.")


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--host", type=str, default=None, help="Bind address (default from config).")
@click.option("--port", "-p", type=int, default=None, help="Port number (default from config).")
@click.option("--reload", is_flag=True, default=False, help="Auto-reload on code changes.")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None, reload: bool) -> None:
    """Start the REST API server."""
    import uvicorn

    config = _load_config(ctx)
    host = host or config.api.host
    port = port or config.api.port

    if not config.api.cron_secret:
        console.print(
            "[yellow]api.cron_secret is not set; /api/check-prices will reject "
            "every request.[/yellow]"
        )
    console.print(f"Starting crypto-alerter API on [bold]{host}:{port}[/bold]")
    console.print(f"API docs: http://{host}:{port}/docs")

    uvicorn.run(
        "crypto_alerter.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
    )


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show storage and configuration status."""
    config = _load_config(ctx)

    async def _run():
        store = await _create_store_async(config)
        try:
            stats = await store.get_statistics()

            table = Table(title="Crypto Alerter Status")
            table.add_column("Metric", style="bold")
            table.add_column("Value", justify="right")

            table.add_row("Storage backend", config.storage.backend.value)
            table.add_row("Database path", config.storage.sqlite_path)
            table.add_row("Price provider", config.provider.base_url)
            table.add_row("SMTP host", f"{config.email.smtp_host}:{config.email.smtp_port}")
            table.add_row("Dry run", "yes" if config.email.dry_run else "no")
            table.add_section()
            table.add_row("Subscriptions", str(stats["subscriptions"]))
            table.add_row("Alerts recorded", str(stats["alerts"]))
            table.add_row(
                "Latest alert",
                stats["latest_alert"].isoformat(timespec="seconds")
                if stats["latest_alert"]
                else "N/A",
            )
            table.add_row(
                "Last check",
                stats["last_checked_at"].isoformat(timespec="seconds")
                if stats["last_checked_at"]
                else "N/A",
            )

            console.print(table)
        finally:
            await store.close()

    _run_async(_run())


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
