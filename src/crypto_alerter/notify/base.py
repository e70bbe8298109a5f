"""Notifier protocol and alert message rendering."""

from __future__ import annotations

import html
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

APP_NAME = "Crypto Price Alerter"


@runtime_checkable
class Notifier(Protocol):
    """Delivers a price-rise notification to one recipient.

    Implementations must never raise: delivery failures are reported as False
    so one bad address cannot stop the rest of a check.
    """

    async def notify(
        self,
        recipient: str,
        asset_name: str,
        asset_symbol: str,
        previous_price: float,
        current_price: float,
        percentage_change: float,
    ) -> bool: ...


def format_price(value: float) -> str:
    """Dollar amount with thousands separators; sub-dollar prices keep more precision."""
    if abs(value) >= 1:
        return f"${value:,.2f}"
    return f"${value:,.8f}".rstrip("0").rstrip(".")


@dataclass(frozen=True)
class AlertMessage:
    """Rendered subject and bodies for one price alert."""

    subject: str
    text: str
    html: str

    @classmethod
    def build(
        cls,
        asset_name: str,
        asset_symbol: str,
        previous_price: float,
        current_price: float,
        percentage_change: float,
    ) -> AlertMessage:
        pct = f"{percentage_change:.2f}%"
        symbol = asset_symbol.upper()
        previous = format_price(previous_price)
        current = format_price(current_price)

        subject = f"Price Alert: {asset_name} has increased by {pct}!"
        text = (
            f"Good news! {asset_name} ({symbol}) has increased by {pct}.\n\n"
            f"Previous price: {previous}\n"
            f"Current price: {current}\n"
            f"Change: +{pct}\n\n"
            f"This alert was sent to you by {APP_NAME}.\n"
        )
        name = html.escape(asset_name)
        body = (
            "<h2>Cryptocurrency Price Alert</h2>\n"
            f"<p>Good news! {name} ({html.escape(symbol)}) has increased by {pct}.</p>\n"
            "<p>\n"
            f"  <strong>Previous price:</strong> {previous}<br>\n"
            f"  <strong>Current price:</strong> {current}<br>\n"
            f"  <strong>Change:</strong> +{pct}\n"
            "</p>\n"
            f"<p>This alert was sent to you by {APP_NAME}.</p>\n"
        )
        return cls(subject=subject, text=text, html=body)
