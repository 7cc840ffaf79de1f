"""Output formatting for the vatcalc CLI.

Provides both JSON (machine-parseable) and human-readable (Rich) output
for all CLI responses.
"""

from __future__ import annotations

import json
from io import StringIO
from typing import Any, Iterable

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def format_percent(rate: float | None) -> str:
    """Render a decimal rate as a percentage like '19%' or '5.5%'."""
    if rate is None:
        return "N/A"
    value = round(rate * 100, 4)
    if value == int(value):
        return f"{int(value)}%"
    return f"{value:g}%"


def format_amount(amount: float | None) -> str:
    """Render an amount with two decimals; the underlying value is not rounded."""
    if amount is None:
        return "N/A"
    return f"{amount:,.2f}"


def _render_to_string(renderable: Any) -> str:
    """Render a Rich object to a plain string (with ANSI codes)."""
    buf = StringIO()
    console = Console(file=buf, force_terminal=True, width=100)
    console.print(renderable)
    return buf.getvalue().rstrip("\n")


def _success_json(data: Any) -> str:
    return format_response("success", data=data, json_mode=True)


# ---------------------------------------------------------------------------
# format_response
# ---------------------------------------------------------------------------


def format_response(
    status: str,
    data: dict[str, Any] | None = None,
    error: dict[str, Any] | None = None,
    json_mode: bool = False,
) -> str:
    """Build the response envelope shared by every command.

    JSON output always carries ``status``, ``data`` and ``error``.

    Parameters
    ----------
    status:
        ``"success"`` or ``"error"``.
    data:
        Arbitrary payload dict (used when *status* is ``"success"``).
    error:
        Error detail dict with keys ``code`` and ``message``.
    json_mode:
        When *True* return a JSON string; otherwise a Rich-formatted string.
    """
    if json_mode:
        envelope: dict[str, Any] = {
            "status": status,
            "data": data,
            "error": error,
        }
        return json.dumps(envelope, indent=2, sort_keys=False)

    if status == "error" and error:
        code = error.get("code", "UNKNOWN")
        message = error.get("message", "An unknown error occurred.")
        text = Text()
        text.append("Error", style="bold red")
        text.append(f" [{code}]: ", style="red")
        text.append(message)
        return _render_to_string(Panel(text, title="Error", border_style="red"))

    if data:
        content = "\n".join(f"[bold]{key}:[/bold] {escape(str(value))}" for key, value in data.items())
        return _render_to_string(Panel(content, title="Response", border_style="green"))

    return f"Status: {status}"


# ---------------------------------------------------------------------------
# Rates
# ---------------------------------------------------------------------------


def format_rate(
    country_code: str,
    rate: float,
    postal_code: str | None = None,
    category: str | None = None,
    json_mode: bool = False,
) -> str:
    """Format a single resolved rate."""
    if json_mode:
        return _success_json(
            {
                "country_code": country_code,
                "postal_code": postal_code,
                "category": category,
                "rate": rate,
            }
        )

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style="bold cyan", no_wrap=True)
    table.add_column("Value")
    table.add_row("Country", country_code)
    if postal_code:
        table.add_row("Postal code", postal_code)
    if category:
        table.add_row("Category", category)
    table.add_row("Rate", format_percent(rate))
    return _render_to_string(Panel(table, title="VAT Rate", border_style="blue"))


def format_known_rates(
    country_code: str,
    rates: Iterable[float],
    json_mode: bool = False,
) -> str:
    """Format every rate on record for a country, highest first."""
    ordered = sorted(set(rates), reverse=True)
    if json_mode:
        return _success_json({"country_code": country_code, "rates": ordered})

    if not ordered:
        msg = f"No VAT rates known for {country_code}."
        return _render_to_string(Panel(msg, title="Rates", border_style="yellow"))

    text = ", ".join(format_percent(r) for r in ordered)
    return _render_to_string(Panel(text, title=f"Known rates: {country_code}", border_style="blue"))


def format_country_list(
    entries: list[dict[str, Any]],
    json_mode: bool = False,
) -> str:
    """Format a list of country entries (``CountryRateEntry.to_dict()`` plus ``active``)."""
    if json_mode:
        items = [
            {
                "country_code": e["country_code"],
                "name": e.get("name"),
                "rate": e.get("rate"),
                "optional": e.get("optional", False),
                "active": e.get("active", True),
            }
            for e in entries
        ]
        return _success_json({"countries": items})

    if not entries:
        return _render_to_string(Panel("No countries found.", title="Countries", border_style="yellow"))

    table = Table(title="Countries", border_style="blue")
    table.add_column("Code", style="bold")
    table.add_column("Name")
    table.add_column("Rate", justify="right")
    table.add_column("Status")
    for e in entries:
        if not e.get("optional"):
            status = "EU"
        elif e.get("active", True):
            status = "optional (active)"
        else:
            status = "optional"
        table.add_row(e["country_code"], e.get("name", ""), format_percent(e.get("rate")), status)
    return _render_to_string(table)


# ---------------------------------------------------------------------------
# Calculations
# ---------------------------------------------------------------------------


def format_calculation(
    result: dict[str, Any],
    country_code: str,
    json_mode: bool = False,
) -> str:
    """Format a ``CalculationResult.to_dict()`` payload."""
    if json_mode:
        return _success_json({"country_code": country_code, **result})

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style="bold cyan", no_wrap=True)
    table.add_column("Value", justify="right")
    table.add_row("Net", format_amount(result.get("net_amount")))
    table.add_row(f"VAT ({format_percent(result.get('tax_rate'))})", format_amount(result.get("tax_amount")))
    table.add_row("Gross", format_amount(result.get("gross_amount")))
    return _render_to_string(Panel(table, title=f"VAT: {country_code}", border_style="green"))


# ---------------------------------------------------------------------------
# VAT numbers and geolocation
# ---------------------------------------------------------------------------


def format_vat_details(details: dict[str, Any], json_mode: bool = False) -> str:
    """Format a ``VatDetails.to_dict()`` payload."""
    if json_mode:
        return _success_json(details)

    number = f"{details.get('country_code', '')}{details.get('vat_number', '')}"
    text = Text()
    if details.get("valid"):
        text.append("Valid: ", style="bold green")
        border = "green"
    else:
        text.append("Invalid: ", style="bold red")
        border = "red"
    text.append(number, style="bold")
    if details.get("request_id"):
        text.append(f"\nConsultation number: {details['request_id']}")
    return _render_to_string(Panel(text, title="VAT Number", border_style=border))


def format_location(ip_address: str, country_code: str | None, json_mode: bool = False) -> str:
    """Format an IP geolocation result."""
    if json_mode:
        return _success_json({"ip": ip_address, "country_code": country_code})

    if country_code is None:
        return _render_to_string(
            Panel(f"No country found for {ip_address}.", title="Location", border_style="yellow")
        )
    return _render_to_string(Panel(f"{ip_address}: {country_code}", title="Location", border_style="blue"))
