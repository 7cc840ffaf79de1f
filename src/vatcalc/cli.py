"""vatcalc - EU VAT rates and calculations from the command line.

Usage:
    vatcalc rate <country> [--postal-code] [--category] [--date] [--business] [--json]
    vatcalc net <amount> <country> [--postal-code] [--category] [--date] [--business] [--json]
    vatcalc gross <amount> <country> [--postal-code] [--category] [--date] [--business] [--json]
    vatcalc rates <country> [--json]
    vatcalc countries [--optional] [--json]
    vatcalc validate <vat_number> [--requester] [--json]
    vatcalc locate <ip> [--json]
    vatcalc init
"""

from __future__ import annotations

import sys
from datetime import datetime
from typing import Any

import click

from vatcalc.calculator import TaxCalculator
from vatcalc.config import init_config, load_config, validate_config
from vatcalc.errors import VatCalculatorError
from vatcalc.exit_codes import INVALID_INPUT, SUCCESS, exit_code_for
from vatcalc.geo import GeoLocator
from vatcalc.output import (
    format_calculation,
    format_country_list,
    format_known_rates,
    format_location,
    format_rate,
    format_response,
    format_vat_details,
)
from vatcalc.rates import RateCategory

# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _emit(output: str, exit_code: int = SUCCESS) -> None:
    """Print output and exit with the given code."""
    click.echo(output)
    sys.exit(exit_code)


def _emit_error(
    code: str,
    message: str,
    json_mode: bool,
    exit_code: int | None = None,
) -> None:
    """Emit a structured error and exit."""
    if exit_code is None:
        exit_code = exit_code_for(code)
    output = format_response(
        "error",
        error={"code": code, "message": message},
        json_mode=json_mode,
    )
    _emit(output, exit_code)


def _load(ctx: click.Context, json_mode: bool) -> dict[str, object]:
    """Resolve and validate configuration from global options, env and file."""
    activate = ctx.obj.get("activate") or ()
    config = load_config(
        business_country_code=ctx.obj.get("business_country"),
        business_vat_number=ctx.obj.get("business_vat_number"),
        optional_countries=list(activate) if activate else None,
        config_path=ctx.obj.get("config_path"),
    )
    valid, err = validate_config(config)
    if not valid:
        _emit_error("VALIDATION_ERROR", f"Configuration error: {err}", json_mode)
    return config


def _make_calculator(ctx: click.Context, json_mode: bool) -> TaxCalculator:
    """Build a calculator with optional countries activated."""
    config = _load(ctx, json_mode)
    try:
        return TaxCalculator.from_config(config)
    except VatCalculatorError as exc:
        _emit_error(exc.code, str(exc), json_mode)
        raise


def _parse_category(value: str | None, json_mode: bool) -> RateCategory:
    try:
        return RateCategory.parse(value)
    except ValueError:
        valid = ", ".join(sorted({c.value for c in RateCategory}))
        _emit_error("INVALID_INPUT", f"Unknown rate category {value!r} (expected one of: {valid})", json_mode)
        raise


def _parse_date(value: str | None, json_mode: bool) -> datetime | None:
    if value is None:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        _emit_error("INVALID_INPUT", f"Invalid date {value!r}, expected ISO 8601", json_mode)
        raise


def _location_options(func: Any) -> Any:
    """Options shared by ``rate``, ``net`` and ``gross``."""
    func = click.option("--json", "json_mode", is_flag=True, default=False, help="Output as JSON.")(func)
    func = click.option("--business", is_flag=True, default=False,
                        help="Customer is a VAT-registered business.")(func)
    func = click.option("--date", "date_str", default=None,
                        help="ISO 8601 date/time for historical rates (naive means UTC).")(func)
    func = click.option("--category", default=None,
                        help="Rate category (standard, reduced, high, low, ...).")(func)
    func = click.option("--postal-code", default=None, help="Customer postal code.")(func)
    return func


# ------------------------------------------------------------------
# CLI group
# ------------------------------------------------------------------


@click.group()
@click.option("--business-country", default=None, help="Seller's home country code.")
@click.option("--business-vat-number", default=None, help="Seller's VAT number.")
@click.option("--activate", multiple=True, help="Activate an optional country (repeatable).")
@click.option("--config", "config_path", default=None, type=click.Path(dir_okay=False),
              help="Path to config file.")
@click.version_option(package_name="vatcalc")
@click.pass_context
def cli(
    ctx: click.Context,
    business_country: str | None,
    business_vat_number: str | None,
    activate: tuple[str, ...],
    config_path: str | None,
) -> None:
    """EU VAT rates, net/gross calculations and VAT-number validation."""
    ctx.ensure_object(dict)
    ctx.obj["business_country"] = business_country
    ctx.obj["business_vat_number"] = business_vat_number
    ctx.obj["activate"] = activate
    ctx.obj["config_path"] = config_path


# ------------------------------------------------------------------
# rate
# ------------------------------------------------------------------


@cli.command()
@click.argument("country")
@_location_options
@click.pass_context
def rate(
    ctx: click.Context,
    country: str,
    postal_code: str | None,
    category: str | None,
    date_str: str | None,
    business: bool,
    json_mode: bool,
) -> None:
    """Show the VAT rate for a location."""
    calc = _make_calculator(ctx, json_mode)
    rate_category = _parse_category(category, json_mode)
    as_of = _parse_date(date_str, json_mode)

    value = calc.get_tax_rate_for_location(country, postal_code, business, rate_category, as_of)
    output = format_rate(
        country.upper(),
        value,
        postal_code=postal_code,
        category=None if rate_category is RateCategory.GENERAL else rate_category.value,
        json_mode=json_mode,
    )
    _emit(output, SUCCESS)


# ------------------------------------------------------------------
# net / gross
# ------------------------------------------------------------------


@cli.command()
@click.argument("amount", type=float)
@click.argument("country")
@_location_options
@click.pass_context
def net(
    ctx: click.Context,
    amount: float,
    country: str,
    postal_code: str | None,
    category: str | None,
    date_str: str | None,
    business: bool,
    json_mode: bool,
) -> None:
    """Add VAT to a net AMOUNT."""
    calc = _make_calculator(ctx, json_mode)
    result = calc.calculate_from_net(
        amount,
        country,
        postal_code,
        business,
        _parse_category(category, json_mode),
        _parse_date(date_str, json_mode),
    )
    _emit(format_calculation(result.to_dict(), country.upper(), json_mode=json_mode), SUCCESS)


@cli.command()
@click.argument("amount", type=float)
@click.argument("country")
@_location_options
@click.pass_context
def gross(
    ctx: click.Context,
    amount: float,
    country: str,
    postal_code: str | None,
    category: str | None,
    date_str: str | None,
    business: bool,
    json_mode: bool,
) -> None:
    """Extract the VAT contained in a gross AMOUNT."""
    calc = _make_calculator(ctx, json_mode)
    result = calc.calculate_from_gross(
        amount,
        country,
        postal_code,
        business,
        _parse_category(category, json_mode),
        _parse_date(date_str, json_mode),
    )
    _emit(format_calculation(result.to_dict(), country.upper(), json_mode=json_mode), SUCCESS)


# ------------------------------------------------------------------
# rates / countries
# ------------------------------------------------------------------


@cli.command()
@click.argument("country")
@click.option("--json", "json_mode", is_flag=True, default=False, help="Output as JSON.")
@click.pass_context
def rates(ctx: click.Context, country: str, json_mode: bool) -> None:
    """List every VAT rate on record for COUNTRY."""
    calc = _make_calculator(ctx, json_mode)
    code = country.upper()
    if not calc.should_collect_vat(code):
        _emit_error("UNSUPPORTED_COUNTRY", f"No VAT rates for country {code!r}", json_mode)
    known = calc.rate_table.get_all_known_rates(code)
    _emit(format_known_rates(code, known, json_mode=json_mode), SUCCESS)


@cli.command()
@click.option("--optional", "include_optional", is_flag=True, default=False,
              help="Include optional countries that are not activated.")
@click.option("--json", "json_mode", is_flag=True, default=False, help="Output as JSON.")
@click.pass_context
def countries(ctx: click.Context, include_optional: bool, json_mode: bool) -> None:
    """List countries with VAT rates."""
    table = _make_calculator(ctx, json_mode).rate_table
    entries: list[dict[str, Any]] = []
    for code in table.list_country_codes(include_optional=include_optional):
        entry = table.get_entry(code)
        active = entry is not None
        if entry is None:
            entry = table.get_optional_entry(code)
        if entry is None:
            continue
        item = entry.to_dict()
        item["active"] = active
        entries.append(item)
    _emit(format_country_list(entries, json_mode=json_mode), SUCCESS)


# ------------------------------------------------------------------
# validate
# ------------------------------------------------------------------


@cli.command()
@click.argument("vat_number")
@click.option("--requester", default=None, help="Requester VAT number (defaults to the business VAT number).")
@click.option("--json", "json_mode", is_flag=True, default=False, help="Output as JSON.")
@click.pass_context
def validate(ctx: click.Context, vat_number: str, requester: str | None, json_mode: bool) -> None:
    """Validate a VAT_NUMBER against VIES."""
    calc = _make_calculator(ctx, json_mode)
    try:
        details = calc.get_vat_details(vat_number, requester)
    except VatCalculatorError as exc:
        _emit_error(exc.code, str(exc), json_mode)
        return
    _emit(format_vat_details(details.to_dict(), json_mode=json_mode), SUCCESS)


# ------------------------------------------------------------------
# locate
# ------------------------------------------------------------------


@cli.command()
@click.argument("ip_address")
@click.option("--json", "json_mode", is_flag=True, default=False, help="Output as JSON.")
@click.pass_context
def locate(ctx: click.Context, ip_address: str, json_mode: bool) -> None:
    """Look up the country of an IP_ADDRESS."""
    config = _load(ctx, json_mode)
    locator = GeoLocator(base_url=str(config["geo_url"]), timeout=int(config["timeout"]))  # type: ignore[arg-type]
    country_code = locator.lookup(ip_address)
    _emit(format_location(ip_address, country_code, json_mode=json_mode), SUCCESS)


# ------------------------------------------------------------------
# init
# ------------------------------------------------------------------


@cli.command()
@click.option("--business-country", prompt="Business country code", help="Seller's home country code.")
@click.option("--business-vat-number", prompt="Business VAT number", default="", show_default=False,
              help="Seller's VAT number.")
@click.option("--optional", "optional_countries", default="", show_default=False,
              help="Comma-separated optional countries to activate by default.")
@click.option("--json", "json_mode", is_flag=True, default=False, help="Output as JSON.")
@click.pass_context
def init(
    ctx: click.Context,
    business_country: str,
    business_vat_number: str,
    optional_countries: str,
    json_mode: bool,
) -> None:
    """Create the config file interactively."""
    path = init_config(
        business_country,
        business_vat_number,
        [c for c in optional_countries.split(",") if c.strip()],
        config_path=ctx.obj.get("config_path"),
    )
    config = load_config(config_path=str(path))
    valid, err = validate_config(config)
    if not valid:
        _emit_error("VALIDATION_ERROR", f"Config written to {path} but is invalid: {err}", json_mode, INVALID_INPUT)
    data = {
        "config_path": str(path),
        "business_country_code": config["business_country_code"],
        "optional_countries": config["optional_countries"],
    }
    _emit(format_response("success", data=data, json_mode=json_mode), SUCCESS)


# ------------------------------------------------------------------
# Entry point
# ------------------------------------------------------------------

if __name__ == "__main__":
    cli()
