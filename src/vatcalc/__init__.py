"""vatcalc - EU VAT rates, net/gross calculations and VAT-number validation."""

from __future__ import annotations

import logging
from importlib.metadata import PackageNotFoundError, version

from vatcalc.calculator import CalculationResult, TaxCalculator
from vatcalc.errors import (
    InvalidCharacterError,
    NoRatesDefinedError,
    RateDataError,
    UnsupportedCountryError,
    ValidationServiceUnavailable,
    VatCalculatorError,
    VatNumberError,
)
from vatcalc.rates import RateCategory, RateTable, load_rate_table
from vatcalc.vat_number import VatDetails

_logger = logging.getLogger(__name__)


def _resolve_version() -> str:
    try:
        return version("vatcalc")
    except PackageNotFoundError:
        _logger.debug("vatcalc is not installed, version unknown")
        return "unknown"


__version__ = _resolve_version()

__all__ = [
    "CalculationResult",
    "InvalidCharacterError",
    "NoRatesDefinedError",
    "RateCategory",
    "RateDataError",
    "RateTable",
    "TaxCalculator",
    "UnsupportedCountryError",
    "ValidationServiceUnavailable",
    "VatCalculatorError",
    "VatDetails",
    "VatNumberError",
    "load_rate_table",
]
