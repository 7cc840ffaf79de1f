"""Exception hierarchy for vatcalc.

Rate lookups never raise for unknown countries or categories; they return
``0.0``.  These exceptions cover the operations that cannot proceed at all:
activating an optional country without rates, loading a broken rate file,
and validating VAT identifiers.
"""

from __future__ import annotations

from typing import Dict, Optional


class VatCalculatorError(Exception):
    """Base exception for vatcalc errors.

    Attributes:
        code: Machine-readable error code (e.g. ``"UNSUPPORTED_COUNTRY"``),
            used by the CLI to pick an exit code.
    """

    default_code = "VATCALC_ERROR"

    def __init__(self, message: str, *, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.code = code or self.default_code


class NoRatesDefinedError(VatCalculatorError):
    """Raised when activating an optional country that has no rates on record."""

    default_code = "NO_RATES_DEFINED"

    def __init__(self, country_code: str) -> None:
        super().__init__(f"No optional VAT rates defined for country {country_code!r}")
        self.country_code = country_code


class RateDataError(VatCalculatorError):
    """Raised when the VAT rate data file is missing or malformed."""

    default_code = "RATE_DATA_ERROR"


class VatNumberError(VatCalculatorError):
    """Base exception for problems with a VAT identifier."""

    default_code = "INVALID_VAT_NUMBER"


class UnsupportedCountryError(VatNumberError):
    """Raised when a VAT identifier's country cannot be checked by the validator."""

    default_code = "UNSUPPORTED_COUNTRY"

    def __init__(self, country_code: str) -> None:
        super().__init__(f"Unsupported/non-EU country {country_code!r}")
        self.country_code = country_code


class InvalidCharacterError(VatNumberError):
    """Raised when a cleaned VAT identifier contains characters VIES rejects.

    Attributes:
        vat_number: The cleaned identifier.
        invalid_chars: Offset in the cleaned identifier -> offending run of
            characters.  Offsets count characters, not UTF-8 bytes; the
            message shows each run's UTF-8 bytes in hex.
    """

    default_code = "INVALID_CHARACTERS"

    def __init__(self, vat_number: str, invalid_chars: Dict[int, str]) -> None:
        described = ", ".join(
            f"{chars} (0x{chars.encode('utf-8').hex()}) at offset {offset}"
            for offset, chars in sorted(invalid_chars.items())
        )
        super().__init__(f"VAT number {vat_number} contains invalid characters: {described}")
        self.vat_number = vat_number
        self.invalid_chars = dict(invalid_chars)


class ValidationServiceUnavailable(VatCalculatorError):
    """Raised when the VAT-number validation service cannot give an answer."""

    default_code = "SERVICE_UNAVAILABLE"
