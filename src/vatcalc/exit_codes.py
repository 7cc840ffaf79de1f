"""Exit codes for script-friendly error handling.

These codes let shell scripts and billing jobs tell failure categories
apart without parsing error messages.
"""

from __future__ import annotations

# Success
SUCCESS = 0

# VAT-number validation service unreachable, busy or misbehaving
SERVICE_UNAVAILABLE = 1

# Bad amount, date, category, VAT number or configuration
INVALID_INPUT = 2

# Country has no VAT rates, or cannot be validated
UNSUPPORTED_COUNTRY = 3

# Any other error
OTHER_ERROR = 4


ERROR_CODE_MAP: dict[str, int] = {
    "SERVICE_UNAVAILABLE": SERVICE_UNAVAILABLE,
    "CONNECTION_ERROR": SERVICE_UNAVAILABLE,
    "TIMEOUT": SERVICE_UNAVAILABLE,
    "SERVER_ERROR": SERVICE_UNAVAILABLE,
    "HTTP_ERROR": SERVICE_UNAVAILABLE,
    "BAD_RESPONSE": SERVICE_UNAVAILABLE,
    "NO_VALIDATOR": SERVICE_UNAVAILABLE,
    "MS_UNAVAILABLE": SERVICE_UNAVAILABLE,
    "MS_MAX_CONCURRENT_REQ": SERVICE_UNAVAILABLE,
    "GLOBAL_MAX_CONCURRENT_REQ": SERVICE_UNAVAILABLE,
    "INVALID_INPUT": INVALID_INPUT,
    "INVALID_REQUESTER_INFO": INVALID_INPUT,
    "INVALID_VAT_NUMBER": INVALID_INPUT,
    "INVALID_CHARACTERS": INVALID_INPUT,
    "VALIDATION_ERROR": INVALID_INPUT,
    "UNSUPPORTED_COUNTRY": UNSUPPORTED_COUNTRY,
    "NO_RATES_DEFINED": UNSUPPORTED_COUNTRY,
    "RATE_DATA_ERROR": OTHER_ERROR,
}


def exit_code_for(error_code: str) -> int:
    """Map an error code string to a CLI exit code."""
    return ERROR_CODE_MAP.get(error_code, OTHER_ERROR)
