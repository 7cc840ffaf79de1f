"""VAT identifier cleanup and the validation result type."""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Tuple

from vatcalc.errors import InvalidCharacterError

# Separators people type into VAT numbers, including non-breaking spaces
# copied from invoices and web pages.
_SEPARATORS = re.compile(r"[ \u00a0\u2007\u202f\-.,]")

# Character class from the VIES checkVatService WSDL, without quantifiers.
_INVALID_CHARS = re.compile(r"[^0-9A-Za-z+*.]+")


@dataclass(frozen=True)
class VatDetails:
    """Answer from a VAT-number validator.

    Attributes:
        valid: Whether the identifier is registered.
        country_code: Country prefix as echoed by the validator.
        vat_number: Local part as echoed by the validator.
        request_id: Consultation number, only issued when the requester
            identified itself.
    """
    valid: bool
    country_code: str
    vat_number: str
    request_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def clean_vat_number(raw: str) -> str:
    """Strip spaces, hyphens, dots and commas from *raw*."""
    return _SEPARATORS.sub("", raw.strip()).strip()


def find_invalid_chars(vat_number: str) -> Dict[int, str]:
    """Map offset -> run of characters not accepted by VIES.

    Offsets are character indexes into *vat_number* and adjacent offending
    characters form one run.
    """
    return {m.start(): m.group(0) for m in _INVALID_CHARS.finditer(vat_number)}


def split_vat_number(raw: str) -> Tuple[str, str]:
    """Clean *raw* and split it into ``(country_code, local_number)``.

    The country code is the first two characters, uppercased.

    Raises:
        InvalidCharacterError: If the cleaned identifier contains characters
            outside ``[0-9A-Za-z+*.]``.
    """
    vat_number = clean_vat_number(raw)
    invalid = find_invalid_chars(vat_number)
    if invalid:
        raise InvalidCharacterError(vat_number, invalid)
    return vat_number[:2].upper(), vat_number[2:]
