"""Net/gross VAT calculations on top of a :class:`~vatcalc.rates.RateTable`.

A :class:`TaxCalculator` knows the seller's home country and VAT number.
Business customers in a *different* country are reverse-charged (rate 0);
everyone else pays the destination rate.

Example::

    calc = TaxCalculator(business_country_code="NL")
    result = calc.calculate_from_net(24.00, "NL", rate_category="high")
    result.gross_amount   # 29.04
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Union

from vatcalc.errors import UnsupportedCountryError, ValidationServiceUnavailable
from vatcalc.rates import RateCategory, RateTable, load_rate_table
from vatcalc.vat_number import VatDetails, split_vat_number
from vatcalc.vies import VatValidator, ViesClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CalculationResult:
    """Outcome of a single calculation.  Amounts are not rounded."""
    net_amount: float
    gross_amount: float
    tax_amount: float
    tax_rate: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class TaxCalculator:
    """Applies VAT rates and the reverse-charge rule to amounts.

    Args:
        rate_table: Rate lookup; defaults to the bundled snapshot.
        business_country_code: Seller's home country.
        business_vat_number: Seller's VAT number, sent as the requester when
            validating customer numbers.
        validator: VAT-number validator.  Without one, validation raises
            :class:`ValidationServiceUnavailable`.
    """

    def __init__(
        self,
        rate_table: Optional[RateTable] = None,
        business_country_code: Optional[str] = None,
        business_vat_number: Optional[str] = None,
        validator: Optional[VatValidator] = None,
    ) -> None:
        self.rate_table = rate_table if rate_table is not None else load_rate_table()
        self.business_country_code: Optional[str] = None
        self.business_vat_number: Optional[str] = None
        self.validator = validator
        if business_country_code:
            self.set_business_country_code(business_country_code)
        if business_vat_number:
            self.set_business_vat_number(business_vat_number)

    @classmethod
    def from_config(
        cls,
        config: Dict[str, Any],
        rate_table: Optional[RateTable] = None,
    ) -> "TaxCalculator":
        """Build a calculator from a resolved :func:`vatcalc.config.load_config` dict.

        Every code in ``optional_countries`` is activated.

        Raises:
            NoRatesDefinedError: If an optional country has no rates.
        """
        table = rate_table if rate_table is not None else load_rate_table()
        for code in config.get("optional_countries") or []:
            table.activate_optional_country(code)

        validator = ViesClient(
            base_url=config.get("vies_url") or None,
            timeout=int(config.get("timeout", 30)),
            retries=int(config.get("retries", 3)),
        )
        return cls(
            rate_table=table,
            business_country_code=config.get("business_country_code") or None,
            business_vat_number=config.get("business_vat_number") or None,
            validator=validator,
        )

    # -- seller identity ------------------------------------------------------

    def set_business_country_code(self, country_code: str) -> None:
        self.business_country_code = country_code.strip().upper()

    def set_business_vat_number(self, vat_number: str) -> None:
        self.business_vat_number = vat_number.strip()

    # -- rate queries ---------------------------------------------------------

    def should_collect_vat(self, country_code: str) -> bool:
        return self.rate_table.should_collect_vat(country_code)

    def should_collect_eu_vat(self, country_code: str) -> bool:
        return self.rate_table.should_collect_eu_vat(country_code)

    def get_tax_rate_for_location(
        self,
        country_code: str,
        postal_code: Optional[str] = None,
        is_business: bool = False,
        rate_category: Union[RateCategory, str, None] = RateCategory.GENERAL,
        as_of: Optional[datetime] = None,
    ) -> float:
        """Rate for a customer at a location, after the reverse-charge rule."""
        code = country_code.strip().upper()
        if is_business and code != self.business_country_code:
            logger.debug(
                "Reverse charge for business customer in %s (home %s)",
                code, self.business_country_code,
            )
            return 0.0
        return self.rate_table.resolve_rate(code, postal_code, rate_category, as_of)

    # -- calculations ---------------------------------------------------------

    def calculate_from_net(
        self,
        net_amount: float,
        country_code: str,
        postal_code: Optional[str] = None,
        is_business: bool = False,
        rate_category: Union[RateCategory, str, None] = RateCategory.GENERAL,
        as_of: Optional[datetime] = None,
    ) -> CalculationResult:
        """Add VAT to *net_amount*."""
        rate = self.get_tax_rate_for_location(
            country_code, postal_code, is_business, rate_category, as_of,
        )
        tax = net_amount * rate
        return CalculationResult(
            net_amount=net_amount,
            gross_amount=net_amount + tax,
            tax_amount=tax,
            tax_rate=rate,
        )

    def calculate_from_gross(
        self,
        gross_amount: float,
        country_code: str,
        postal_code: Optional[str] = None,
        is_business: bool = False,
        rate_category: Union[RateCategory, str, None] = RateCategory.GENERAL,
        as_of: Optional[datetime] = None,
    ) -> CalculationResult:
        """Extract the VAT contained in *gross_amount*."""
        rate = self.get_tax_rate_for_location(
            country_code, postal_code, is_business, rate_category, as_of,
        )
        tax = gross_amount / (1 + rate) * rate if rate > 0 else 0.0
        return CalculationResult(
            net_amount=gross_amount - tax,
            gross_amount=gross_amount,
            tax_amount=tax,
            tax_rate=rate,
        )

    # -- VAT identifiers ------------------------------------------------------

    def get_vat_details(
        self,
        vat_number: str,
        requester_vat_number: Optional[str] = None,
    ) -> VatDetails:
        """Validate a customer VAT number with the configured validator.

        The requester defaults to :attr:`business_vat_number`; when present,
        the validator may return a consultation number.

        Raises:
            InvalidCharacterError: If the number contains characters the
                validation service rejects.
            UnsupportedCountryError: If the prefix is not an EU country.
            ValidationServiceUnavailable: If no validator is configured or
                the service cannot answer.
        """
        country_code, number = split_vat_number(vat_number)
        if not self.rate_table.should_collect_eu_vat(country_code):
            raise UnsupportedCountryError(country_code)

        if self.validator is None:
            raise ValidationServiceUnavailable(
                "No VAT number validator configured", code="NO_VALIDATOR",
            )

        requester = requester_vat_number or self.business_vat_number
        requester_country = requester_number = None
        if requester:
            requester_country, requester_number = split_vat_number(requester)

        logger.debug(
            "Validating vat_number=%s%s requester=%s",
            country_code, number,
            f"{requester_country}{requester_number}" if requester else "-",
        )
        return self.validator.validate(
            country_code, number, requester_country, requester_number,
        )

    def is_valid_vat_number(self, vat_number: str) -> bool:
        """True if the validator reports *vat_number* as registered."""
        return self.get_vat_details(vat_number).valid
