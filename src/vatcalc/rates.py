"""VAT rate table: per-country rates, rate history and geographic exceptions.

The bundled snapshot lives in ``data/vat_rates.yaml`` and is parsed once per
process into immutable entries.  A :class:`RateTable` answers "which rate
applies here" questions against that snapshot:

- whole-country rates, optionally per :class:`RateCategory`
- date-versioned rates (``effective_ranges``, newest first)
- postal-code rules that redirect a lookup to a named sub-region of the
  same or another country (Heligoland, Büsingen, Canary Islands, ...)
- optional jurisdictions (Switzerland, Norway, ...) that stay inactive until
  the host application activates them

Unknown countries, unknown categories and dates older than a country's
recorded history all resolve to a rate of ``0.0`` instead of raising.  Whether
VAT should be collected at all is answered by :meth:`RateTable.should_collect_vat`.
Keep it that way: callers rely on rate lookups never failing.

Usage::

    from vatcalc.rates import RateCategory, load_rate_table

    table = load_rate_table()
    table.resolve_rate("DE")                          # 0.19
    table.resolve_rate("DE", "27498")                 # 0.0 (Heligoland)
    table.resolve_rate("NL", rate_category="low")     # 0.09

    table.activate_optional_country("CH")
    table.resolve_rate("CH")                          # 0.081
"""

from __future__ import annotations

import enum
import logging
import re
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Union

import yaml

from vatcalc.errors import NoRatesDefinedError, RateDataError

logger = logging.getLogger(__name__)

_DATA_FILE = Path(__file__).resolve().parent / "data" / "vat_rates.yaml"


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

_CATEGORY_ALIASES: Dict[str, str] = {
    "high": "standard",
    "low": "reduced",
}


class RateCategory(enum.Enum):
    """Statutory VAT tier.

    ``GENERAL`` means "no particular category": the flat rate of the resolved
    entry is used and category rates are ignored.  ``HIGH`` and ``LOW`` are
    aliases for ``STANDARD`` and ``REDUCED``.
    """

    GENERAL = "general"
    STANDARD = "standard"
    REDUCED = "reduced"
    REDUCED_SECOND = "reduced_second"
    SUPER_REDUCED = "super_reduced"
    PARKING = "parking"

    HIGH = "standard"
    LOW = "reduced"

    @classmethod
    def _missing_(cls, value: object) -> Optional["RateCategory"]:
        if not isinstance(value, str):
            return None
        key = value.strip().lower().replace("-", "_")
        key = _CATEGORY_ALIASES.get(key, key)
        for member in cls:
            if member.value == key:
                return member
        return None

    @classmethod
    def parse(cls, value: Union["RateCategory", str, None]) -> "RateCategory":
        """Coerce ``None``, a category name or a member into a member.

        Raises:
            ValueError: If *value* names no known category.
        """
        if value is None:
            return cls.GENERAL
        if isinstance(value, cls):
            return value
        return cls(value)


CategoryRates = Mapping[RateCategory, float]
ExceptionRate = Union[float, Mapping[RateCategory, float]]


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EffectiveRange:
    """A rate (and category rates) in force from *effective_from* onwards."""
    effective_from: datetime
    rate: float
    category_rates: CategoryRates = field(default_factory=dict)


@dataclass(frozen=True)
class CountryRateEntry:
    """VAT rules for one country code.

    Attributes:
        country_code: Uppercase two-letter code (``"DE"``, ``"EL"``, ...).
        name: Human-readable country name.
        rate: Standard (flat) rate, always present.
        category_rates: Rates per :class:`RateCategory`, empty when the
            country only has a single rate on record.
        exceptions: Named sub-regions with their own flat rate or their own
            category mapping.
        effective_ranges: Rate history, newest first.
        optional: True for jurisdictions that must be activated explicitly.
    """
    country_code: str
    name: str
    rate: float
    category_rates: CategoryRates = field(default_factory=dict)
    exceptions: Mapping[str, ExceptionRate] = field(default_factory=dict)
    effective_ranges: Tuple[EffectiveRange, ...] = ()
    optional: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "country_code": self.country_code,
            "name": self.name,
            "rate": self.rate,
            "rates": {c.value: r for c, r in self.category_rates.items()},
            "exceptions": {
                name: value if isinstance(value, (int, float)) else {c.value: r for c, r in value.items()}
                for name, value in self.exceptions.items()
            },
            "effective_ranges": [
                {
                    "effective_from": rng.effective_from.isoformat(),
                    "rate": rng.rate,
                    "rates": {c.value: r for c, r in rng.category_rates.items()},
                }
                for rng in self.effective_ranges
            ],
            "optional": self.optional,
        }


@dataclass(frozen=True)
class PostalCodeExceptionRule:
    """Redirects a postal code of *parent_country_code* to another entry.

    When *exception_name* is set the named exception of the target entry is
    used, otherwise the target's plain rate.  *city_pattern* is carried from
    the data file but not consulted when matching.
    """
    parent_country_code: str
    postal_code_pattern: re.Pattern
    country_code: str
    exception_name: Optional[str] = None
    city_pattern: Optional[re.Pattern] = None

    def matches(self, postal_code: str) -> bool:
        return self.postal_code_pattern.search(postal_code) is not None


@dataclass(frozen=True)
class _Snapshot:
    entries: Mapping[str, CountryRateEntry]
    postal_rules: Mapping[str, Tuple[PostalCodeExceptionRule, ...]]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Rate table
# ---------------------------------------------------------------------------

class RateTable:
    """Country rate lookup with postal-code exceptions and rate history.

    Args:
        entries: Active country entries keyed by uppercase code.
        postal_rules: Active postal-code rules keyed by parent country code.
        optional_entries: Entries that :meth:`activate_optional_country`
            may copy into the active set.
        optional_postal_rules: Postal-code rules copied along with them.
        clock: Returns "now" for rate-history lookups.  Defaults to the
            wall clock in UTC; tests pin it.

    Activation rebuilds the active tables and swaps them in one assignment,
    so lookups running concurrently see either the old or the new snapshot.
    """

    def __init__(
        self,
        entries: Mapping[str, CountryRateEntry],
        postal_rules: Optional[Mapping[str, Tuple[PostalCodeExceptionRule, ...]]] = None,
        *,
        optional_entries: Optional[Mapping[str, CountryRateEntry]] = None,
        optional_postal_rules: Optional[Mapping[str, Tuple[PostalCodeExceptionRule, ...]]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._snapshot = _Snapshot(
            entries=dict(entries),
            postal_rules=dict(postal_rules or {}),
        )
        self._optional_entries = dict(optional_entries or {})
        self._optional_postal_rules = dict(optional_postal_rules or {})
        self._clock = clock or _utc_now
        self._lock = threading.Lock()

    # -- availability -------------------------------------------------------

    def should_collect_vat(self, country_code: str) -> bool:
        """True if *country_code* has an active entry (case-insensitive)."""
        return country_code.upper().strip() in self._snapshot.entries

    def should_collect_eu_vat(self, country_code: str) -> bool:
        """True if *country_code* is active and was not activated as optional.

        Gates VAT-number validation: only these countries are understood by
        the EU validation service.
        """
        entry = self._snapshot.entries.get(country_code.upper().strip())
        return entry is not None and not entry.optional

    def activate_optional_country(self, country_code: str) -> None:
        """Copy an optional entry and its postal-code rules into the active set.

        Raises:
            NoRatesDefinedError: If no optional entry exists for the code.
        """
        code = country_code.upper().strip()
        entry = self._optional_entries.get(code)
        if entry is None:
            raise NoRatesDefinedError(code)

        with self._lock:
            current = self._snapshot
            entries = dict(current.entries)
            entries[code] = entry
            postal_rules = dict(current.postal_rules)
            if code in self._optional_postal_rules:
                postal_rules[code] = self._optional_postal_rules[code]
            self._snapshot = _Snapshot(entries=entries, postal_rules=postal_rules)

        logger.info("Activated optional VAT rates for %s (%s)", code, entry.name)

    # -- lookup -------------------------------------------------------------

    def get_entry(self, country_code: str) -> Optional[CountryRateEntry]:
        """Return the active entry for *country_code*, or None."""
        return self._snapshot.entries.get(country_code.upper().strip())

    def get_optional_entry(self, country_code: str) -> Optional[CountryRateEntry]:
        """Return the optional entry for *country_code*, active or not, or None."""
        return self._optional_entries.get(country_code.upper().strip())

    def list_country_codes(self, include_optional: bool = False) -> list[str]:
        """Sorted active country codes, plus not-yet-active optional ones if asked."""
        codes = set(self._snapshot.entries)
        if include_optional:
            codes.update(self._optional_entries)
        return sorted(codes)

    def resolve_rate(
        self,
        country_code: str,
        postal_code: Optional[str] = None,
        rate_category: Union[RateCategory, str, None] = RateCategory.GENERAL,
        as_of: Optional[datetime] = None,
    ) -> float:
        """Return the VAT rate for a location.

        Args:
            country_code: Two-letter country code, any case.
            postal_code: Checked against the country's postal-code rules;
                the first matching rule decides the rate.
            rate_category: Category to look up; ``GENERAL`` uses the flat rate.
            as_of: Moment used for rate history, defaults to the clock.
                Naive datetimes are taken as UTC.

        Returns:
            The rate as a decimal fraction, ``0.0`` when nothing applies.
        """
        code = country_code.upper().strip()
        category = RateCategory.parse(rate_category)
        snapshot = self._snapshot

        if postal_code is not None:
            postal_code = postal_code.strip()
            for rule in snapshot.postal_rules.get(code, ()):
                if not rule.matches(postal_code):
                    continue
                return self._rate_for_rule(snapshot, rule, category, as_of)

        entry = snapshot.entries.get(code)
        if entry is None:
            logger.debug("No VAT rates for %r, using 0", code)
            return 0.0
        return self._rate_for_entry(entry, category, as_of)

    def resolve_rate_for_country(
        self,
        country_code: str,
        rate_category: Union[RateCategory, str, None] = RateCategory.GENERAL,
        as_of: Optional[datetime] = None,
    ) -> float:
        """Whole-country rate, ignoring postal-code exceptions."""
        return self.resolve_rate(country_code, None, rate_category, as_of)

    def get_all_known_rates(self, country_code: str) -> set[float]:
        """Every rate recorded for a country: flat, category, history, exceptions."""
        entry = self._snapshot.entries.get(country_code.upper().strip())
        if entry is None:
            return set()

        rates = {entry.rate}
        rates.update(entry.category_rates.values())
        for rng in entry.effective_ranges:
            rates.add(rng.rate)
            rates.update(rng.category_rates.values())
        for value in entry.exceptions.values():
            if isinstance(value, (int, float)):
                rates.add(float(value))
            else:
                rates.update(value.values())
        return rates

    # -- internals ------------------------------------------------------------

    def _moment(self, as_of: Optional[datetime]) -> datetime:
        moment = as_of if as_of is not None else self._clock()
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return moment

    def _rule_set(
        self, entry: CountryRateEntry, as_of: Optional[datetime],
    ) -> Optional[Tuple[float, CategoryRates]]:
        """The (rate, category rates) in force, or None before recorded history."""
        if not entry.effective_ranges:
            return entry.rate, entry.category_rates

        moment = self._moment(as_of)
        for rng in entry.effective_ranges:
            if rng.effective_from <= moment:
                return rng.rate, rng.category_rates

        logger.debug(
            "%s has no VAT rate on record for %s, using 0",
            entry.country_code, moment.isoformat(),
        )
        return None

    def _rate_for_entry(
        self,
        entry: CountryRateEntry,
        category: RateCategory,
        as_of: Optional[datetime],
    ) -> float:
        rule_set = self._rule_set(entry, as_of)
        if rule_set is None:
            return 0.0
        rate, category_rates = rule_set
        if category is not RateCategory.GENERAL:
            return category_rates.get(category, 0.0)
        return rate

    def _rate_for_rule(
        self,
        snapshot: _Snapshot,
        rule: PostalCodeExceptionRule,
        category: RateCategory,
        as_of: Optional[datetime],
    ) -> float:
        target = snapshot.entries.get(rule.country_code)
        if target is None:
            return 0.0

        if rule.exception_name is not None and rule.exception_name in target.exceptions:
            value = target.exceptions[rule.exception_name]
            if isinstance(value, (int, float)):
                return float(value)
            if category is RateCategory.GENERAL:
                return value.get(RateCategory.GENERAL, value.get(RateCategory.STANDARD, 0.0))
            return value.get(category, 0.0)

        return self._rate_for_entry(target, RateCategory.GENERAL, as_of)


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def _parse_rate(value: Any, where: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise RateDataError(f"{where}: rate must be a number, got {value!r}")
    rate = float(value)
    if rate < 0:
        raise RateDataError(f"{where}: rate must not be negative, got {rate}")
    return rate


def _parse_category_rates(raw: Any, where: str) -> Dict[RateCategory, float]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise RateDataError(f"{where}: expected a mapping of category rates")
    rates: Dict[RateCategory, float] = {}
    for key, value in raw.items():
        try:
            category = RateCategory(key)
        except ValueError:
            raise RateDataError(f"{where}: unknown rate category {key!r}") from None
        rates[category] = _parse_rate(value, f"{where}.{key}")
    return rates


def _parse_timestamp(value: Any, where: str) -> datetime:
    if isinstance(value, datetime):
        moment = value
    else:
        try:
            moment = datetime.fromisoformat(str(value))
        except ValueError:
            raise RateDataError(f"{where}: invalid timestamp {value!r}") from None
    if moment.tzinfo is None:
        raise RateDataError(f"{where}: timestamp {value!r} has no UTC offset")
    return moment


def _parse_entry(code: str, raw: Any, optional: bool) -> CountryRateEntry:
    if not isinstance(raw, dict):
        raise RateDataError(f"{code}: expected a mapping")
    if "rate" not in raw:
        raise RateDataError(f"{code}: missing 'rate'")

    exceptions: Dict[str, ExceptionRate] = {}
    for name, value in (raw.get("exceptions") or {}).items():
        where = f"{code}.exceptions.{name}"
        if isinstance(value, dict):
            exceptions[str(name)] = _parse_category_rates(value, where)
        else:
            exceptions[str(name)] = _parse_rate(value, where)

    ranges = []
    for index, item in enumerate(raw.get("effective_ranges") or []):
        where = f"{code}.effective_ranges[{index}]"
        if not isinstance(item, dict) or "effective_from" not in item or "rate" not in item:
            raise RateDataError(f"{where}: needs 'effective_from' and 'rate'")
        ranges.append(
            EffectiveRange(
                effective_from=_parse_timestamp(item["effective_from"], where),
                rate=_parse_rate(item["rate"], where),
                category_rates=_parse_category_rates(item.get("rates"), f"{where}.rates"),
            )
        )
    ranges.sort(key=lambda rng: rng.effective_from, reverse=True)

    return CountryRateEntry(
        country_code=code,
        name=str(raw.get("name", code)),
        rate=_parse_rate(raw["rate"], code),
        category_rates=_parse_category_rates(raw.get("rates"), f"{code}.rates"),
        exceptions=exceptions,
        effective_ranges=tuple(ranges),
        optional=optional,
    )


def _compile(pattern: Any, where: str, flags: int = 0) -> re.Pattern:
    try:
        return re.compile(str(pattern), flags)
    except re.error as exc:
        raise RateDataError(f"{where}: invalid pattern {pattern!r}: {exc}") from None


def _parse_postal_rules(parent: str, raw: Any) -> Tuple[PostalCodeExceptionRule, ...]:
    if not isinstance(raw, list):
        raise RateDataError(f"postal code exceptions for {parent}: expected a list")
    rules = []
    for index, item in enumerate(raw):
        where = f"{parent}.postal_code_exceptions[{index}]"
        if not isinstance(item, dict) or "postal_code" not in item or "country_code" not in item:
            raise RateDataError(f"{where}: needs 'postal_code' and 'country_code'")
        city = item.get("city")
        rules.append(
            PostalCodeExceptionRule(
                parent_country_code=parent,
                postal_code_pattern=_compile(item["postal_code"], where),
                country_code=str(item["country_code"]).upper(),
                exception_name=item.get("name"),
                city_pattern=_compile(city, where, re.IGNORECASE) if city else None,
            )
        )
    return tuple(rules)


def _parse_section(raw: Dict[str, Any], key: str, optional: bool) -> Dict[str, CountryRateEntry]:
    section = raw.get(key) or {}
    if not isinstance(section, dict):
        raise RateDataError(f"'{key}' must be a mapping of country codes")
    return {
        str(code).upper(): _parse_entry(str(code).upper(), value, optional)
        for code, value in section.items()
    }


def _parse_rules_section(raw: Dict[str, Any], key: str) -> Dict[str, Tuple[PostalCodeExceptionRule, ...]]:
    section = raw.get(key) or {}
    if not isinstance(section, dict):
        raise RateDataError(f"'{key}' must be a mapping of country codes")
    return {
        str(code).upper(): _parse_postal_rules(str(code).upper(), rules)
        for code, rules in section.items()
    }


@dataclass(frozen=True)
class _ParsedRates:
    entries: Dict[str, CountryRateEntry]
    postal_rules: Dict[str, Tuple[PostalCodeExceptionRule, ...]]
    optional_entries: Dict[str, CountryRateEntry]
    optional_postal_rules: Dict[str, Tuple[PostalCodeExceptionRule, ...]]


def parse_rate_data(raw: Any) -> _ParsedRates:
    """Validate and convert the raw rate mapping (as read from YAML)."""
    if not isinstance(raw, dict):
        raise RateDataError("rate data must be a mapping")
    return _ParsedRates(
        entries=_parse_section(raw, "countries", optional=False),
        postal_rules=_parse_rules_section(raw, "postal_code_exceptions"),
        optional_entries=_parse_section(raw, "optional_countries", optional=True),
        optional_postal_rules=_parse_rules_section(raw, "optional_postal_code_exceptions"),
    )


_cache: Dict[Path, _ParsedRates] = {}
_cache_lock = threading.Lock()


def _load(path: Path) -> _ParsedRates:
    with _cache_lock:
        parsed = _cache.get(path)
        if parsed is not None:
            return parsed
        try:
            with path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh)
        except (OSError, yaml.YAMLError) as exc:
            raise RateDataError(f"Cannot read VAT rate data from {path}: {exc}") from exc
        parsed = parse_rate_data(raw)
        _cache[path] = parsed
        logger.debug(
            "Loaded %d VAT rate entries (%d optional) from %s",
            len(parsed.entries), len(parsed.optional_entries), path,
        )
        return parsed


def rate_table_from_dict(
    raw: Any,
    *,
    clock: Optional[Callable[[], datetime]] = None,
) -> RateTable:
    """Build a :class:`RateTable` from an in-memory mapping shaped like the data file."""
    parsed = parse_rate_data(raw)
    return RateTable(
        parsed.entries,
        parsed.postal_rules,
        optional_entries=parsed.optional_entries,
        optional_postal_rules=parsed.optional_postal_rules,
        clock=clock,
    )


def load_rate_table(
    path: Union[str, Path, None] = None,
    *,
    clock: Optional[Callable[[], datetime]] = None,
) -> RateTable:
    """Load a fresh :class:`RateTable` from *path* (default: bundled snapshot).

    The file is parsed once per path; each call returns an independent table,
    so activating an optional country on one table leaves others untouched.

    Raises:
        RateDataError: If the file is missing, unreadable or malformed.
    """
    parsed = _load(Path(path).resolve() if path else _DATA_FILE)
    return RateTable(
        parsed.entries,
        parsed.postal_rules,
        optional_entries=parsed.optional_entries,
        optional_postal_rules=parsed.optional_postal_rules,
        clock=clock,
    )
