from __future__ import annotations

import os
import re
from pathlib import Path

import yaml

from vatcalc.geo import DEFAULT_GEO_URL
from vatcalc.vies import DEFAULT_VIES_URL

DEFAULTS: dict[str, object] = {
    "business_country_code": "",
    "business_vat_number": "",
    "optional_countries": [],
    "vies_url": DEFAULT_VIES_URL,
    "geo_url": DEFAULT_GEO_URL,
    "timeout": 30,
    "retries": 3,
}

_KEYS = tuple(DEFAULTS)

_COUNTRY_CODE = re.compile(r"^[A-Z]{2}$")


def get_default_config_path() -> Path:
    """Return the default path to the config file (~/.vatcalc/config.yaml)."""
    return Path.home() / ".vatcalc" / "config.yaml"


def _normalize_url(url: str) -> str:
    """Normalize a service URL by ensuring a scheme and stripping trailing slashes."""
    url = url.strip()
    if url and not re.match(r"^https?://", url, re.IGNORECASE):
        url = "https://" + url
    return url.rstrip("/")


def _normalize_country_codes(value: object) -> list[str]:
    """Accept a list or a comma-separated string and return uppercase codes."""
    if value is None:
        return []
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple, set)):
        items = [str(v) for v in value]
    else:
        items = [str(value)]
    codes: list[str] = []
    for item in items:
        code = item.strip().upper()
        if code and code not in codes:
            codes.append(code)
    return codes


def _load_config_file(config_path: Path) -> dict[str, object]:
    """Read and parse a YAML config file, returning an empty dict on any failure."""
    if not config_path.is_file():
        return {}
    try:
        with config_path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
        if isinstance(data, dict):
            return data
        return {}
    except (yaml.YAMLError, OSError):
        return {}


def load_config(
    business_country_code: str | None = None,
    business_vat_number: str | None = None,
    optional_countries: list[str] | None = None,
    config_path: str | None = None,
) -> dict[str, object]:
    """Resolve configuration using a three-tier precedence hierarchy.

    Priority (highest first):
        1. Explicit parameters passed directly (e.g. from CLI flags).
        2. Environment variables ``VATCALC_BUSINESS_COUNTRY``,
           ``VATCALC_BUSINESS_VAT_NUMBER``, ``VATCALC_OPTIONAL_COUNTRIES``,
           ``VATCALC_VIES_URL`` and ``VATCALC_GEO_URL``.
        3. Values read from the YAML config file at *config_path* (or the default location).

    Returns a dict with every key of :data:`DEFAULTS`.
    """
    # --- Layer 3: start with built-in defaults ---
    config: dict[str, object] = dict(DEFAULTS)

    # --- Layer 3 (cont.): merge config file on top of defaults ---
    path = Path(config_path) if config_path else get_default_config_path()
    file_values = _load_config_file(path)
    for key in _KEYS:
        if key in file_values and file_values[key] is not None:
            config[key] = file_values[key]

    # --- Layer 2: environment variables override file values ---
    env_country = os.environ.get("VATCALC_BUSINESS_COUNTRY")
    if env_country:
        config["business_country_code"] = env_country

    env_vat_number = os.environ.get("VATCALC_BUSINESS_VAT_NUMBER")
    if env_vat_number:
        config["business_vat_number"] = env_vat_number

    env_optional = os.environ.get("VATCALC_OPTIONAL_COUNTRIES")
    if env_optional:
        config["optional_countries"] = env_optional

    env_vies = os.environ.get("VATCALC_VIES_URL")
    if env_vies:
        config["vies_url"] = env_vies

    env_geo = os.environ.get("VATCALC_GEO_URL")
    if env_geo:
        config["geo_url"] = env_geo

    # --- Layer 1: explicit parameters take top priority ---
    if business_country_code is not None:
        config["business_country_code"] = business_country_code

    if business_vat_number is not None:
        config["business_vat_number"] = business_vat_number

    if optional_countries is not None:
        config["optional_countries"] = optional_countries

    # --- Post-processing ---
    config["business_country_code"] = str(config["business_country_code"]).strip().upper()
    config["business_vat_number"] = str(config["business_vat_number"]).strip()
    config["optional_countries"] = _normalize_country_codes(config["optional_countries"])
    config["vies_url"] = _normalize_url(str(config["vies_url"]))
    config["geo_url"] = _normalize_url(str(config["geo_url"]))
    config["timeout"] = int(config["timeout"])  # type: ignore[arg-type]
    config["retries"] = int(config["retries"])  # type: ignore[arg-type]

    return config


def init_config(
    business_country_code: str,
    business_vat_number: str = "",
    optional_countries: list[str] | None = None,
    config_path: str | None = None,
) -> Path:
    """Create the config directory and write an initial config file.

    Returns the :class:`~pathlib.Path` to the newly created config file.
    """
    path = Path(config_path) if config_path else get_default_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = {
        "business_country_code": business_country_code.strip().upper(),
        "business_vat_number": business_vat_number.strip(),
        "optional_countries": _normalize_country_codes(optional_countries),
        "vies_url": DEFAULTS["vies_url"],
        "geo_url": DEFAULTS["geo_url"],
        "timeout": DEFAULTS["timeout"],
        "retries": DEFAULTS["retries"],
    }

    with path.open("w", encoding="utf-8") as fh:
        yaml.safe_dump(data, fh, default_flow_style=False, sort_keys=False)

    return path


def validate_config(config: dict[str, object]) -> tuple[bool, str | None]:
    """Validate a resolved configuration dict.

    Returns ``(True, None)`` when the config is valid, or
    ``(False, error_message)`` describing the first problem found.
    """
    country = config.get("business_country_code", "")
    if not isinstance(country, str):
        return False, "business_country_code must be a string"
    if country and not _COUNTRY_CODE.match(country):
        return False, f"business_country_code must be two letters, got {country!r}"

    vat_number = config.get("business_vat_number", "")
    if not isinstance(vat_number, str):
        return False, "business_vat_number must be a string"
    # Greek numbers carry EL while the country code is GR, so only the shape is checked.
    if vat_number and not re.match(r"^[A-Za-z]{2}\S+$", vat_number):
        return False, "business_vat_number must start with a two-letter country prefix"

    optional = config.get("optional_countries", [])
    if not isinstance(optional, list):
        return False, "optional_countries must be a list"
    for code in optional:
        if not isinstance(code, str) or not _COUNTRY_CODE.match(code):
            return False, f"optional_countries contains an invalid code: {code!r}"

    for key in ("vies_url", "geo_url"):
        url = config.get(key, "")
        if not isinstance(url, str) or not re.match(r"^https?://[^\s/]+", url, re.IGNORECASE):
            return False, f"{key} does not appear to be a valid URL"

    timeout = config.get("timeout")
    if not isinstance(timeout, int) or timeout <= 0:
        return False, "timeout must be a positive integer"

    retries = config.get("retries")
    if not isinstance(retries, int) or retries < 1:
        return False, "retries must be at least 1"

    return True, None
