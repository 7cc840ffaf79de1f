"""Shared fixtures for the vatcalc test suite."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

import pytest
import yaml

from vatcalc.calculator import TaxCalculator
from vatcalc.rates import RateTable, load_rate_table
from vatcalc.vies import ViesClient


# ---------------------------------------------------------------------------
# Constants reused across tests
# ---------------------------------------------------------------------------

TEST_VIES_URL = "http://vies.test/rest-api"
TEST_GEO_URL = "http://geo.test"

# A moment after every rate change recorded in the bundled data.
PINNED_NOW = datetime(2025, 9, 1, 12, 0, tzinfo=timezone.utc)


def _pinned_clock() -> datetime:
    return PINNED_NOW


# ---------------------------------------------------------------------------
# Rate tables and calculators
# ---------------------------------------------------------------------------


@pytest.fixture()
def table() -> RateTable:
    """Bundled rate table with the clock pinned to PINNED_NOW."""
    return load_rate_table(clock=_pinned_clock)


@pytest.fixture()
def calculator(table: RateTable) -> TaxCalculator:
    """Calculator with no home country and no validator."""
    return TaxCalculator(rate_table=table)


@pytest.fixture()
def vies_client() -> ViesClient:
    """ViesClient with a single attempt and a short timeout."""
    return ViesClient(base_url=TEST_VIES_URL, timeout=5, retries=1)


@pytest.fixture()
def retry_vies_client() -> ViesClient:
    """ViesClient configured with 3 attempts for retry-logic tests."""
    return ViesClient(base_url=TEST_VIES_URL, timeout=5, retries=3)


# ---------------------------------------------------------------------------
# Rate data
# ---------------------------------------------------------------------------


@pytest.fixture()
def small_rate_data() -> Dict[str, Any]:
    """A minimal rate mapping shaped like the bundled data file."""
    return {
        "countries": {
            "AA": {
                "name": "Alphaland",
                "rate": 0.20,
                "rates": {"standard": 0.20, "reduced": 0.10},
                "exceptions": {"Isle": 0.05, "Enclave": {"general": 0.08, "reduced": 0.02}},
                "effective_ranges": [
                    {"effective_from": "2010-01-01T00:00:00+00:00", "rate": 0.18,
                     "rates": {"standard": 0.18, "reduced": 0.09}},
                    {"effective_from": "2020-01-01T00:00:00+00:00", "rate": 0.20,
                     "rates": {"standard": 0.20, "reduced": 0.10}},
                ],
            },
            "BB": {"name": "Betaland", "rate": 0.25},
        },
        "optional_countries": {
            "CC": {"name": "Gammaland", "rate": 0.07, "exceptions": {"Port": 0.0}},
        },
        "postal_code_exceptions": {
            "AA": [
                {"postal_code": "^99", "country_code": "AA", "name": "Isle"},
                {"postal_code": "^88", "country_code": "AA", "name": "Enclave"},
                {"postal_code": "^77", "country_code": "BB"},
            ],
        },
        "optional_postal_code_exceptions": {
            "CC": [
                {"postal_code": "^1234$", "country_code": "CC", "name": "Port"},
            ],
        },
    }


@pytest.fixture()
def rate_file(tmp_path: Path, small_rate_data: Dict[str, Any]) -> Path:
    """Write small_rate_data to a YAML file."""
    p = tmp_path / "rates.yaml"
    with p.open("w", encoding="utf-8") as fh:
        yaml.safe_dump(small_rate_data, fh)
    return p


# ---------------------------------------------------------------------------
# Mock API response payloads
# ---------------------------------------------------------------------------


@pytest.fixture()
def vies_valid_response() -> Dict[str, Any]:
    """VIES check-vat-number response for a registered number."""
    return {
        "countryCode": "DE",
        "vatNumber": "190098891",
        "requestDate": "2025-09-01T12:00:00.000Z",
        "valid": True,
        "requestIdentifier": "WAPIAAAAZ1abcdef",
        "name": "---",
        "address": "---",
        "traderName": None,
    }


@pytest.fixture()
def vies_invalid_response() -> Dict[str, Any]:
    """VIES check-vat-number response for an unknown number."""
    return {
        "countryCode": "DE",
        "vatNumber": "000000000",
        "requestDate": "2025-09-01T12:00:00.000Z",
        "valid": False,
        "requestIdentifier": "",
        "name": "---",
        "address": "---",
    }


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_config_file(tmp_path: Path) -> Path:
    """Create a sample YAML config file."""
    config = {
        "business_country_code": "nl",
        "business_vat_number": "NL123456789B01",
        "optional_countries": ["ch"],
        "vies_url": TEST_VIES_URL,
        "geo_url": TEST_GEO_URL,
        "timeout": 15,
        "retries": 2,
    }
    p = tmp_path / "config.yaml"
    with p.open("w") as fh:
        yaml.safe_dump(config, fh)
    return p


@pytest.fixture()
def env_clean(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure vatcalc env vars are not set."""
    for name in (
        "VATCALC_BUSINESS_COUNTRY",
        "VATCALC_BUSINESS_VAT_NUMBER",
        "VATCALC_OPTIONAL_COUNTRIES",
        "VATCALC_VIES_URL",
        "VATCALC_GEO_URL",
        "VATCALC_LOG_DIR",
        "VATCALC_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
