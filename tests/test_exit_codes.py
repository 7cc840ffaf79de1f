"""Tests for vatcalc.exit_codes."""

from __future__ import annotations

import pytest

from vatcalc.errors import (
    InvalidCharacterError,
    NoRatesDefinedError,
    UnsupportedCountryError,
    ValidationServiceUnavailable,
)
from vatcalc.exit_codes import (
    ERROR_CODE_MAP,
    INVALID_INPUT,
    OTHER_ERROR,
    SERVICE_UNAVAILABLE,
    SUCCESS,
    UNSUPPORTED_COUNTRY,
    exit_code_for,
)


class TestExitCodeConstants:
    """Verify the exit code integer values are stable."""

    def test_values(self) -> None:
        assert SUCCESS == 0
        assert SERVICE_UNAVAILABLE == 1
        assert INVALID_INPUT == 2
        assert UNSUPPORTED_COUNTRY == 3
        assert OTHER_ERROR == 4

    def test_all_codes_are_distinct(self) -> None:
        codes = [SUCCESS, SERVICE_UNAVAILABLE, INVALID_INPUT, UNSUPPORTED_COUNTRY, OTHER_ERROR]
        assert len(codes) == len(set(codes))


class TestExitCodeFor:
    """Mapping error codes (and the exceptions that carry them) to exit codes."""

    @pytest.mark.parametrize(
        "code",
        ["CONNECTION_ERROR", "TIMEOUT", "SERVER_ERROR", "NO_VALIDATOR", "MS_UNAVAILABLE"],
    )
    def test_service_errors(self, code: str) -> None:
        assert exit_code_for(code) == SERVICE_UNAVAILABLE

    def test_unknown_code_is_other(self) -> None:
        assert exit_code_for("SOMETHING_NEW") == OTHER_ERROR

    def test_all_values_are_known_exit_codes(self) -> None:
        assert set(ERROR_CODE_MAP.values()) <= {
            SERVICE_UNAVAILABLE, INVALID_INPUT, UNSUPPORTED_COUNTRY, OTHER_ERROR,
        }

    def test_exception_codes(self) -> None:
        assert exit_code_for(ValidationServiceUnavailable("down").code) == SERVICE_UNAVAILABLE
        assert exit_code_for(InvalidCharacterError("DE#", {2: "#"}).code) == INVALID_INPUT
        assert exit_code_for(UnsupportedCountryError("US").code) == UNSUPPORTED_COUNTRY
        assert exit_code_for(NoRatesDefinedError("YES").code) == UNSUPPORTED_COUNTRY
