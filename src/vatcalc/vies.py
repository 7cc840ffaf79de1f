"""VAT-number validation against the EU VIES service.

:class:`VatValidator` is the narrow interface the calculator depends on;
:class:`ViesClient` implements it with the VIES REST API and retries
transient failures with exponential backoff.

Environment variables
---------------------
``VATCALC_VIES_URL``
    Base URL of the VIES REST API (defaults to production).
"""

from __future__ import annotations

import logging
import os
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import requests
from requests.exceptions import ConnectionError, RequestException, Timeout

from vatcalc.errors import ValidationServiceUnavailable
from vatcalc.vat_number import VatDetails

logger = logging.getLogger(__name__)

DEFAULT_VIES_URL = "https://ec.europa.eu/taxation_customs/vies/rest-api"


class VatValidator(ABC):
    """Checks whether a VAT identifier is registered."""

    @abstractmethod
    def validate(
        self,
        country_code: str,
        vat_number: str,
        requester_country_code: Optional[str] = None,
        requester_vat_number: Optional[str] = None,
    ) -> VatDetails:
        """Validate *country_code* + *vat_number*.

        Args:
            country_code: Two-letter prefix (``"DE"``, ``"EL"``, ...).
            vat_number: Local part without the prefix.
            requester_country_code: Prefix of the requester's own VAT number.
            requester_vat_number: Local part of the requester's VAT number.

        Raises:
            ValidationServiceUnavailable: If no answer could be obtained.
        """


class ViesClient(VatValidator):
    """VIES REST client.

    Calls ``POST {base_url}/check-vat-number``.  Connection errors, timeouts,
    HTTP 502/503/504 and VIES "busy" error codes are retried with exponential
    backoff; anything else fails immediately.

    Args:
        base_url: VIES REST base URL.  Reads ``VATCALC_VIES_URL`` when omitted.
        timeout: Request timeout in seconds.
        retries: Total number of attempts.

    Example::

        client = ViesClient()
        details = client.validate("DE", "190098891")
        print(details.valid)
    """

    _RETRYABLE_STATUS_CODES = {502, 503, 504}

    # VIES error codes that mean "try again later".
    _RETRYABLE_ERRORS = {
        "MS_UNAVAILABLE",
        "MS_MAX_CONCURRENT_REQ",
        "GLOBAL_MAX_CONCURRENT_REQ",
        "SERVICE_UNAVAILABLE",
        "TIMEOUT",
    }

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: int = 30,
        retries: int = 3,
    ) -> None:
        self.base_url = (base_url or os.environ.get("VATCALC_VIES_URL", DEFAULT_VIES_URL)).rstrip("/")
        self.timeout = timeout
        self.retries = max(1, retries)
        self._session = requests.Session()
        self._session.headers.update({"Accept": "application/json"})

    def validate(
        self,
        country_code: str,
        vat_number: str,
        requester_country_code: Optional[str] = None,
        requester_vat_number: Optional[str] = None,
    ) -> VatDetails:
        payload: Dict[str, Any] = {
            "countryCode": country_code,
            "vatNumber": vat_number,
        }
        if requester_country_code and requester_vat_number:
            payload["requesterMemberStateCode"] = requester_country_code
            payload["requesterNumber"] = requester_vat_number

        body = self._post("/check-vat-number", payload)

        if "valid" not in body:
            raise ValidationServiceUnavailable(
                "VIES response did not contain a validity flag", code="BAD_RESPONSE",
            )
        return VatDetails(
            valid=bool(body["valid"]),
            country_code=str(body.get("countryCode") or country_code),
            vat_number=str(body.get("vatNumber") or vat_number),
            request_id=body.get("requestIdentifier") or None,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _error_code(body: Any) -> Optional[str]:
        """Extract a VIES error code from a response body, if any."""
        if not isinstance(body, dict):
            return None
        wrappers = body.get("errorWrappers")
        if wrappers and isinstance(wrappers, list) and isinstance(wrappers[0], dict):
            return wrappers[0].get("error")
        user_error = body.get("userError")
        if user_error and user_error not in ("VALID", "INVALID"):
            return user_error
        return None

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST *payload* with retry logic and return the decoded JSON body.

        Raises:
            ValidationServiceUnavailable: On non-retryable failures or once
                all attempts are used up.
        """
        url = f"{self.base_url}{path}"
        last_error: Optional[ValidationServiceUnavailable] = None

        for attempt in range(self.retries):
            try:
                response = self._session.post(url, json=payload, timeout=self.timeout)
            except Timeout:
                last_error = ValidationServiceUnavailable(
                    f"VIES request timed out after {self.timeout}s "
                    f"(attempt {attempt + 1}/{self.retries})",
                    code="TIMEOUT",
                )
            except ConnectionError:
                last_error = ValidationServiceUnavailable(
                    f"Could not connect to VIES at {self.base_url} "
                    f"(attempt {attempt + 1}/{self.retries})",
                    code="CONNECTION_ERROR",
                )
            except RequestException as exc:
                raise ValidationServiceUnavailable(
                    f"VIES request error: {exc}", code="CONNECTION_ERROR",
                ) from exc
            else:
                try:
                    body = response.json()
                except ValueError:
                    body = None

                error_code = self._error_code(body)

                if response.ok and isinstance(body, dict) and error_code is None:
                    return body

                if response.ok and body is None:
                    raise ValidationServiceUnavailable(
                        "VIES returned a non-JSON response", code="BAD_RESPONSE",
                    )

                retryable = (
                    response.status_code in self._RETRYABLE_STATUS_CODES
                    or error_code in self._RETRYABLE_ERRORS
                )
                code = error_code or ("SERVER_ERROR" if response.status_code >= 500 else "HTTP_ERROR")
                error = ValidationServiceUnavailable(
                    f"VIES error {code} (HTTP {response.status_code})", code=code,
                )
                if not retryable:
                    raise error
                last_error = error

            logger.warning("VIES check failed: %s", last_error)

            # Exponential backoff: 1s, 2s, 4s, ...
            if attempt < self.retries - 1:
                time.sleep(2**attempt)

        assert last_error is not None
        raise last_error
