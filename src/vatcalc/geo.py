"""IP address to country lookup via the ip2c.org service.

ip2c answers ``GET /<ip>`` with a semicolon-separated line::

    1;DE;DEU;Germany      found
    0;;;WRONG INPUT       malformed address
    2;;;UNKNOWN           not in the database

Only the first form yields a country.  Service failures are logged and
reported as "not found" so geolocation never blocks a checkout.
"""

from __future__ import annotations

import logging
import os
from typing import Mapping, Optional
from urllib.parse import quote

import requests
from requests.exceptions import RequestException

logger = logging.getLogger(__name__)

DEFAULT_GEO_URL = "https://ip2c.org"


def parse_ip2c_response(body: str) -> Optional[str]:
    """Return the alpha-2 code from an ip2c response body, or None."""
    parts = body.strip().split(";")
    if len(parts) >= 2 and parts[0] == "1" and parts[1]:
        return parts[1].upper()
    return None


def client_ip(headers: Mapping[str, str], remote_addr: Optional[str] = None) -> Optional[str]:
    """Pick the client address from request headers.

    The first ``X-Forwarded-For`` entry wins over *remote_addr*.
    """
    for name, value in headers.items():
        if name.lower() == "x-forwarded-for" and value:
            first = value.split(",")[0].strip()
            if first:
                return first
    return remote_addr or None


class GeoLocator:
    """Resolves IP addresses to ISO 3166-1 alpha-2 country codes.

    Args:
        base_url: ip2c base URL.  Reads ``VATCALC_GEO_URL`` when omitted.
        timeout: Request timeout in seconds.
    """

    def __init__(self, base_url: Optional[str] = None, timeout: int = 10) -> None:
        self.base_url = (base_url or os.environ.get("VATCALC_GEO_URL", DEFAULT_GEO_URL)).rstrip("/")
        self.timeout = timeout
        self._session = requests.Session()

    def lookup(self, ip_address: Optional[str]) -> Optional[str]:
        """Return the country code for *ip_address*, or None if unknown."""
        if not ip_address:
            return None

        url = f"{self.base_url}/{quote(ip_address.strip(), safe=':.')}"
        try:
            response = self._session.get(url, timeout=self.timeout)
        except RequestException as exc:
            logger.warning("IP geolocation failed for %s: %s", ip_address, exc)
            return None

        if not response.ok:
            logger.warning(
                "IP geolocation returned HTTP %d for %s", response.status_code, ip_address,
            )
            return None

        return parse_ip2c_response(response.text)
