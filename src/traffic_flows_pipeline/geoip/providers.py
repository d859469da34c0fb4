"""
HTTP clients for external geolocation providers.

Each provider maps its own JSON response onto GeoResult. Failures of any
kind (transport error, non-2xx status, provider-reported error, invalid
JSON) resolve to None so the lookup service can move on to the next
provider.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx

from ..config.constants import (
    IP_API_COM,
    IP_API_COM_FIELDS,
    IP_API_COM_URL,
    IPAPI_CO,
    IPAPI_CO_URL,
)
from ..utils.http_utils import is_rate_limited_status, is_success_status
from .models import GeoResult

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "Accept": "application/json",
    "User-Agent": "traffic-flows-pipeline/0.1",
}


def _to_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


class GeoProvider(ABC):
    """
    Abstract base class for geolocation providers.

    Subclasses supply the request URL/params and the response mapping;
    the HTTP round trip and failure handling live here.
    """

    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        timeout: float = 5.0,
    ):
        """
        Args:
            client: Shared httpx client (one is created if omitted)
            timeout: Request timeout in seconds for the created client
        """
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout, headers=DEFAULT_HEADERS)

    @property
    @abstractmethod
    def provider_id(self) -> str:
        """Return the provider identifier (e.g., 'ipapi.co')."""
        pass

    @abstractmethod
    def build_request(self, address: str) -> tuple[str, dict[str, str]]:
        """Return (url, query params) for an address."""
        pass

    @abstractmethod
    def parse_response(self, address: str, payload: dict[str, Any]) -> Optional[GeoResult]:
        """Map a decoded JSON payload to GeoResult, or None on a provider error."""
        pass

    def fetch(self, address: str) -> Optional[GeoResult]:
        """
        Look up one address.

        Returns:
            GeoResult, or None if the request failed for any reason
        """
        url, params = self.build_request(address)
        try:
            response = self._client.get(url, params=params or None)
        except httpx.HTTPError as e:
            logger.warning(f"{self.provider_id} request failed for {address}: {e}")
            return None

        if is_rate_limited_status(response.status_code):
            logger.warning(f"{self.provider_id} rejected {address}: quota exhausted (429)")
            return None

        if not is_success_status(response.status_code):
            logger.warning(
                f"{self.provider_id} returned HTTP {response.status_code} for {address}"
            )
            return None

        try:
            payload = response.json()
        except ValueError as e:
            logger.warning(f"{self.provider_id} returned invalid JSON for {address}: {e}")
            return None

        if not isinstance(payload, dict):
            logger.warning(f"{self.provider_id} returned unexpected payload for {address}")
            return None

        return self.parse_response(address, payload)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()


class IpapiCoProvider(GeoProvider):
    """ipapi.co: HTTPS, generous monthly quota, hourly throttling."""

    @property
    def provider_id(self) -> str:
        return IPAPI_CO

    def build_request(self, address: str) -> tuple[str, dict[str, str]]:
        return IPAPI_CO_URL.format(ip=address), {}

    def parse_response(self, address: str, payload: dict[str, Any]) -> Optional[GeoResult]:
        if payload.get("error"):
            logger.warning(
                f"ipapi.co error for {address}: {payload.get('reason', 'unknown')}"
            )
            return None

        return GeoResult(
            ip=address,
            latitude=_to_float(payload.get("latitude")),
            longitude=_to_float(payload.get("longitude")),
            country=_to_str(payload.get("country_code")),
            city=_to_str(payload.get("city")),
            isp=_to_str(payload.get("org")),
            asn=_to_str(payload.get("asn")),
        )


class IpApiComProvider(GeoProvider):
    """ip-api.com: free tier is HTTP only and limited to 45 requests/minute."""

    @property
    def provider_id(self) -> str:
        return IP_API_COM

    def build_request(self, address: str) -> tuple[str, dict[str, str]]:
        return IP_API_COM_URL.format(ip=address), {"fields": IP_API_COM_FIELDS}

    def parse_response(self, address: str, payload: dict[str, Any]) -> Optional[GeoResult]:
        if payload.get("status") != "success":
            logger.warning(
                f"ip-api.com error for {address}: {payload.get('message', 'unknown')}"
            )
            return None

        return GeoResult(
            ip=address,
            latitude=_to_float(payload.get("lat")),
            longitude=_to_float(payload.get("lon")),
            country=_to_str(payload.get("countryCode")),
            city=_to_str(payload.get("city")),
            isp=_to_str(payload.get("isp")),
            asn=_to_str(payload.get("as")),
        )
