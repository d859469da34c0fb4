"""
Unit tests for geolocation providers.

HTTP traffic goes through httpx.MockTransport; nothing leaves the process.
"""

import httpx
import pytest

from traffic_flows_pipeline.geoip import IpApiComProvider, IpapiCoProvider


def make_client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


@pytest.fixture
def requests_seen():
    return []


class TestIpapiCoProvider:
    """Tests for the ipapi.co provider."""

    def test_maps_successful_response(self, requests_seen):
        def handler(request):
            requests_seen.append(request)
            return httpx.Response(
                200,
                json={
                    "ip": "8.8.8.8",
                    "city": "Mountain View",
                    "country_code": "US",
                    "latitude": 37.4056,
                    "longitude": -122.0775,
                    "org": "GOOGLE",
                    "asn": "AS15169",
                },
            )

        with make_client(handler) as client:
            result = IpapiCoProvider(client=client).fetch("8.8.8.8")

        assert str(requests_seen[0].url) == "https://ipapi.co/8.8.8.8/json/"
        assert result.ip == "8.8.8.8"
        assert result.latitude == 37.4056
        assert result.longitude == -122.0775
        assert result.country == "US"
        assert result.city == "Mountain View"
        assert result.isp == "GOOGLE"
        assert result.asn == "AS15169"

    def test_error_payload_returns_none(self):
        def handler(request):
            return httpx.Response(200, json={"error": True, "reason": "RateLimited"})

        with make_client(handler) as client:
            assert IpapiCoProvider(client=client).fetch("8.8.8.8") is None

    def test_missing_fields_are_none(self):
        def handler(request):
            return httpx.Response(200, json={"country_code": "DE"})

        with make_client(handler) as client:
            result = IpapiCoProvider(client=client).fetch("1.1.1.1")

        assert result.country == "DE"
        assert result.latitude is None
        assert not result.has_coordinates


class TestIpApiComProvider:
    """Tests for the ip-api.com provider."""

    def test_maps_successful_response(self, requests_seen):
        def handler(request):
            requests_seen.append(request)
            return httpx.Response(
                200,
                json={
                    "status": "success",
                    "country": "Australia",
                    "countryCode": "AU",
                    "city": "South Brisbane",
                    "lat": -27.4766,
                    "lon": 153.0166,
                    "isp": "Cloudflare, Inc",
                    "as": "AS13335 Cloudflare, Inc.",
                },
            )

        with make_client(handler) as client:
            result = IpApiComProvider(client=client).fetch("1.1.1.1")

        request = requests_seen[0]
        assert request.url.host == "ip-api.com"
        assert request.url.path == "/json/1.1.1.1"
        assert "lat" in request.url.params["fields"]
        assert result.country == "AU"
        assert result.latitude == -27.4766
        assert result.longitude == 153.0166
        assert result.isp == "Cloudflare, Inc"
        assert result.asn == "AS13335 Cloudflare, Inc."

    def test_fail_status_returns_none(self):
        def handler(request):
            return httpx.Response(200, json={"status": "fail", "message": "reserved range"})

        with make_client(handler) as client:
            assert IpApiComProvider(client=client).fetch("1.1.1.1") is None


class TestProviderFailures:
    """Failures of any kind resolve to None."""

    @pytest.mark.parametrize("provider_class", [IpapiCoProvider, IpApiComProvider])
    @pytest.mark.parametrize("status", [429, 500, 403])
    def test_non_success_status(self, provider_class, status):
        def handler(request):
            return httpx.Response(status, json={})

        with make_client(handler) as client:
            assert provider_class(client=client).fetch("8.8.8.8") is None

    @pytest.mark.parametrize("provider_class", [IpapiCoProvider, IpApiComProvider])
    def test_transport_error(self, provider_class):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with make_client(handler) as client:
            assert provider_class(client=client).fetch("8.8.8.8") is None

    @pytest.mark.parametrize("provider_class", [IpapiCoProvider, IpApiComProvider])
    def test_invalid_json(self, provider_class):
        def handler(request):
            return httpx.Response(200, text="<html>busy</html>")

        with make_client(handler) as client:
            assert provider_class(client=client).fetch("8.8.8.8") is None

    def test_non_object_json(self):
        def handler(request):
            return httpx.Response(200, json=["8.8.8.8"])

        with make_client(handler) as client:
            assert IpapiCoProvider(client=client).fetch("8.8.8.8") is None

    def test_shared_client_not_closed_by_provider(self):
        client = make_client(lambda request: httpx.Response(200, json={}))
        IpapiCoProvider(client=client).close()
        assert not client.is_closed
        client.close()
