"""
Tests for the distance matrix client

Responses come from httpx.MockTransport; retries use a recording sleep.
"""

from decimal import Decimal

import httpx
import pytest

from alltown.exceptions import GeocodingError
from alltown.services.geocoding_service import GoogleMapsDistanceClient

URL = "https://maps.example.test/distancematrix/json"


def matrix(meters=12875, seconds=1230, status="OK", element_status="OK"):
    return {
        "status": status,
        "rows": [
            {
                "elements": [
                    {
                        "status": element_status,
                        "distance": {"text": "8.0 mi", "value": meters},
                        "duration": {"text": "21 mins", "value": seconds},
                    }
                ]
            }
        ],
    }


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def make_client(handler, sleep=None, max_retries=2, api_key="test-key"):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GoogleMapsDistanceClient(
        api_key=api_key,
        url=URL,
        timeout=5,
        max_retries=max_retries,
        backoff_seconds=0.5,
        client=http,
        sleep=sleep or RecordingSleep(),
    )


class TestMeasure:
    async def test_parses_miles_and_minutes(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=matrix())

        result = await make_client(handler).measure("12 Main St", "80 Oak Ave")

        assert result.distance_miles == Decimal("8.00")
        assert result.duration_minutes == 21
        params = seen[0].url.params
        assert params["origins"] == "12 Main St"
        assert params["destinations"] == "80 Oak Ave"
        assert params["units"] == "imperial"
        assert params["key"] == "test-key"

    async def test_miles_round_half_up(self):
        # 1609 m = 0.999785... mi
        result = await make_client(lambda r: httpx.Response(200, json=matrix(meters=1609, seconds=60))).measure(
            "a", "b"
        )
        assert result.distance_miles == Decimal("1.00")
        assert result.duration_minutes == 1

    async def test_retries_server_errors_with_backoff(self):
        responses = iter([httpx.Response(503), httpx.Response(502), httpx.Response(200, json=matrix())])
        sleep = RecordingSleep()

        result = await make_client(lambda r: next(responses), sleep=sleep).measure("a", "b")

        assert result.distance_miles == Decimal("8.00")
        assert sleep.delays == [0.5, 1.0]

    async def test_retries_timeouts(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                raise httpx.ReadTimeout("slow", request=request)
            return httpx.Response(200, json=matrix())

        result = await make_client(handler).measure("a", "b")
        assert result.duration_minutes == 21
        assert len(calls) == 2

    async def test_gives_up_after_max_retries(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("refused", request=request)

        sleep = RecordingSleep()
        with pytest.raises(GeocodingError, match="unavailable"):
            await make_client(handler, sleep=sleep, max_retries=2).measure("a", "b")
        assert len(calls) == 3
        assert sleep.delays == [0.5, 1.0]

    @pytest.mark.parametrize(
        "body",
        [
            matrix(status="INVALID_REQUEST"),
            matrix(element_status="ZERO_RESULTS"),
            matrix(element_status="NOT_FOUND"),
            {"status": "OK", "rows": []},
        ],
    )
    async def test_unmeasurable_answers_are_not_retried(self, body):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json=body)

        with pytest.raises(GeocodingError):
            await make_client(handler).measure("nowhere", "somewhere")
        assert len(calls) == 1

    async def test_client_error_status(self):
        with pytest.raises(GeocodingError):
            await make_client(lambda r: httpx.Response(403, json={})).measure("a", "b")

    async def test_unreadable_body(self):
        with pytest.raises(GeocodingError, match="unreadable"):
            await make_client(lambda r: httpx.Response(200, text="<html>")).measure("a", "b")

    async def test_missing_api_key(self):
        def handler(request):
            raise AssertionError("no request expected")

        with pytest.raises(GeocodingError, match="not configured"):
            await make_client(handler, api_key="").measure("a", "b")

    async def test_error_is_bad_gateway(self):
        with pytest.raises(GeocodingError) as exc_info:
            await make_client(lambda r: httpx.Response(200, json=matrix(status="OVER_QUERY_LIMIT"))).measure("a", "b")
        assert exc_info.value.status_code == 502


def geocode(status="OK", results=None):
    if results is None:
        results = [
            {
                "formatted_address": "12 Main St, Springfield, IL 62701, USA",
                "geometry": {"location": {"lat": 39.7817, "lng": -89.6501}},
            }
        ]
    return {"status": status, "results": results}


class TestValidateAddress:
    async def test_valid_address(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=geocode())

        result = await make_client(handler).validate_address("12 main st springfield")

        assert result.is_valid is True
        assert result.formatted_address == "12 Main St, Springfield, IL 62701, USA"
        assert result.latitude == 39.7817
        assert result.longitude == -89.6501
        assert seen[0].url.path.endswith("/geocode/json")
        assert seen[0].url.params["address"] == "12 main st springfield"
        assert seen[0].url.params["key"] == "test-key"

    async def test_unknown_address_is_invalid(self):
        client = make_client(lambda r: httpx.Response(200, json=geocode(status="ZERO_RESULTS", results=[])))
        result = await client.validate_address("nowhere")
        assert result.is_valid is False
        assert result.error_message == "Address validation failed: ZERO_RESULTS"

    async def test_empty_results_are_invalid(self):
        result = await make_client(lambda r: httpx.Response(200, json=geocode(results=[]))).validate_address("x")
        assert result.is_valid is False
        assert result.error_message == "No results found for this address"

    async def test_retries_then_gives_up(self):
        sleep = RecordingSleep()
        with pytest.raises(GeocodingError, match="unavailable"):
            await make_client(lambda r: httpx.Response(503), sleep=sleep, max_retries=1).validate_address("x")
        assert sleep.delays == [0.5]
