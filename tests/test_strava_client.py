import httpx
import pytest

from trip_planner.models.domain import Bounds
from trip_planner.services.integrations.errors import ExternalApiError, RateLimitError
from trip_planner.services.integrations.strava import SegmentClient, format_climb_category, format_time

BOUNDS = Bounds(sw_lat=45.0, sw_lng=7.0, ne_lat=45.2, ne_lng=7.3)


def _client(handler, **kwargs) -> SegmentClient:
    options = {
        "base_url": "https://strava.test/api/v3",
        "access_token": "token-123",
        "max_retries": 0,
        "backoff_seconds": 0.0,
        "transport": httpx.MockTransport(handler),
    }
    options.update(kwargs)
    return SegmentClient(**options)


def _explore_entry(segment_id: int, **overrides):
    entry = {
        "id": segment_id,
        "name": f"Climb {segment_id}",
        "climb_category": 3,
        "avg_grade": 6.2,
        "start_latlng": [45.05, 7.05],
        "end_latlng": [45.1, 7.1],
        "elev_difference": 310.0,
        "distance": 4200.0,
        "points": f"summary-{segment_id}",
    }
    entry.update(overrides)
    return entry


def test_segment_meta_swaps_to_lon_lat_and_sends_bearer_token():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers.get("Authorization")
        seen["path"] = request.url.path
        return httpx.Response(
            200,
            json={
                "id": 229781,
                "name": "Hawk Hill",
                "distance": 2684.82,
                "elev_difference": 152.8,
                "start_latlng": [37.8331119, -122.4834356],
                "end_latlng": [37.8280722, -122.4981393],
            },
        )

    meta = _client(handler).get_segment_meta(229781)

    assert seen == {"auth": "Bearer token-123", "path": "/api/v3/segments/229781"}
    assert meta.segment_id == 229781
    assert meta.length_m == pytest.approx(2684.82)
    assert meta.elevation_gain_m == pytest.approx(152.8)
    assert meta.start == (-122.4834356, 37.8331119)
    assert meta.end == (-122.4981393, 37.8280722)


def test_incomplete_segment_meta_is_an_error():
    def handler(request):
        return httpx.Response(200, json={"id": 5, "name": "No geometry", "distance": 1000.0})

    with pytest.raises(ExternalApiError):
        _client(handler).get_segment_meta(5)


def test_unknown_segment_is_an_error_with_status():
    def handler(request):
        return httpx.Response(404, json={"message": "Record Not Found"})

    with pytest.raises(ExternalApiError) as excinfo:
        _client(handler).get_segment_meta(404404)

    assert excinfo.value.status == 404
    assert not isinstance(excinfo.value, RateLimitError)


def test_explore_formats_categories_times_and_detail_polylines():
    def handler(request):
        if request.url.path.endswith("/segments/explore"):
            assert request.url.params["bounds"] == "45.0,7.0,45.2,7.3"
            assert request.url.params["activity_type"] == "riding"
            return httpx.Response(
                200,
                json={"segments": [_explore_entry(1, kom_time=754), _explore_entry(2, climb_category=5, kom_time="12:34")]},
            )
        segment_id = request.url.path.rsplit("/", 1)[-1]
        return httpx.Response(200, json={"id": int(segment_id), "map": {"polyline": f"detail-{segment_id}"}})

    segments = _client(handler).explore_segments(BOUNDS)

    assert [segment.segment_id for segment in segments] == [1, 2]
    first, second = segments
    assert first.climb_category == "2"
    assert first.kom_time == "12:34"
    assert first.encoded_polyline == "detail-1"
    assert first.start == (7.05, 45.05)
    assert second.climb_category == "HC"
    assert second.kom_time == "12:34"


def test_explore_keeps_summary_polyline_when_detail_fails():
    def handler(request):
        if request.url.path.endswith("/segments/explore"):
            return httpx.Response(200, json={"segments": [_explore_entry(7)]})
        return httpx.Response(500)

    segments = _client(handler).explore_segments(BOUNDS)

    assert segments[0].encoded_polyline == "summary-7"


def test_explore_skips_malformed_entries():
    def handler(request):
        if request.url.path.endswith("/segments/explore"):
            return httpx.Response(200, json={"segments": [_explore_entry(1), _explore_entry(2, start_latlng=[])]})
        return httpx.Response(200, json={"map": {}})

    segments = _client(handler).explore_segments(BOUNDS)

    assert [segment.segment_id for segment in segments] == [1]


def test_explore_rate_limit_is_raised():
    def handler(request):
        return httpx.Response(429, headers={"Retry-After": "900"})

    with pytest.raises(RateLimitError) as excinfo:
        _client(handler).explore_segments(BOUNDS)

    assert excinfo.value.retry_after == 900


def test_empty_viewport_returns_no_segments():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"segments": []})

    assert _client(handler).explore_segments(BOUNDS) == []
    assert len(calls) == 1


def test_formatters():
    assert format_time(754) == "12:34"
    assert format_time(59.9) == "0:59"
    assert format_climb_category(1) == "4"
    assert format_climb_category(0) is None
    assert format_climb_category(None) is None
