from datetime import datetime

import pytest

from localfy.models.business import Business, BusinessImage, DayHours, GeoPoint, parse_location
from localfy.services.geo import distance_km, distance_to_business, format_distance


def _business_with_hours(**hours: DayHours) -> Business:
    return Business(id="biz-1", business_hours=hours)


@pytest.mark.parametrize(
    ("moment", "expected"),
    [
        (datetime(2024, 5, 6, 8, 59), False),
        (datetime(2024, 5, 6, 9, 0), True),
        (datetime(2024, 5, 6, 18, 0), True),
        (datetime(2024, 5, 6, 18, 1), False),
    ],
)
def test_is_open_at_uses_inclusive_bounds(moment: datetime, expected: bool) -> None:
    business = _business_with_hours(monday=DayHours(open="09:00", close="18:00"))

    assert business.is_open_at(moment) is expected


def test_is_open_at_respects_closed_flag_and_missing_days() -> None:
    business = _business_with_hours(
        saturday=DayHours(open="09:00", close="18:00", closed=True),
        sunday=DayHours(open="nine", close="18:00"),
    )

    assert business.is_open_at(datetime(2024, 5, 4, 12, 0)) is False
    assert business.is_open_at(datetime(2024, 5, 5, 12, 0)) is False
    assert business.is_open_at(datetime(2024, 5, 6, 12, 0)) is False
    assert Business(id="x").is_open_at(datetime(2024, 5, 6, 12, 0)) is False


def test_main_image_prefers_flagged_image() -> None:
    first = BusinessImage(id="1", url="https://cdn/1.jpg")
    main = BusinessImage(id="2", url="https://cdn/2.jpg", is_main=True)

    assert Business(id="a", images=[first, main]).main_image() == main
    assert Business(id="b", images=[first]).main_image() == first
    assert Business(id="c").main_image() is None


def test_parse_location_handles_strings_and_garbage() -> None:
    assert parse_location('{"latitude": 1, "longitude": 2}') == GeoPoint(latitude=1, longitude=2)
    assert parse_location("{not json") is None
    assert parse_location({"latitude": True, "longitude": 2}) is None
    assert parse_location(None) is None


def test_distance_and_formatting() -> None:
    origin = GeoPoint(latitude=0.0, longitude=0.0)
    one_degree = GeoPoint(latitude=0.0, longitude=1.0)

    assert distance_km(origin, origin) == 0.0
    assert distance_km(origin, one_degree) == pytest.approx(111.19, rel=1e-3)
    assert format_distance(0.4567) == "457 m"
    assert format_distance(12.345) == "12.3 km"


def test_distance_to_business_parses_location_lazily() -> None:
    origin = GeoPoint(latitude=0.0, longitude=0.0)
    encoded = Business(id="a", location='{"latitude": 0.0, "longitude": 0.001}')

    assert distance_to_business(origin, encoded) == "111 m"
    assert distance_to_business(origin, Business(id="b")) is None
