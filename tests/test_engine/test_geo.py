"""Tests for distance, ETA and coordinate parsing."""

import pytest

from dispatch.engine.geo import (
    eta_seconds,
    haversine_m,
    looks_like_url,
    maps_directions_link,
    parse_coordinates,
)
from dispatch.models.driver import GeoPoint

DESTINATION = GeoPoint(lat=11.55, lon=104.92)


def test_haversine_zero_for_same_point() -> None:
    assert haversine_m(DESTINATION, DESTINATION) == 0


def test_haversine_short_distances() -> None:
    outside = haversine_m(GeoPoint(lat=11.5504, lon=104.9204), DESTINATION)
    inside = haversine_m(GeoPoint(lat=11.5501, lon=104.9201), DESTINATION)

    assert outside == pytest.approx(62, abs=2)
    assert inside == pytest.approx(15.5, abs=1)


def test_haversine_is_symmetric() -> None:
    other = GeoPoint(lat=11.56, lon=104.93)

    assert haversine_m(DESTINATION, other) == pytest.approx(haversine_m(other, DESTINATION))


def test_eta_at_default_speed() -> None:
    # 30 km/h is 8.33 m/s
    assert eta_seconds(1000) == 120
    assert eta_seconds(1000, speed_kmph=60) == 60


def test_eta_unavailable_without_speed() -> None:
    assert eta_seconds(1000, speed_kmph=0) is None


@pytest.mark.parametrize(
    "text",
    ["11.55,104.92", "location:11.55,104.92", " 11.55 , 104.92 "],
)
def test_parse_coordinates(text: str) -> None:
    assert parse_coordinates(text) == DESTINATION


@pytest.mark.parametrize("text", [None, "", "Street 51", "11.55", "95.0,104.92"])
def test_parse_coordinates_rejects_other_text(text: str | None) -> None:
    assert parse_coordinates(text) is None


def test_looks_like_url() -> None:
    assert looks_like_url("https://maps.app.goo.gl/abc")
    assert not looks_like_url("Street 51, house 12")


def test_directions_link() -> None:
    link = maps_directions_link(GeoPoint(lat=1.0, lon=2.0), DESTINATION)

    assert "origin=1.0,2.0" in link
    assert "destination=11.55,104.92" in link
