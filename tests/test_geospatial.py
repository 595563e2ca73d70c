import pytest

from src.fleetplan.services.geospatial import (
    haversine_km,
    haversine_m,
    is_valid_coordinate,
    point_in_geojson,
    point_in_polygon,
    route_distance,
)

SQUARE = {
    "type": "Polygon",
    "coordinates": [[[-77.10, -12.10], [-77.00, -12.10], [-77.00, -12.00], [-77.10, -12.00], [-77.10, -12.10]]],
}


def test_haversine_one_degree_latitude():
    assert haversine_km(0.0, 10.0, 1.0, 10.0) == pytest.approx(111.19, abs=0.05)
    assert haversine_m(0.0, 10.0, 1.0, 10.0) == pytest.approx(111_195, rel=1e-3)


def test_route_distance_uses_average_speed():
    distance_m, duration_s = route_distance([(0.0, 10.0), (1.0, 10.0)])

    assert distance_m == pytest.approx(111_195, rel=1e-3)
    # 40 km/h default average speed
    assert duration_s == pytest.approx(distance_m / (40_000 / 3600), rel=1e-6)


def test_route_distance_single_point_is_zero():
    assert route_distance([(1.0, 1.0)]) == (0.0, 0.0)


def test_is_valid_coordinate_rejects_placeholders_and_out_of_range():
    assert is_valid_coordinate("-12.05", "-77.04")
    assert not is_valid_coordinate(0, 0)
    assert not is_valid_coordinate(91, 10)
    assert not is_valid_coordinate(10, -181)
    assert not is_valid_coordinate("abc", 10)
    assert not is_valid_coordinate(None, 10)


def test_point_in_polygon_lat_lon_pairs():
    ring = [(-12.10, -77.10), (-12.10, -77.00), (-12.00, -77.00), (-12.00, -77.10)]
    assert point_in_polygon(-12.05, -77.05, ring)
    assert not point_in_polygon(-11.90, -77.05, ring)


def test_point_in_geojson_accepts_feature_and_rejects_other_types():
    feature = {"type": "Feature", "properties": {}, "geometry": SQUARE}

    assert point_in_geojson(-12.05, -77.05, SQUARE)
    assert point_in_geojson(-12.05, -77.05, feature)
    assert not point_in_geojson(-12.50, -77.05, SQUARE)
    assert not point_in_geojson(-12.05, -77.05, {"type": "Point", "coordinates": [-77.05, -12.05]})
