import math

import pytest

from trajmap.errors import InvalidBounds
from trajmap.geodesy import (
    EARTH_RADIUS_M,
    MAX_LAT,
    clamp_lat,
    degrees_to_tile_index,
    geo_bounds_to_pixel_bounds,
    haversine_m,
    lnglat_to_meters,
    meters_to_lnglat,
    project_points,
    project_to_pixel,
    tile_index_to_bounds,
    tile_size_for,
    track_length_m,
)
from trajmap.models import GeoBounds, GeoPoint

SAMPLE_POINTS = [
    (0.0, 0.0),
    (39.9975, -74.9985),
    (-33.8688, 151.2093),
    (64.1466, -21.9426),
    (-54.8019, -68.303),
    (84.9, 179.99),
]


def test_clamp_lat():
    assert clamp_lat(89.0) == MAX_LAT
    assert clamp_lat(-89.0) == -MAX_LAT
    assert clamp_lat(12.5) == 12.5


@pytest.mark.parametrize("zoom", [0, 1, 7, 15, 18])
def test_lat_limit_is_the_tile_pyramid_edge(zoom):
    n = 2 ** zoom
    assert tile_index_to_bounds(0, 0, zoom).max_lat == MAX_LAT
    assert tile_index_to_bounds(0, n - 1, zoom).min_lat == -MAX_LAT


def test_tile_size_for():
    assert tile_size_for(False) == 256
    assert tile_size_for(True) == 512


def test_tile_index_origin():
    c = degrees_to_tile_index(0.0, 0.0, 1)
    assert (c.x, c.y, c.z) == (1, 1, 1)


def test_world_edges_land_in_last_tile():
    c = degrees_to_tile_index(-MAX_LAT, 180.0, 3)
    assert (c.x, c.y) == (7, 7)
    c = degrees_to_tile_index(89.9, -180.0, 3)
    assert (c.x, c.y) == (0, 0)


@pytest.mark.parametrize("lat,lng", SAMPLE_POINTS)
@pytest.mark.parametrize("zoom", [1, 5, 12, 18])
def test_tile_contains_its_point(lat, lng, zoom):
    c = degrees_to_tile_index(lat, lng, zoom)
    b = tile_index_to_bounds(c.x, c.y, zoom)
    assert b.contains(GeoPoint(lat, lng))


def test_neighbouring_tiles_share_edges_exactly():
    z = 9
    for x, y in [(0, 0), (100, 200), (300, 17)]:
        here = tile_index_to_bounds(x, y, z)
        east = tile_index_to_bounds(x + 1, y, z)
        south = tile_index_to_bounds(x, y + 1, z)
        assert here.max_lng == east.min_lng
        assert here.min_lat == south.max_lat


def test_zoom_zero_tile_is_the_world():
    b = tile_index_to_bounds(0, 0, 0)
    assert b.min_lng == -180.0
    assert b.max_lng == 180.0
    assert b.max_lat == pytest.approx(MAX_LAT, abs=1e-7)
    assert b.min_lat == pytest.approx(-MAX_LAT, abs=1e-7)


def test_meters_roundtrip():
    x, y = lnglat_to_meters(180.0, 0.0)
    assert x == pytest.approx(math.pi * EARTH_RADIUS_M)
    assert y == pytest.approx(0.0)
    lng, lat = meters_to_lnglat(*lnglat_to_meters(-74.0, 40.7))
    assert lng == pytest.approx(-74.0)
    assert lat == pytest.approx(40.7)


def test_reference_corners_map_to_raster_corners():
    ref = tile_index_to_bounds(5, 11, 5)
    xy = project_points(
        [GeoPoint(ref.max_lat, ref.min_lng), GeoPoint(ref.min_lat, ref.max_lng)],
        ref, 400, 300, 5,
    )
    assert xy[0] == pytest.approx([0.0, 0.0], abs=1e-9)
    assert xy[1] == pytest.approx([400.0, 300.0], abs=1e-9)


def test_projection_is_linear_in_longitude():
    ref = GeoBounds(10.0, 20.0, 0.0, 10.0)
    p = project_to_pixel(GeoPoint(15.0, 2.5), ref, 1000, 1000, 8)
    assert p.x == pytest.approx(250.0)
    # Mercator stretches the north, so the middle latitude sits below the middle row.
    assert p.y > 500.0


def test_project_points_empty():
    assert project_points([], GeoBounds(0, 1, 0, 1), 10, 10, 3).shape == (0, 2)


def test_pixel_bounds_of_reference_is_full_raster():
    ref = tile_index_to_bounds(3, 4, 4)
    pb = geo_bounds_to_pixel_bounds(ref, ref, 256, 256, 4)
    assert (pb.min_x, pb.max_x, pb.min_y, pb.max_y) == (0, 256, 0, 256)


def test_pixel_bounds_of_inner_tile_is_exact():
    z = 6
    nw = tile_index_to_bounds(10, 20, z)
    se = tile_index_to_bounds(11, 21, z)
    ref = GeoBounds(se.min_lat, nw.max_lat, nw.min_lng, se.max_lng)
    pb = geo_bounds_to_pixel_bounds(se, ref, 512, 512, z)
    assert (pb.min_x, pb.max_x, pb.min_y, pb.max_y) == (256, 512, 256, 512)


def test_pixel_bounds_floor_and_ceil():
    ref = tile_index_to_bounds(0, 0, 1)
    target = GeoBounds(10.0, 20.0, -100.0, -50.0)
    pb = geo_bounds_to_pixel_bounds(target, ref, 256, 256, 1)
    xy = project_points(
        [GeoPoint(target.max_lat, target.min_lng), GeoPoint(target.min_lat, target.max_lng)],
        ref, 256, 256, 1,
    )
    assert pb.min_x == math.floor(xy[0, 0])
    assert pb.min_y == math.floor(xy[0, 1])
    assert pb.max_x == math.ceil(xy[1, 0])
    assert pb.max_y == math.ceil(xy[1, 1])
    assert all(isinstance(v, int) for v in (pb.min_x, pb.max_x, pb.min_y, pb.max_y))


def test_pixel_bounds_rejects_zero_area():
    ref = GeoBounds(0.0, 1.0, 0.0, 1.0)
    with pytest.raises(InvalidBounds):
        geo_bounds_to_pixel_bounds(GeoBounds(0.5, 0.5, 0.0, 1.0), ref, 100, 100, 5)
    with pytest.raises(InvalidBounds):
        geo_bounds_to_pixel_bounds(ref, GeoBounds(0.0, 1.0, 0.3, 0.3), 100, 100, 5)


def test_haversine_one_degree_of_latitude():
    d = haversine_m(GeoPoint(0.0, 0.0), GeoPoint(1.0, 0.0))
    assert d == pytest.approx(111194.93, rel=1e-6)


def test_track_length_sums_segments():
    pts = [GeoPoint(0.0, 0.0), GeoPoint(1.0, 0.0), GeoPoint(1.0, 0.0), GeoPoint(2.0, 0.0)]
    assert track_length_m(pts) == pytest.approx(2 * 111194.93, rel=1e-6)
    assert track_length_m(pts[:1]) == 0.0
