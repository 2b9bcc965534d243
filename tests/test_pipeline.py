import pytest
from conftest import decode_png, tile_color

from trajmap import polyline
from trajmap.errors import EmptyTrajectory, GeometryError, InputError, InvalidBounds, RenderError
from trajmap.models import ExpansionRegion, GeoPoint, MarkerStyle, RenderRequest, TileCoord, TrackRegion
from trajmap.pipeline import marker_from_config, render_polyline, render_trajectory

# Both points and their buffered, aspect-fitted bounds sit inside tile 15/9557/12405.
POINTS = (GeoPoint(39.9975, -74.9985), GeoPoint(39.9985, -74.9975))
TILE = TileCoord(9557, 12405, 15)


def _close(pixel, color, tol=2):
    return all(abs(int(a) - int(b)) <= tol for a, b in zip(pixel, color))


def test_single_tile_render(fake_tiles, cfg):
    req = RenderRequest(POINTS, TrackRegion(100, 100), zoom=15)
    res = render_trajectory(req, fetch=fake_tiles, cfg=cfg)

    assert fake_tiles.coords == [(TILE.x, TILE.y, TILE.z)]
    assert (res.width, res.height, res.zoom) == (100, 100, 15)
    assert len(res.pixel_points) == 2
    for p in res.pixel_points:
        assert 0 <= p.x <= 100 and 0 <= p.y <= 100
    start, end = res.pixel_points
    # south-west start, north-east end
    assert start.x < end.x and start.y > end.y

    px = decode_png(res.image_bytes)
    assert px.shape == (100, 100, 3)
    assert _close(px[0, 0], tile_color(TILE))
    assert _close(px[99, 99], tile_color(TILE))
    assert res.boundary.bounds.contains(POINTS[0])


def test_auto_zoom_clamps_to_max(fake_tiles, cfg):
    res = render_trajectory(RenderRequest(POINTS, TrackRegion(120, 90)), fetch=fake_tiles, cfg=cfg)
    assert res.zoom == 18
    assert (res.width, res.height) == (120, 90)
    assert all(z == 18 for _, _, z in fake_tiles.coords)


def test_all_tiles_failing_still_renders(failing_tiles, cfg):
    req = RenderRequest(POINTS, TrackRegion(80, 60), zoom=15)
    res = render_trajectory(req, fetch=failing_tiles, cfg=cfg)
    px = decode_png(res.image_bytes)
    assert px.shape == (60, 80, 3)
    assert _close(px[0, 0], (224, 224, 224))
    assert _close(px[59, 79], (224, 224, 224))


def test_render_is_deterministic(fake_tiles, cfg):
    req = RenderRequest(POINTS, TrackRegion(100, 100), zoom=15, marker=MarkerStyle(start="circle"))
    a = render_trajectory(req, fetch=fake_tiles, cfg=cfg)
    b = render_trajectory(req, fetch=fake_tiles, cfg=cfg)
    assert a == b


def test_retina_tiles(fake_tiles, cfg):
    req = RenderRequest(POINTS, TrackRegion(100, 100), zoom=15, retina=True)
    res = render_trajectory(req, fetch=fake_tiles, cfg=cfg)
    assert fake_tiles.calls == [(TILE, True)]
    assert (res.width, res.height) == (100, 100)


def test_expansion_grows_output(fake_tiles, cfg):
    req = RenderRequest(POINTS, TrackRegion(100, 100), ExpansionRegion(up=0.5), zoom=15)
    res = render_trajectory(req, fetch=fake_tiles, cfg=cfg)
    assert (res.width, res.height) == (100, 150)
    assert res.boundary.bound3.max_lat > res.boundary.bound2.max_lat


def test_render_polyline(fake_tiles, cfg):
    encoded = polyline.encode(POINTS)
    res = render_polyline(encoded, TrackRegion(100, 100), fetch=fake_tiles, cfg=cfg, zoom=15, line_width=5)
    assert res.zoom == 15
    assert len(res.pixel_points) == 2


def test_empty_input_never_fetches(fake_tiles, cfg):
    with pytest.raises(RenderError) as exc:
        render_polyline("", TrackRegion(100, 100), fetch=fake_tiles, cfg=cfg)
    assert isinstance(exc.value.cause, EmptyTrajectory)
    assert fake_tiles.calls == []


def test_malformed_polyline(fake_tiles, cfg):
    with pytest.raises(RenderError) as exc:
        render_polyline("_p~iF~ps|", TrackRegion(100, 100), fetch=fake_tiles, cfg=cfg)
    assert isinstance(exc.value.cause, InputError)


def test_identical_points_are_a_geometry_error(fake_tiles, cfg):
    req = RenderRequest([GeoPoint(10.0, 10.0)] * 2, TrackRegion(100, 100))
    with pytest.raises(RenderError) as exc:
        render_trajectory(req, fetch=fake_tiles, cfg=cfg)
    assert isinstance(exc.value.cause, InvalidBounds)
    assert fake_tiles.calls == []


def test_bad_colour_and_zoom(fake_tiles, cfg):
    with pytest.raises(RenderError) as exc:
        render_trajectory(RenderRequest(POINTS, TrackRegion(10, 10), line_color="nope"), fake_tiles, cfg)
    assert isinstance(exc.value.cause, InputError)
    with pytest.raises(RenderError) as exc:
        render_trajectory(RenderRequest(POINTS, TrackRegion(10, 10), zoom=25), fake_tiles, cfg)
    assert isinstance(exc.value.cause, GeometryError)
    assert fake_tiles.calls == []


def test_single_expansion_policy(fake_tiles, cfg):
    cfg.update({"render": {"expansion_policy": "single"}})
    req = RenderRequest(POINTS, TrackRegion(100, 100), ExpansionRegion(up=0.1, left=0.1), zoom=15)
    with pytest.raises(RenderError) as exc:
        render_trajectory(req, fake_tiles, cfg)
    assert isinstance(exc.value.cause, InputError)


@pytest.mark.parametrize("track", [
    [(85.045, 0.0), (85.0511, 0.01)],
    [(-85.045, 0.0), (-85.0511, 0.01)],
    [(10.0, 179.99), (10.01, 179.999)],
    [(10.0, -179.99), (10.01, -179.999)],
])
def test_track_at_world_edge_renders(track, fake_tiles, cfg):
    points = [GeoPoint(lat, lng) for lat, lng in track]
    res = render_trajectory(RenderRequest(points, TrackRegion(100, 100)), fake_tiles, cfg)
    assert (res.width, res.height) == (100, 100)
    assert decode_png(res.image_bytes).shape == (100, 100, 3)


def test_write_failure_is_a_render_error(fake_tiles, cfg, monkeypatch):
    def broken(*args):
        raise OSError("disk full")

    monkeypatch.setattr("trajmap.pipeline.format_output", broken)
    req = RenderRequest(POINTS, TrackRegion(100, 100), zoom=15)
    with pytest.raises(RenderError) as exc:
        render_trajectory(req, fake_tiles, cfg)
    assert isinstance(exc.value.cause, OSError)


def test_request_validation():
    with pytest.raises(InputError):
        RenderRequest([GeoPoint(float("nan"), 0.0)], TrackRegion(10, 10))
    with pytest.raises(InputError):
        RenderRequest(POINTS, TrackRegion(10, 10), line_width=0)


def test_marker_from_config(cfg):
    assert marker_from_config(cfg) is None
    cfg.update({"render": {"marker_size": 20, "start_marker_color": "#123456"}})
    m = marker_from_config(cfg, start="triangle")
    assert m == MarkerStyle(start="triangle", start_color="#123456", size=20)
