import json

import pytest
from conftest import FakeTiles, decode_png

from trajmap import cli, polyline
from trajmap.models import GeoPoint

ENCODED = polyline.encode([GeoPoint(39.9975, -74.9985), GeoPoint(39.9985, -74.9975)])


@pytest.fixture
def run(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    tiles = FakeTiles()
    monkeypatch.setattr(cli, "tile_cache_from_config", lambda cfg: tiles)
    cfg_path = tmp_path / "trajmap.json"
    cfg_path.write_text(json.dumps({"cache": {"dir": str(tmp_path / "tiles")}}))

    def _run(*argv):
        return cli.main(["--config", str(cfg_path), *argv])

    _run.tiles = tiles
    return _run


def test_renders_png_and_points(run, tmp_path):
    out = tmp_path / "out" / "track.png"
    points = tmp_path / "points.json"
    code = run("-p", ENCODED, "-o", str(out), "-W", "120", "-H", "80", "-z", "15",
               "--up", "0.5", "--start-marker", "circle", "--points-json", str(points))
    assert code == 0
    assert decode_png(out.read_bytes()).shape == (120, 120, 3)
    data = json.loads(points.read_text())
    assert len(data) == 2 and set(data[0]) == {"x", "y"}
    assert run.tiles.calls


def test_reads_polyline_file(run, tmp_path):
    src = tmp_path / "track.txt"
    src.write_text(ENCODED + "\n")
    out = tmp_path / "track.png"
    assert run("--polyline-file", str(src), "-o", str(out), "-z", "15") == 0
    assert decode_png(out.read_bytes()).shape == (600, 800, 3)


def test_render_failure_exits_nonzero(run, tmp_path, capsys):
    out = tmp_path / "track.png"
    assert run("-p", "", "-o", str(out)) == 1
    assert not out.exists()
    assert "Rendering failed" in capsys.readouterr().err
    assert run.tiles.calls == []


def test_bad_track_region_exits_nonzero(run, tmp_path):
    assert run("-p", ENCODED, "-o", str(tmp_path / "x.png"), "-W", "0") == 1


def test_expansion_fraction_is_checked(run, tmp_path):
    with pytest.raises(SystemExit):
        run("-p", ENCODED, "-o", str(tmp_path / "x.png"), "--left", "2")


def test_version(capsys):
    with pytest.raises(SystemExit):
        cli.main(["--version"])
    assert "TrajMap v" in capsys.readouterr().out


def test_missing_polyline_file_exits_nonzero(run, tmp_path, capsys):
    out = tmp_path / "track.png"
    assert run("--polyline-file", str(tmp_path / "nope.txt"), "-o", str(out)) == 1
    assert "Rendering failed" in capsys.readouterr().err
    assert not out.exists()
    assert run.tiles.calls == []


def test_unwritable_output_exits_nonzero(run, tmp_path, capsys):
    out = tmp_path / "already_a_dir"
    out.mkdir()
    assert run("-p", ENCODED, "-o", str(out), "-z", "15") == 1
    captured = capsys.readouterr()
    assert "Rendering failed" in captured.err
    assert "Saved" not in captured.out
