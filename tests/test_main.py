import json

from PIL import Image
from typer.testing import CliRunner

from swinetrack.main import app

runner = CliRunner()


def _payload_file(tmp_path):
    data = [20.0] * (32 * 24)
    data[12 * 32 + 16] = 40.0
    path = tmp_path / "frame.json"
    path.write_text(json.dumps({"w": 32, "h": 24, "data": data}))
    return path


def test_render_command(tmp_path):
    out = tmp_path / "overlay.png"
    frame = tmp_path / "frame.jpg"
    Image.new("RGB", (320, 240), (90, 90, 90)).save(frame)
    stats = tmp_path / "stats.json"
    result = runner.invoke(app, [
        "render", str(_payload_file(tmp_path)), str(frame),
        "-o", str(out), "--factor", "1", "--json", str(stats),
    ])
    assert result.exit_code == 0, result.output
    assert Image.open(out).size == (320, 240)
    assert json.loads(stats.read_text())["hotspot"] == [16, 12]
    assert "hotspot (16, 12)" in result.output


def test_render_without_image(tmp_path):
    out = tmp_path / "overlay.png"
    result = runner.invoke(app, ["render", str(_payload_file(tmp_path)), "-o", str(out)])
    assert result.exit_code == 0, result.output
    assert Image.open(out).size == (640, 480)


def test_report_rejects_unknown_range(tmp_path):
    result = runner.invoke(app, ["report", "--range", "weekly", "-o", str(tmp_path / "r.pdf")])
    assert result.exit_code == 2


def test_report_custom_range_needs_dates(tmp_path):
    result = runner.invoke(app, ["report", "--range", "custom", "-o", str(tmp_path / "r.pdf")])
    assert result.exit_code == 2
