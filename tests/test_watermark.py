import pytest
from PIL import Image

from core.exceptions import OverlayError
from utils.watermark import PADDING, TextAnchor, _compute_position, draw_text

from helpers import make_jpeg


def _brightest(img, box):
    region = img.convert("L").crop(box)
    return max(region.getdata())


def test_compute_position_anchors():
    assert _compute_position(100, 80, 20, 10, PADDING, TextAnchor.TOP_LEFT) == (5, 5)
    assert _compute_position(100, 80, 20, 10, PADDING, TextAnchor.TOP_RIGHT) == (75, 5)
    assert _compute_position(100, 80, 20, 10, PADDING, TextAnchor.BOTTOM_LEFT) == (5, 65)
    assert _compute_position(100, 80, 20, 10, PADDING, TextAnchor.BOTTOM_RIGHT) == (75, 65)
    assert _compute_position(100, 80, 20, 10, PADDING, TextAnchor.CENTER) == (40, 35)


def test_draw_text_png_bottom_right(tmp_path):
    path = tmp_path / "3.png"
    Image.new("RGB", (240, 160), (0, 0, 0)).save(path, format="PNG")

    draw_text(str(path), "CONFIDENTIAL")

    with Image.open(path) as img:
        assert img.format == "PNG"
        assert img.size == (240, 160)
        # semi-transparent white over black lands well above black but below full white
        assert 60 < _brightest(img, (120, 80, 240, 160)) < 200
        assert _brightest(img, (0, 0, 100, 60)) == 0


def test_draw_text_keeps_jpeg_format(tmp_path):
    path = make_jpeg(str(tmp_path / "1.jpg"), color=(0, 0, 0))
    draw_text(path, "001", TextAnchor.TOP_LEFT)
    with Image.open(path) as img:
        assert img.format == "JPEG"
        assert _brightest(img, (0, 0, 80, 40)) > 60


def test_draw_text_accepts_anchor_value(tmp_path):
    path = tmp_path / "c.png"
    Image.new("RGB", (120, 120), (0, 0, 0)).save(path, format="PNG")
    draw_text(str(path), "X", "center")
    with Image.open(path) as img:
        assert _brightest(img, (40, 40, 80, 80)) > 60


def test_undecodable_image_raises_overlay_error(tmp_path):
    path = tmp_path / "broken.jpg"
    path.write_bytes(b"not an image at all")
    with pytest.raises(OverlayError):
        draw_text(str(path), "X")
