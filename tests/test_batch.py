import io
import os
import zipfile

import pytest
from PIL import Image

from core.exceptions import OverlayError
from models.batch import BatchSettings
from utils.batch import (
    base_text_stem,
    extract_start_number,
    find_watermark_sample,
    format_order_number,
    run_batch,
    total_steps,
)
from utils.encoding import add_watermark, encode_text
from utils.invisible_mark import WATERMARK_END, WATERMARK_START

from helpers import read_bytes


def _settings(**kw):
    return BatchSettings.model_validate(kw)


def test_base_text_parsing():
    assert extract_start_number("Project 001") == 1
    assert base_text_stem("Project 001") == "Project"
    assert extract_start_number("Client 42") == 42
    assert extract_start_number("No digits") == 1
    assert base_text_stem("No digits ") == "No digits"
    assert format_order_number(7) == "007"
    assert format_order_number(1234) == "1234"


def test_total_steps():
    assert total_steps(_settings(numberOfCopies=3)) == 6
    s = _settings(numberOfCopies=3, addSwapEncoding=True, addVisibleWatermark=True, createZip=True)
    assert total_steps(s) == 15


def test_settings_target_photo():
    assert _settings(photoNumber=3).target_photo_for(2) == 3
    assert _settings().target_photo_for(2) == 2
    assert _settings(photoNumber=3, useOrderNumberAsPhotoNumber=True).target_photo_for(2) == 2


def test_copies_are_watermarked_per_order(photo_folder):
    seen = []
    result = run_batch(str(photo_folder), _settings(numberOfCopies=2, baseText="Client 41"), seen.append)

    root = photo_folder.parent / "Source-Copies"
    assert result.copies_root == str(root)
    assert [u.order_number for u in result.units] == ["041", "042"]
    for order in ("041", "042"):
        copy = root / order / "Source"
        wire = add_watermark(f"Client {order}").encode("ascii")
        assert read_bytes(str(copy / "1.jpg")).endswith(wire)
        assert (copy / "notes.txt").read_text(encoding="utf-8") == "order notes\n" + wire.decode()
        binary = WATERMARK_START + encode_text(f"Client {order}").encode() + WATERMARK_END
        assert read_bytes(str(copy / "clip.mp4")).endswith(binary)
        # the source is untouched
        assert not read_bytes(str(photo_folder / "1.jpg")).endswith(wire)

    assert seen == [0.25, 0.5, 0.75, 1.0]


def test_progress_is_monotonic_and_ends_at_one(photo_folder):
    seen = []
    settings = _settings(numberOfCopies=2, baseText="Run 5", addSwapEncoding=True, addVisibleWatermark=True, createZip=True)
    run_batch(str(photo_folder), settings, seen.append, renderer=lambda *a: None)

    assert len(seen) == total_steps(settings)
    assert all(a <= b for a, b in zip(seen, seen[1:]))
    assert seen[-1] == 1.0


def test_missing_visible_target_is_not_fatal(photo_folder):
    calls = []
    settings = _settings(numberOfCopies=1, baseText="X 1", addVisibleWatermark=True, photoNumber=99)
    run_batch(str(photo_folder), settings, renderer=lambda *a: calls.append(a))
    assert calls == []


def test_renderer_failure_aborts_batch(photo_folder):
    def broken(path, text, anchor):
        raise OverlayError("cannot decode")

    settings = _settings(numberOfCopies=2, baseText="X 1", addVisibleWatermark=True)
    with pytest.raises(OverlayError):
        run_batch(str(photo_folder), settings, renderer=broken)
    # partial output stays on disk
    assert (photo_folder.parent / "Source-Copies" / "001" / "Source").is_dir()
    assert not (photo_folder.parent / "Source-Copies" / "002").exists()


def test_end_to_end_batch(photo_folder):
    originals = {n: read_bytes(str(photo_folder / f"{n}.jpg")) for n in (1, 2, 3, 11)}
    settings = _settings(
        numberOfCopies=3,
        baseText="Project 001",
        addSwapEncoding=True,
        addVisibleWatermark=True,
        createZip=True,
        watermarkText="CONFIDENTIAL",
        photoNumber=3,
    )

    result = run_batch(str(photo_folder), settings)

    root = photo_folder.parent / "Source-Copies"
    assert sorted(os.listdir(root)) == ["001", "002", "003"]
    for unit in result.units:
        order_dir = root / unit.order_number
        assert os.listdir(order_dir) == ["Source.zip"]
        assert unit.archive_path == str(order_dir / "Source.zip")

        with zipfile.ZipFile(unit.archive_path) as zf:
            names = zf.namelist()
            assert ".DS_Store" not in names
            assert all(i.compress_type == zipfile.ZIP_STORED for i in zf.infolist())

            marked = Image.open(io.BytesIO(zf.read("3.jpg")))
            plain = Image.open(io.BytesIO(zf.read("4.jpg")))
            w, h = marked.size
            corner = (w // 2, h // 2, w, h)
            assert max(marked.convert("L").crop(corner).getdata()) > max(plain.convert("L").crop(corner).getdata()) + 40

            wire = add_watermark(f"Project {unit.order_number}").encode("ascii")
            assert zf.read("2.jpg").endswith(wire)

            if unit.order_number == "001":
                # 1 and 11 swapped, both already watermarked
                assert zf.read("1.jpg") == originals[11] + wire
                assert zf.read("11.jpg") == originals[1] + wire
            else:
                assert zf.read("1.jpg") == originals[1] + wire

    sample = find_watermark_sample(result.copies_root, settings)
    assert sample == {"zip": os.path.join("001", "Source.zip"), "entry": "3.jpg"}


def test_watermark_sample_without_zip(photo_folder):
    settings = _settings(numberOfCopies=2, baseText="Shoot 4", addVisibleWatermark=True, useOrderNumberAsPhotoNumber=True, photoNumber=1)
    result = run_batch(str(photo_folder), settings, renderer=lambda *a: None)
    assert find_watermark_sample(result.copies_root, settings) == {"path": os.path.join("004", "Source", "4.jpg")}
    assert find_watermark_sample(result.copies_root, _settings(numberOfCopies=1)) is None
