import pytest

from core.jobs import JobRegistry
from core.store import MemoryStore

from helpers import make_jpeg, make_video


@pytest.fixture
def registry():
    return JobRegistry(MemoryStore(), job_ttl=3600, lock_ttl=3600, token_ttl=3600, queue_size=16)


@pytest.fixture
def photo_folder(tmp_path):
    """Source folder with photos 1-5 and 11 (distinct colors), a clip and a note."""
    src = tmp_path / "Source"
    src.mkdir()
    for n in (1, 2, 3, 4, 5, 11):
        make_jpeg(str(src / f"{n}.jpg"), color=(20 * n % 255, 90, 160))
    make_video(str(src / "clip.mp4"))
    (src / "notes.txt").write_text("order notes\n", encoding="utf-8")
    (src / ".DS_Store").write_bytes(b"\x00\x00\x00\x01Bud1")
    return src
