"""
Binary watermark embedding by tail append.

A watermark is the byte sequence START + encoded text + END appended to the
end of a file. Detection only ever looks at the last MAX_TAIL_BYTES bytes:

- find the last START in the tail, then the first END after it
- END must sit strictly after START

Files shorter than MAX_TAIL_BYTES are never inspected and always report "no
watermark", even if they happen to contain the markers. Short media files that
already exist in the field depend on this, so the threshold stays as is.
"""
from __future__ import annotations
from typing import Callable, NamedTuple, Optional, Tuple
import os

from core.config import logger
from utils.files import get_supported_files, is_image_file, is_video_file
from utils.encoding import WATERMARK_PREFIX, WATERMARK_SUFFIX

MAX_TAIL_BYTES = 100
WATERMARK_START = WATERMARK_PREFIX.encode("ascii")
WATERMARK_END = WATERMARK_SUFFIX.encode("ascii")


class WatermarkRecord(NamedTuple):
    start: int  # offset of START within the tail
    end: int  # offset of END within the tail
    content: Optional[bytes]


def read_tail(file_path: str) -> Tuple[Optional[bytes], int]:
    """Return (last MAX_TAIL_BYTES bytes, file size); the tail is None for short files."""
    try:
        with open(file_path, "rb") as f:
            f.seek(0, os.SEEK_END)
            size = f.tell()
            if size < MAX_TAIL_BYTES:
                return None, size
            f.seek(size - MAX_TAIL_BYTES)
            return f.read(MAX_TAIL_BYTES), size
    except OSError as ex:
        logger.error(f"Error reading watermark data from {os.path.basename(file_path)}: {ex}")
        raise


def find_watermark(tail: bytes, include_content: bool = False) -> Optional[WatermarkRecord]:
    start = tail.rfind(WATERMARK_START)
    if start == -1:
        return None
    end = tail.find(WATERMARK_END, start)
    if end == -1 or end <= start:
        return None
    content = tail[start + len(WATERMARK_START):end] if include_content else None
    return WatermarkRecord(start, end, content)


def has_watermark(file_path: str) -> bool:
    tail, _ = read_tail(file_path)
    if tail is None:
        return False
    return find_watermark(tail) is not None


def add_binary_watermark(file_path: str, encoded_text: str) -> bool:
    """Append START + encoded_text + END unless a watermark is already there."""
    name = os.path.basename(file_path)
    if has_watermark(file_path):
        logger.info(f"{name}: Already has watermark")
        return False

    try:
        with open(file_path, "ab") as f:
            f.write(WATERMARK_START + encoded_text.encode("utf-8") + WATERMARK_END)
    except OSError as ex:
        logger.error(f"Error adding watermark to {name}: {ex}")
        raise

    logger.info(f"{name}: Watermark added successfully")
    return True


def extract_watermark_text(file_path: str) -> str:
    """Encoded body of the last watermark in the tail ('' when none); decode with utils.encoding."""
    tail, _ = read_tail(file_path)
    if tail is None:
        return ""
    record = find_watermark(tail, include_content=True)
    if record is None or not record.content:
        return ""
    text = record.content.decode("utf-8", errors="replace")
    logger.info(f"Found watermark in {os.path.basename(file_path)}: {text}")
    return text


def remove_watermark(file_path: str) -> bool:
    """Truncate the file at the start of its tail watermark. False (no-op) when none is found."""
    tail, size = read_tail(file_path)
    if tail is None:
        return False
    record = find_watermark(tail)
    if record is None:
        return False

    position = size - (len(tail) - record.start)
    try:
        os.truncate(file_path, position)
    except OSError as ex:
        logger.error(f"Error removing watermark from {os.path.basename(file_path)}: {ex}")
        raise
    return True


def remove_watermarks(directory: str, progress: Optional[Callable[[float], None]] = None) -> int:
    """Strip binary watermarks from every image and video under directory; returns how many were removed."""
    files = [p for p in get_supported_files(directory) if is_image_file(p) or is_video_file(p)]
    total = len(files)
    removed = 0
    for idx, path in enumerate(files, start=1):
        name = os.path.basename(path)
        try:
            if remove_watermark(path):
                removed += 1
                logger.info(f"Watermark removed from {name}")
            else:
                logger.info(f"No watermark found in {name}")
        except OSError as ex:
            logger.error(f"Error removing watermark from {name}: {ex}")
        if progress and total:
            progress(idx / total)

    logger.info("Watermark removal completed")
    return removed
