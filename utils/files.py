import os
import shutil
from typing import Iterator, List, Optional

from core.config import logger

IMAGE_EXTENSIONS = frozenset({"jpg", "jpeg", "png"})
VIDEO_EXTENSIONS = frozenset({"mp4", "avi", "mov", "mkv"})
TEXT_EXTENSIONS = frozenset({"txt"})
SUPPORTED_EXTENSIONS = IMAGE_EXTENSIONS | VIDEO_EXTENSIONS | TEXT_EXTENSIONS


def file_extension(path: str) -> str:
    """Lowercased extension without the dot ('' when there is none)."""
    return os.path.splitext(path)[1].lower().lstrip(".")


def is_image_file(path: str) -> bool:
    return file_extension(path) in IMAGE_EXTENSIONS


def is_video_file(path: str) -> bool:
    return file_extension(path) in VIDEO_EXTENSIONS


def is_text_file(path: str) -> bool:
    return file_extension(path) in TEXT_EXTENSIONS


def is_supported_file(path: str) -> bool:
    return file_extension(path) in SUPPORTED_EXTENSIONS


def extract_leading_number(filename: str) -> Optional[int]:
    """First run of ASCII digits anywhere in the name, e.g. 'Photo-0011.jpg' -> 11."""
    start = None
    for i, ch in enumerate(filename):
        if "0" <= ch <= "9":
            if start is None:
                start = i
        elif start is not None:
            return int(filename[start:i])
    if start is not None:
        return int(filename[start:])
    return None


def walk_files(directory: str) -> Iterator[str]:
    """Yield every file under directory in lexical order (directories sorted too)."""
    for root, dirs, files in os.walk(directory):
        dirs.sort()
        for name in sorted(files):
            yield os.path.join(root, name)


def get_supported_files(directory: str) -> List[str]:
    return [p for p in walk_files(directory) if is_supported_file(p)]


def get_image_files(directory: str) -> List[str]:
    return [p for p in walk_files(directory) if is_image_file(p)]


def find_image_by_number(directory: str, number: int) -> Optional[str]:
    """First image (in listing order) whose leading number equals `number`."""
    for path in get_image_files(directory):
        if extract_leading_number(os.path.basename(path)) == number:
            return path
    return None


def count_supported_files(directory: str) -> int:
    return len(get_supported_files(directory))


def copy_directory(source: str, destination: str) -> None:
    """Recursively copy source into destination, keeping structure and permission bits."""
    try:
        os.makedirs(destination, exist_ok=True)
        shutil.copytree(source, destination, copy_function=shutil.copy2, dirs_exist_ok=True)
    except OSError as ex:
        logger.error(f"Error copying directory from {source} to {destination}: {ex}")
        raise
    logger.info(f"Directory copied: {os.path.basename(destination)}")


def format_file_size(size: int) -> str:
    kb = 1024
    mb = kb * 1024
    gb = mb * 1024
    if size >= gb:
        return f"{size / gb:.1f} GB"
    if size >= mb:
        return f"{size / mb:.1f} MB"
    if size >= kb:
        return f"{size / kb:.1f} KB"
    return f"{size} bytes"


def secure_join(base: str, *parts: str) -> Optional[str]:
    """Join parts onto base, or None when the result would land outside base."""
    root = os.path.realpath(base)
    full = os.path.realpath(os.path.join(root, *parts))
    if full == root or full.startswith(root.rstrip(os.sep) + os.sep):
        return full
    return None
