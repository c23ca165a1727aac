"""
Batch copy pipeline.

For a source folder and BatchSettings, produce <source>-Copies/<order>/...
with one personalized copy per order number:

    copy -> watermark every supported file -> [visible text] -> [swap]

and, once all copies exist, [zip] each one.

Progress is reported after every step as done / total where
total = 2 * copies + copies for each enabled option (visible text, swap, zip),
so the last report of a successful run is exactly 1.0. Any OSError or
ProcessingError aborts the run; output produced so far stays on disk.
"""
from typing import Callable, Dict, Optional
import os
import re
import zipfile

from core.config import logger
from models.batch import BatchSettings, BatchResult, CopyUnit
from utils.archive import archive_and_remove
from utils.files import copy_directory, extract_leading_number, find_image_by_number, get_supported_files, is_image_file, walk_files
from utils.policies import BatchFileWatermarkPolicy
from utils.swap import perform_order_swap
from utils.watermark import TextAnchor, draw_text

ProgressFn = Callable[[float], None]
Renderer = Callable[[str, str, TextAnchor], None]

_TRAILING_NUMBER = re.compile(r"\d+\Z")


def extract_start_number(text: str) -> int:
    m = _TRAILING_NUMBER.search(text)
    if not m:
        return 1
    return int(m.group(0))


def base_text_stem(text: str) -> str:
    return _TRAILING_NUMBER.sub("", text).strip()


def format_order_number(number: int) -> str:
    return f"{number:03d}"


def copies_root_for(source_folder: str) -> str:
    source = os.path.normpath(source_folder)
    return os.path.join(os.path.dirname(source), f"{os.path.basename(source)}-Copies")


def total_steps(settings: BatchSettings) -> int:
    n = settings.num_copies
    total = n * 2
    for enabled in (settings.add_visible_watermark, settings.add_swap, settings.create_zip):
        if enabled:
            total += n
    return total


class _Progress:
    def __init__(self, total: int, callback: Optional[ProgressFn]):
        self.total = max(1, total)
        self.done = 0
        self.callback = callback

    def step(self) -> None:
        self.done += 1
        if self.callback:
            self.callback(min(1.0, self.done / self.total))


def process_files(folder: str, base_text: str, order_number: str, policy=None) -> int:
    """Apply the batch watermark policy to every supported file in one copy."""
    policy = policy or BatchFileWatermarkPolicy()
    payload = f"{base_text} {order_number}"
    written = 0
    for path in get_supported_files(folder):
        if policy.apply(path, payload):
            written += 1
    logger.info(f"[batch] {order_number}: watermarked {written} file(s)")
    return written


def add_visible_watermark_to_photo(folder: str, text: str, photo_number: int, renderer: Renderer = draw_text) -> Optional[str]:
    target = find_image_by_number(folder, photo_number)
    if target is None:
        logger.info(f"[batch] No photo with number {photo_number} found in {os.path.basename(folder)}")
        return None
    renderer(target, text, TextAnchor.BOTTOM_RIGHT)
    return target


def run_batch(
    source_folder: str,
    settings: BatchSettings,
    progress: Optional[ProgressFn] = None,
    clean_name: Optional[str] = None,
    renderer: Renderer = draw_text,
) -> BatchResult:
    source = os.path.normpath(source_folder)
    folder_name = os.path.basename(source)
    copies_root = copies_root_for(source)
    os.makedirs(copies_root, exist_ok=True)

    start_number = extract_start_number(settings.base_text)
    stem = base_text_stem(settings.base_text)
    tracker = _Progress(total_steps(settings), progress)
    result = BatchResult(copies_root=copies_root)

    logger.info(f"[batch] {settings.num_copies} copies of {folder_name} starting at {start_number}, base text '{stem}'")

    for i in range(settings.num_copies):
        order_number = format_order_number(start_number + i)
        destination = os.path.join(copies_root, order_number, folder_name)
        logger.info(f"[batch] Processing copy {order_number}")

        copy_directory(source, destination)
        tracker.step()

        process_files(destination, stem, order_number)
        tracker.step()

        if settings.add_visible_watermark:
            photo = settings.target_photo_for(int(order_number))
            add_visible_watermark_to_photo(destination, settings.visible_text_for(order_number), photo, renderer)
            tracker.step()

        if settings.add_swap:
            perform_order_swap(destination, order_number)
            tracker.step()

        result.units.append(CopyUnit(order_number=order_number, destination_folder=destination))

    if settings.create_zip:
        for unit in result.units:
            unit.archive_path = archive_and_remove(unit.destination_folder, clean_name or folder_name)
            tracker.step()

    logger.info(f"[batch] Done: {len(result.units)} copies in {copies_root}")
    return result


def _first_number(name: str) -> Optional[int]:
    return extract_leading_number(os.path.basename(name.rstrip("/")))


def find_watermark_sample(copies_root: str, settings: BatchSettings) -> Optional[Dict[str, str]]:
    """Locate the first visibly watermarked photo for preview, relative to copies_root."""
    if not settings.add_visible_watermark or not os.path.isdir(copies_root):
        return None

    order_dirs = sorted(e.name for e in os.scandir(copies_root) if e.is_dir())
    for order in order_dirs:
        order_path = os.path.join(copies_root, order)
        try:
            target = settings.target_photo_for(int(order))
        except ValueError:
            continue

        zips = sorted(e.path for e in os.scandir(order_path) if e.is_file() and e.name.lower().endswith(".zip"))
        if zips:
            with zipfile.ZipFile(zips[0]) as zf:
                for entry in zf.namelist():
                    if entry.endswith("/") or not is_image_file(entry):
                        continue
                    if _first_number(entry) == target:
                        return {"zip": os.path.relpath(zips[0], copies_root), "entry": entry}

        for path in walk_files(order_path):
            if is_image_file(path) and _first_number(path) == target:
                return {"path": os.path.relpath(path, copies_root)}
    return None
