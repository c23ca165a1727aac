"""Single-shot folder operations behind the processing endpoints."""
from typing import Any, Callable, Dict, List, Optional
import os
import string

from core.config import logger
from core.exceptions import InvalidSourceError, NoSupportedFilesError
from models.batch import BatchSettings
from utils import invisible_mark
from utils.batch import add_visible_watermark_to_photo, find_watermark_sample, run_batch
from utils.encoding import decode_text, read_text_watermark
from utils.files import get_supported_files, is_image_file, is_text_file, is_video_file
from utils.policies import TypeAwareWatermarkPolicy
from utils.watermark import draw_text

ProgressFn = Optional[Callable[[float], None]]


def validate_source_folder(selected_path: Optional[str]) -> str:
    if not selected_path or not str(selected_path).strip():
        raise InvalidSourceError("selectedPath is empty")
    path = os.path.normpath(str(selected_path).strip())
    if not os.path.isdir(path):
        raise InvalidSourceError(f"selectedPath is not a directory or does not exist: {selected_path}")
    return path


def _supported_files_or_raise(path: str) -> List[str]:
    files = get_supported_files(path)
    if not files:
        raise NoSupportedFilesError(f"no supported files found in: {path}")
    return files


def clean_folder_name(name: str) -> str:
    """Drop a trailing '_xxxxxxxx' hex fragment (upload UUID prefix) from a folder name."""
    head, sep, tail = name.rpartition("_")
    if sep and len(tail) == 8 and all(c in string.hexdigits for c in tail):
        return head
    return name


def encrypt_files(selected_path: str, name_to_inject: str, progress: ProgressFn = None) -> int:
    path = validate_source_folder(selected_path)
    logger.info("[encrypt] Scanning files...")
    files = _supported_files_or_raise(path)
    logger.info(f"[encrypt] Found {len(files)} supported files")

    policy = TypeAwareWatermarkPolicy()
    written = 0
    for idx, file_path in enumerate(files, start=1):
        if policy.apply(file_path, name_to_inject):
            written += 1
        if progress:
            progress(idx / len(files))

    logger.info("[encrypt] Encryption completed successfully")
    return written


def decrypt_files(selected_path: str, progress: ProgressFn = None) -> List[Dict[str, str]]:
    path = validate_source_folder(selected_path)
    logger.info("[decrypt] Scanning files...")
    files = _supported_files_or_raise(path)
    logger.info(f"[decrypt] Found {len(files)} supported files")

    found = []
    for idx, file_path in enumerate(files, start=1):
        decoded = ""
        if is_image_file(file_path) or is_video_file(file_path):
            encoded = invisible_mark.extract_watermark_text(file_path)
            if encoded:
                decoded = decode_text(encoded)
        if not decoded and is_text_file(file_path):
            decoded = read_text_watermark(file_path)

        if decoded:
            logger.info(f"{os.path.basename(file_path)} → {decoded}")
            found.append({"file": os.path.relpath(file_path, path), "text": decoded})
        if progress:
            progress(idx / len(files))

    if not found:
        logger.info("[decrypt] Completed: no watermarks found")
    else:
        logger.info(f"[decrypt] Completed: scanned {len(files)} files, found {len(found)} watermarks")
    return found


def remove_watermarks(selected_path: str, progress: ProgressFn = None) -> int:
    path = validate_source_folder(selected_path)
    return invisible_mark.remove_watermarks(path, progress)


def add_text_to_photo(selected_path: str, text: str, photo_number: int, renderer=draw_text) -> Optional[str]:
    path = validate_source_folder(selected_path)
    return add_visible_watermark_to_photo(path, text, photo_number, renderer)


def perform_batch_copy(selected_path: str, settings: BatchSettings, progress: ProgressFn = None, renderer=draw_text) -> Dict[str, Any]:
    path = validate_source_folder(selected_path)
    clean_name = clean_folder_name(os.path.basename(path))

    logger.info("=== Starting Batch Copy Process ===")
    logger.info(f"Selected Path: {path}")
    logger.info(f"Number of copies: {settings.num_copies}")
    logger.info(f"Base text: {settings.base_text}")

    batch = run_batch(path, settings, progress, clean_name=clean_name, renderer=renderer)
    result: Dict[str, Any] = {"path": batch.copies_root}
    sample = find_watermark_sample(batch.copies_root, settings)
    if sample:
        result["watermarkSample"] = sample
    return result
