"""
Rename-based exchange of two files.

swap_files runs three renames: A -> temp, B -> A, temp -> B. Only a failure of
the second rename is rolled back (temp -> A); a failure in the first or third
step is raised as-is. The exchange is therefore not atomic: if step 3 fails the
original A content is left under the temp name next to A.

A stronger variant would stage both files into a holding directory and commit
with a single directory-entry exchange where the filesystem supports it
(renameat2 RENAME_EXCHANGE on Linux). That is not done here.
"""
from typing import Optional
import os

from core.config import logger
from core.exceptions import SwapError
from models.batch import SwapPair, SWAP_OFFSET
from utils.files import get_image_files, extract_leading_number


def _temp_name(file_a: str) -> str:
    return os.path.join(os.path.dirname(file_a), f"temp_{os.getpid()}_{os.path.basename(file_a)}")


def swap_files(file_a: str, file_b: str) -> None:
    name_a, name_b = os.path.basename(file_a), os.path.basename(file_b)
    logger.info(f"[swap] Swapping files: {name_a} <--> {name_b}")
    temp = _temp_name(file_a)

    try:
        os.rename(file_a, temp)
    except OSError as ex:
        logger.error(f"[swap] Failed to swap files {name_a} <--> {name_b}: {ex}")
        raise SwapError(f"cannot move {name_a} aside: {ex}") from ex

    try:
        os.rename(file_b, file_a)
    except OSError as ex:
        try:
            os.rename(temp, file_a)
        except OSError as restore_ex:
            logger.error(f"[swap] Could not restore {name_a} from {temp}: {restore_ex}")
        logger.error(f"[swap] Failed to swap files {name_a} <--> {name_b}: {ex}")
        raise SwapError(f"cannot move {name_b} onto {name_a}: {ex}") from ex

    try:
        os.rename(temp, file_b)
    except OSError as ex:
        logger.error(f"[swap] Failed to swap files {name_a} <--> {name_b}: {ex}")
        raise SwapError(f"cannot move {name_a} onto {name_b}: {ex}") from ex

    logger.info(f"[swap] Successfully swapped {name_a} <--> {name_b}")


def find_swap_pair(folder: str, order_number: str) -> Optional[SwapPair]:
    base_number = int(order_number)
    swap_number = base_number + SWAP_OFFSET
    file_a = file_b = None
    for path in get_image_files(folder):
        number = extract_leading_number(os.path.basename(path))
        if number == base_number and file_a is None:
            file_a = path
        elif number == swap_number and file_b is None:
            file_b = path
    if file_a is None or file_b is None:
        return None
    return SwapPair(file_a=file_a, file_b=file_b, number_a=base_number, number_b=swap_number)


def perform_order_swap(folder: str, order_number: str) -> Optional[SwapPair]:
    """Swap the images numbered order and order+10. A missing partner is logged and skipped."""
    base_number = int(order_number)
    logger.info(f"[swap] Starting swap operation for number {base_number} with {base_number + SWAP_OFFSET} ...")

    pair = find_swap_pair(folder, order_number)
    if pair is None:
        logger.info(
            f"[swap] No matching pair found for swapping in folder {os.path.basename(folder)} "
            f"(need {base_number} and {base_number + SWAP_OFFSET})"
        )
        return None

    swap_files(pair.file_a, pair.file_b)
    logger.info(f"[swap] Finished swap operation for folder {os.path.basename(folder)}")
    return pair
