"""
Caesar-shift codec and the textual watermark wire formats.

Wire formats:
- current: "<<==" + encode(text) + "==>>"
- legacy:  "*/" + text (plain, read-only support)
"""
import os

from core.config import logger

SHIFT = 7
WATERMARK_PREFIX = "<<=="
WATERMARK_SUFFIX = "==>>"
OLD_WATERMARK_PREFIX = "*/"


def _rotate(ch: str, shift: int) -> str:
    if "A" <= ch <= "Z":
        return chr((ord(ch) - ord("A") + shift) % 26 + ord("A"))
    if "a" <= ch <= "z":
        return chr((ord(ch) - ord("a") + shift) % 26 + ord("a"))
    if "0" <= ch <= "9":
        return chr((ord(ch) - ord("0") + shift) % 10 + ord("0"))
    return ch


def encode_text(text: str) -> str:
    """Shift ASCII letters within their case and digits within 0-9 by SHIFT; pass everything else through."""
    return "".join(_rotate(ch, SHIFT) for ch in text)


def decode_text(text: str) -> str:
    # (x - SHIFT) mod n, spelled as the positive rotation for each alphabet
    out = []
    for ch in text:
        if "0" <= ch <= "9":
            out.append(_rotate(ch, 10 - SHIFT))
        else:
            out.append(_rotate(ch, 26 - SHIFT))
    return "".join(out)


def add_watermark(text: str) -> str:
    return f"{WATERMARK_PREFIX}{encode_text(text)}{WATERMARK_SUFFIX}"


def create_encoded_watermark(base_text: str, order_number: str) -> str:
    return add_watermark(f"{base_text} {order_number}")


def extract_text(content: str) -> str:
    """Return the still-encoded watermark body, or the legacy plain suffix, or ''."""
    if WATERMARK_PREFIX in content:
        start = content.rfind(WATERMARK_PREFIX)
        end = content.rfind(WATERMARK_SUFFIX)
        if start != -1 and end != -1 and start < end:
            return content[start + len(WATERMARK_PREFIX):end]

    if OLD_WATERMARK_PREFIX in content:
        start = content.rfind(OLD_WATERMARK_PREFIX)
        return content[start + len(OLD_WATERMARK_PREFIX):].strip()

    return ""


def extract_and_decode(content: str) -> str:
    extracted = extract_text(content)
    if not extracted:
        return ""
    return decode_text(extracted)


def _read_text(file_path: str) -> str:
    # Media files are read as text too; undecodable bytes must not hide an existing marker
    with open(file_path, "r", encoding="utf-8", errors="surrogateescape") as f:
        return f.read()


def read_text_watermark(file_path: str) -> str:
    """Decoded textual watermark of a file, '' when absent."""
    return extract_and_decode(_read_text(file_path))


def append_text_watermark_if_absent(file_path: str, watermark: str) -> bool:
    """Append the wire string unless it is already present. Returns True when the file was written."""
    name = os.path.basename(file_path)
    try:
        content = _read_text(file_path)
    except OSError as ex:
        logger.error(f"Error processing file {file_path}: {ex}")
        raise

    if watermark in content:
        logger.info(f"{name}: Encrypted text already present")
        return False

    try:
        with open(file_path, "a", encoding="utf-8") as f:
            f.write(watermark)
    except OSError as ex:
        logger.error(f"Error writing watermark to {file_path}: {ex}")
        raise

    logger.info(f"{name}: text watermark added")
    return True
