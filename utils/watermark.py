from enum import Enum
from typing import Tuple
import os

from PIL import Image, ImageDraw, ImageFont

from core.config import logger, WATERMARK_TTF
from core.exceptions import OverlayError

PADDING = 5
ALPHA = 0.5
TEXT_COLOR = (255, 255, 255)


class TextAnchor(str, Enum):
    TOP_LEFT = "top-left"
    TOP_RIGHT = "top-right"
    CENTER = "center"
    BOTTOM_LEFT = "bottom-left"
    BOTTOM_RIGHT = "bottom-right"


def _compute_position(img_w: int, img_h: int, box_w: int, box_h: int, padding: int, anchor: TextAnchor) -> Tuple[int, int]:
    if anchor is TextAnchor.TOP_LEFT:
        return padding, padding
    if anchor is TextAnchor.TOP_RIGHT:
        return img_w - box_w - padding, padding
    if anchor is TextAnchor.BOTTOM_LEFT:
        return padding, img_h - box_h - padding
    if anchor is TextAnchor.CENTER:
        return (img_w - box_w) // 2, (img_h - box_h) // 2
    return img_w - box_w - padding, img_h - box_h - padding


def _load_font(size: int):
    font_candidates = [
        WATERMARK_TTF,
        "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
        "/System/Library/Fonts/Supplemental/Arial.ttf",
        "C:/Windows/Fonts/arial.ttf",
    ]
    for fp in font_candidates:
        if not fp:
            continue
        try:
            return ImageFont.truetype(fp, size)
        except OSError:
            continue
    return ImageFont.load_default()


def draw_text(image_path: str, text: str, anchor: TextAnchor = TextAnchor.BOTTOM_RIGHT) -> None:
    """Blend white text at ALPHA onto the image at `anchor` and save it in place, same format."""
    name = os.path.basename(image_path)
    anchor = TextAnchor(anchor)
    try:
        with Image.open(image_path) as src:
            fmt = src.format or "PNG"
            base = src.convert("RGBA")
    except OSError as ex:
        logger.error(f"Failed to load image: {name}")
        raise OverlayError(f"Failed to load image: {name}") from ex

    width, height = base.size
    overlay = Image.new("RGBA", base.size, (255, 255, 255, 0))
    draw = ImageDraw.Draw(overlay)
    font = _load_font(max(10, int(min(width, height) * 0.04)))

    bbox = draw.textbbox((0, 0), text, font=font)
    tw, th = bbox[2] - bbox[0], bbox[3] - bbox[1]
    x, y = _compute_position(width, height, tw, th, PADDING, anchor)
    # textbbox is relative to the text origin; shift so the visible box lands on (x, y)
    draw.text((x - bbox[0], y - bbox[1]), text, font=font, fill=TEXT_COLOR + (int(ALPHA * 255),))

    out = Image.alpha_composite(base, overlay)
    try:
        if fmt.upper() in ("JPEG", "JPG"):
            out.convert("RGB").save(image_path, format="JPEG", quality=95)
        else:
            out.save(image_path, format=fmt)
    except (OSError, ValueError) as ex:
        logger.error(f"Failed to save image {name}")
        raise OverlayError(f"Failed to save image {name}: {ex}") from ex

    logger.info(f"Added text to {name}")
