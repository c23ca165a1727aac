"""
How a per-copy payload gets into each kind of file.

Two policies are in use and they disagree on images:

- BatchFileWatermarkPolicy (batch copies): videos get the binary tail marker,
  every other supported file, images included, gets the textual wire string.
- TypeAwareWatermarkPolicy (single-shot encrypt): videos and images get the
  binary tail marker, text files get the textual wire string.
"""
from utils.encoding import add_watermark, append_text_watermark_if_absent, encode_text
from utils.files import is_image_file, is_text_file, is_video_file
from utils.invisible_mark import add_binary_watermark


class BatchFileWatermarkPolicy:
    name = "batch"

    def apply(self, file_path: str, payload: str) -> bool:
        if is_video_file(file_path):
            return add_binary_watermark(file_path, encode_text(payload))
        return append_text_watermark_if_absent(file_path, add_watermark(payload))


class TypeAwareWatermarkPolicy:
    name = "type-aware"

    def apply(self, file_path: str, payload: str) -> bool:
        if is_video_file(file_path) or is_image_file(file_path):
            return add_binary_watermark(file_path, encode_text(payload))
        if is_text_file(file_path):
            return append_text_watermark_if_absent(file_path, add_watermark(payload))
        return False
