"""
Uncompressed (STORED) ZIP archives of a folder tree.

Every file entry is written with ZIP_STORED, so the CRC-32 and the
uncompressed size are recorded and compressed size == uncompressed size.
Directory entries end in '/' and carry no data. macOS metadata (__MACOSX*,
*.DS_Store) and dot-files or dot-directories are left out at any depth.
Entries are emitted in lexical walk order, so archiving the same tree twice
yields the same entry names and CRCs.
"""
from typing import Iterator, List, Optional, Tuple
import os
import shutil
import zipfile

from core.config import logger

CHUNK_SIZE = 1024 * 1024


def is_system_file(name: str) -> bool:
    return name.startswith("__MACOSX") or name.startswith(".") or name.endswith(".DS_Store")


def iter_entries(folder: str) -> Iterator[Tuple[str, str, bool]]:
    """Yield (filesystem path, POSIX entry name, is_dir) for everything worth archiving."""
    for root, dirs, files in os.walk(folder):
        dirs[:] = sorted(d for d in dirs if not is_system_file(d))
        rel_root = os.path.relpath(root, folder)
        prefix = "" if rel_root == os.curdir else rel_root.replace(os.sep, "/") + "/"
        for d in dirs:
            yield os.path.join(root, d), prefix + d + "/", True
        for name in sorted(files):
            if is_system_file(name):
                continue
            yield os.path.join(root, name), prefix + name, False


def _entry_info(path: str, arcname: str) -> zipfile.ZipInfo:
    info = zipfile.ZipInfo.from_file(path, arcname, strict_timestamps=False)
    info.compress_type = zipfile.ZIP_STORED
    return info


def _write_entry(zf: zipfile.ZipFile, path: str, arcname: str, is_dir: bool) -> Iterator[None]:
    """Write one entry, yielding after each copied chunk so callers can drain output."""
    info = _entry_info(path, arcname)
    if is_dir:
        zf.writestr(info, b"")
        yield
        return
    with open(path, "rb") as src, zf.open(info, "w") as dst:
        while True:
            block = src.read(CHUNK_SIZE)
            if not block:
                break
            dst.write(block)
            yield


def archive_name(folder: str, clean_name: Optional[str] = None) -> str:
    base = clean_name or os.path.basename(os.path.normpath(folder))
    return f"{base}.zip"


def create_no_compression_zip(folder: str, clean_name: Optional[str] = None) -> str:
    """Write <parent of folder>/<clean_name or folder name>.zip and return its path."""
    zip_path = os.path.join(os.path.dirname(os.path.normpath(folder)), archive_name(folder, clean_name))
    with zipfile.ZipFile(zip_path, "w", compression=zipfile.ZIP_STORED) as zf:
        for path, arcname, is_dir in iter_entries(folder):
            for _ in _write_entry(zf, path, arcname, is_dir):
                pass
    logger.info(f"Created ZIP archive: {zip_path}")
    return zip_path


class _ChunkSink:
    """Write-only, non-seekable file object that collects bytes until drained."""

    def __init__(self):
        self._chunks: List[bytes] = []

    def write(self, data) -> int:
        if data:
            self._chunks.append(bytes(data))
        return len(data)

    def flush(self) -> None:
        pass

    def drain(self) -> Iterator[bytes]:
        chunks, self._chunks = self._chunks, []
        yield from chunks


def iter_no_compression_zip(folder: str) -> Iterator[bytes]:
    """Produce the archive of folder as a stream of byte chunks, without a temporary file."""
    sink = _ChunkSink()
    with zipfile.ZipFile(sink, "w", compression=zipfile.ZIP_STORED) as zf:
        for path, arcname, is_dir in iter_entries(folder):
            for _ in _write_entry(zf, path, arcname, is_dir):
                yield from sink.drain()
    # central directory is written on close
    yield from sink.drain()


def stream_no_compression_zip(out, folder: str) -> None:
    """Write the archive of folder to an open binary stream (seekable or not)."""
    for chunk in iter_no_compression_zip(folder):
        out.write(chunk)


def archive_and_remove(folder: str, clean_name: Optional[str] = None) -> str:
    """Archive folder next to itself, then delete it so only the .zip remains."""
    zip_path = create_no_compression_zip(folder, clean_name)
    shutil.rmtree(folder)
    return zip_path
