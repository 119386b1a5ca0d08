"""File naming, MIME and size helpers."""

from __future__ import annotations

from dataclasses import dataclass
import math
import re
from typing import Dict, Optional
from urllib.parse import parse_qs, urlparse
from uuid import uuid4


IMAGE_MIME_TYPES: Dict[str, str] = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "webp": "image/webp",
    "gif": "image/gif",
    "bmp": "image/bmp",
    "svg": "image/svg+xml",
}

VIDEO_MIME_TYPES: Dict[str, str] = {
    "mp4": "video/mp4",
    "webm": "video/webm",
    "avi": "video/x-msvideo",
    "mov": "video/quicktime",
    "mkv": "video/x-matroska",
    "gif": "video/gif",
}

ALLOWED_MIME_TYPES = sorted(set(IMAGE_MIME_TYPES.values()) | set(VIDEO_MIME_TYPES.values()))

# Folder types the server uses in /view locators; all of them hold images.
_FOLDER_TYPE_EXTENSIONS = {"input": "png", "output": "png", "temp": "png"}

MAX_FILENAME_LENGTH = 255

MB = 1024 * 1024


@dataclass(frozen=True)
class FileInfo:
    filename: str
    extension: str
    mime_type: str


def format_bytes(size: int, decimals: int = 2) -> str:
    """Human readable size, e.g. ``1.5 MB``."""
    if size <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB", "TB"]
    idx = min(int(math.floor(math.log(size, 1024))), len(units) - 1)
    value = round(size / (1024 ** idx), max(0, decimals))
    return f"{value:g} {units[idx]}"


def generate_unique_filename(extension: str, prefix: str = "file") -> str:
    ext = extension[1:] if extension.startswith(".") else extension
    return f"{prefix}_{uuid4()}.{ext}"


def mime_for_extension(ext: str, default: str = "application/octet-stream") -> str:
    ext = (ext or "").lower()
    return IMAGE_MIME_TYPES.get(ext) or VIDEO_MIME_TYPES.get(ext) or default


def is_video_mime(mime_type: Optional[str]) -> bool:
    return bool(mime_type) and str(mime_type).lower() in VIDEO_MIME_TYPES.values()


def extension_from_url(url: str, default: str = "png") -> str:
    try:
        path = urlparse(url).path
    except ValueError:
        path = url
    name = path.rsplit("/", 1)[-1]
    if "." not in name:
        return default
    ext = name.rsplit(".", 1)[-1].lower()
    return ext or default


def extract_file_info(path: str, default_ext: str, mime_type: Optional[str] = None) -> FileInfo:
    """
    Derive filename, extension and MIME type from a path or /view locator

    Args:
        path: Plain path or ``/view?filename=...&subfolder=...&type=...``
        default_ext: Extension used when none can be found
        mime_type: Explicit MIME type, skips detection

    Returns:
        FileInfo
    """
    parsed = urlparse(path)
    query = parse_qs(parsed.query)

    filename = (query.get("filename") or [""])[0]
    if not filename:
        filename = parsed.path.rsplit("/", 1)[-1]
    if not filename:
        filename = f"file_{uuid4()}.{default_ext}"

    ext = default_ext
    match = re.search(r"\.([^.]+)$", filename)
    if match:
        ext = match.group(1).lower()
    else:
        folder_type = (query.get("type") or [""])[0].lower()
        ext = _FOLDER_TYPE_EXTENSIONS.get(folder_type, default_ext)
        filename = f"{filename}.{ext}"

    return FileInfo(
        filename=filename,
        extension=ext,
        mime_type=mime_type or mime_for_extension(ext),
    )


def validate_filename(filename: str) -> str:
    """Reject traversal and oversized names; strip NUL bytes."""
    if not filename or not isinstance(filename, str):
        raise ValueError("Filename must be a non-empty string")
    if ".." in filename or "/" in filename or "\\" in filename:
        raise ValueError("Filename cannot contain path traversal characters (.., /, \\)")
    if len(filename) > MAX_FILENAME_LENGTH:
        raise ValueError(f"Filename too long (max {MAX_FILENAME_LENGTH} characters)")
    cleaned = filename.replace("\0", "")
    if not cleaned:
        raise ValueError("Filename cannot be empty after sanitization")
    return cleaned
