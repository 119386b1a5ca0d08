"""Asset ingestion: turn image/video sources into server-side file names."""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
import logging
import math
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from core.contracts import BinaryPayload, ImageBinaryValue, ImageSource, ImageUrlValue, InputItem
from core.validation import validate_url
from transport import TransportAdapter, TransportRequest
from utils.exceptions import (
    DownloadError,
    JobClientError,
    UploadError,
    ValidationError,
    status_hint,
)
from utils.files import (
    ALLOWED_MIME_TYPES,
    IMAGE_MIME_TYPES,
    MB,
    VIDEO_MIME_TYPES,
    extension_from_url,
    format_bytes,
    generate_unique_filename,
    is_video_mime,
    mime_for_extension,
)


logger = logging.getLogger(__name__)

Uploader = Callable[[bytes, str], Awaitable[str]]

# base64 expands 3 bytes into 4 characters
BASE64_EXPANSION = 4 / 3


@dataclass
class IngestResult:
    filename: str
    size: int
    mime_type: Optional[str] = None


def _extension_for_mime(mime_type: str, default: str = "png") -> str:
    for table in (IMAGE_MIME_TYPES, VIDEO_MIME_TYPES):
        for ext, mime in table.items():
            if mime == mime_type:
                return ext
    return default


def _as_payload(value: Any) -> Optional[BinaryPayload]:
    if isinstance(value, BinaryPayload):
        return value
    if isinstance(value, dict):
        return BinaryPayload(
            data=value.get("data"),
            mime_type=value.get("mime_type") or value.get("mimeType"),
            file_name=value.get("file_name") or value.get("fileName"),
        )
    return None


class AssetIngestor:
    """
    Acquire bytes from a URL or an inline base64 payload and upload them.

    Size limits depend on the detected type: video MIME types use the video
    limit, everything else the image limit. Inline payloads are measured
    before decoding so an oversized payload never gets a decoded buffer.
    """

    def __init__(
        self,
        transport: TransportAdapter,
        upload: Uploader,
        *,
        max_image_bytes: int = 50 * MB,
        max_video_bytes: int = 100 * MB,
        url_timeout_s: float = 60.0,
        allow_binary: bool = True,
        input_items: Optional[Sequence[InputItem]] = None,
    ) -> None:
        self.transport = transport
        self._upload = upload
        self.max_image_bytes = int(max_image_bytes)
        self.max_video_bytes = int(max_video_bytes)
        self.url_timeout_s = float(url_timeout_s)
        self.allow_binary = bool(allow_binary)
        self.input_items: List[InputItem] = list(input_items or [])

    def _limit_for(self, mime_type: Optional[str]) -> int:
        return self.max_video_bytes if is_video_mime(mime_type) else self.max_image_bytes

    async def ingest(
        self,
        source: ImageSource,
        items: Optional[Sequence[InputItem]] = None,
    ) -> IngestResult:
        if isinstance(source, ImageUrlValue):
            return await self.ingest_url(source.url)
        if isinstance(source, ImageBinaryValue):
            return await self.ingest_binary(source.key, items)
        raise ValidationError(f"Unsupported image source: {type(source).__name__}")

    # ------------------------------------------------------------------
    # URL source
    # ------------------------------------------------------------------

    async def ingest_url(self, url: str, timeout_s: Optional[float] = None) -> IngestResult:
        if not url:
            raise ValidationError("File URL is required when the image source is a URL")
        if not validate_url(url):
            raise ValidationError(f'Invalid file URL "{url}". Must be a valid HTTP/HTTPS URL.')

        logger.info(f"Downloading file from {url}")
        data = await self._download(url, timeout_s or self.url_timeout_s)

        ext = extension_from_url(url)
        mime_type = mime_for_extension(ext, default="image/png")
        limit = self._limit_for(mime_type)
        if len(data) > limit:
            raise UploadError(
                f"Downloaded file size ({format_bytes(len(data))}) exceeds maximum allowed size "
                f"of {format_bytes(limit)}",
                {"url": url},
            )

        filename = generate_unique_filename(ext or "png", "download")
        name = await self._upload(data, filename)
        logger.info(f"Uploaded {format_bytes(len(data))} from URL as {name}")
        return IngestResult(filename=name, size=len(data), mime_type=mime_type)

    async def _download(self, url: str, timeout_s: float) -> bytes:
        request = TransportRequest(method="GET", url=url, timeout_s=timeout_s, expect="bytes")
        try:
            data = await self.transport.request(request)
        except JobClientError as exc:
            message = f'Failed to download file from URL "{url}"'
            if exc.status_code:
                message += f" (HTTP {exc.status_code})"
                hint = status_hint(exc.status_code)
                if hint:
                    message += f" Note: {hint}"
            else:
                message += f": {exc.message}"
            raise DownloadError(message, {"url": url}, status_code=exc.status_code) from exc

        if not isinstance(data, (bytes, bytearray)):
            raise DownloadError(
                f'Failed to download file from URL "{url}". The server did not return valid file data.',
                {"url": url},
            )
        if not data:
            raise DownloadError(f'Downloaded file from URL "{url}" is empty.', {"url": url})
        return bytes(data)

    # ------------------------------------------------------------------
    # Inline binary source
    # ------------------------------------------------------------------

    def find_payload(self, key: str, items: Sequence[InputItem]) -> BinaryPayload:
        """First item carrying ``key`` wins; every item is searched."""
        available: List[str] = []
        for item in items:
            binary: Dict[str, Any] = getattr(item, "binary", None) or {}
            for name in binary:
                if name not in available:
                    available.append(name)
            if key in binary:
                payload = _as_payload(binary[key])
                if payload is not None:
                    return payload
        raise ValidationError(
            f'Binary property "{key}" not found in any input item. '
            f"Available binary properties: {', '.join(available) or 'none'}. "
            "Check the output binary key of the previous step.",
            {"key": key, "available": available},
        )

    async def ingest_binary(
        self,
        key: str = "data",
        items: Optional[Sequence[InputItem]] = None,
    ) -> IngestResult:
        key = key or "data"
        if not self.allow_binary:
            raise ValidationError(
                "Binary file input is not supported in this mode. Please switch to URL input instead."
            )
        items = self.input_items if items is None else list(items)
        if not items:
            raise ValidationError("No input data available for binary image input")

        payload = self.find_payload(key, items)
        if not isinstance(payload.data, str) or not payload.data:
            raise ValidationError(
                f'Invalid binary data for property "{key}". The data field is missing or not a base64 string.'
            )

        mime_type = payload.mime_type.lower() if isinstance(payload.mime_type, str) else None
        limit = self._limit_for(mime_type)
        max_encoded = math.ceil(limit * BASE64_EXPANSION)
        if len(payload.data) > max_encoded:
            raise UploadError(
                f'Binary data for "{key}" (~{format_bytes(int(len(payload.data) / BASE64_EXPANSION))}) '
                f"exceeds maximum allowed size of {format_bytes(limit)}",
                {"key": key},
            )

        if not mime_type:
            raise ValidationError(f'Invalid or missing MIME type for binary property "{key}"')
        if mime_type not in ALLOWED_MIME_TYPES:
            raise ValidationError(
                f'Unsupported MIME type "{mime_type}". Allowed types: {", ".join(ALLOWED_MIME_TYPES)}',
                {"key": key},
            )

        try:
            buffer = base64.b64decode(payload.data, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValidationError(f'Binary data for "{key}" is not valid base64') from exc
        if not buffer:
            raise ValidationError(f'Failed to decode binary data for "{key}": decoded buffer is empty')
        if len(buffer) > limit:
            raise UploadError(
                f'Decoded buffer for "{key}" ({format_bytes(len(buffer))}) exceeds maximum allowed size '
                f"of {format_bytes(limit)}",
                {"key": key},
            )

        filename = payload.file_name or generate_unique_filename(_extension_for_mime(mime_type), "upload")
        logger.info(f"Uploading binary property {key} ({format_bytes(len(buffer))}, {mime_type})")
        name = await self._upload(buffer, filename)
        return IngestResult(filename=name, size=len(buffer), mime_type=mime_type)
