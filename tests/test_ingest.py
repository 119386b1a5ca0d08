from __future__ import annotations

import base64

import pytest

from core import BinaryPayload, ImageBinaryValue, ImageUrlValue, InputItem
from overrides.ingest import AssetIngestor
from transport.base import TransportRequest
from utils.exceptions import (
    DownloadError,
    ServerConnectionError,
    UploadError,
    ValidationError,
)


class _Uploads:
    def __init__(self) -> None:
        self.calls = []

    async def __call__(self, data: bytes, filename: str) -> str:
        self.calls.append((data, filename))
        return f"server_{filename}"


def _ingestor(make_transport, handler=None, **kwargs):
    uploads = _Uploads()
    transport = make_transport(handler or (lambda request: b""))
    return AssetIngestor(transport, uploads, **kwargs), transport, uploads


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


@pytest.mark.asyncio
async def test_url_download_is_uploaded_with_generated_name(make_transport) -> None:
    def _handler(request: TransportRequest):
        assert request.expect == "bytes"
        assert request.timeout_s == 12
        return b"jpeg-bytes"

    ingestor, transport, uploads = _ingestor(make_transport, _handler, url_timeout_s=12)
    result = await ingestor.ingest(ImageUrlValue(url="https://cdn.test/pics/cat.jpg?v=2"))

    data, filename = uploads.calls[0]
    assert data == b"jpeg-bytes"
    assert filename.startswith("download_") and filename.endswith(".jpg")
    assert result.filename == f"server_{filename}"
    assert result.size == len(b"jpeg-bytes")
    assert result.mime_type == "image/jpeg"


@pytest.mark.asyncio
async def test_url_errors_carry_status_hints(make_transport) -> None:
    def _handler(request: TransportRequest):
        raise ServerConnectionError("GET failed: HTTP 404", status_code=404)

    ingestor, _, uploads = _ingestor(make_transport, _handler)
    with pytest.raises(DownloadError) as info:
        await ingestor.ingest_url("https://cdn.test/missing.png")
    assert "(HTTP 404)" in info.value.message
    assert "Not Found" in info.value.message
    assert info.value.status_code == 404
    assert uploads.calls == []


@pytest.mark.asyncio
async def test_url_validation_empty_and_oversized(make_transport) -> None:
    ingestor, transport, uploads = _ingestor(make_transport, lambda request: b"", max_image_bytes=4)
    with pytest.raises(ValidationError, match="Invalid file URL"):
        await ingestor.ingest_url("file:///etc/passwd")
    assert transport.calls == []

    with pytest.raises(DownloadError, match="is empty"):
        await ingestor.ingest_url("https://cdn.test/empty.png")

    transport.handler = lambda request: b"12345678"
    with pytest.raises(UploadError, match="exceeds maximum allowed size"):
        await ingestor.ingest_url("https://cdn.test/big.png")

    # video extensions use the video limit
    ingestor.max_video_bytes = 100
    result = await ingestor.ingest_url("https://cdn.test/clip.mp4")
    assert result.mime_type == "video/mp4"
    assert len(uploads.calls) == 1


@pytest.mark.asyncio
async def test_binary_first_matching_item_wins(make_transport) -> None:
    items = [
        InputItem(binary={"other": BinaryPayload(data=_b64(b"nope"), mime_type="image/png")}),
        InputItem(binary={"photo": BinaryPayload(data=_b64(b"first"), mime_type="image/png", file_name="me.png")}),
        InputItem(binary={"photo": BinaryPayload(data=_b64(b"second"), mime_type="image/png")}),
    ]
    ingestor, _, uploads = _ingestor(make_transport)

    result = await ingestor.ingest(ImageBinaryValue(key="photo"), items)
    assert uploads.calls == [(b"first", "me.png")]
    assert result.filename == "server_me.png"
    assert result.size == 5


@pytest.mark.asyncio
async def test_binary_not_found_lists_available_keys(make_transport) -> None:
    items = [
        InputItem(binary={"a": {"data": _b64(b"x"), "mimeType": "image/png"}}),
        InputItem(binary={"b": {"data": _b64(b"y"), "mimeType": "image/png"}}),
    ]
    ingestor, _, _ = _ingestor(make_transport)
    with pytest.raises(ValidationError, match="Available binary properties: a, b"):
        await ingestor.ingest_binary("data", items)


@pytest.mark.asyncio
async def test_binary_size_checked_before_decoding(make_transport, monkeypatch) -> None:
    decoded = []
    monkeypatch.setattr("overrides.ingest.base64.b64decode", lambda *a, **k: decoded.append(1) or b"")

    ingestor, _, uploads = _ingestor(make_transport, max_image_bytes=30)
    big = [InputItem(binary={"data": BinaryPayload(data=_b64(b"x" * 60), mime_type="image/png")})]
    with pytest.raises(UploadError, match="exceeds maximum allowed size"):
        await ingestor.ingest_binary("data", big)
    assert decoded == []
    assert uploads.calls == []


@pytest.mark.asyncio
async def test_binary_type_and_encoding_checks(make_transport) -> None:
    ingestor, _, uploads = _ingestor(make_transport)

    def _items(**payload):
        return [InputItem(binary={"data": BinaryPayload(**payload)})]

    with pytest.raises(ValidationError, match="Unsupported MIME type"):
        await ingestor.ingest_binary("data", _items(data=_b64(b"pdf"), mime_type="application/pdf"))
    with pytest.raises(ValidationError, match="missing MIME type"):
        await ingestor.ingest_binary("data", _items(data=_b64(b"png")))
    with pytest.raises(ValidationError, match="not valid base64"):
        await ingestor.ingest_binary("data", _items(data="***not base64***", mime_type="image/png"))
    with pytest.raises(ValidationError, match="not a base64 string"):
        await ingestor.ingest_binary("data", _items(data=b"raw", mime_type="image/png"))

    result = await ingestor.ingest_binary("data", _items(data=_b64(b"webp!"), mime_type="image/webp"))
    assert uploads.calls[0][1].startswith("upload_")
    assert uploads.calls[0][1].endswith(".webp")
    assert result.mime_type == "image/webp"


@pytest.mark.asyncio
async def test_binary_disabled_points_to_url_input(make_transport) -> None:
    ingestor, _, _ = _ingestor(make_transport, allow_binary=False)
    items = [InputItem(binary={"data": BinaryPayload(data=_b64(b"x"), mime_type="image/png")})]
    with pytest.raises(ValidationError, match="switch to URL input"):
        await ingestor.ingest_binary("data", items)
