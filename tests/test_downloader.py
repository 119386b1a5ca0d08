from __future__ import annotations

import asyncio
import base64
import logging

import pytest

from core import ArtifactKind, ArtifactRef
from execution.downloader import BatchDownloader
from utils.exceptions import DownloadError, ServerConnectionError


def _refs(count: int, kind: ArtifactKind = ArtifactKind.IMAGE, ext: str = "png"):
    return [ArtifactRef(filename=f"out_{i:03d}.{ext}", kind=kind) for i in range(count)]


@pytest.mark.asyncio
async def test_at_most_one_batch_in_flight_and_order_preserved() -> None:
    in_flight = []
    peak = []

    async def _fetch(ref: ArtifactRef) -> bytes:
        in_flight.append(ref)
        peak.append(len(in_flight))
        await asyncio.sleep(0)
        in_flight.remove(ref)
        return ref.filename.encode()

    downloader = BatchDownloader(_fetch, batch_size=3)
    refs = _refs(8)
    results = await downloader.fetch_all(refs)

    assert [item.ref for item in results] == refs
    assert max(peak) <= 3
    assert downloader.peak_in_flight <= 3
    assert downloader.peak_raw_buffers <= 3
    assert base64.b64decode(results[0].data) == b"out_000.png"
    assert results[0].mime_type == "image/png"
    assert results[0].file_name == "out_000.png"
    assert downloader.total_bytes == sum(len(ref.filename) for ref in refs)


@pytest.mark.asyncio
async def test_per_file_limit_depends_on_kind() -> None:
    async def _fetch(ref: ArtifactRef) -> bytes:
        return b"x" * 20

    downloader = BatchDownloader(_fetch, max_image_bytes=10, max_video_bytes=100)
    videos = await downloader.fetch_all(_refs(2, ArtifactKind.VIDEO, "mp4"))
    assert [item.mime_type for item in videos] == ["video/mp4", "video/mp4"]

    with pytest.raises(DownloadError, match="exceeds maximum allowed size"):
        await downloader.fetch_all(_refs(1))


@pytest.mark.asyncio
async def test_fetch_failures_become_download_errors() -> None:
    async def _fetch(ref: ArtifactRef) -> bytes:
        if ref.filename == "out_001.png":
            raise ServerConnectionError("GET /view failed: HTTP 404", status_code=404)
        return b"ok"

    with pytest.raises(DownloadError) as info:
        await BatchDownloader(_fetch).fetch_all(_refs(3))
    assert "out_001.png" in info.value.message
    assert info.value.status_code == 404


@pytest.mark.asyncio
async def test_memory_pressure_warns_without_rejecting(caplog) -> None:
    async def _fetch(ref: ArtifactRef) -> bytes:
        return b"x" * 40

    downloader = BatchDownloader(
        _fetch,
        batch_size=2,
        max_total_memory_bytes=100,
        warning_ratio=0.8,
        estimated_artifact_bytes=10,
    )
    with caplog.at_level(logging.WARNING, logger="execution.downloader"):
        results = await downloader.fetch_all(_refs(4))

    assert len(results) == 4
    assert downloader.total_bytes == 160
    assert downloader.memory_warnings == 1
    assert "Approaching memory limit before batch 2" in caplog.text


def test_batch_size_must_be_positive() -> None:
    async def _fetch(ref: ArtifactRef) -> bytes:
        return b""

    with pytest.raises(ValueError):
        BatchDownloader(_fetch, batch_size=0)
