"""Memory-bounded batched artifact downloads."""

from __future__ import annotations

import asyncio
import base64
import logging
from typing import Awaitable, Callable, List, Optional, Sequence

from core.contracts import ArtifactKind, ArtifactRef, DownloadedArtifact
from utils.exceptions import DownloadError, JobClientError
from utils.files import MB, extract_file_info, format_bytes


logger = logging.getLogger(__name__)

Fetcher = Callable[[ArtifactRef], Awaitable[bytes]]
Encoder = Callable[[bytes], str]

DEFAULT_BATCH_SIZE = 3
DEFAULT_ARTIFACT_ESTIMATE_BYTES = 5 * MB


def encode_base64(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


class BatchDownloader:
    """
    Fetch artifacts ``batch_size`` at a time.

    Each raw buffer is encoded as soon as it arrives and the raw reference is
    dropped, so at most one batch of raw bytes is alive at any moment. The
    running total is compared with the global ceiling before every batch;
    crossing the warning threshold logs, it never rejects. Individual files
    over their per-file limit fail with DownloadError.
    """

    def __init__(
        self,
        fetch: Fetcher,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_image_bytes: int = 50 * MB,
        max_video_bytes: int = 100 * MB,
        max_total_memory_bytes: int = 500 * MB,
        warning_ratio: float = 0.8,
        estimated_artifact_bytes: int = DEFAULT_ARTIFACT_ESTIMATE_BYTES,
        encode: Optional[Encoder] = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self._fetch = fetch
        self.batch_size = int(batch_size)
        self.max_image_bytes = int(max_image_bytes)
        self.max_video_bytes = int(max_video_bytes)
        self.max_total_memory_bytes = int(max_total_memory_bytes)
        self.warning_ratio = float(warning_ratio)
        self.estimated_artifact_bytes = int(estimated_artifact_bytes)
        self._encode = encode or encode_base64

        self.total_bytes = 0
        self.memory_warnings = 0
        self.peak_raw_buffers = 0
        self.peak_in_flight = 0
        self._raw_buffers = 0
        self._in_flight = 0
        self._downloaded = 0

    def _estimate_batch(self, count: int) -> int:
        if self._downloaded:
            return int(self.total_bytes / self._downloaded) * count
        return self.estimated_artifact_bytes * count

    def _check_memory(self, batch_no: int, count: int) -> None:
        projected = self.total_bytes + self._estimate_batch(count)
        threshold = self.max_total_memory_bytes * self.warning_ratio
        if projected >= threshold:
            self.memory_warnings += 1
            logger.warning(
                f"Approaching memory limit before batch {batch_no}: {format_bytes(self.total_bytes)} downloaded, "
                f"~{format_bytes(projected)} projected of {format_bytes(self.max_total_memory_bytes)}. "
                "Consider processing fewer items at once."
            )

    def _limit_for(self, ref: ArtifactRef) -> int:
        return self.max_video_bytes if ref.kind == ArtifactKind.VIDEO else self.max_image_bytes

    async def _fetch_one(self, ref: ArtifactRef) -> DownloadedArtifact:
        self._in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self._in_flight)
        try:
            raw = await self._fetch(ref)
        except DownloadError:
            raise
        except JobClientError as exc:
            raise DownloadError(
                f"Failed to get {ref.kind.value} buffer for {ref.filename}: {exc.message}",
                {"locator": ref.locator},
                status_code=exc.status_code,
            ) from exc
        finally:
            self._in_flight -= 1

        self._raw_buffers += 1
        self.peak_raw_buffers = max(self.peak_raw_buffers, self._raw_buffers)
        try:
            size = len(raw)
            limit = self._limit_for(ref)
            if size > limit:
                label = ref.kind.value.capitalize()
                raise DownloadError(
                    f"{label} {ref.filename} size ({format_bytes(size)}) exceeds maximum allowed size "
                    f"of {format_bytes(limit)}",
                    {"locator": ref.locator},
                )
            encoded = self._encode(raw)
        finally:
            raw = None
            self._raw_buffers -= 1

        self.total_bytes += size
        self._downloaded += 1
        info = extract_file_info(ref.filename, "mp4" if ref.kind == ArtifactKind.VIDEO else "png")
        return DownloadedArtifact(
            ref=ref,
            file_name=info.filename,
            mime_type=info.mime_type,
            data=encoded,
            size=size,
        )

    async def fetch_all(self, refs: Sequence[ArtifactRef]) -> List[DownloadedArtifact]:
        results: List[DownloadedArtifact] = []
        refs = list(refs)
        for batch_no, start in enumerate(range(0, len(refs), self.batch_size), start=1):
            batch = refs[start:start + self.batch_size]
            self._check_memory(batch_no, len(batch))

            outcomes = await asyncio.gather(
                *(self._fetch_one(ref) for ref in batch),
                return_exceptions=True,
            )
            for outcome in outcomes:
                if isinstance(outcome, BaseException):
                    raise outcome
                results.append(outcome)

            logger.debug(
                f"Batch {batch_no}: {len(batch)} artifacts, running total {format_bytes(self.total_bytes)}"
            )
        return results
