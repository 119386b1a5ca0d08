"""Job execution client: submit, poll, extract and download."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Union
from urllib.parse import quote
from uuid import uuid4

from config.settings import ClientSettings, get_client_settings
from core.contracts import (
    ArtifactRef,
    DownloadedArtifact,
    JobExecutionResult,
    JobGraph,
    ProcessedOutput,
)
from core.validation import validate_output_binary_key, validate_workflow
from transport import HttpxTransport, ResponseBody, TransportAdapter, TransportRequest
from utils.exceptions import (
    ClientDestroyedError,
    ExecutionError,
    JobClientError,
    UploadError,
    ValidationError,
)
from utils.files import (
    extension_from_url,
    format_bytes,
    is_video_mime,
    mime_for_extension,
    validate_filename,
)
from utils.logger import safe_serialize

from .downloader import BatchDownloader
from .extractor import ResultExtractor
from .lifecycle import ClientLifecycle
from .polling import JobStatus, PollingExecutor, PollState
from .retry import RetryingInvoker, Sleep


logger = logging.getLogger(__name__)


@dataclass
class HealthStatus:
    healthy: bool
    base_url: str
    latency_ms: float = 0.0
    system: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "healthy": self.healthy,
            "base_url": self.base_url,
            "latency_ms": round(self.latency_ms, 1),
            "system": self.system,
            "error": self.error,
        }


class JobExecutionClient:
    """
    Client for one compute server endpoint.

    One job at a time per instance: ``execute`` holds the request slot from
    submission until the final artifact list is known. Terminal failures of
    ``execute`` come back as ``JobExecutionResult`` objects; the other
    operations raise ``JobClientError`` subclasses.

    Example:
        async with JobExecutionClient(base_url="http://127.0.0.1:8188") as client:
            result = await client.execute(graph)
            processed = await client.process_results(result)
    """

    def __init__(
        self,
        settings: Optional[ClientSettings] = None,
        *,
        transport: Optional[TransportAdapter] = None,
        base_url: Optional[str] = None,
        client_id: Optional[str] = None,
        sleep: Optional[Sleep] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings or get_client_settings()
        self.base_url = str(base_url or self.settings.base_url).strip().rstrip("/")
        self.client_id = client_id or self.settings.client_id or f"client_{uuid4()}"

        self._owns_transport = transport is None
        self.transport: TransportAdapter = transport or HttpxTransport(
            default_timeout_s=self.settings.request_timeout_s
        )
        self._sleep = sleep
        self._clock = clock

        self.lifecycle = ClientLifecycle()
        self.invoker = RetryingInvoker(
            self.lifecycle,
            max_retries=self.settings.max_retries,
            base_delay_s=self.settings.retry_base_delay_s,
            max_delay_s=self.settings.retry_max_delay_s,
            sleep=sleep,
        )
        self.extractor = ResultExtractor()

    @property
    def is_destroyed(self) -> bool:
        return self.lifecycle.is_destroyed

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    async def _call(self, method: str, path: str, **kwargs: Any) -> ResponseBody:
        kwargs.setdefault("timeout_s", self.settings.request_timeout_s)
        request = TransportRequest(
            method=method,
            url=self._url(path),
            cancel_event=self.lifecycle.cancel_event,
            **kwargs,
        )
        return await self.transport.request(request)

    # ------------------------------------------------------------------
    # Job execution
    # ------------------------------------------------------------------

    async def execute(self, graph: Union[JobGraph, Dict[str, Any]]) -> JobExecutionResult:
        """Submit ``graph``, wait for completion and list its artifacts."""
        if self.lifecycle.is_destroyed:
            return JobExecutionResult.failure(ClientDestroyedError())

        try:
            async with self.lifecycle.request():
                return await self._execute(graph)
        except JobClientError as exc:
            logger.error(f"Workflow execution error: {exc}")
            return JobExecutionResult.failure(exc)
        except Exception as exc:
            logger.error(f"Unexpected workflow execution error: {exc!r}")
            error = ExecutionError(f"Failed to execute workflow: {exc}")
            error.__cause__ = exc
            return JobExecutionResult.failure(error)

    async def _execute(self, graph: Union[JobGraph, Dict[str, Any]]) -> JobExecutionResult:
        if not isinstance(graph, JobGraph):
            graph = validate_workflow(graph)

        body = {"prompt": graph.to_wire(), "client_id": self.client_id}
        logger.debug(f"Sending workflow to server: {safe_serialize(body)}")

        response = await self.invoker.invoke(lambda: self._call("POST", "/prompt", json_body=body))
        logger.debug(f"Submit response: {safe_serialize(response)}")

        job_id = response.get("prompt_id") if isinstance(response, dict) else None
        if not job_id:
            return JobExecutionResult.failure(
                ExecutionError(
                    "Failed to execute workflow: No prompt_id returned",
                    {"response": safe_serialize(response, max_len=500)},
                )
            )
        job_id = str(job_id)
        logger.info(f"Submitted job {job_id} ({len(graph)} nodes)")

        poller = PollingExecutor(
            self.lifecycle,
            self._fetch_status,
            poll_interval_s=self.settings.poll_interval_s,
            max_delay_s=self.settings.poll_max_delay_s,
            max_consecutive_errors=self.settings.max_consecutive_errors,
            max_total_errors=self.settings.max_total_errors,
            sleep=self._sleep,
            clock=self._clock,
        )
        outcome = await poller.run(job_id, self.settings.max_wait_s)
        if outcome.state != PollState.COMPLETED:
            error = outcome.error or ExecutionError(f"Job {job_id} ended in state {outcome.state.value}")
            logger.error(f"Job {job_id} {outcome.state.value}: {error.message}")
            return JobExecutionResult.failure(error, job_id=job_id)

        outputs = outcome.outputs or {}
        artifacts = self.extractor.extract(outputs)
        logger.info(f"Job {job_id} produced {len(artifacts)} artifacts")
        return JobExecutionResult(
            success=True,
            artifacts=tuple(artifacts),
            raw_output=outputs,
            job_id=job_id,
        )

    async def _fetch_status(self, job_id: str) -> JobStatus:
        response = await self._call("GET", f"/history/{quote(job_id, safe='')}")
        entry = response.get(job_id) if isinstance(response, dict) else None
        if not isinstance(entry, dict):
            # not in history yet: still queued
            return JobStatus()

        status = entry.get("status")
        if not isinstance(status, dict):
            raise ExecutionError(
                f"Invalid history entry for job {job_id}: missing status",
                {"job_id": job_id, "status": safe_serialize(status, max_len=200)},
            )
        return JobStatus(
            completed=bool(status.get("completed")),
            outputs=entry.get("outputs") or {},
            status_str=status.get("status_str"),
            messages=list(status.get("messages") or []),
        )

    # ------------------------------------------------------------------
    # Uploads and artifacts
    # ------------------------------------------------------------------

    async def upload_image(self, data: bytes, filename: str, overwrite: bool = False) -> str:
        """
        Upload image bytes to the server's input folder

        Args:
            data: Raw image bytes
            filename: Target file name on the server
            overwrite: Replace an existing file of the same name

        Returns:
            File name assigned by the server

        Raises:
            UploadError: empty or oversized payload, or a response without a name
        """
        self.lifecycle.ensure_alive()
        if not isinstance(data, (bytes, bytearray)):
            raise UploadError("Invalid image data: expected bytes")
        if not data:
            raise UploadError("Invalid image data: buffer is empty")

        is_video = is_video_mime(mime_for_extension(extension_from_url(str(filename or ""))))
        limit = self.settings.max_video_size_bytes if is_video else self.settings.max_image_size_bytes
        if len(data) > limit:
            label = "Video" if is_video else "Image"
            raise UploadError(
                f"{label} size ({format_bytes(len(data))}) exceeds maximum allowed size of {format_bytes(limit)}",
                {"filename": filename, "size": len(data)},
            )
        try:
            filename = validate_filename(filename)
        except ValueError as exc:
            raise ValidationError(str(exc), {"filename": filename}) from exc

        logger.debug(f"Uploading image {filename} ({format_bytes(len(data))})")
        payload = bytes(data)
        async with self.lifecycle.request():
            response = await self.invoker.invoke(
                lambda: self._call(
                    "POST",
                    "/upload/image",
                    files={"image": (filename, payload)},
                    data={"overwrite": str(bool(overwrite)).lower()},
                )
            )

        name = response.get("name") if isinstance(response, dict) else None
        if not name:
            raise UploadError(
                f"Upload of {filename} returned no file name",
                {"response": safe_serialize(response, max_len=500)},
            )
        logger.info(f"Uploaded image as {name}")
        return str(name)

    async def fetch_artifact(self, ref: ArtifactRef) -> bytes:
        """Raw bytes of one produced file."""
        self.lifecycle.ensure_alive()
        return await self._call("GET", ref.locator, expect="bytes")

    async def download_artifacts(self, refs: Sequence[ArtifactRef]) -> List[DownloadedArtifact]:
        self.lifecycle.ensure_alive()
        downloader = BatchDownloader(
            self.fetch_artifact,
            batch_size=self.settings.download_batch_size,
            max_image_bytes=self.settings.max_image_size_bytes,
            max_video_bytes=self.settings.max_video_size_bytes,
            max_total_memory_bytes=self.settings.max_total_memory_bytes,
            warning_ratio=self.settings.memory_warning_ratio,
        )
        return await downloader.fetch_all(refs)

    async def process_results(
        self,
        result: JobExecutionResult,
        output_binary_key: str = "data",
    ) -> ProcessedOutput:
        """
        Shape a result for the host: JSON summary plus base64 binary entries.

        The first image is stored under ``output_binary_key`` and the rest
        under ``image_<i>``; videos use ``video_<i>``, the first one taking
        ``output_binary_key`` only when there are no images.
        """
        key = validate_output_binary_key(output_binary_key)
        json_data: Dict[str, Any] = {"success": result.success}
        if result.job_id:
            json_data["jobId"] = result.job_id
        if not result.success:
            json_data["error"] = result.error_message
            return ProcessedOutput(json=json_data, binary={})

        if result.raw_output is not None:
            json_data["data"] = result.raw_output

        images = result.images
        videos = result.videos
        if images:
            json_data["images"] = [ref.locator for ref in images]
            json_data["imageUrls"] = [self._url(ref.locator) for ref in images]
            json_data["imageCount"] = len(images)
        if videos:
            json_data["videos"] = [ref.locator for ref in videos]
            json_data["videoUrls"] = [self._url(ref.locator) for ref in videos]
            json_data["videoCount"] = len(videos)

        downloaded = await self.download_artifacts(images + videos)
        binary: Dict[str, Dict[str, Any]] = {}
        for i, item in enumerate(downloaded[: len(images)]):
            binary[key if i == 0 else f"image_{i}"] = _binary_entry(item)
        for i, item in enumerate(downloaded[len(images):]):
            binary[key if (not images and i == 0) else f"video_{i}"] = _binary_entry(item)

        return ProcessedOutput(json=json_data, binary=binary)

    # ------------------------------------------------------------------
    # Server info
    # ------------------------------------------------------------------

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None, retries: Optional[int] = None) -> Dict[str, Any]:
        async with self.lifecycle.request():
            return await self.invoker.invoke(
                lambda: self._call("GET", path, params=dict(params or {})),
                retries=retries,
            )

    async def get_history(self, limit: int = 100) -> Dict[str, Any]:
        return await self._get_json("/history", {"limit": int(limit)})

    async def get_system_info(self) -> Dict[str, Any]:
        return await self._get_json("/system_stats")

    async def health_check(self) -> HealthStatus:
        """Single ``/system_stats`` probe, no retries."""
        started = self._clock()
        try:
            system = await self._get_json("/system_stats", retries=0)
        except JobClientError as exc:
            return HealthStatus(
                healthy=False,
                base_url=self.base_url,
                latency_ms=(self._clock() - started) * 1000,
                error=exc.message,
            )
        return HealthStatus(
            healthy=True,
            base_url=self.base_url,
            latency_ms=(self._clock() - started) * 1000,
            system=system,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def cancel_request(self) -> None:
        self.lifecycle.cancel()

    def destroy(self) -> None:
        if not self.lifecycle.is_destroyed:
            logger.debug(f"Destroying client {self.client_id}")
        self.lifecycle.destroy()

    async def close(self) -> None:
        self.destroy()
        if self._owns_transport:
            await self.transport.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


def _binary_entry(item: DownloadedArtifact) -> Dict[str, Any]:
    return {"data": item.data, "mimeType": item.mime_type, "fileName": item.file_name}
