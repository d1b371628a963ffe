"""
Kling Motion Control Adapter - AI Gateway video generation integration
"""

import asyncio
import json
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
from pydantic import BaseModel

from motionswap.config.constants import (
    PROVIDER_CHARACTER_ORIENTATION,
    PROVIDER_DOWNLOAD_ATTEMPTS,
    PROVIDER_MODE,
    PROVIDER_MODEL,
    PROVIDER_POLL_INTERVAL_S,
    PROVIDER_POLL_TIMEOUT_S,
)
from motionswap.config.settings import settings
from motionswap.core.errors import ProviderError
from motionswap.core.transport import TransportConfig, build_http_client
from motionswap.services.observability import logger

class MotionControlRequest(BaseModel):
    """Request for a single motion-transfer generation"""

    character_image_url: str
    source_video_url: str
    character_orientation: str = PROVIDER_CHARACTER_ORIENTATION
    mode: str = PROVIDER_MODE

class MotionControlTask(BaseModel):
    """Provider task state"""

    task_id: str
    status: str
    video_urls: List[str] = []
    error: Optional[Dict[str, Any]] = None
    raw: Optional[Dict[str, Any]] = None

SUCCESS_STATUSES = {"success", "succeeded", "completed"}
FAILURE_STATUSES = {"failure", "failed", "error", "cancelled"}

class KlingMotionAdapter:
    """
    Adapter for KlingAI motion control through the AI Gateway

    One call to ``generate_video`` submits a task, polls it until the
    provider reports success or failure, and downloads the first video.
    The HTTP client is injected and shared by all generations.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        model: str = PROVIDER_MODEL,
        poll_interval_s: float = PROVIDER_POLL_INTERVAL_S,
        poll_timeout_s: float = PROVIDER_POLL_TIMEOUT_S,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize adapter"""
        self.client = client
        self.model = model
        self.poll_interval_s = poll_interval_s
        self.poll_timeout_s = poll_timeout_s
        self._sleep = sleep
        self._clock = clock

    def _build_payload(self, request: MotionControlRequest) -> Dict[str, Any]:
        return {
            "model": self.model,
            "prompt": {"image": request.character_image_url},
            "providerOptions": {
                "klingai": {
                    "videoUrl": request.source_video_url,
                    "characterOrientation": request.character_orientation,
                    "mode": request.mode,
                }
            },
        }

    def _error_from_response(self, response: httpx.Response, action: str) -> ProviderError:
        """Build a ProviderError from a non-2xx gateway response"""
        raw_text = response.text
        body: Dict[str, Any] = {}
        try:
            parsed = response.json()
            if isinstance(parsed, dict):
                body = parsed
        except ValueError:
            pass

        error_obj = body.get("error") if isinstance(body.get("error"), dict) else {}
        error_type = error_obj.get("type") or body.get("type")
        message = error_obj.get("message") or body.get("message") or "Provider request failed."

        causes = []
        if error_type:
            causes.append(f"{error_type}: {message}")
        causes.append(f"HTTP {response.status_code} during {action}")

        code = "PROVIDER_REJECTED" if 400 <= response.status_code < 500 else "PROVIDER_ERROR"
        return ProviderError(
            message,
            status_code=response.status_code,
            code=code,
            details=raw_text,
            causes=causes,
            model=self.model,
        )

    def _error_from_task(self, task: MotionControlTask) -> ProviderError:
        """Build a ProviderError from a provider-reported task failure"""
        error_obj = task.error or {}
        error_type = error_obj.get("type") or error_obj.get("code")
        message = error_obj.get("message") or "Video synthesis failed without error details"
        status_code = error_obj.get("statusCode") or error_obj.get("status_code")

        causes = [f"task_status={task.status}"]
        if error_type:
            causes.append(f"{error_type}: {message}")

        rejected = "rejected" in message.lower() or error_type in {"InvalidInput", "InputRejected"}
        return ProviderError(
            message,
            status_code=status_code if isinstance(status_code, int) else None,
            code="PROVIDER_REJECTED" if rejected else "PROVIDER_ERROR",
            details=json.dumps(task.raw, default=str) if task.raw else None,
            causes=causes,
            model=self.model,
        )

    async def _send(
        self,
        method: str,
        url: str,
        action: str,
        strip_auth: bool = False,
        **kwargs,
    ) -> httpx.Response:
        """Send one request, mapping transport failures onto ProviderError"""
        request = self.client.build_request(method, url, **kwargs)
        if strip_auth:
            request.headers.pop("Authorization", None)

        try:
            response = await self.client.send(request)
        except httpx.TimeoutException as e:
            raise ProviderError(
                "Video generation service timed out.",
                code="PROVIDER_TIMEOUT",
                details=f"{type(e).__name__}: {e}",
                causes=[f"{type(e).__name__} during {action}"],
                model=self.model,
            ) from e
        except httpx.TransportError as e:
            raise ProviderError(
                "Provider request failed.",
                details=f"{type(e).__name__}: {e}",
                causes=[f"{type(e).__name__} during {action}: {e}"],
                model=self.model,
            ) from e

        if response.status_code >= 400:
            raise self._error_from_response(response, action)
        return response

    @staticmethod
    def _is_transient(error: ProviderError) -> bool:
        """Transport failures, 429 and 5xx on a read of an existing task"""
        return error.status_code is None or error.status_code == 429 or error.status_code >= 500

    def _is_gateway_url(self, url: str) -> bool:
        target = httpx.URL(url)
        return target.is_relative_url or target.host == self.client.base_url.host

    async def submit_task(self, request: MotionControlRequest) -> str:
        """
        Submit a motion-transfer task

        Returns:
            Provider task ID

        Raises:
            ProviderError: If the gateway rejects the request
        """
        logger.info(
            "provider_submit",
            model=self.model,
            character_image_url=request.character_image_url,
            source_video_url=request.source_video_url,
        )

        response = await self._send(
            "POST",
            "/v1/videos/generations",
            "submit",
            json=self._build_payload(request),
        )
        body = response.json()
        task_id = body.get("id") or body.get("task_id")
        if not task_id:
            raise ProviderError(
                "Provider did not return a task id.",
                details=response.text,
                model=self.model,
            )

        logger.info("provider_task_submitted", task_id=task_id)
        return task_id

    async def get_task(self, task_id: str) -> MotionControlTask:
        """Fetch current provider task state"""
        response = await self._send("GET", f"/v1/videos/generations/{task_id}", "poll")
        body = response.json()
        videos = body.get("videos") or []
        return MotionControlTask(
            task_id=task_id,
            status=str(body.get("status") or "").strip().lower(),
            video_urls=[v["url"] for v in videos if isinstance(v, dict) and v.get("url")],
            error=body.get("error") if isinstance(body.get("error"), dict) else None,
            raw=body,
        )

    async def poll_task_status(self, task_id: str) -> MotionControlTask:
        """
        Poll task status until the provider reports a terminal state

        Transient read failures (transport errors, 429, 5xx) re-poll the
        same task until the poll timeout.

        Returns:
            Successful MotionControlTask

        Raises:
            ProviderError: On provider failure or when the poll timeout elapses
        """
        started = self._clock()
        polls = 0
        last_status = None
        last_error: Optional[ProviderError] = None

        while True:
            polls += 1
            try:
                task = await self.get_task(task_id)
            except ProviderError as e:
                if not self._is_transient(e):
                    e.resubmittable = False
                    raise
                logger.warning(
                    "provider_poll_transient_error",
                    task_id=task_id,
                    status_code=e.status_code,
                    error=e.message,
                    polls=polls,
                )
                task = None
                last_error = e

            if task is not None:
                last_status = task.status
                last_error = None

                if task.status in SUCCESS_STATUSES:
                    logger.info("provider_task_completed", task_id=task_id, polls=polls)
                    return task

                if task.status in FAILURE_STATUSES:
                    error = self._error_from_task(task)
                    logger.error(
                        "provider_task_failed",
                        task_id=task_id,
                        task_status=task.status,
                        error=error.message,
                    )
                    raise error

            elapsed = self._clock() - started
            if elapsed >= self.poll_timeout_s:
                logger.error("provider_task_timeout", task_id=task_id, elapsed_s=elapsed, polls=polls)
                details = f"task_id={task_id} last_status={last_status} elapsed_s={elapsed:.0f}"
                if last_error is not None:
                    details += f" last_error={last_error.message}"
                raise ProviderError(
                    "Video generation timed out.",
                    code="PROVIDER_TIMEOUT",
                    details=details,
                    model=self.model,
                    resubmittable=False,
                )

            await self._sleep(self.poll_interval_s)

    async def download_video(self, video_url: str) -> bytes:
        """
        Download the generated video

        The gateway credentials are only sent to the gateway itself. Transient
        failures retry the same URL.

        Raises:
            ProviderError: If the download fails or is empty
        """
        strip_auth = not self._is_gateway_url(video_url)
        attempt = 0

        while True:
            attempt += 1
            try:
                response = await self._send("GET", video_url, "download", strip_auth=strip_auth)
                break
            except ProviderError as e:
                e.resubmittable = False
                if not self._is_transient(e) or attempt >= PROVIDER_DOWNLOAD_ATTEMPTS:
                    raise
                logger.warning(
                    "provider_download_transient_error",
                    url=video_url,
                    attempt=attempt,
                    status_code=e.status_code,
                    error=e.message,
                )
                await self._sleep(self.poll_interval_s)

        data = response.content
        if not data:
            raise ProviderError(
                "Provider returned an empty video.",
                details=video_url,
                model=self.model,
                resubmittable=False,
            )

        logger.info("provider_video_downloaded", url=video_url, size_bytes=len(data))
        return data

    async def generate_video(self, request: MotionControlRequest) -> bytes:
        """
        Run one full generation: submit, poll, download

        Returns:
            Generated video bytes

        Raises:
            ProviderError: On any provider-side failure
        """
        started = time.monotonic()
        task_id = await self.submit_task(request)
        task = await self.poll_task_status(task_id)

        if not task.video_urls:
            raise ProviderError(
                "No videos were generated",
                details=json.dumps(task.raw, default=str) if task.raw else None,
                model=self.model,
            )

        data = await self.download_video(task.video_urls[0])
        logger.info(
            "provider_generation_finished",
            task_id=task_id,
            duration_s=round(time.monotonic() - started, 1),
        )
        return data

    async def close(self):
        """Close HTTP client"""
        await self.client.aclose()

def build_kling_adapter(config: Optional[TransportConfig] = None) -> KlingMotionAdapter:
    """
    Build an adapter against the configured AI Gateway

    The returned client is bound to the running event loop; build one per
    loop and share it between the generations that loop runs.
    """
    client = build_http_client(
        config or TransportConfig(),
        base_url=settings.ai_gateway_base_url,
        headers={"Authorization": f"Bearer {settings.ai_gateway_api_key}"},
    )
    return KlingMotionAdapter(client)
