"""
Order orchestrator – turns a paid session into a Santa video.

A confirmed payment promotes the staged upload into an order and launches one
background task per order. The task walks the order through image edit, video
generation (submitted then polled) and download, recording every stage in the
order store. Provider calls are blocking httpx calls and run in worker threads.
"""
import asyncio
import logging
import threading
from pathlib import Path
from typing import Dict, Optional

from clients.gemini_client import GenerationArtifactMissing, GenerationError, PollTimeout, VideoOperation
from services.email_service import render_video_failed, render_video_ready
from store import Order, OrderStatus, OrderStore, UploadRegistry

logger = logging.getLogger(__name__)


class UploadMissing(Exception):
    """Payment confirmed for an upload that is unknown, consumed or evicted."""


class OrderOrchestrator:
    """
    ``generator`` must provide ``edit_image``, ``start_video``, ``get_operation``
    and ``download`` (see GeminiClient); ``notifier`` must provide
    ``send(to, subject, html_body)`` (see EmailService).
    """

    def __init__(
        self,
        uploads: UploadRegistry,
        orders: OrderStore,
        generator,
        notifier,
        output_dir: Path,
        edit_instruction: str,
        video_prompt: str,
        aspect_ratio: str = "16:9",
        poll_interval: float = 5,
        max_poll_attempts: int = 60,
        public_base_url: Optional[str] = None,
    ):
        self.uploads = uploads
        self.orders = orders
        self.generator = generator
        self.notifier = notifier
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.edit_instruction = edit_instruction
        self.video_prompt = video_prompt
        self.aspect_ratio = aspect_ratio
        self.poll_interval = poll_interval
        self.max_poll_attempts = max_poll_attempts
        self.public_base_url = (public_base_url or "").rstrip("/")
        self._tasks: Dict[str, asyncio.Task] = {}
        self._confirm_lock = threading.Lock()

    # ── Confirmation ─────────────────────────────────────────

    def confirm_payment(self, session_id: str, upload_id: str, email: Optional[str] = None) -> Optional[asyncio.Task]:
        """Create the order for a paid session and start processing it.

        Returns the background task, or None when the session already has an
        order. Raises UploadMissing when there is nothing to process. Must be
        called from inside the running event loop.
        """
        with self._confirm_lock:
            if self.orders.exists(session_id):
                logger.info("Order %s already exists; not starting again", session_id)
                return None
            upload = self.uploads.take(upload_id) if upload_id else None
            if upload is None:
                raise UploadMissing(f"Upload not found: {upload_id}")
            self.orders.create_if_absent(
                Order(
                    session_id=session_id,
                    source_image=upload.file_path,
                    source_content_type=upload.content_type,
                    email=email or None,
                )
            )
        task = asyncio.create_task(self._drive(session_id), name=f"order-{session_id}")
        self._tasks[session_id] = task
        task.add_done_callback(lambda _t: self._tasks.pop(session_id, None))
        logger.info("Order %s created from %s, processing started", session_id, upload_id)
        return task

    def get_status(self, session_id: str) -> Optional[Order]:
        return self.orders.get(session_id)

    @property
    def active_orders(self) -> int:
        return len(self._tasks)

    async def shutdown(self) -> None:
        """Cancel drivers still running when the app stops."""
        tasks = list(self._tasks.values())
        if not tasks:
            return
        logger.warning("Cancelling %d in-flight order(s) on shutdown", len(tasks))
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def public_url(self, path: str) -> str:
        return f"{self.public_base_url}{path}"

    # ── Background driver ────────────────────────────────────

    async def _drive(self, session_id: str) -> None:
        order = self.orders.get(session_id)
        logger.info("Starting video creation for order %s", session_id)
        try:
            video_url = await self._run_stages(order)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if isinstance(e, GenerationError):
                logger.error("Order %s failed: %s", session_id, e)
            else:
                logger.exception("Unexpected error processing order %s", session_id)
            message = str(e) or type(e).__name__
            self.orders.advance(session_id, OrderStatus.ERROR, error=message)
            if order.email:
                await self._notify(order.email, *render_video_failed(session_id, message))
            return

        self.orders.advance(session_id, OrderStatus.COMPLETE, video_url=video_url)
        logger.info("Video complete for order %s: %s", session_id, video_url)
        self._remove(order.source_image)
        if order.email:
            await self._notify(order.email, *render_video_ready(self.public_url(video_url)))

    async def _run_stages(self, order: Order) -> str:
        """Image edit, video generation, download. Returns the public path of the video."""
        sid = order.session_id

        self.orders.advance(sid, OrderStatus.ADDING_IMAGE_LAYER)
        logger.info("Order %s: adding Santa to photo", sid)
        source = await asyncio.to_thread(order.source_image.read_bytes)
        edited, edited_type = await asyncio.to_thread(
            self.generator.edit_image, source, self.edit_instruction, order.source_content_type
        )
        if not edited:
            raise GenerationArtifactMissing("Image edit returned no image")
        suffix = ".png" if edited_type == "image/png" else ".jpg"
        edited_path = self.output_dir / f"{sid}-edited{suffix}"
        await asyncio.to_thread(edited_path.write_bytes, edited)

        self.orders.advance(sid, OrderStatus.GENERATING_VIDEO)
        logger.info("Order %s: generating video", sid)
        operation_name = await asyncio.to_thread(
            self.generator.start_video, edited, self.video_prompt, edited_type, self.aspect_ratio, 1
        )
        operation = await self._wait_for_video(sid, operation_name)
        if operation.error:
            raise GenerationError(f"Video generation failed: {operation.error}")
        if not operation.video_uri:
            raise GenerationArtifactMissing("No video URI in response")

        video = await asyncio.to_thread(self.generator.download, operation.video_uri)
        video_path = self.output_dir / f"{sid}-video.mp4"
        await asyncio.to_thread(video_path.write_bytes, video)
        return f"/outputs/{video_path.name}"

    async def _wait_for_video(self, sid: str, operation_name: str) -> VideoOperation:
        for attempt in range(1, self.max_poll_attempts + 1):
            await asyncio.sleep(self.poll_interval)
            operation = await asyncio.to_thread(self.generator.get_operation, operation_name)
            if operation.done:
                return operation
            logger.info("Order %s: waiting for video (attempt %d/%d)", sid, attempt, self.max_poll_attempts)
        raise PollTimeout(f"Video generation timed out after {self.max_poll_attempts} polls")

    async def _notify(self, email: str, subject: str, body: str) -> None:
        try:
            await asyncio.to_thread(self.notifier.send, email, subject, body)
        except Exception as e:
            logger.error("Failed to send email to %s: %s", email, e)

    @staticmethod
    def _remove(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not delete %s: %s", path, e)
