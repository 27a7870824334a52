"""
In-memory stores for staged uploads and orders.

Both stores are lock-guarded so request handlers and background order tasks
can share them. Nothing here survives a process restart.
"""
import logging
import secrets
import threading
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class OrderStatus(str, Enum):
    PROCESSING = "processing"
    ADDING_IMAGE_LAYER = "adding_image_layer"
    GENERATING_VIDEO = "generating_video"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.COMPLETE, OrderStatus.ERROR)


# Forward edges of the order state machine; ERROR is reachable from any non-terminal state.
_NEXT_STATUS = {
    OrderStatus.PROCESSING: OrderStatus.ADDING_IMAGE_LAYER,
    OrderStatus.ADDING_IMAGE_LAYER: OrderStatus.GENERATING_VIDEO,
    OrderStatus.GENERATING_VIDEO: OrderStatus.COMPLETE,
}


class InvalidTransition(Exception):
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PendingUpload:
    upload_id: str
    file_path: Path
    original_name: str
    content_type: str
    created_at: datetime


@dataclass
class Order:
    session_id: str
    source_image: Path
    source_content_type: str = "image/jpeg"
    email: Optional[str] = None
    status: OrderStatus = OrderStatus.PROCESSING
    video_url: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)


_EXTENSIONS = {"image/jpeg": ".jpg", "image/jpg": ".jpg", "image/png": ".png"}


class UploadRegistry:
    """Photos uploaded before payment, evicted after ``ttl``."""

    def __init__(self, upload_dir: Path, ttl: timedelta = timedelta(hours=1)):
        self.upload_dir = Path(upload_dir)
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        self.ttl = ttl
        self._uploads: Dict[str, PendingUpload] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _new_upload_id() -> str:
        return f"upload_{int(time.time() * 1000)}_{secrets.token_hex(5)}"

    def stage(self, image_bytes: bytes, original_name: str, content_type: str = "image/jpeg") -> str:
        """Write the image to the upload dir and register it. Returns the upload id."""
        self.sweep()
        upload_id = self._new_upload_id()
        file_path = self.upload_dir / f"{upload_id}{_EXTENSIONS.get(content_type, '.jpg')}"
        file_path.write_bytes(image_bytes)
        with self._lock:
            self._uploads[upload_id] = PendingUpload(
                upload_id=upload_id,
                file_path=file_path,
                original_name=original_name,
                content_type=content_type,
                created_at=_utcnow(),
            )
        logger.info("Upload staged: %s (%d bytes)", upload_id, len(image_bytes))
        return upload_id

    def contains(self, upload_id: str) -> bool:
        with self._lock:
            return upload_id in self._uploads

    def take(self, upload_id: str) -> Optional[PendingUpload]:
        """Remove and return the staged upload; None if unknown, consumed or evicted."""
        with self._lock:
            return self._uploads.pop(upload_id, None)

    def sweep(self, now: Optional[datetime] = None) -> int:
        """Evict uploads older than the TTL and delete their files. Returns count evicted."""
        cutoff = (now or _utcnow()) - self.ttl
        with self._lock:
            expired = [u for u in self._uploads.values() if u.created_at < cutoff]
            for upload in expired:
                del self._uploads[upload.upload_id]
        for upload in expired:
            try:
                upload.file_path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning("Sweep: failed to delete %s: %s", upload.file_path, e)
        if expired:
            logger.info("Sweep: evicted %d staged upload(s)", len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._uploads)


class OrderStore:
    """One order per payment session. Reads return copies."""

    def __init__(self):
        self._orders: Dict[str, Order] = {}
        self._lock = threading.Lock()

    def create_if_absent(self, order: Order) -> bool:
        """Insert ``order`` unless its session already has one. True if inserted."""
        with self._lock:
            if order.session_id in self._orders:
                return False
            self._orders[order.session_id] = order
            return True

    def exists(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._orders

    def get(self, session_id: str) -> Optional[Order]:
        with self._lock:
            order = self._orders.get(session_id)
            return replace(order) if order else None

    def advance(self, session_id: str, status: OrderStatus, **fields) -> Order:
        """Move an order to ``status``, setting ``fields`` in the same step.

        Only forward moves along the state machine, or a move from a
        non-terminal state to ERROR, are accepted.
        """
        with self._lock:
            order = self._orders.get(session_id)
            if order is None:
                raise KeyError(session_id)
            allowed = status == _NEXT_STATUS.get(order.status) or (
                status == OrderStatus.ERROR and not order.status.is_terminal
            )
            if not allowed:
                raise InvalidTransition(f"{session_id}: {order.status.value} -> {status.value}")
            order.status = status
            for name, value in fields.items():
                setattr(order, name, value)
            return replace(order)

    def __len__(self) -> int:
        with self._lock:
            return len(self._orders)
