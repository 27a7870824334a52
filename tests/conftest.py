"""
Pytest configuration and shared fixtures.

Provides in-memory stores on tmp dirs, fake generation/notification/payment
clients and a FastAPI test client wired to them.
"""
import json
import time
from typing import Generator, List, Optional

import pytest
from fastapi.testclient import TestClient

from clients import GenerationArtifactMissing, PaidSession, PaymentError, VideoOperation, WebhookSignatureError
from services import OrderOrchestrator
from store import OrderStore, UploadRegistry

JPEG_BYTES = b"\xff\xd8\xff\xe0fake-jpeg-body"


class FakeGenerator:
    """Stands in for GeminiClient. Records calls; behaviour tuned per test."""

    def __init__(self, edited: Optional[bytes] = b"edited-image", polls_until_done: int = 1,
                 video_uri: Optional[str] = "https://files.example/video.mp4", operation_error: Optional[str] = None,
                 edited_type: str = "image/jpeg"):
        self.edited = edited
        self.edited_type = edited_type
        self.polls_until_done = polls_until_done
        self.video_uri = video_uri
        self.operation_error = operation_error
        self.calls: List[str] = []
        self.video_mime_types: List[str] = []
        self.poll_count = 0

    def edit_image(self, image_bytes: bytes, instruction: str, mime_type: str = "image/jpeg"):
        self.calls.append("edit_image")
        if self.edited is None:
            raise GenerationArtifactMissing("Image edit returned no image")
        return self.edited, self.edited_type

    def start_video(self, image_bytes, prompt, mime_type="image/jpeg", aspect_ratio="16:9", number_of_videos=1) -> str:
        self.calls.append("start_video")
        self.video_mime_types.append(mime_type)
        return "models/veo/operations/op-1"

    def get_operation(self, name: str) -> VideoOperation:
        self.poll_count += 1
        done = self.polls_until_done is not None and self.poll_count >= self.polls_until_done
        return VideoOperation(
            name=name,
            done=done,
            video_uri=self.video_uri if done else None,
            error=self.operation_error if done else None,
        )

    def download(self, uri: str) -> bytes:
        self.calls.append("download")
        return b"mp4-bytes"


class FakeNotifier:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: List[tuple] = []

    def send(self, to: str, subject: str, html_body: str) -> None:
        self.sent.append((to, subject, html_body))
        if self.fail:
            raise RuntimeError("smtp down")


class FakePayments:
    def __init__(self):
        self.sessions = {}
        self.checkouts: List[tuple] = []
        self.fail_checkout = False
        # Seconds each call blocks, like a slow Stripe round trip.
        self.delay = 0.0

    def create_checkout(self, upload_id: str, email: Optional[str] = None) -> str:
        time.sleep(self.delay)
        if self.fail_checkout:
            raise PaymentError("stripe unavailable")
        self.checkouts.append((upload_id, email))
        return f"https://checkout.stripe.test/{upload_id}"

    def retrieve_session(self, session_id: str) -> PaidSession:
        time.sleep(self.delay)
        if session_id not in self.sessions:
            raise PaymentError(f"No such checkout.session: {session_id}")
        return self.sessions[session_id]

    def construct_event(self, payload: bytes, signature: str):
        if signature != "valid-signature":
            raise WebhookSignatureError("No signatures found matching the expected signature")
        return json.loads(payload)


@pytest.fixture
def uploads(tmp_path) -> UploadRegistry:
    return UploadRegistry(tmp_path / "uploads")


@pytest.fixture
def orders() -> OrderStore:
    return OrderStore()


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def make_orchestrator(uploads, orders, notifier, tmp_path):
    def _make(generator: FakeGenerator, max_poll_attempts: int = 60, notify: Optional[FakeNotifier] = None):
        return OrderOrchestrator(
            uploads=uploads,
            orders=orders,
            generator=generator,
            notifier=notify or notifier,
            output_dir=tmp_path / "outputs",
            edit_instruction="add santa",
            video_prompt="santa places presents",
            poll_interval=0,
            max_poll_attempts=max_poll_attempts,
            public_base_url="https://santa.example",
        )
    return _make


@pytest.fixture
def orchestrator(make_orchestrator, generator) -> OrderOrchestrator:
    return make_orchestrator(generator)


@pytest.fixture
def payments() -> FakePayments:
    return FakePayments()


@pytest.fixture
def test_client(orchestrator, payments) -> Generator[TestClient, None, None]:
    """FastAPI test client with fake collaborators injected."""
    from main import app, get_orchestrator, get_payments

    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_payments] = lambda: payments

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()
