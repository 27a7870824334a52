"""
FastAPI application for Santa Magic Video.
"""
import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from typing import AsyncGenerator, Optional

from fastapi import Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.responses import FileResponse, JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles

from clients import GeminiClient, PaymentClient, PaymentError, PaymentUnconfirmed, WebhookSignatureError
from config import get_output_dir, get_settings, get_upload_dir
from models import CheckoutRequest, CheckoutResponse, OrderStatusResponse, UploadResponse
from services import EmailService, OrderOrchestrator, UploadMissing
from store import OrderStore, UploadRegistry

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)
# Reduce noisy per-request polling logs from httpx/httpcore.
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

STATIC_DIR = Path(__file__).parent / "static"
ALLOWED_IMAGE_TYPES = {"image/jpeg", "image/jpg", "image/png"}


@lru_cache
def get_orchestrator() -> OrderOrchestrator:
    settings = get_settings()
    generator = GeminiClient(
        api_key=settings.google_api_key,
        base_url=settings.google_api_base_url,
        image_model=settings.image_model,
        video_model=settings.video_model,
        timeout_seconds=settings.api_timeout_seconds,
    )
    return OrderOrchestrator(
        uploads=UploadRegistry(get_upload_dir(), ttl=timedelta(seconds=settings.upload_ttl_seconds)),
        orders=OrderStore(),
        generator=generator,
        notifier=EmailService(),
        output_dir=get_output_dir(),
        edit_instruction=settings.edit_instruction,
        video_prompt=settings.video_prompt,
        aspect_ratio=settings.video_aspect_ratio,
        poll_interval=settings.polling_interval_seconds,
        max_poll_attempts=settings.max_poll_attempts,
        public_base_url=settings.public_base_url,
    )


@lru_cache
def get_payments() -> PaymentClient:
    settings = get_settings()
    return PaymentClient(
        api_key=settings.stripe_secret_key,
        webhook_secret=settings.stripe_webhook_secret,
        base_url=settings.public_base_url or "",
        price_cents=settings.price_cents,
        currency=settings.currency,
        product_name=settings.product_name,
        product_description=settings.product_description,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info("Santa Magic Video service starting")
    s = get_settings()
    if s.resend_api_key:
        logger.info("Email: Resend (RESEND_API_KEY set)")
    elif s.sendgrid_api_key:
        logger.info("Email: SendGrid (SENDGRID_API_KEY set)")
    elif s.smtp_host:
        logger.info("Email: SMTP (%s:%s)", s.smtp_host, s.smtp_port)
    else:
        logger.warning("Email: No provider configured, completion emails will be skipped")
    if not s.public_base_url:
        logger.warning("PUBLIC_BASE_URL not set; checkout redirects and email links will be relative")
    yield
    if get_orchestrator.cache_info().currsize:
        await get_orchestrator().shutdown()
    logger.info("Santa Magic Video service shutting down")


app = FastAPI(
    title="Santa Magic Video",
    description="Add Santa to your living-room photo and turn it into a video",
    version="1.0.0",
    lifespan=lifespan,
)

app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")
app.mount("/outputs", StaticFiles(directory=str(get_output_dir())), name="outputs")

_HTML_HEADERS = {"Cache-Control": "no-cache, no-store, must-revalidate", "Pragma": "no-cache", "Expires": "0"}


def _valid_session_id(session_id: str) -> bool:
    return bool(session_id) and "/" not in session_id and "\\" not in session_id and session_id not in (".", "..")


# ── Page routes ──────────────────────────────────────────────

@app.get("/health")
async def health() -> JSONResponse:
    """Lightweight health endpoint for uptime checks."""
    return JSONResponse({"status": "ok"})


@app.get("/")
async def index() -> FileResponse:
    return FileResponse(STATIC_DIR / "index.html", headers=_HTML_HEADERS)


@app.get("/processing")
async def processing_page(
    session_id: Optional[str] = None,
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
    payments: PaymentClient = Depends(get_payments),
):
    """Landing point after checkout. Starts the order on first visit; every visit shows progress."""
    if not session_id or not _valid_session_id(session_id):
        return RedirectResponse("/", status_code=302)
    try:
        session = await asyncio.to_thread(payments.retrieve_session, session_id)
        if not session.paid:
            raise PaymentUnconfirmed(f"Session {session_id} is not paid")
        orchestrator.confirm_payment(session_id, session.upload_id, session.email)
    except PaymentUnconfirmed as e:
        logger.warning("%s", e)
        return RedirectResponse("/", status_code=302)
    except UploadMissing as e:
        logger.error("%s (session %s)", e, session_id)
        return RedirectResponse("/?error=upload_not_found", status_code=302)
    except PaymentError as e:
        logger.error("Session verification error: %s", e)
        return RedirectResponse("/", status_code=302)
    return FileResponse(STATIC_DIR / "processing.html", headers=_HTML_HEADERS)


# ── Upload / checkout API ────────────────────────────────────

@app.post("/pre-upload", response_model=UploadResponse)
async def pre_upload(
    photo: Optional[UploadFile] = File(None),
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
) -> UploadResponse:
    """Stage a photo before payment. Returns the upload id to pass to checkout."""
    if photo is None or not photo.filename:
        raise HTTPException(status_code=400, detail="No photo uploaded")
    if photo.content_type not in ALLOWED_IMAGE_TYPES:
        raise HTTPException(status_code=400, detail=f"Unsupported format: {photo.content_type}")

    max_bytes = get_settings().max_upload_bytes
    content = await photo.read()
    if not content:
        raise HTTPException(status_code=400, detail="No photo uploaded")
    if len(content) > max_bytes:
        raise HTTPException(status_code=400, detail=f"File must be under {max_bytes // (1024 * 1024)} MB")

    upload_id = orchestrator.uploads.stage(content, photo.filename, photo.content_type)
    return UploadResponse(upload_id=upload_id)


@app.post("/create-checkout", response_model=CheckoutResponse)
async def create_checkout(
    body: CheckoutRequest,
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
    payments: PaymentClient = Depends(get_payments),
) -> CheckoutResponse:
    if not body.upload_id or not orchestrator.uploads.contains(body.upload_id):
        raise HTTPException(status_code=400, detail="Please upload a photo first")
    try:
        url = await asyncio.to_thread(payments.create_checkout, body.upload_id, body.email)
    except PaymentError as e:
        logger.error("Checkout error: %s", e)
        raise HTTPException(status_code=500, detail="Failed to create checkout session")
    return CheckoutResponse(url=url)


# ── Order status ─────────────────────────────────────────────

@app.get("/status/{session_id}", response_model=OrderStatusResponse)
async def get_order_status(
    session_id: str,
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
) -> OrderStatusResponse:
    order = orchestrator.get_status(session_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return OrderStatusResponse(status=order.status.value, video_url=order.video_url, error=order.error)


# ── Stripe webhook ───────────────────────────────────────────

@app.post("/webhook")
async def stripe_webhook(request: Request, payments: PaymentClient = Depends(get_payments)) -> JSONResponse:
    """Signed payment events. Logged only; orders start from /processing, which re-verifies payment."""
    payload = await request.body()
    signature = request.headers.get("stripe-signature", "")
    try:
        event = payments.construct_event(payload, signature)
    except WebhookSignatureError as e:
        logger.error("Webhook signature verification failed: %s", e)
        raise HTTPException(status_code=400, detail=f"Webhook Error: {e}")

    if event["type"] == "checkout.session.completed":
        logger.info("Payment completed for session: %s", event["data"]["object"]["id"])
    return JSONResponse({"received": True})


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="127.0.0.1",
        port=3000,
        reload=True,
    )
