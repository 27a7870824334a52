"""
Application configuration loaded from environment variables.
"""
import tempfile
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Google generative API (Gemini image edit + Veo video)
    google_api_key: str = ""
    google_api_base_url: str = "https://generativelanguage.googleapis.com"
    image_model: str = "gemini-2.0-flash-exp"
    video_model: str = "veo-3.1-generate-preview"
    edit_instruction: str = (
        "Take this exact photograph and add a Santa Clause kneeling by the tree, he has his big bag of "
        "gifts sitting beside him, he's placing presents around the tree. We can only see him from behind. "
        "Keep everything else in the photo the same. No music, no audio, no speaking."
    )
    video_prompt: str = (
        "a video of santa clause placing presents under the christmas tree. He's taking gifts out of his "
        "big bag of gifts and placing them around the tree. No speaking, no audio, no music."
    )
    video_aspect_ratio: str = "16:9"

    # Timeouts and polling
    api_timeout_seconds: int = 120
    polling_interval_seconds: float = 5
    max_poll_attempts: int = 60

    # File upload
    upload_dir: Optional[str] = None
    output_dir: Optional[str] = None
    upload_ttl_seconds: int = 3600
    max_upload_bytes: int = 10 * 1024 * 1024

    # Stripe
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    price_cents: int = 500
    currency: str = "usd"
    product_name: str = "Santa Magic Video"
    product_description: str = "A personalized video of Santa in your home!"

    # Public base URL (for checkout redirects and email links)
    public_base_url: Optional[str] = None

    # Email (HTTP APIs first, SMTP as fallback)
    resend_api_key: Optional[str] = None
    sendgrid_api_key: Optional[str] = None
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    from_email: str = "noreply@santamagicvideo.com"
    from_name: str = "Santa Magic Video"


@lru_cache
def get_settings() -> Settings:
    return Settings()


def get_upload_dir() -> Path:
    s = get_settings()
    if s.upload_dir:
        p = Path(s.upload_dir)
    else:
        p = Path(tempfile.gettempdir()) / "santa_uploads"
    p.mkdir(parents=True, exist_ok=True)
    return p


def get_output_dir() -> Path:
    """Directory for generated artifacts served under /outputs."""
    s = get_settings()
    if s.output_dir:
        p = Path(s.output_dir)
    else:
        p = Path(tempfile.gettempdir()) / "santa_outputs"
    p.mkdir(parents=True, exist_ok=True)
    return p
