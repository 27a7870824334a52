"""
Google generative API client: Gemini image edit and Veo video generation.
"""
import base64
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import httpx

logger = logging.getLogger(__name__)


class GenerationError(Exception):
    pass

class GenerationArtifactMissing(GenerationError):
    pass

class PollTimeout(GenerationError):
    pass


@dataclass
class VideoOperation:
    name: str
    done: bool
    video_uri: Optional[str] = None
    error: Optional[str] = None


class GeminiClient:
    def __init__(
        self,
        api_key: str,
        base_url: str = "https://generativelanguage.googleapis.com",
        image_model: str = "gemini-2.0-flash-exp",
        video_model: str = "veo-3.1-generate-preview",
        timeout_seconds: int = 120,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.image_model = image_model
        self.video_model = video_model
        self.timeout_seconds = timeout_seconds
        self.transport = transport

    def _headers(self) -> dict:
        return {
            "x-goog-api-key": self.api_key,
            "Content-Type": "application/json",
        }

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self.timeout_seconds, transport=self.transport, follow_redirects=True)

    def edit_image(self, image_bytes: bytes, instruction: str, mime_type: str = "image/jpeg") -> Tuple[bytes, str]:
        """Send the photo plus an edit instruction. Returns the edited image bytes and their MIME type."""
        url = f"{self.base_url}/v1beta/models/{self.image_model}:generateContent"
        payload = {
            "contents": [
                {
                    "role": "user",
                    "parts": [
                        {"inlineData": {"mimeType": mime_type, "data": base64.b64encode(image_bytes).decode()}},
                        {"text": instruction},
                    ],
                }
            ],
            "generationConfig": {"responseModalities": ["IMAGE", "TEXT"]},
        }
        with self._client() as client:
            r = client.post(url, json=payload, headers=self._headers())
        if r.status_code >= 400:
            raise GenerationError(f"Image edit API error {r.status_code}: {r.text[:500]}")
        data = r.json()
        candidates = data.get("candidates") or []
        parts = ((candidates[0].get("content") or {}).get("parts") or []) if candidates else []
        for part in parts:
            inline = part.get("inlineData")
            if inline and inline.get("data"):
                edited_type = inline.get("mimeType") or "image/jpeg"
                logger.info("Image edit completed (%s)", edited_type)
                return base64.b64decode(inline["data"]), edited_type
        text = " ".join(p["text"] for p in parts if p.get("text"))
        raise GenerationArtifactMissing(
            "Image edit returned no image" + (f": {text[:200]}" if text else "")
        )

    def start_video(
        self,
        image_bytes: bytes,
        prompt: str,
        mime_type: str = "image/jpeg",
        aspect_ratio: str = "16:9",
        number_of_videos: int = 1,
    ) -> str:
        """Submit an image-to-video job. Returns the long-running operation name."""
        url = f"{self.base_url}/v1beta/models/{self.video_model}:predictLongRunning"
        payload = {
            "instances": [
                {
                    "prompt": prompt,
                    "image": {
                        "bytesBase64Encoded": base64.b64encode(image_bytes).decode(),
                        "mimeType": mime_type,
                    },
                }
            ],
            "parameters": {"aspectRatio": aspect_ratio, "sampleCount": number_of_videos},
        }
        with self._client() as client:
            r = client.post(url, json=payload, headers=self._headers())
        if r.status_code >= 400:
            raise GenerationError(f"Video API error {r.status_code}: {r.text[:500]}")
        name = r.json().get("name")
        if not name:
            raise GenerationError("No operation name returned")
        logger.info("Video generation submitted: %s", name)
        return name

    def get_operation(self, name: str) -> VideoOperation:
        """Query a video operation once."""
        url = f"{self.base_url}/v1beta/{name}"
        with self._client() as client:
            r = client.get(url, headers=self._headers())
        if r.status_code >= 400:
            raise GenerationError(f"Poll error {r.status_code}: {r.text[:500]}")
        return self.parse_operation(r.json())

    @staticmethod
    def parse_operation(data: Dict[str, Any]) -> VideoOperation:
        error = data.get("error")
        samples = (
            ((data.get("response") or {}).get("generateVideoResponse") or {}).get("generatedSamples") or []
        )
        video = (samples[0].get("video") or {}) if samples else {}
        return VideoOperation(
            name=data.get("name", ""),
            done=bool(data.get("done")),
            video_uri=video.get("uri"),
            error=(error.get("message") or str(error)) if isinstance(error, dict) else error,
        )

    def download(self, uri: str) -> bytes:
        """Fetch a generated file. The URI needs the API key like every other call."""
        with self._client() as client:
            r = client.get(uri, headers={"x-goog-api-key": self.api_key})
        if r.status_code >= 400:
            raise GenerationError(f"Download error {r.status_code}: {r.text[:200]}")
        return r.content
