"""
Test Veo video generation locally from an (already edited) image.
Polls with the same interval and attempt ceiling as the server.
Run from project root with GOOGLE_API_KEY in .env (or env).

    python scripts/test_video.py santa-output.jpg [santa-video.mp4]
"""
import os
import sys
import time

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from clients.gemini_client import GeminiClient, GenerationError
from config import get_settings


def main():
    if len(sys.argv) < 2:
        print("Usage: python scripts/test_video.py <image> [output]")
        return 1
    image, output = sys.argv[1], sys.argv[2] if len(sys.argv) > 2 else "santa-video.mp4"

    settings = get_settings()
    if not settings.google_api_key:
        print("ERROR: Set GOOGLE_API_KEY in .env or environment")
        return 1

    client = GeminiClient(
        api_key=settings.google_api_key,
        base_url=settings.google_api_base_url,
        video_model=settings.video_model,
        timeout_seconds=settings.api_timeout_seconds,
    )
    try:
        with open(image, "rb") as f:
            name = client.start_video(f.read(), settings.video_prompt, aspect_ratio=settings.video_aspect_ratio)
        print("Submitted. Operation:", name)
        print("Polling for result (may take a few minutes)...")
        operation = None
        for attempt in range(1, settings.max_poll_attempts + 1):
            time.sleep(settings.polling_interval_seconds)
            operation = client.get_operation(name)
            if operation.done:
                break
            print(f"  Waiting for video... (attempt {attempt})")
        if not operation or not operation.done:
            print("TIMEOUT: operation never reported done")
            return 1
        if operation.error:
            print("FAILED:", operation.error)
            return 1
        if not operation.video_uri:
            print("No video URI in response")
            return 1
        print("Downloading video from:", operation.video_uri)
        data = client.download(operation.video_uri)
    except GenerationError as e:
        print("ERROR:", e)
        return 1
    with open(output, "wb") as f:
        f.write(data)
    print(f"SUCCESS. Saved video to {output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
