"""
Email service for order notifications.
"""
import html
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Tuple

import httpx

from config import get_settings

logger = logging.getLogger(__name__)


class NotificationError(Exception):
    pass


def render_video_ready(video_url: str) -> Tuple[str, str]:
    """Subject and HTML body for the "video is ready" email."""
    subject = "🎅 Your Santa Magic Video is Ready!"
    body = f"""
    <div style="font-family:-apple-system,BlinkMacSystemFont,'Segoe UI',Roboto,sans-serif;line-height:1.6;color:#333;">
      <div style="max-width:600px;margin:0 auto;padding:20px;">
        <div style="text-align:center;padding:30px 0;">
          <h1 style="color:#1a472a;margin:0;">🎄 Your Santa Video is Ready! 🎅</h1>
        </div>
        <div style="background:#f9f9f9;border-radius:10px;padding:30px;text-align:center;">
          <p>Great news! Your personalized Santa Magic Video has been created and is ready to download.</p>
          <p>Click the button below to view and download your video:</p>
          <a href="{html.escape(video_url, quote=True)}" style="display:inline-block;background:#c62828;color:#fff;padding:15px 30px;text-decoration:none;border-radius:50px;font-weight:bold;margin:20px 0;">🎬 Watch Your Video</a>
          <p style="margin-top:30px;font-size:14px;color:#666;">Make sure to download your video, links are not kept forever.</p>
        </div>
        <div style="text-align:center;padding:20px;color:#666;font-size:14px;">
          <p>Spreading Christmas joy, one video at a time! 🎄</p>
        </div>
      </div>
    </div>
    """
    return subject, body


def render_video_failed(session_id: str, error: str) -> Tuple[str, str]:
    subject = "Santa Magic Video – Issue With Your Order"
    body = f"""
    <h2>We're sorry</h2>
    <p>There was an issue creating your video (Order: {html.escape(session_id)}).</p>
    <p>Please contact support and we will sort it out.</p>
    <p>Error details: {html.escape(error)}</p>
    """
    return subject, body


class EmailService:
    def __init__(self):
        self.settings = get_settings()

    def send(self, to: str, subject: str, html_body: str) -> None:
        """Send through the first configured provider. Raises NotificationError on failure."""
        settings = self.settings
        if settings.resend_api_key:
            self._send_resend(to, subject, html_body)
        elif settings.sendgrid_api_key:
            self._send_sendgrid(to, subject, html_body)
        elif settings.smtp_host:
            self._send_smtp(to, subject, html_body)
        else:
            logger.warning("No email provider configured. Set RESEND_API_KEY, SENDGRID_API_KEY or SMTP_HOST.")

    def _from_header(self) -> str:
        return f"{self.settings.from_name} <{self.settings.from_email}>"

    def _send_smtp(self, to: str, subject: str, html_body: str):
        s = self.settings
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self._from_header()
        msg["To"] = to
        msg.attach(MIMEText(html_body, "html"))
        try:
            if int(s.smtp_port) == 465:
                with smtplib.SMTP_SSL(s.smtp_host, s.smtp_port, timeout=30) as server:
                    if s.smtp_user and s.smtp_password:
                        server.login(s.smtp_user, s.smtp_password)
                    server.send_message(msg)
            else:
                with smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=30) as server:
                    server.starttls()
                    if s.smtp_user and s.smtp_password:
                        server.login(s.smtp_user, s.smtp_password)
                    server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError(f"SMTP send failed: {e}") from e
        logger.info("Email sent to %s via SMTP (port %s)", to, s.smtp_port)

    def _post(self, provider: str, url: str, api_key: str, payload: dict) -> None:
        try:
            r = httpx.post(
                url,
                json=payload,
                headers={"Authorization": f"Bearer {api_key}"},
                timeout=30,
            )
        except httpx.HTTPError as e:
            raise NotificationError(f"{provider} send failed: {e}") from e
        if r.status_code >= 300:
            raise NotificationError(f"{provider} error {r.status_code}: {r.text[:300]}")

    def _send_resend(self, to: str, subject: str, html_body: str):
        """Resend.com HTTP API."""
        payload = {
            "from": self._from_header(),
            "to": [to],
            "subject": subject,
            "html": html_body,
        }
        self._post("Resend", "https://api.resend.com/emails", self.settings.resend_api_key, payload)
        logger.info("Email sent to %s via Resend", to)

    def _send_sendgrid(self, to: str, subject: str, html_body: str):
        s = self.settings
        data = {
            "personalizations": [{"to": [{"email": to}]}],
            "from": {"email": s.from_email, "name": s.from_name},
            "subject": subject,
            "content": [{"type": "text/html", "value": html_body}],
        }
        self._post("SendGrid", "https://api.sendgrid.com/v3/mail/send", s.sendgrid_api_key, data)
        logger.info("Email sent to %s via SendGrid", to)
