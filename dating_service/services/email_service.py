"""Transactional email rendering and SMTP delivery."""

from __future__ import annotations

import asyncio
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape
from typing import Any, Dict, Tuple

from ..config import get_settings

LOGGER = logging.getLogger("uvicorn.error")

TEMPLATES = ("welcome", "match", "message", "verification", "passwordReset", "weeklyDigest")


def render_template(template: str, data: Dict[str, Any]) -> Tuple[str, str]:
    """Return ``(subject, html)`` for a named template. Unknown names raise ``ValueError``."""

    def v(key: str) -> str:
        return escape(str(data.get(key, "")))

    if template == "welcome":
        return "Welcome to Dating App! 💕", f"<h1>Welcome, {v('name')}!</h1><p>Start finding your perfect match today.</p>"
    if template == "match":
        return (
            "You've got a new match! 🎉",
            f"<h1>It's a Match!</h1><p>You and {v('matchName')} have liked each other.</p>",
        )
    if template == "message":
        return (
            f"New message from {data.get('senderName', '')}",
            f"<p>{v('senderName')} sent you a message: \"{v('preview')}\"</p>",
        )
    if template == "verification":
        return "Verify your email", f"<p>Your verification code is: <strong>{v('code')}</strong></p>"
    if template == "passwordReset":
        return (
            "Reset your password",
            f"<p>Click <a href=\"{v('resetLink')}\">here</a> to reset your password.</p>",
        )
    if template == "weeklyDigest":
        return (
            "Your weekly update on Dating App 📊",
            (
                f"<h1>Hi {v('name')}!</h1><p>Here's your activity this week:</p>"
                f"<ul><li>❤️ Likes received: {v('likes')}</li><li>🎉 New matches: {v('matches')}</li></ul>"
                "<p>Keep swiping to find your perfect match!</p>"
            ),
        )
    raise ValueError(f"Unknown email template: {template}")


def is_configured() -> bool:
    return bool(get_settings().smtp_host)


def _deliver(to: str, subject: str, html: str) -> None:
    settings = get_settings()
    message = MIMEMultipart("alternative")
    message["Subject"] = subject
    message["From"] = settings.email_from
    message["To"] = to
    message.attach(MIMEText(html, "html", "utf-8"))

    with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=10) as server:
        if settings.smtp_use_tls:
            server.starttls()
        if settings.smtp_user and settings.smtp_password:
            server.login(settings.smtp_user, settings.smtp_password)
        server.sendmail(settings.email_from, [to], message.as_string())


async def send_email(to: str, template: str, data: Dict[str, Any]) -> Dict[str, Any]:
    subject, html = render_template(template, data)
    if not is_configured():
        LOGGER.warning("Email service not configured - skipping %s email", template)
        return {"success": False, "reason": "Email service not configured"}
    await asyncio.to_thread(_deliver, to, subject, html)
    return {"success": True}


__all__ = ["TEMPLATES", "is_configured", "render_template", "send_email"]
