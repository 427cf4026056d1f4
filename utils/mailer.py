from __future__ import annotations

import logging
import os
import smtplib
from email.message import EmailMessage
from typing import Optional

import requests


logger = logging.getLogger(__name__)

BREVO_URL = "https://api.brevo.com/v3/smtp/email"


def _from_email() -> str:
    from_email = (
        os.getenv("BREVO_FROM")
        or os.getenv("EMAIL_FROM")
        or os.getenv("EMAIL_USER")
    )
    if not from_email:
        raise RuntimeError("BREVO_FROM (or EMAIL_FROM/EMAIL_USER) is not set")
    return from_email


def _send_brevo(api_key: str, *, to_email: str, subject: str, html: str, text: Optional[str]) -> None:
    payload = {
        "sender": {"email": _from_email(), "name": os.getenv("SENDER_NAME", "OTP Service")},
        "to": [{"email": to_email}],
        "subject": subject,
        "htmlContent": html,
    }
    if text:
        payload["textContent"] = text

    resp = requests.post(
        BREVO_URL,
        headers={
            "accept": "application/json",
            "api-key": api_key,
            "content-type": "application/json",
        },
        json=payload,
        timeout=15,
    )
    if resp.status_code >= 300:
        raise RuntimeError(f"Brevo send failed ({resp.status_code}): {resp.text}")


def _send_smtp(user: str, password: str, *, to_email: str, subject: str, html: str, text: Optional[str]) -> None:
    msg = EmailMessage()
    msg["From"] = os.getenv("EMAIL_FROM") or user
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(text or "")
    msg.add_alternative(html, subtype="html")

    host = os.getenv("SMTP_HOST", "smtp.gmail.com")
    port = int(os.getenv("SMTP_PORT", "587"))
    with smtplib.SMTP(host, port, timeout=15) as server:
        server.starttls()
        server.login(user, password)
        server.send_message(msg)


def send_email(*, to_email: str, subject: str, html: str, text: Optional[str] = None) -> None:
    """
    Sends a transactional email. Raises on any failure.

    Backend is picked from the environment:
      - MAIL_BACKEND=console: log only (local dev)
      - BREVO_API_KEY: Brevo transactional API
      - EMAIL_USER + EMAIL_PASS: SMTP with STARTTLS (SMTP_HOST/SMTP_PORT)
    """
    if os.getenv("MAIL_BACKEND", "").strip().lower() == "console":
        logger.info("[console mail] to=%s subject=%r\n%s", to_email, subject, text or html)
        return

    api_key = os.getenv("BREVO_API_KEY")
    if api_key:
        _send_brevo(api_key, to_email=to_email, subject=subject, html=html, text=text)
        return

    user = os.getenv("EMAIL_USER")
    password = os.getenv("EMAIL_PASS")
    if user and password:
        _send_smtp(user, password, to_email=to_email, subject=subject, html=html, text=text)
        return

    raise RuntimeError("No mail transport configured (set BREVO_API_KEY or EMAIL_USER/EMAIL_PASS)")
