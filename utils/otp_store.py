from __future__ import annotations

import hmac
import logging
import math
import os
import re
import secrets
import threading
import time
from dataclasses import replace
from typing import Callable, Optional

from models import DEFAULT_PURPOSE, Challenge, OtpOutcome, OtpResult, StatusResult, minutes_label


logger = logging.getLogger(__name__)

OTP_EXP_MIN = int(os.getenv("OTP_EXP_MINUTES", "10"))
OTP_MAX_ATTEMPTS = int(os.getenv("OTP_MAX_ATTEMPTS", "3"))
OTP_SUBJECT = os.getenv("OTP_SUBJECT", "Your Verification OTP")

OTP_MIN = 100000
OTP_MAX = 999999

_EMAIL_RE = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")


class OtpError(Exception):
    """Raised for malformed requests and delivery failures."""

    kind = OtpOutcome.INTERNAL_ERROR
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidInput(OtpError):
    kind = OtpOutcome.INVALID_INPUT
    status_code = 400


class InvalidFormat(OtpError):
    kind = OtpOutcome.INVALID_FORMAT
    status_code = 400


class DeliveryFailed(OtpError):
    kind = OtpOutcome.DELIVERY_FAILED
    status_code = 500


def secure_randint(lo: int, hi: int) -> int:
    """Uniform integer in [lo, hi] from the OS CSPRNG."""
    return lo + secrets.randbelow(hi - lo + 1)


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def render_otp_email(code: str, minutes: int) -> tuple[str, str]:
    html = f"""
    <div style="font-family:Arial,sans-serif;max-width:600px;margin:0 auto">
      <h2>Email Verification</h2>
      <p>Your one-time password for email verification is:</p>
      <div style="background:#f5f5f5;padding:15px;text-align:center;margin:20px 0">
        <span style="font-size:28px;font-weight:700;letter-spacing:5px">{code}</span>
      </div>
      <p>This OTP expires in {minutes_label(minutes)}. Do not share it with anyone.</p>
      <p>If you did not request this verification, you can ignore this email.</p>
    </div>
    """
    text = f"Your OTP is {code}. It expires in {minutes_label(minutes)}."
    return html, text


class OtpStore:
    """
    In-memory registry of pending email challenges.

    All reads and writes go through a single lock, the periodic sweep
    included. Mail delivery runs after the lock is released.
    """

    def __init__(
        self,
        sender: Callable[..., None],
        *,
        clock: Callable[[], float] = time.time,
        randint: Callable[[int, int], int] = secure_randint,
        ttl_minutes: int = OTP_EXP_MIN,
        max_attempts: int = OTP_MAX_ATTEMPTS,
        subject: str = OTP_SUBJECT,
    ):
        self._sender = sender
        self._clock = clock
        self._randint = randint
        self.ttl_minutes = ttl_minutes
        self.max_attempts = max_attempts
        self.subject = subject
        self._challenges: dict[str, Challenge] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._challenges)

    def __contains__(self, email: str) -> bool:
        with self._lock:
            return normalize_email(email) in self._challenges

    def get(self, email: str) -> Optional[Challenge]:
        with self._lock:
            ch = self._challenges.get(normalize_email(email))
            return replace(ch) if ch else None

    def generate(self, email: Optional[str], purpose: Optional[str] = None) -> OtpResult:
        key = normalize_email(email)
        if not key:
            raise InvalidInput("Email is required")
        if not _EMAIL_RE.fullmatch(key):
            raise InvalidFormat("Invalid email format")

        code = str(self._randint(OTP_MIN, OTP_MAX))
        with self._lock:
            self._challenges[key] = Challenge(
                code=code,
                expires_at=self._clock() + self.ttl_minutes * 60,
                purpose=purpose or DEFAULT_PURPOSE,
            )

        html, text = render_otp_email(code, self.ttl_minutes)
        try:
            self._sender(to_email=key, subject=self.subject, html=html, text=text)
        except Exception as exc:
            logger.exception("OTP delivery to %s failed", key)
            raise DeliveryFailed("Failed to send OTP") from exc

        logger.info("OTP sent to %s", key)
        return OtpResult(
            success=True,
            message="OTP sent successfully",
            kind=OtpOutcome.SENT,
            expires_in=minutes_label(self.ttl_minutes),
        )

    def verify(self, email: Optional[str], code: Optional[str]) -> OtpResult:
        key = normalize_email(email)
        # Compared verbatim; a padded code counts as a wrong guess.
        code = code or ""
        if not key or not code:
            raise InvalidInput("Email and OTP are required")

        with self._lock:
            ch = self._challenges.get(key)
            if ch is None:
                return OtpResult(
                    False,
                    "No OTP found for this email. Please request a new OTP.",
                    OtpOutcome.NOT_FOUND,
                )

            if self._clock() > ch.expires_at:
                del self._challenges[key]
                return OtpResult(
                    False,
                    "OTP has expired. Please request a new OTP.",
                    OtpOutcome.EXPIRED,
                )

            if hmac.compare_digest(ch.code.encode("utf-8"), code.encode("utf-8")):
                del self._challenges[key]
                logger.info("OTP verified for %s", key)
                return OtpResult(True, "Email verified successfully", OtpOutcome.VERIFIED)

            ch.attempts += 1
            if ch.attempts >= self.max_attempts:
                del self._challenges[key]
                logger.warning("Too many failed OTP attempts for %s", key)
                return OtpResult(
                    False,
                    "Too many failed attempts. Please request a new OTP.",
                    OtpOutcome.TOO_MANY_ATTEMPTS,
                )
            return OtpResult(
                False,
                "Invalid OTP",
                OtpOutcome.INVALID_CODE,
                attempts_left=self.max_attempts - ch.attempts,
            )

    def status(self, email: Optional[str]) -> StatusResult:
        # Expired challenges are reported as-is until verify or the sweep drops them.
        key = normalize_email(email)
        if not key:
            raise InvalidInput("Email is required")

        with self._lock:
            ch = self._challenges.get(key)
            if ch is None:
                return StatusResult(exists=False, message="No active OTP for this email")
            remaining = _round_half_up((ch.expires_at - self._clock()) / 60)
            return StatusResult(exists=True, expires_in_minutes=remaining, attempts=ch.attempts)

    def reclaim(self) -> int:
        """Delete expired challenges and return how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [k for k, ch in self._challenges.items() if ch.expires_at < now]
            for k in expired:
                del self._challenges[k]

        if expired:
            logger.info("Cleaned up %d expired OTPs", len(expired))
        return len(expired)
