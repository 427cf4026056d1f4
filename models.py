from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


DEFAULT_PURPOSE = "email-verification"


def minutes_label(minutes: int) -> str:
    return f"{minutes} minute" if abs(minutes) == 1 else f"{minutes} minutes"


class OtpOutcome(str, Enum):
    SENT = "sent"
    VERIFIED = "verified"
    INVALID_INPUT = "invalid_input"
    INVALID_FORMAT = "invalid_format"
    DELIVERY_FAILED = "delivery_failed"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    INVALID_CODE = "invalid_code"
    TOO_MANY_ATTEMPTS = "too_many_attempts"
    INTERNAL_ERROR = "internal_error"


@dataclass
class Challenge:
    """Pending verification for one email address."""

    code: str
    expires_at: float  # epoch seconds
    purpose: str = DEFAULT_PURPOSE
    attempts: int = 0


@dataclass
class OtpResult:
    success: bool
    message: str
    kind: OtpOutcome
    expires_in: Optional[str] = None
    attempts_left: Optional[int] = None

    def to_dict(self) -> dict:
        out = {"success": self.success, "message": self.message, "kind": self.kind.value}
        if self.expires_in is not None:
            out["expiresIn"] = self.expires_in
        if self.attempts_left is not None:
            out["attemptsLeft"] = self.attempts_left
        return out


@dataclass
class StatusResult:
    exists: bool
    expires_in_minutes: Optional[int] = None
    attempts: Optional[int] = None
    message: Optional[str] = None

    def to_dict(self) -> dict:
        if not self.exists:
            return {"exists": False, "message": self.message}
        return {
            "exists": True,
            "expiresIn": minutes_label(self.expires_in_minutes),
            "attempts": self.attempts,
        }
