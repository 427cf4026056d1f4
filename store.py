from __future__ import annotations

from utils.mailer import send_email
from utils.otp_store import OtpStore


# One store per process; challenges are not shared across workers.
otp_store = OtpStore(sender=send_email)


def get_store() -> OtpStore:
    return otp_store
