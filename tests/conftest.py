from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from utils.otp_store import OtpStore


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSender:
    def __init__(self):
        self.sent = []
        self.fail = False

    def __call__(self, *, to_email, subject, html, text=None):
        if self.fail:
            raise RuntimeError("smtp down")
        self.sent.append({"to_email": to_email, "subject": subject, "html": html, "text": text})


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def store(clock, sender):
    return OtpStore(sender=sender, clock=clock, ttl_minutes=10, max_attempts=3)


@pytest.fixture
def client(store):
    from main import app
    from store import get_store

    app.dependency_overrides[get_store] = lambda: store
    try:
        yield TestClient(app, raise_server_exceptions=False)
    finally:
        app.dependency_overrides.clear()
