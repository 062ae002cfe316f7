"""
Pytest configuration and shared fixtures.

Points the command service at a throwaway SQLite file before any sosrelay
module is imported, then clears the settings cache so the test values win.
"""

import os
import tempfile

_test_dir = tempfile.mkdtemp(prefix="sosrelay-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_test_dir, 'command.db')}"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["COMMAND_URL"] = "http://command.invalid"

import pytest  # noqa: E402

# Clear settings cache before any app imports to ensure test env vars are used
from sosrelay.config import get_settings  # noqa: E402
get_settings.cache_clear()


class FakeForwarder:
    """
    Stands in for CommandClient. Fails the first `failures` calls with
    UpstreamUnavailable, then returns `ack`. Every payload is recorded.
    """

    def __init__(self, failures: int = 0, ack: str = "ACK|SAFEBASE=BASE_SHOLI|DIST=0.00KM|CAPACITY=AVAILABLE", on_call=None):
        self.failures = failures
        self.ack = ack
        self.on_call = on_call
        self.calls = []

    async def forward(self, payload: str) -> str:
        from sosrelay.errors import UpstreamUnavailable

        self.calls.append(payload)
        if self.on_call is not None:
            self.on_call(payload)
        if len(self.calls) <= self.failures:
            raise UpstreamUnavailable("ConnectError: connection refused")
        return self.ack


class RecordingSleep:
    """Async sleep replacement that records requested delays without waiting."""

    def __init__(self):
        self.delays = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def fake_forwarder_cls():
    return FakeForwarder


@pytest.fixture
def recording_sleep():
    return RecordingSleep()
