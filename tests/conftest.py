"""Shared fixtures: in-memory host sessions and clean structlog state."""

import threading
from typing import Dict, List, Optional

import pytest
import structlog

from skewwatch.cluster.sessions import Fleet
from skewwatch.errors import SessionError


class FakeSession:
    """Stands in for HostSession without any network access."""

    def __init__(self, host: str, output: bytes = b"100", error: Optional[Exception] = None,
                 delay: float = 0.0, arrivals: Optional[List[str]] = None):
        self.host = host
        self.output = output
        self.error = error
        self.delay = delay
        self.arrivals = arrivals
        self.commands: List[str] = []
        self.closed = False

    def run(self, command: str) -> bytes:
        self.commands.append(command)
        if self.delay:
            threading.Event().wait(self.delay)
        if self.error is not None:
            raise self.error
        if self.arrivals is not None:
            self.arrivals.append(self.host)
        return self.output.strip()

    def close(self) -> None:
        self.closed = True


def make_fleet(times: Dict[str, object]) -> Fleet:
    """Build a Fleet from host -> timestamp (int), raw bytes or exception."""
    sessions = {}
    for host, value in times.items():
        if isinstance(value, Exception):
            sessions[host] = FakeSession(host, error=value)
        elif isinstance(value, bytes):
            sessions[host] = FakeSession(host, output=value)
        else:
            sessions[host] = FakeSession(host, output=str(value).encode())
    return Fleet(sessions)


@pytest.fixture
def fleet_factory():
    return make_fleet


@pytest.fixture
def unreachable():
    return lambda host: SessionError(host, "connection reset")


@pytest.fixture(autouse=True)
def _reset_structlog():
    yield
    structlog.reset_defaults()
