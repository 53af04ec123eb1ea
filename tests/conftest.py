import pytest

from shclink.config import ServiceConfig
from shclink.gnap.signing import SignedClient

PUBLIC_URL = "https://shclink.example.org"


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config(clock):
    return ServiceConfig(public_url=PUBLIC_URL, now_func=clock)


@pytest.fixture
def make_client(clock):
    """Factory for signing clients that share the test clock."""
    def _make(name: str = "client") -> SignedClient:
        return SignedClient(display={"name": name}, clock=clock)
    return _make
