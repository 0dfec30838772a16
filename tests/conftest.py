"""Shared fixtures for all tests."""

import httpx
import pytest

from poolsnap.api.analysis_client import AnalysisClient
from poolsnap.core.images import LocalImageAllocator, SelectedImage
from poolsnap.core.message_store import ConversationStore
from poolsnap.session.context import SessionContext
from poolsnap.session.identity import IdentityProvider


class FakeIdentity(IdentityProvider):
    """Identity provider with fixed answers."""

    def __init__(self, sub="auth0|user-1", token="id-token-abc", name="ege sumer", error=None):
        self.sub = sub
        self.token = token
        self.name = name
        self.error = error
        self.token_calls = 0

    def subject(self):
        return self.sub

    def display_name(self):
        return self.name

    async def get_token(self):
        self.token_calls += 1
        if self.error is not None:
            raise self.error
        return self.token


@pytest.fixture
def identity() -> FakeIdentity:
    return FakeIdentity()


@pytest.fixture
def allocator(tmp_path) -> LocalImageAllocator:
    return LocalImageAllocator(tmp_path / "images")


@pytest.fixture
def store() -> ConversationStore:
    return ConversationStore()


@pytest.fixture
def context(identity, store, allocator) -> SessionContext:
    return SessionContext(identity=identity, store=store, allocator=allocator)


@pytest.fixture
def pool_photo() -> SelectedImage:
    return SelectedImage(filename="pool.jpg", content=b"\xff\xd8\xff\xe0fake-jpeg", content_type="image/jpeg")


@pytest.fixture
async def make_analysis_client():
    """Build AnalysisClients whose HTTP traffic goes to ``handler``; closed after the test."""
    opened: list[httpx.AsyncClient] = []

    def _make(handler) -> AnalysisClient:
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        opened.append(http)
        return AnalysisClient(base_url="https://hooks.test/webhook", timeout=5, http=http)

    yield _make
    for http in opened:
        await http.aclose()


@pytest.fixture
def srcdoc_reply() -> str:
    return '<div srcdoc="First part"></div><div srcdoc="Second &amp; third"></div>'


@pytest.fixture
def make_identity():
    return FakeIdentity
