import base64
import io

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from tryon.app import create_app
from tryon.config import ProviderCredentials, Settings
from tryon.core.providers import ProviderDispatcher
from tryon.core.providers.base import VisionProvider
from tryon.core.rate_limit import InMemoryRateLimitStore

GENERATED_IMAGE = "R0VORVJBVEVE"


class FakeProvider(VisionProvider):
    """Records every request and returns a fixed image (or raises `error`)."""

    name = "FAKE"

    def __init__(self, result: str = GENERATED_IMAGE, error: Exception = None):
        super().__init__(ProviderCredentials(key="fake-key", model="fake-model"))
        self.result = result
        self.error = error
        self.calls = []

    async def _generate(self, request):
        self.calls.append(request)
        if self.error is not None:
            raise self.error
        return self.result


def make_settings(**overrides) -> Settings:
    values = dict(
        provider="OPENAI",
        openai=ProviderCredentials(key="sk-test", model="gpt-image-1"),
        google=ProviderCredentials(key=None, model="gemini-2.5-flash-image-preview"),
        daily_limit=100,
        environment="production",
        public_base_url="https://tryon.example.com",
    )
    values.update(overrides)
    return Settings(**values)


def png_bytes(size=(8, 8), color=(255, 0, 0), mode="RGB") -> bytes:
    buffer = io.BytesIO()
    Image.new(mode, size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def png_data_uri(**kwargs) -> str:
    return "data:image/png;base64," + base64.b64encode(png_bytes(**kwargs)).decode("utf-8")


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def app_factory(fake_provider):
    def factory(settings=None, provider=None, daily_limit=None):
        settings = settings or make_settings()
        if daily_limit is not None:
            settings = make_settings(daily_limit=daily_limit, environment=settings.environment)
        return create_app(
            settings=settings,
            dispatcher=ProviderDispatcher(provider or fake_provider),
            rate_limit_store=InMemoryRateLimitStore(points=settings.daily_limit),
        )

    return factory


@pytest.fixture
def client(app_factory):
    with TestClient(app_factory()) as test_client:
        yield test_client
