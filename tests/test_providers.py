import asyncio
import json
from types import SimpleNamespace

import httpx
import pytest

from tryon.config import ProviderCredentials
from tryon.core.errors import ProviderConfigError, ProviderError
from tryon.core.prompt_templates import build_tryon_prompt
from tryon.core.providers import PROVIDERS, ProviderDispatcher, build_provider
from tryon.core.providers.gemini import GeminiProvider
from tryon.core.providers.openai_provider import OpenAIProvider
from tryon.models import TryonRequest

from conftest import FakeProvider, make_settings, png_data_uri

REQUEST = TryonRequest(modelImage="data:image/jpeg;base64,bW9kZWw=", apparelImages=["YXBwYXJlbA=="])


def test_builtin_providers_are_registered():
    assert PROVIDERS["OPENAI"] is OpenAIProvider
    assert PROVIDERS["GOOGLE"] is GeminiProvider


def test_unknown_provider_is_rejected():
    with pytest.raises(ProviderConfigError, match="Unsupported vision provider"):
        build_provider(make_settings(provider="ANTHROPIC"))


def test_selected_provider_without_key_is_rejected():
    with pytest.raises(ProviderConfigError):
        build_provider(make_settings(provider="GOOGLE"))


def test_build_google_provider():
    settings = make_settings(
        provider="GOOGLE", google=ProviderCredentials(key="g-key", model="gemini-test")
    )
    provider = build_provider(settings)

    assert isinstance(provider, GeminiProvider)
    assert provider.model == "gemini-test"


def test_dispatcher_returns_provider_image():
    provider = FakeProvider(result="abc")
    image = asyncio.run(ProviderDispatcher(provider).generate(REQUEST))

    assert image == "abc"
    assert provider.calls == [REQUEST]


def test_mock_model_skips_provider_call():
    provider = OpenAIProvider(ProviderCredentials(key="sk", model="mock"))
    model_image = png_data_uri()
    request = TryonRequest(modelImage=model_image, apparelImages=[model_image])

    assert asyncio.run(provider.generate(request)) == model_image.split(",", 1)[1]


def test_prompt_mentions_apparel_range():
    assert "second image" in build_tryon_prompt(1)
    assert "images 2 to 4" in build_tryon_prompt(3)
    with pytest.raises(ValueError):
        build_tryon_prompt(0)


# --- Gemini ---


def _gemini(handler):
    return GeminiProvider(
        ProviderCredentials(key="g-key", model="gemini-test"),
        transport=httpx.MockTransport(handler),
    )


def test_gemini_sends_prompt_and_images():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["key"] = request.headers["x-goog-api-key"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={"candidates": [{"content": {"parts": [{"inlineData": {"data": "T1VU"}}]}}]},
        )

    assert asyncio.run(_gemini(handler).generate(REQUEST)) == "T1VU"

    assert seen["url"].endswith("/gemini-test:generateContent")
    assert seen["key"] == "g-key"
    parts = seen["body"]["contents"][0]["parts"]
    assert "text" in parts[0]
    assert parts[1]["inline_data"] == {"mime_type": "image/jpeg", "data": "bW9kZWw="}
    assert parts[2]["inline_data"] == {"mime_type": "image/png", "data": "YXBwYXJlbA=="}


def test_gemini_http_error_becomes_provider_error():
    provider = _gemini(lambda request: httpx.Response(503, text="overloaded"))

    with pytest.raises(ProviderError, match="503"):
        asyncio.run(provider.generate(REQUEST))


def test_gemini_without_image_part():
    provider = _gemini(
        lambda request: httpx.Response(
            200, json={"candidates": [{"content": {"parts": [{"text": "sorry"}]}}]}
        )
    )

    with pytest.raises(ProviderError, match="No image data"):
        asyncio.run(provider.generate(REQUEST))


def test_gemini_network_error():
    def handler(request):
        raise httpx.ConnectError("refused")

    with pytest.raises(ProviderError, match="Network error"):
        asyncio.run(_gemini(handler).generate(REQUEST))


# --- OpenAI ---


class FakeImages:
    def __init__(self, data):
        self.data = data
        self.kwargs = None

    async def edit(self, **kwargs):
        self.kwargs = kwargs
        return SimpleNamespace(data=self.data)


def _openai(data):
    images = FakeImages(data)
    client = SimpleNamespace(images=images)
    provider = OpenAIProvider(ProviderCredentials(key="sk", model="gpt-image-1"), client=client)
    return provider, images


def test_openai_uploads_model_and_first_apparel():
    provider, images = _openai([SimpleNamespace(b64_json="T1VU")])

    assert asyncio.run(provider.generate(REQUEST)) == "T1VU"

    uploads = images.kwargs["image"]
    assert [u[0] for u in uploads] == ["model.png", "apparel.png"]
    assert uploads[0][1] == b"model"
    assert uploads[0][2] == "image/jpeg"
    assert images.kwargs["model"] == "gpt-image-1"
    assert images.kwargs["size"] == "1024x1536"


def test_openai_empty_response():
    provider, _ = _openai([])

    with pytest.raises(ProviderError, match="No response data"):
        asyncio.run(provider.generate(REQUEST))


def test_openai_rejects_undecodable_image():
    provider, _ = _openai([SimpleNamespace(b64_json="T1VU")])
    request = TryonRequest(modelImage="not base64!", apparelImages=["YXBwYXJlbA=="])

    with pytest.raises(ProviderError, match="model.png"):
        asyncio.run(provider.generate(request))
