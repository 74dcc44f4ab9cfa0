"""Groq and image gateway providers, with fake clients."""
from types import SimpleNamespace
from unittest.mock import MagicMock

import groq
import httpx
import pytest

from creatorai.core.errors import UpstreamFailure, UpstreamQuotaError, UpstreamRateLimitedError
from creatorai.features.ai.groq_provider import GroqCompletionProvider
from creatorai.features.ai.image_provider import ImageGatewayProvider
from creatorai.features.ai.provider import CompletionRequest, upstream_error_for_status


def _completion(text):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=text))],
        model="llama-test",
    )


def _chunk(text):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=text))])


def _status_error(status):
    request = httpx.Request("POST", "https://api.groq.com/openai/v1/chat/completions")
    response = httpx.Response(status, request=request)
    return groq.APIStatusError("error", response=response, body=None)


def test_status_mapping():
    assert isinstance(upstream_error_for_status(429), UpstreamRateLimitedError)
    assert isinstance(upstream_error_for_status(402), UpstreamQuotaError)
    assert upstream_error_for_status(402).status_code == 503
    assert upstream_error_for_status(500).code == "upstream_error"


def test_groq_complete_json_mode():
    client = MagicMock()
    client.chat.completions.create.return_value = _completion('{"a": 1}')
    provider = GroqCompletionProvider(client=client, model="llama-test")

    result = provider.complete(CompletionRequest.single("sys", "hi", json_output=True, max_tokens=400))

    assert result.text == '{"a": 1}'
    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["response_format"] == {"type": "json_object"}
    assert kwargs["max_tokens"] == 400
    assert kwargs["messages"][0] == {"role": "system", "content": "sys"}


def test_groq_stream_skips_empty_deltas():
    client = MagicMock()
    client.chat.completions.create.return_value = iter([_chunk("Hel"), _chunk(None), _chunk("lo")])
    provider = GroqCompletionProvider(client=client)

    assert list(provider.stream(CompletionRequest.single("sys", "hi"))) == ["Hel", "lo"]
    assert client.chat.completions.create.call_args.kwargs["stream"] is True


def test_groq_empty_choices_is_upstream_failure():
    client = MagicMock()
    client.chat.completions.create.return_value = SimpleNamespace(choices=[], model="llama-test")
    provider = GroqCompletionProvider(client=client)

    with pytest.raises(UpstreamFailure):
        provider.complete(CompletionRequest.single("sys", "hi"))


@pytest.mark.parametrize("status, error_type", [(429, UpstreamRateLimitedError), (402, UpstreamQuotaError), (500, UpstreamFailure)])
def test_groq_errors_translated(status, error_type):
    client = MagicMock()
    client.chat.completions.create.side_effect = _status_error(status)
    provider = GroqCompletionProvider(client=client)

    with pytest.raises(error_type):
        provider.complete(CompletionRequest.single("sys", "hi"))


def test_groq_without_key_fails_on_use(monkeypatch):
    from creatorai.core.config import settings

    monkeypatch.setattr(settings, "GROQ_API_KEY", None)
    provider = GroqCompletionProvider()
    with pytest.raises(UpstreamFailure):
        provider.complete(CompletionRequest.single("sys", "hi"))


def _image_provider(handler):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return ImageGatewayProvider(base_url="https://gateway.test/v1", api_key="key", model="img", client=client)


def test_image_gateway_extracts_images():
    def handler(request):
        assert request.url.path == "/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer key"
        return httpx.Response(
            200,
            json={"choices": [{"message": {"content": "done", "images": [{"image_url": {"url": "data:image/png;base64,AAA"}}]}}]},
        )

    result = _image_provider(handler).complete(CompletionRequest.single("sys", "thumb"))
    assert result.images == ["data:image/png;base64,AAA"]
    assert result.text == "done"


def test_image_gateway_rate_limit():
    provider = _image_provider(lambda request: httpx.Response(429, json={}))
    with pytest.raises(UpstreamRateLimitedError):
        provider.complete(CompletionRequest.single("sys", "thumb"))


def test_image_gateway_unreachable():
    def handler(request):
        raise httpx.ConnectError("refused")

    with pytest.raises(UpstreamFailure):
        _image_provider(handler).complete(CompletionRequest.single("sys", "thumb"))


def test_image_gateway_unconfigured():
    provider = ImageGatewayProvider(base_url="", api_key="")
    with pytest.raises(UpstreamFailure):
        provider.complete(CompletionRequest.single("sys", "thumb"))


@pytest.mark.parametrize(
    "payload",
    [
        {"choices": None},
        {"choices": [{"message": "plain text"}]},
        {"choices": [{"message": {"images": ["not-a-dict"]}}]},
        ["not", "an", "object"],
    ],
)
def test_image_gateway_malformed_payload_is_upstream_failure(payload):
    provider = _image_provider(lambda request: httpx.Response(200, json=payload))
    with pytest.raises(UpstreamFailure):
        provider.complete(CompletionRequest.single("sys", "thumb"))
