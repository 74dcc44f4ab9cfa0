"""
Image-capable completion provider.

Talks to an OpenAI-compatible chat completions gateway that can return image
payloads (`modalities: ["image", "text"]`). Used for thumbnail generation,
which the text provider cannot serve.
"""
import logging
from typing import Iterator, Optional

import httpx

from creatorai.core.config import settings
from creatorai.core.errors import UpstreamFailure
from creatorai.features.ai.provider import (
    CompletionRequest,
    CompletionResult,
    upstream_error_for_status,
)


logger = logging.getLogger(__name__)


class ImageGatewayProvider:
    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.base_url = (base_url or settings.AI_GATEWAY_URL or "").rstrip("/")
        self.api_key = api_key or settings.AI_GATEWAY_API_KEY
        self.model = model or settings.AI_IMAGE_MODEL
        self._client = client

    @property
    def client(self) -> httpx.Client:
        if not self.base_url or not self.api_key:
            raise UpstreamFailure("AI image gateway not configured")
        if self._client is None:
            self._client = httpx.Client(timeout=settings.AI_REQUEST_TIMEOUT_SECONDS)
        return self._client

    def complete(self, request: CompletionRequest) -> CompletionResult:
        client = self.client
        payload = {
            "model": self.model,
            "messages": request.chat_messages(),
            "modalities": ["image", "text"],
        }
        try:
            response = client.post(
                f"{self.base_url}/chat/completions",
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        except httpx.HTTPError as e:
            logger.warning("[image] gateway unreachable", extra={"error_code": type(e).__name__})
            raise UpstreamFailure("AI provider unavailable")

        if response.status_code >= 400:
            logger.warning("[image] gateway error", extra={"status": response.status_code})
            raise upstream_error_for_status(response.status_code)

        try:
            message = response.json()["choices"][0]["message"]
            images = [
                image["image_url"]["url"]
                for image in message.get("images") or []
                if image.get("image_url", {}).get("url")
            ]
            text = message.get("content") or ""
        except (ValueError, KeyError, IndexError, TypeError, AttributeError):
            logger.warning("[image] unexpected gateway payload", extra={"status": response.status_code})
            raise UpstreamFailure("AI provider returned an unexpected payload")

        return CompletionResult(text=text, images=images, model=self.model)

    def stream(self, request: CompletionRequest) -> Iterator[str]:
        yield self.complete(request).text
