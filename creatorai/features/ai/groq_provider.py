"""Groq-backed text completion provider."""
import logging
from typing import Any, Dict, Iterator, Optional

import groq

from creatorai.core.config import settings
from creatorai.core.errors import UpstreamFailure
from creatorai.features.ai.provider import (
    CompletionRequest,
    CompletionResult,
    upstream_error_for_status,
)


logger = logging.getLogger(__name__)


def _translate(exc: Exception) -> UpstreamFailure:
    if isinstance(exc, groq.APIStatusError):
        return upstream_error_for_status(exc.status_code)
    return UpstreamFailure("AI provider unavailable")


class GroqCompletionProvider:
    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, client: Any = None):
        self.model = model or settings.GROQ_MODEL
        self._api_key = api_key
        self._client = client

    @property
    def client(self) -> Any:
        # Built on first call so unconfigured deployments still answer 402/403 first
        if self._client is None:
            key = self._api_key or settings.GROQ_API_KEY
            if not key:
                raise UpstreamFailure("GROQ_API_KEY not configured")
            self._client = groq.Groq(api_key=key)
        return self._client

    def _params(self, request: CompletionRequest) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "messages": request.chat_messages(),
            "model": self.model,
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
        }
        if request.json_output:
            params["response_format"] = {"type": "json_object"}
        return params

    def complete(self, request: CompletionRequest) -> CompletionResult:
        try:
            response = self.client.chat.completions.create(**self._params(request))
        except groq.APIError as e:
            logger.warning("[groq] completion failed", extra={"error_code": type(e).__name__})
            raise _translate(e)

        if not response.choices:
            raise UpstreamFailure("AI provider returned no choices")
        text = response.choices[0].message.content or ""
        return CompletionResult(text=text, model=getattr(response, "model", self.model))

    def stream(self, request: CompletionRequest) -> Iterator[str]:
        try:
            chunks = self.client.chat.completions.create(stream=True, **self._params(request))
            for chunk in chunks:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    yield delta
        except groq.APIError as e:
            logger.warning("[groq] stream failed", extra={"error_code": type(e).__name__})
            raise _translate(e)
