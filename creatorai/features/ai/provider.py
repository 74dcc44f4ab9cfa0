"""
Completion provider protocol.

The gateway treats AI generation as an opaque, unreliable capability.
Providers translate their SDK/HTTP failures into the UpstreamFailure family
so callers can tell retryable provider errors apart from entitlement errors.
"""
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Protocol

from creatorai.core.errors import UpstreamFailure, UpstreamQuotaError, UpstreamRateLimitedError

RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please try again later."
QUOTA_MESSAGE = "Usage limit reached. Please add credits."


@dataclass(frozen=True)
class CompletionRequest:
    system: str
    messages: List[Dict[str, str]]
    json_output: bool = False
    max_tokens: int = 1500
    temperature: float = 0.8

    @classmethod
    def single(cls, system: str, user_content: str, **kwargs) -> "CompletionRequest":
        return cls(system=system, messages=[{"role": "user", "content": user_content}], **kwargs)

    def chat_messages(self) -> List[Dict[str, str]]:
        return [{"role": "system", "content": self.system}, *self.messages]


@dataclass(frozen=True)
class CompletionResult:
    text: str
    images: List[str] = field(default_factory=list)
    model: Optional[str] = None


class CompletionProvider(Protocol):
    def complete(self, request: CompletionRequest) -> CompletionResult:
        """
        Run a completion.

        Raises:
            UpstreamRateLimitedError: Provider throttled the request
            UpstreamQuotaError: Provider account is out of credits
            UpstreamFailure: Any other provider error
        """
        ...

    def stream(self, request: CompletionRequest) -> Iterator[str]:
        """Yield text deltas; raises the same errors as complete()."""
        ...


def upstream_error_for_status(status_code: Optional[int], detail: str = "") -> UpstreamFailure:
    if status_code == 429:
        return UpstreamRateLimitedError(RATE_LIMIT_MESSAGE)
    if status_code == 402:
        return UpstreamQuotaError(QUOTA_MESSAGE)
    suffix = f" ({status_code})" if status_code else ""
    return UpstreamFailure(f"AI provider error{suffix}{': ' + detail if detail else ''}")
