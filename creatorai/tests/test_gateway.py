"""
Billable action gateway tests.

Ordering: unknown feature and denied plans never touch the ledger or the
provider; insufficient balance never reaches the provider; upstream failures
keep the deduction unless the refund policy is on.
"""
import json

import pytest

from creatorai.core.errors import (
    AccessDeniedError,
    ConfigurationError,
    InsufficientTokensError,
    UpstreamFailure,
    UpstreamRateLimitedError,
)
from creatorai.features.ai.provider import CompletionRequest
from creatorai.features.gateway.service import BillableActionGateway, BillableActionResult
from creatorai.features.usage.service import list_usage
from creatorai.models.feature import AccessTier, FeatureId
from creatorai.models.plan import Plan
from creatorai.tests.mocks import FakeCompletionProvider


def _invoke(provider):
    def _call(ctx):
        return provider.complete(CompletionRequest.single("sys", "hi")).text

    return _call


@pytest.fixture
def gateway(ledger):
    return BillableActionGateway(ledger, failure_policy="keep")


def test_success_deducts_and_logs_usage(gateway, make_user, ledger):
    make_user("user_1", plan=Plan.CREATOR, tokens=10)
    provider = FakeCompletionProvider(text="ideas")

    outcome = gateway.execute("user_1", FeatureId.NICHE_ANALYZER, _invoke(provider), metadata={"niche": "cooking"})

    assert outcome.result == "ideas"
    assert outcome.tokens_used == 2
    assert outcome.tokens_remaining == 8
    assert outcome.access_tier is AccessTier.FULL
    assert ledger.get_balance("user_1") == 8

    entries = list_usage("user_1")
    assert len(entries) == 1
    assert entries[0].feature == "niche_analyzer"
    assert entries[0].tokens_used == 2
    assert entries[0].metadata == {"niche": "cooking", "accessTier": "FULL"}


def test_response_shape():
    body = BillableActionResult(result={"a": 1}, tokens_used=2, tokens_remaining=3, access_tier=AccessTier.LIMITED).to_response()
    assert body == {"success": True, "result": {"a": 1}, "tokensUsed": 2, "tokensRemaining": 3, "accessTier": "LIMITED"}


def test_limited_tier_is_reported(gateway, make_user):
    make_user("user_1")
    outcome = gateway.execute("user_1", "hook_generator", _invoke(FakeCompletionProvider()))
    assert outcome.access_tier is AccessTier.LIMITED


def test_unknown_feature_touches_nothing(gateway, make_user, ledger):
    make_user("user_1", tokens=10)
    provider = FakeCompletionProvider()

    with pytest.raises(ConfigurationError):
        gateway.execute("user_1", "made_up", _invoke(provider))

    assert provider.calls == 0
    assert ledger.get_balance("user_1") == 10


def test_denied_plan_never_deducts(gateway, make_user, ledger):
    make_user("user_1", tokens=10)
    provider = FakeCompletionProvider()

    with pytest.raises(AccessDeniedError) as exc_info:
        gateway.execute("user_1", FeatureId.BATCH_GENERATION, _invoke(provider))

    assert exc_info.value.details == {"feature": "batch_generation", "requiredPlan": "PRO"}
    assert exc_info.value.message == "Upgrade to PRO to unlock this feature"
    assert provider.calls == 0
    assert ledger.get_balance("user_1") == 10
    assert list_usage("user_1") == []


def test_insufficient_tokens_never_calls_provider(gateway, make_user, ledger):
    make_user("user_1", tokens=4)
    provider = FakeCompletionProvider()

    with pytest.raises(InsufficientTokensError) as exc_info:
        gateway.execute("user_1", FeatureId.IMAGE_GENERATION, _invoke(provider))

    assert exc_info.value.status_code == 402
    assert exc_info.value.message == "You need 5 tokens. You have 4 tokens remaining."
    assert provider.calls == 0
    assert ledger.get_balance("user_1") == 4


def test_precheck_runs_before_deduction(gateway, make_user, ledger):
    make_user("user_1", plan=Plan.CREATOR, tokens=10)

    def precheck(ctx):
        raise AccessDeniedError("nope")

    with pytest.raises(AccessDeniedError):
        gateway.execute("user_1", FeatureId.BRAND_PROFILE, _invoke(FakeCompletionProvider()), precheck=precheck)
    assert ledger.get_balance("user_1") == 10


def test_zero_cost_feature_skips_usage_log(gateway, make_user):
    make_user("user_1", plan=Plan.PRO, tokens=0)
    outcome = gateway.execute("user_1", FeatureId.CONTENT_CALENDAR, _invoke(FakeCompletionProvider()))

    assert outcome.tokens_used == 0
    assert outcome.tokens_remaining == 0
    assert list_usage("user_1") == []


def test_upstream_failure_keeps_deduction(gateway, make_user, ledger):
    make_user("user_1", tokens=10)
    provider = FakeCompletionProvider(error=UpstreamRateLimitedError("Rate limit exceeded. Please try again later."))

    with pytest.raises(UpstreamRateLimitedError) as exc_info:
        gateway.execute("user_1", FeatureId.NICHE_ANALYZER, _invoke(provider))

    assert exc_info.value.status_code == 429
    assert exc_info.value.details["tokensUsed"] == 2
    assert ledger.get_balance("user_1") == 8
    assert len(list_usage("user_1")) == 1


def test_refund_policy_credits_back(make_user, ledger):
    make_user("user_1", tokens=10)
    gateway = BillableActionGateway(ledger, failure_policy="refund")
    provider = FakeCompletionProvider(error=UpstreamFailure("AI provider unavailable"))

    with pytest.raises(UpstreamFailure) as exc_info:
        gateway.execute("user_1", FeatureId.NICHE_ANALYZER, _invoke(provider))

    assert exc_info.value.details["tokensRefunded"] == 2
    assert ledger.get_balance("user_1") == 10
    actions = sorted((e.action, e.tokens_used) for e in list_usage("user_1"))
    assert actions == [("niche_analyzer", 2), ("refund", -2)]


def test_stream_emits_meta_deltas_and_done(gateway, make_user, ledger):
    make_user("user_1", tokens=10)
    provider = FakeCompletionProvider(chunks=["a", "b"])

    deducted, events = gateway.execute_stream(
        "user_1",
        FeatureId.AI_CHAT,
        lambda ctx: provider.stream(None),
    )
    # Deducted before the first event is consumed
    assert deducted.amount == 1
    assert ledger.get_balance("user_1") == 9

    frames = list(events)
    meta = json.loads(frames[0][len("data: "):])
    assert meta == {"type": "meta", "tokensUsed": 1, "tokensRemaining": 9, "accessTier": "LIMITED"}
    assert [json.loads(f[len("data: "):])["content"] for f in frames[1:3]] == ["a", "b"]
    assert frames[-1] == "data: [DONE]\n\n"


def test_stream_upstream_error_becomes_event(gateway, make_user, ledger):
    make_user("user_1", tokens=10)
    provider = FakeCompletionProvider(chunks=["a"], error=UpstreamFailure("AI provider unavailable"))

    _, events = gateway.execute_stream("user_1", FeatureId.AI_CHAT, lambda ctx: provider.stream(None))
    frames = list(events)

    error = json.loads(frames[-1][len("data: "):])
    assert error["type"] == "error"
    assert error["error"] == "upstream_error"
    assert ledger.get_balance("user_1") == 9
