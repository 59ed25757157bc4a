"""Tests for the multi-shot runner."""

import asyncio

import pytest

from core.data_models import BackendRequest
from core.errors import ConfigurationError, RateLimitError
from routers import MultiShotRunner
from tests.fakes import FakeBackend, make_dispatcher

REQUEST = BackendRequest(prompt="Write a haiku about queues")


class ConcurrencyCounter(FakeBackend):
    """Tracks how many calls are in flight across all instances"""

    active = 0
    peak = 0

    async def _generate(self, request):
        ConcurrencyCounter.active += 1
        ConcurrencyCounter.peak = max(ConcurrencyCounter.peak, ConcurrencyCounter.active)
        try:
            await asyncio.sleep(0.05)
        finally:
            ConcurrencyCounter.active -= 1
        return await super()._generate(request)


@pytest.mark.asyncio
async def test_one_failure_does_not_cancel_siblings():
    slow = FakeBackend("gpt-4o", delay=5)
    failing = FakeBackend("claude-3-haiku", error=RateLimitError("throttled"))
    ok = FakeBackend("gpt-5-mini", content="queues wait in line")
    runner = MultiShotRunner(make_dispatcher(slow, failing, ok))

    result = await runner.run(REQUEST, ["gpt-4o", "claude-3-haiku", "gpt-5-mini"], timeout=0.1)

    assert result.success
    assert list(result.responses) == ["gpt-4o", "claude-3-haiku", "gpt-5-mini"]
    assert result.responses["gpt-5-mini"].content == "queues wait in line"
    assert result.responses["gpt-4o"].metadata["error_type"] == "timeout"
    assert list(result.successful) == ["gpt-5-mini"]
    assert len(result.errors) == 2
    assert result.total_time_ms < 5000


@pytest.mark.asyncio
async def test_concurrency_is_bounded():
    ConcurrencyCounter.active = 0
    ConcurrencyCounter.peak = 0
    variants = ["gpt-4o", "gpt-5", "gpt-5-mini", "gpt-5-nano", "claude-3-haiku"]
    dispatcher = make_dispatcher(*(ConcurrencyCounter(v) for v in variants))

    result = await MultiShotRunner(dispatcher, max_concurrency=2).run(REQUEST, variants)

    assert result.success and not result.errors
    assert ConcurrencyCounter.peak == 2


@pytest.mark.asyncio
async def test_record_comparison_routes_outcomes_into_experiment():
    dispatcher = make_dispatcher(FakeBackend("gpt-4o"), FakeBackend("gpt-5-mini"))
    runner = MultiShotRunner(dispatcher)

    first = await runner.run(REQUEST, ["gpt-4o", "gpt-5-mini"], record_comparison=True)
    second = await runner.run(REQUEST, ["gpt-5-mini", "gpt-4o"], record_comparison=True)

    assert first.experiment_id == second.experiment_id
    analysis = dispatcher.tracker.analyze(first.experiment_id)
    assert {v: s.sample_size for v, s in analysis.model_stats.items()} == {"gpt-4o": 2, "gpt-5-mini": 2}


@pytest.mark.asyncio
async def test_all_failures_mean_no_success():
    dispatcher = make_dispatcher(FakeBackend("gpt-4o", error=RateLimitError("no")))
    result = await MultiShotRunner(dispatcher).run(REQUEST, ["gpt-4o", "unknown-variant"])

    assert not result.success
    assert result.responses["unknown-variant"].metadata["error_type"] == "configuration"
    assert result.to_dict()["success"] is False


@pytest.mark.asyncio
async def test_requires_variants():
    runner = MultiShotRunner(make_dispatcher())
    with pytest.raises(ConfigurationError):
        await runner.run(REQUEST, [])


def test_rejects_bad_concurrency():
    with pytest.raises(ConfigurationError):
        MultiShotRunner(make_dispatcher(), max_concurrency=0)
