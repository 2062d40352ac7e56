"""
Testes de circuit breaker e retry policy.
"""

from unittest.mock import AsyncMock

import pytest

from app.services.discovery.exceptions import ProviderTimeout, ProviderTransportError
from app.services.discovery_manager.circuit_breaker import CircuitBreaker, CircuitState
from app.services.discovery_manager.retry_policy import RetryPolicy, parse_retry_after
from tests.fakes import FakeMonotonic


class TestCircuitBreaker:
    def test_opens_after_threshold_and_recovers(self):
        clock = FakeMonotonic()
        breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=30, clock=clock)

        breaker.record_failure("brave")
        assert breaker.allow_request("brave")
        breaker.record_failure("brave")
        assert breaker.get_state("brave") == CircuitState.OPEN
        assert not breaker.allow_request("brave")

        clock.advance(30)
        assert breaker.allow_request("brave")
        # Apenas um teste em HALF_OPEN
        assert not breaker.allow_request("brave")

        breaker.record_success("brave")
        assert breaker.get_state("brave") == CircuitState.CLOSED
        assert breaker.allow_request("brave")

    def test_failure_in_half_open_reopens(self):
        clock = FakeMonotonic()
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=10, clock=clock)

        breaker.record_failure("serper")
        clock.advance(10)
        assert breaker.allow_request("serper")
        breaker.record_failure("serper")

        assert breaker.get_state("serper") == CircuitState.OPEN
        assert breaker.get_provider_status("serper")["remaining_timeout"] == 10

    def test_providers_are_isolated(self):
        breaker = CircuitBreaker(failure_threshold=1)
        breaker.record_failure("brave")

        assert not breaker.allow_request("brave")
        assert breaker.allow_request("google_cse")


class TestRetryAfter:
    @pytest.mark.parametrize("value,expected", [
        ("3", 3.0),
        ("120", 10.0),
        ("0", None),
        ("abc", None),
        ("", None),
        (None, None),
    ])
    def test_parse(self, value, expected):
        assert parse_retry_after(value, max_seconds=10.0) == expected

    def test_http_date_in_past_is_ignored(self):
        assert parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT") is None


class TestRetryPolicy:
    def test_should_retry(self):
        policy = RetryPolicy(max_attempts=3)

        assert policy.should_retry(ProviderTimeout("brave"), 1)
        assert policy.should_retry(ProviderTransportError("brave", "500"), 2)
        assert not policy.should_retry(ProviderTransportError("brave", "403", retryable=False), 1)
        assert not policy.should_retry(ProviderTimeout("brave"), 3)
        assert not policy.should_retry(ValueError("x"), 1)

    def test_single_attempt_never_retries(self):
        assert not RetryPolicy().should_retry(ProviderTimeout("brave"), 1)

    def test_delay_honours_retry_after_with_cap(self):
        policy = RetryPolicy(max_attempts=3, retry_after_max=5.0)

        assert policy.get_delay(1, ProviderTransportError("brave", retry_after=2.5)) == 2.5
        assert policy.get_delay(1, ProviderTransportError("brave", retry_after=60)) == 5.0

    def test_exponential_backoff_is_capped(self):
        policy = RetryPolicy(max_attempts=10, base_delay=1.0, max_delay=4.0, jitter=0.0)

        assert policy.get_delay(1) == 1.0
        assert policy.get_delay(2) == 2.0
        assert policy.get_delay(5) == 4.0

    @pytest.mark.asyncio
    async def test_wait_uses_injected_sleep(self):
        sleep = AsyncMock()
        policy = RetryPolicy(max_attempts=2, base_delay=0.5, jitter=0.0, sleep=sleep)

        delay = await policy.wait(1)

        assert delay == 0.5
        sleep.assert_awaited_once_with(0.5)

    def test_from_config_overrides(self):
        policy = RetryPolicy.from_config({"max_attempts": 3, "base_delay": 0.1})
        assert policy.max_attempts == 3
        assert policy.base_delay == 0.1
        assert policy.retry_after_max == 10.0
