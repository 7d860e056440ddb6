"""
Unit tests for bounded conflict retry.

Tests for:
- RetryConfig validation
- calculate_backoff function
- retry_on_conflict function
"""

import pytest

from idmigrate.exceptions import (
    ConfigurationError,
    RegistryConflictError,
    RegistryUnavailableError,
)
from idmigrate.retry import RetryConfig, calculate_backoff, retry_on_conflict

# RetryConfig Tests


class TestRetryConfigCreation:
    """Tests for RetryConfig creation and validation."""

    def test_default_values(self):
        """Test default configuration values."""
        config = RetryConfig()
        assert config.max_retries == 3
        assert config.initial_delay == 0.1
        assert config.max_delay == 2.0
        assert config.exponential_base == 2.0
        assert config.jitter == 0.1

    def test_zero_retries_allowed(self):
        assert RetryConfig(max_retries=0).max_retries == 0

    def test_negative_max_retries_raises(self):
        with pytest.raises(ConfigurationError, match="max_retries"):
            RetryConfig(max_retries=-1)

    def test_negative_initial_delay_raises(self):
        with pytest.raises(ConfigurationError, match="initial_delay"):
            RetryConfig(initial_delay=-0.1)

    def test_max_delay_less_than_initial_raises(self):
        with pytest.raises(ConfigurationError, match="max_delay"):
            RetryConfig(initial_delay=1.0, max_delay=0.5)

    def test_exponential_base_too_low_raises(self):
        with pytest.raises(ConfigurationError, match="exponential_base"):
            RetryConfig(exponential_base=1.0)

    @pytest.mark.parametrize("jitter", [-0.1, 1.5])
    def test_jitter_out_of_range_raises(self, jitter):
        with pytest.raises(ConfigurationError, match="jitter"):
            RetryConfig(jitter=jitter)


# calculate_backoff Tests


class TestCalculateBackoff:
    """Tests for calculate_backoff function."""

    def test_first_attempt(self):
        config = RetryConfig(initial_delay=0.1, jitter=0.0)
        assert calculate_backoff(0, config) == pytest.approx(0.1)

    def test_exponential_growth(self):
        config = RetryConfig(initial_delay=0.1, jitter=0.0)
        assert calculate_backoff(1, config) == pytest.approx(0.2)
        assert calculate_backoff(2, config) == pytest.approx(0.4)

    def test_capped_at_max_delay(self):
        config = RetryConfig(initial_delay=0.1, max_delay=0.3, jitter=0.0)
        assert calculate_backoff(10, config) == pytest.approx(0.3)

    def test_jitter_stays_in_range(self):
        config = RetryConfig(initial_delay=1.0, max_delay=1.0, jitter=0.1)
        for _ in range(50):
            assert 0.9 <= calculate_backoff(0, config) <= 1.1


# retry_on_conflict Tests


class TestRetryOnConflict:
    """Tests for retry_on_conflict function."""

    def test_returns_first_success(self, no_retry_sleep):
        assert retry_on_conflict(lambda: "ok") == "ok"
        assert no_retry_sleep == []

    def test_retries_conflicts_then_succeeds(self, no_retry_sleep):
        calls = []

        def operation():
            calls.append(1)
            if len(calls) < 3:
                raise RegistryConflictError("user", "u-alice")
            return "updated"

        assert retry_on_conflict(operation, RetryConfig(max_retries=3)) == "updated"
        assert len(calls) == 3
        assert len(no_retry_sleep) == 2

    def test_gives_up_after_max_retries(self, no_retry_sleep):
        calls = []

        def operation():
            calls.append(1)
            raise RegistryConflictError("user", "u-alice")

        with pytest.raises(RegistryConflictError):
            retry_on_conflict(operation, RetryConfig(max_retries=2))

        assert len(calls) == 3
        assert len(no_retry_sleep) == 2

    def test_other_errors_are_not_retried(self, no_retry_sleep):
        calls = []

        def operation():
            calls.append(1)
            raise RegistryUnavailableError("database offline")

        with pytest.raises(RegistryUnavailableError):
            retry_on_conflict(operation)

        assert len(calls) == 1
        assert no_retry_sleep == []
