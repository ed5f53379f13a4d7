"""Tests for the structured error hierarchy."""

import pytest

from alertspine.core.errors import (
    AlertNotFoundError,
    AlertSpineError,
    ChannelDeliveryFailure,
    ConfigurationError,
    ErrorCategory,
    InvalidTransitionError,
    LockTimeoutError,
    NotFoundError,
    is_retryable,
)


class TestAlertSpineError:
    def test_defaults(self):
        error = AlertSpineError("boom")

        assert error.category is ErrorCategory.INTERNAL
        assert error.retryable is False
        assert error.code == "INTERNAL"

    def test_cause_is_chained(self):
        cause = ValueError("bad")
        error = ChannelDeliveryFailure("send failed", cause=cause)

        assert error.__cause__ is cause
        assert error.to_dict()["cause"] == "ValueError: bad"

    def test_with_context(self):
        error = AlertSpineError("boom").with_context(alert_id="A1", attempt=2)

        assert error.to_dict()["context"] == {"alert_id": "A1", "attempt": 2}


class TestSubclasses:
    def test_invalid_transition(self):
        error = InvalidTransitionError("A1", "resolved", "acknowledge")

        assert error.code == "INVALID_TRANSITION"
        assert "Cannot acknowledge alert A1" in error.message
        assert error.to_dict()["context"]["status"] == "resolved"

    def test_not_found_family(self):
        error = AlertNotFoundError("A1")

        assert isinstance(error, NotFoundError)
        assert error.code == "NOT_FOUND"
        assert error.context.alert_id == "A1"

    def test_configuration_field(self):
        error = ConfigurationError("bad", field_name="threshold")

        assert error.field_name == "threshold"
        assert error.to_dict()["context"] == {"field": "threshold"}

    def test_lock_timeout(self):
        error = LockTimeoutError("pair:r:s", 2.0)

        assert error.code == "LOCK_TIMEOUT"
        assert error.retryable


class TestIsRetryable:
    @pytest.mark.parametrize(
        "error, expected",
        [
            (ChannelDeliveryFailure("x"), True),
            (ChannelDeliveryFailure("x", retryable=False), False),
            (ConfigurationError("x"), False),
            (RuntimeError("x"), False),
        ],
    )
    def test_flags(self, error, expected):
        assert is_retryable(error) is expected
