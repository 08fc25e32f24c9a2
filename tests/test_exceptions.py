"""Tests for Hookline exception hierarchy."""

import pytest

from hookline.exceptions import (
    AuthenticationError,
    ConfigurationError,
    DeliveryStateError,
    HooklineError,
    NotFoundError,
    StorageError,
    ValidationError,
)


class TestHooklineError:
    """Tests for the base HooklineError class."""

    def test_error_message(self):
        """Should store and return message."""
        error = HooklineError("Something went wrong")
        assert error.message == "Something went wrong"
        assert str(error) == "Something went wrong"

    def test_error_code(self):
        """Should have default error code."""
        assert HooklineError("test").code == "hookline_error"

    def test_to_dict(self):
        """Should convert to API-friendly dict."""
        assert HooklineError("Something went wrong").to_dict() == {
            "error": {
                "code": "hookline_error",
                "message": "Something went wrong",
            }
        }

    def test_inheritance(self):
        """All custom exceptions should inherit from HooklineError."""
        exceptions = [
            ValidationError("field", "invalid"),
            NotFoundError("subscription", "sub_1"),
            StorageError("failed"),
            ConfigurationError("missing"),
            AuthenticationError("invalid"),
            DeliveryStateError("dlv_1", "success"),
        ]
        for exc in exceptions:
            assert isinstance(exc, HooklineError)
            assert isinstance(exc, Exception)


class TestValidationError:
    """Tests for ValidationError."""

    def test_field_and_message(self):
        """Should store field and prefix the message with it."""
        error = ValidationError("url", "URL scheme should be 'http' or 'https'")
        assert error.field == "url"
        assert error.message == "url: URL scheme should be 'http' or 'https'"
        assert error.code == "validation_error"

    def test_to_dict_includes_field(self):
        """Should include the field in the API body."""
        assert ValidationError("timeout", "too small").to_dict() == {
            "error": {
                "code": "validation_error",
                "field": "timeout",
                "message": "timeout: too small",
            }
        }


class TestNotFoundError:
    """Tests for NotFoundError."""

    def test_resource_info(self):
        """Should store resource type and id."""
        error = NotFoundError("delivery", "dlv_123")
        assert error.resource_type == "delivery"
        assert error.resource_id == "dlv_123"
        assert error.message == "delivery not found: dlv_123"

    def test_to_dict(self):
        """Should include resource info in the API body."""
        result = NotFoundError("subscription", "sub_1").to_dict()
        assert result["error"]["code"] == "not_found"
        assert result["error"]["resource_type"] == "subscription"
        assert result["error"]["resource_id"] == "sub_1"


class TestDeliveryStateError:
    """Tests for DeliveryStateError."""

    def test_message(self):
        """Should name the delivery and its terminal status."""
        error = DeliveryStateError("dlv_9", "failed")
        assert error.delivery_id == "dlv_9"
        assert error.status == "failed"
        assert error.message == "delivery dlv_9 is already failed"


class TestSimpleErrors:
    """Tests for errors carrying only a message."""

    @pytest.mark.parametrize(
        ("exc_class", "code"),
        [
            (StorageError, "storage_error"),
            (ConfigurationError, "configuration_error"),
            (AuthenticationError, "authentication_error"),
        ],
    )
    def test_codes(self, exc_class, code):
        """Each error should carry its own code."""
        error = exc_class("boom")
        assert error.code == code
        assert error.to_dict() == {"error": {"code": code, "message": "boom"}}

    def test_can_be_raised_and_caught_as_base(self):
        """Should be catchable via the base class."""
        with pytest.raises(HooklineError):
            raise StorageError("qdrant unavailable")
