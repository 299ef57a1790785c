"""Tests for the exceptions module."""

from dify2openai.core.exceptions import (
    ConfigurationError,
    InvalidRequestError,
    MissingUserMessageError,
    ProxyError,
    UpstreamError,
)


class TestProxyError:
    """Tests for the base ProxyError exception."""

    def test_creates_error_with_message(self):
        error = ProxyError("test error message")
        assert error.message == "test error message"
        assert str(error) == "test error message"
        assert error.status_code == 500
        assert error.error_type == "internal_server_error"

    def test_to_dict_shape(self):
        error = ProxyError("boom", status_code=503, error_type="custom")
        assert error.to_dict() == {"error": {"message": "boom", "type": "custom", "status": 503}}


class TestInvalidRequestError:
    def test_is_client_fault(self):
        error = InvalidRequestError("bad messages")
        assert error.status_code == 400
        assert error.error_type == "invalid_request_error"

    def test_missing_user_message_default_text(self):
        error = MissingUserMessageError()
        assert error.message == "No user message found"
        assert error.to_dict()["error"]["status"] == 400


class TestUpstreamError:
    def test_keeps_backend_status(self):
        error = UpstreamError("Dify API error 429", status_code=429, body=b"{}")
        assert error.status_code == 429
        assert error.error_type == "upstream_error"
        assert error.body == b"{}"

    def test_defaults_to_500(self):
        assert UpstreamError("unreachable").status_code == 500


def test_configuration_error_is_proxy_error():
    error = ConfigurationError("invalid config")
    assert isinstance(error, ProxyError)
    assert error.message == "invalid config"
