"""
Unit tests for auth module.
PHI-safe: tests use mock tokens, never real credentials.
"""
import pytest
from unittest.mock import patch, MagicMock
from fastapi import HTTPException, Request

from app.core.auth import (
    DEV_UID,
    AuthErrorCode,
    _classify_auth_exception,
    extract_bearer_token,
    init_firebase,
    verify_auth_header,
    verify_token,
)
from firebase_admin import auth


def _request_with_header(value):
    mock_request = MagicMock(spec=Request)
    mock_request.headers.get.return_value = value
    return mock_request


class TestExtractBearerToken:
    """Tests for extract_bearer_token function."""

    def test_missing_authorization_header(self):
        """Should return 401 with 'Missing Authorization header' message."""
        with pytest.raises(HTTPException) as exc_info:
            extract_bearer_token(_request_with_header(None))

        assert exc_info.value.status_code == 401
        assert exc_info.value.detail == "Missing Authorization header"

    def test_invalid_format_no_bearer(self):
        with pytest.raises(HTTPException) as exc_info:
            extract_bearer_token(_request_with_header("Basic abc123"))

        assert exc_info.value.status_code == 401
        assert "Invalid Authorization header format" in exc_info.value.detail

    def test_invalid_format_extra_parts(self):
        with pytest.raises(HTTPException) as exc_info:
            extract_bearer_token(_request_with_header("Bearer token extra"))

        assert exc_info.value.status_code == 401

    def test_valid_bearer_token(self):
        assert extract_bearer_token(_request_with_header("Bearer valid_token_here")) == "valid_token_here"

    def test_bearer_case_insensitive(self):
        assert extract_bearer_token(_request_with_header("BEARER valid_token")) == "valid_token"


class TestVerifyTokenFirebase:
    """Firebase mode: every failure maps to 401 with a PHI-safe code."""

    @pytest.mark.parametrize(
        "exc, code",
        [
            (auth.InvalidIdTokenError("Invalid token"), "TOKEN_INVALID"),
            (auth.ExpiredIdTokenError("Token expired", cause=None), "TOKEN_EXPIRED"),
            (auth.RevokedIdTokenError("Token revoked"), "TOKEN_REVOKED"),
            (auth.CertificateFetchError("Cannot fetch certs", cause=None), "CERT_FETCH_FAILED"),
        ],
    )
    @patch('app.core.auth.get_settings')
    @patch('app.core.auth._firebase_app', MagicMock())
    @patch('app.core.auth.auth.verify_id_token')
    def test_failures_return_401_with_error_code(self, mock_verify, mock_settings, exc, code):
        mock_settings.return_value.auth_mode = "firebase"
        mock_verify.side_effect = exc

        with pytest.raises(HTTPException) as exc_info:
            verify_token("mock_token")

        assert exc_info.value.status_code == 401
        assert code in exc_info.value.detail

    @patch('app.core.auth.get_settings')
    @patch('app.core.auth._firebase_app', MagicMock())
    @patch('app.core.auth.auth.verify_id_token')
    def test_valid_token_returns_uid(self, mock_verify, mock_settings):
        mock_settings.return_value.auth_mode = "firebase"
        mock_verify.return_value = {"uid": "mock_uid_123"}

        assert verify_token("valid_mock_token") == "mock_uid_123"
        mock_verify.assert_called_once_with("valid_mock_token")

    @patch('app.core.auth.get_settings')
    @patch('app.core.auth._firebase_app', MagicMock())
    @patch('app.core.auth.auth.verify_id_token')
    def test_exception_detail_does_not_contain_token(self, mock_verify, mock_settings):
        mock_settings.return_value.auth_mode = "firebase"
        mock_verify.side_effect = auth.InvalidIdTokenError("bad token content")

        with pytest.raises(HTTPException) as exc_info:
            verify_token("my_secret_token_12345")

        assert "my_secret_token_12345" not in exc_info.value.detail
        assert "Authentication failed" in exc_info.value.detail


class TestClassifyAuthException:

    def test_wrong_audience_is_project_mismatch(self):
        exc = auth.InvalidIdTokenError("wrong audience (aud)")
        assert _classify_auth_exception(exc) == AuthErrorCode.PROJECT_MISMATCH

    def test_issued_in_future_is_clock_skew(self):
        exc = auth.InvalidIdTokenError("issued in the future (iat)")
        assert _classify_auth_exception(exc) == AuthErrorCode.CLOCK_SKEW

    def test_connection_error_is_network_error(self):
        assert _classify_auth_exception(ConnectionError("refused")) == AuthErrorCode.NETWORK_ERROR

    def test_unknown_exception(self):
        assert _classify_auth_exception(ValueError("x")) == AuthErrorCode.UNKNOWN_AUTH_ERROR


class TestDevAuthMode:
    """Tests for dev auth mode (AUTH_MODE=dev)."""

    @patch('app.core.auth.get_settings')
    def test_valid_dev_token_returns_dev_uid(self, mock_settings):
        mock_settings.return_value.auth_mode = "dev"
        mock_settings.return_value.dev_bearer_token = "my-custom-secret"

        assert verify_token("my-custom-secret") == DEV_UID

    @patch('app.core.auth.get_settings')
    @patch('app.core.auth.auth.verify_id_token')
    def test_invalid_dev_token_returns_401_without_firebase(self, mock_verify, mock_settings):
        mock_settings.return_value.auth_mode = "dev"
        mock_settings.return_value.dev_bearer_token = "dev-token"

        with pytest.raises(HTTPException) as exc_info:
            verify_token("wrong-token")

        assert exc_info.value.status_code == 401
        assert "TOKEN_INVALID" in exc_info.value.detail
        mock_verify.assert_not_called()

    @pytest.mark.asyncio
    @patch('app.core.auth.get_settings')
    async def test_verify_auth_header_stores_uid(self, mock_settings):
        mock_settings.return_value.auth_mode = "dev"
        mock_settings.return_value.dev_bearer_token = "dev-token"
        request = _request_with_header("Bearer dev-token")

        await verify_auth_header(request)

        assert request.state.uid == DEV_UID


class TestInitFirebase:

    @patch('app.core.auth.get_settings')
    @patch('app.core.auth._firebase_app', None)
    def test_project_id_required(self, mock_settings):
        mock_settings.return_value.firebase_project_id = None

        with pytest.raises(RuntimeError):
            init_firebase()

    @patch('app.core.auth.get_settings')
    @patch('app.core.auth._firebase_app', None)
    @patch('app.core.auth.firebase_admin.initialize_app')
    def test_adc_used_without_credentials(self, mock_init, mock_settings):
        mock_settings.return_value.firebase_project_id = "demo-project"
        mock_settings.return_value.firebase_credentials_json = None
        mock_settings.return_value.google_application_credentials = None

        with patch.dict('os.environ', {}, clear=False) as env:
            env.pop("GOOGLE_APPLICATION_CREDENTIALS", None)
            init_firebase()

        mock_init.assert_called_once_with(options={"projectId": "demo-project"})
