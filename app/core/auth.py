"""
Firebase authentication module.
PHI-safe: never log tokens, uid, email, or user data.
"""
import json
import os
import socket
from enum import Enum
from typing import Optional

import firebase_admin
from firebase_admin import auth, credentials
from fastapi import HTTPException, Request, status

from app.core.config import get_settings
from app.core.logging import get_safe_logger

logger = get_safe_logger(__name__)

DEV_UID = "dev_uid"

# Global Firebase app instance
_firebase_app: Optional[firebase_admin.App] = None


class CredentialMode(str, Enum):
    """Firebase credential initialization mode."""
    SERVICE_ACCOUNT_JSON = "service_account_json"
    SERVICE_ACCOUNT_FILE = "service_account_file"
    ADC = "adc"


class AuthErrorCode(str, Enum):
    """
    PHI-safe error codes for authentication failures.
    These codes are safe to log and return to clients.
    """
    CERT_FETCH_FAILED = "CERT_FETCH_FAILED"
    NETWORK_ERROR = "NETWORK_ERROR"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    TOKEN_REVOKED = "TOKEN_REVOKED"
    TOKEN_INVALID = "TOKEN_INVALID"
    PROJECT_MISMATCH = "PROJECT_MISMATCH"
    CLOCK_SKEW = "CLOCK_SKEW"
    UNKNOWN_AUTH_ERROR = "UNKNOWN_AUTH_ERROR"


def init_firebase() -> firebase_admin.App:
    """
    Initialize Firebase Admin SDK singleton.

    Priority order:
    1. FIREBASE_CREDENTIALS_JSON env var (JSON string)
    2. GOOGLE_APPLICATION_CREDENTIALS setting or env var (file path)
    3. Application Default Credentials (ADC)
    """
    global _firebase_app

    if _firebase_app is not None:
        return _firebase_app

    settings = get_settings()
    if not settings.firebase_project_id:
        raise RuntimeError("FIREBASE_PROJECT_ID is required when AUTH_MODE=firebase")

    credential_mode = CredentialMode.ADC
    cred: Optional[credentials.Base] = None
    credentials_path = (
        settings.google_application_credentials
        or os.environ.get("GOOGLE_APPLICATION_CREDENTIALS")
    )

    try:
        if settings.firebase_credentials_json:
            cred = credentials.Certificate(json.loads(settings.firebase_credentials_json))
            credential_mode = CredentialMode.SERVICE_ACCOUNT_JSON
        elif credentials_path:
            cred = credentials.Certificate(credentials_path)
            credential_mode = CredentialMode.SERVICE_ACCOUNT_FILE

        options = {"projectId": settings.firebase_project_id}
        if cred is not None:
            _firebase_app = firebase_admin.initialize_app(cred, options)
        else:
            _firebase_app = firebase_admin.initialize_app(options=options)

        logger.info("Firebase initialized", credential_mode=credential_mode.value)
        return _firebase_app

    except Exception as e:
        logger.error(
            "Failed to initialize Firebase",
            error_code="FIREBASE_INIT_ERROR",
            exception_class=type(e).__name__
        )
        raise


# Checked in order; Expired/Revoked subclass InvalidIdTokenError
_FIREBASE_ERROR_CODES = (
    (auth.ExpiredIdTokenError, AuthErrorCode.TOKEN_EXPIRED),
    (auth.RevokedIdTokenError, AuthErrorCode.TOKEN_REVOKED),
    (auth.CertificateFetchError, AuthErrorCode.CERT_FETCH_FAILED),
    ((socket.timeout, socket.gaierror, ConnectionError), AuthErrorCode.NETWORK_ERROR),
)

# Message fragments of InvalidIdTokenError raised by the Admin SDK
_INVALID_TOKEN_HINTS = (
    (("wrong audience", "aud"), AuthErrorCode.PROJECT_MISMATCH),
    (("issued in the future", "iat"), AuthErrorCode.CLOCK_SKEW),
    (("has expired",), AuthErrorCode.TOKEN_EXPIRED),
)


def _classify_auth_exception(exc: Exception) -> AuthErrorCode:
    """
    Classify Firebase auth exceptions into PHI-safe error codes.
    Exception messages are inspected but never logged.
    """
    for exc_types, code in _FIREBASE_ERROR_CODES:
        if isinstance(exc, exc_types):
            return code

    if isinstance(exc, auth.InvalidIdTokenError):
        message = str(exc).lower()
        for fragments, code in _INVALID_TOKEN_HINTS:
            if any(fragment in message for fragment in fragments):
                return code
        return AuthErrorCode.TOKEN_INVALID

    # Transport errors from google-auth are matched by class name
    class_name = type(exc).__name__.lower()
    if "cert" in class_name:
        return AuthErrorCode.CERT_FETCH_FAILED
    if any(word in class_name for word in ("network", "connection", "timeout")):
        return AuthErrorCode.NETWORK_ERROR

    return AuthErrorCode.UNKNOWN_AUTH_ERROR


def _auth_failed(error_code: AuthErrorCode, exception_class: str) -> HTTPException:
    logger.warning(
        "Token verification failed",
        error_code=error_code.value,
        exception_class=exception_class
    )
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=f"Authentication failed ({error_code.value})"
    )


def verify_token(token: str) -> str:
    """
    Verify a bearer token and return the user's UID.

    - firebase: verifies a Firebase ID token
    - dev: accepts DEV_BEARER_TOKEN and returns a fixed uid

    Raises:
        HTTPException 401 with a PHI-safe error code
    """
    settings = get_settings()

    if settings.auth_mode == "dev":
        if token.strip() == settings.dev_bearer_token:
            return DEV_UID
        raise _auth_failed(AuthErrorCode.TOKEN_INVALID, "DevAuthError")

    if _firebase_app is None:
        init_firebase()

    try:
        decoded_token = auth.verify_id_token(token)
        return decoded_token["uid"]
    except Exception as exc:
        raise _auth_failed(_classify_auth_exception(exc), type(exc).__name__)


def extract_bearer_token(request: Request) -> str:
    """
    Extract Bearer token from Authorization header.

    Raises:
        HTTPException: If header is missing or malformed
    """
    auth_header = request.headers.get("Authorization")

    if not auth_header:
        logger.warning("Missing authorization header", error_code="NO_AUTH_HEADER")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Authorization header"
        )

    parts = auth_header.split(" ")
    if len(parts) != 2 or parts[0].lower() != "bearer":
        logger.warning("Invalid authorization header format", error_code="INVALID_AUTH_FORMAT")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid Authorization header format. Expected: Bearer <token>"
        )

    return parts[1].strip()


async def verify_auth_header(request: Request) -> None:
    """
    Router-level dependency that verifies auth BEFORE body parsing.
    Stores the uid in request.state for rate limiting (never logged).
    """
    token = extract_bearer_token(request)
    request.state.uid = verify_token(token)
