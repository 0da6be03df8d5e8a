"""Firebase Admin SDK bootstrap: identity provider and Firestore access."""

import json
import os

import firebase_admin
from firebase_admin import auth, credentials, firestore_async
from google.cloud.firestore import AsyncClient
from starlette.concurrency import run_in_threadpool
from structlog import get_logger

logger = get_logger(__name__)

# Tolerated clock difference between us and the token issuer
TOKEN_CLOCK_SKEW_SECONDS = 10

_firebase_app: firebase_admin.App | None = None


def _load_credentials(
    credentials_path: str | None, config_json: str | None
) -> credentials.Base | None:
    """
    Pick service account credentials.

    Raw JSON wins over a file path; None means fall back to application
    default credentials.
    """
    if config_json:
        logger.info("firebase_credentials_source", source="json")
        return credentials.Certificate(json.loads(config_json))
    if credentials_path and os.path.exists(credentials_path):
        logger.info("firebase_credentials_source", source="file", path=credentials_path)
        return credentials.Certificate(credentials_path)
    if credentials_path:
        logger.warning("firebase_credentials_file_missing", path=credentials_path)
    logger.info("firebase_credentials_source", source="application_default")
    return None


def initialize_firebase(
    firebase_credentials_path: str | None = None, firebase_config_json: str | None = None
) -> firebase_admin.App:
    """
    Initialize the Firebase Admin SDK once per process.

    Args:
        firebase_credentials_path: Path to a service account JSON file
        firebase_config_json: Raw service account JSON, as injected by the host

    Returns:
        The initialized app
    """
    global _firebase_app

    if _firebase_app is None:
        cred = _load_credentials(firebase_credentials_path, firebase_config_json)
        _firebase_app = firebase_admin.initialize_app(cred)
    return _firebase_app


def get_firebase_app() -> firebase_admin.App:
    """
    Get the Firebase app instance.

    Raises:
        RuntimeError: If Firebase is not initialized
    """
    if _firebase_app is None:
        raise RuntimeError("Firebase not initialized. Call initialize_firebase() first.")
    return _firebase_app


def is_firebase_initialized() -> bool:
    return _firebase_app is not None


def get_firestore_client() -> AsyncClient:
    """Async Firestore client bound to the Firebase app."""
    return firestore_async.client(get_firebase_app())


async def verify_firebase_token(id_token: str) -> dict:
    """
    Verify a Firebase ID token.

    The returned claims are a snapshot taken when the token was minted;
    custom claims changed since then only show up after a token refresh.

    Raises:
        ValueError: If the token is invalid, expired or revoked
    """
    try:
        decoded_token = await run_in_threadpool(
            auth.verify_id_token, id_token, get_firebase_app(), False, TOKEN_CLOCK_SKEW_SECONDS
        )
    except (auth.InvalidIdTokenError, auth.ExpiredIdTokenError, auth.RevokedIdTokenError) as e:
        logger.warning("firebase_token_rejected", error=str(e))
        raise ValueError(f"Invalid Firebase ID token: {e!s}") from e
    except (auth.CertificateFetchError, RuntimeError) as e:
        logger.error("firebase_token_verification_failed", error=str(e))
        raise ValueError(f"Token verification failed: {e!s}") from e

    logger.debug("firebase_token_verified", uid=decoded_token.get("uid"))
    return decoded_token
