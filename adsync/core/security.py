"""AdSync - Access token encryption.

Stored Meta credentials are Fernet-encrypted at rest. Plaintext tokens only
exist in memory while one account is being reconciled.
"""

from cryptography.fernet import Fernet, InvalidToken

from adsync.config import settings
from adsync.core.logging import get_logger

logger = get_logger("security")


class TokenDecryptionError(Exception):
    """Raised when a stored token cannot be decrypted with the configured key."""


def _cipher(key: str | None = None) -> Fernet:
    key = key or settings.token_encryption_key
    if not key:
        raise TokenDecryptionError(
            "TOKEN_ENCRYPTION_KEY is not set. Generate one with Fernet.generate_key()."
        )
    try:
        return Fernet(key.encode("utf-8"))
    except (ValueError, TypeError) as exc:
        raise TokenDecryptionError(
            "TOKEN_ENCRYPTION_KEY must be a URL-safe base64-encoded 32-byte key"
        ) from exc


def encrypt_token(plaintext: str, key: str | None = None) -> str:
    """Encrypt an access token for storage."""
    return _cipher(key).encrypt(plaintext.encode("utf-8")).decode("utf-8")


def decrypt_token(ciphertext: str, key: str | None = None) -> str:
    """Decrypt a stored access token."""
    try:
        return _cipher(key).decrypt(ciphertext.encode("utf-8")).decode("utf-8")
    except InvalidToken as exc:
        logger.error("Stored token failed integrity check")
        raise TokenDecryptionError("Stored token could not be decrypted") from exc
