import base64
import hashlib
import logging

from cryptography.fernet import Fernet, InvalidToken

from config import settings

logger = logging.getLogger(__name__)


def _get_fernet() -> Fernet:
    # Derive a 32-byte key from the encryption key setting
    key = hashlib.sha256(settings.ENCRYPTION_KEY.encode()).digest()
    return Fernet(base64.urlsafe_b64encode(key))


def encrypt_credential(secret: str) -> str:
    """Encrypt an AI provider credential for storage on the user profile."""
    cleaned = (secret or "").strip()
    if not cleaned:
        raise ValueError("Credential must not be empty")
    return _get_fernet().encrypt(cleaned.encode()).decode()


def decrypt_credential(encrypted: str | None) -> str | None:
    """Return the plaintext credential, or None when absent or unreadable.

    A token that no longer decrypts (for example after ENCRYPTION_KEY was
    rotated) is treated as "no credential configured".
    """
    if not encrypted:
        return None
    try:
        return _get_fernet().decrypt(encrypted.encode()).decode()
    except InvalidToken:
        logger.warning("Stored AI credential could not be decrypted; ignoring it")
        return None


def mask_credential(secret: str | None) -> str | None:
    if not secret:
        return None
    if len(secret) <= 8:
        return "*" * len(secret)
    return f"{secret[:4]}...{secret[-4:]}"
