"""Fernet encryption helpers for personal data stored at rest (phone numbers)."""

from cryptography.fernet import Fernet, InvalidToken

from easyscrapy.config import get_settings


def _get_fernet() -> Fernet:
    settings = get_settings()
    return Fernet(settings.fernet_key.encode())


def encrypt(plaintext: str) -> str:
    """Encrypt a string and return the ciphertext as a UTF-8 string."""
    return _get_fernet().encrypt(plaintext.encode()).decode()


def decrypt(ciphertext: str) -> str:
    """Decrypt a Fernet ciphertext string back to plaintext."""
    return _get_fernet().decrypt(ciphertext.encode()).decode()


def mask_msisdn(ciphertext: str) -> str:
    """Decrypt a stored MSISDN and keep only its last three digits visible."""
    try:
        msisdn = decrypt(ciphertext)
    except InvalidToken:
        return "***"
    return "*" * max(len(msisdn) - 3, 0) + msisdn[-3:]
