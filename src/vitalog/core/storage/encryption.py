"""Fernet-based field encryption for free-text health data at rest.

Observation notes, medication notes and stop reasons are the only
free-text fields in the data bank; they are encrypted before writing to
SQLite. Values, metric types and timestamps stay plaintext so the
analytics queries can filter and order on them.
"""

from __future__ import annotations

import logging

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)


class EncryptionError(Exception):
    """Raised when encryption/decryption fails."""


class FieldEncryptor:
    """Encrypts and decrypts individual column values with Fernet.

    Usage::

        encryptor = FieldEncryptor(key="...")
        token = encryptor.encrypt_text("knee flared up after run")
        encryptor.decrypt_text(token)  # "knee flared up after run"
    """

    def __init__(self, key: str) -> None:
        """Initialize with a Fernet key.

        Args:
            key: A valid Fernet key string. Generate with
                :meth:`generate_key`.

        Raises:
            EncryptionError: If the key is empty or invalid.
        """
        if not key or not key.strip():
            raise EncryptionError("Encryption key must not be empty")
        try:
            self._fernet = Fernet(key.encode())
        except ValueError as exc:
            raise EncryptionError(f"Invalid encryption key: {exc}") from exc

    def encrypt_text(self, text: str | None) -> str | None:
        """Encrypt a free-text column value. ``None`` stays ``None``."""
        if text is None:
            return None
        return self._fernet.encrypt(text.encode("utf-8")).decode("utf-8")

    def decrypt_text(self, token: str | None) -> str | None:
        """Decrypt a column value written by :meth:`encrypt_text`.

        Raises:
            EncryptionError: If the token is invalid or the key is wrong.
        """
        if token is None:
            return None
        try:
            return self._fernet.decrypt(token.encode("utf-8")).decode("utf-8")
        except InvalidToken as exc:
            raise EncryptionError("Decryption failed: invalid token or wrong key") from exc

    @staticmethod
    def generate_key() -> str:
        """Generate a new Fernet key as a URL-safe base64 string."""
        return Fernet.generate_key().decode("utf-8")
