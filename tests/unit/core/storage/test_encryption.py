"""Tests for the FieldEncryptor (Fernet-based note encryption)."""

from __future__ import annotations

import pytest

from vitalog.core.storage.encryption import EncryptionError, FieldEncryptor


@pytest.fixture
def key() -> str:
    return FieldEncryptor.generate_key()


@pytest.fixture
def encryptor(key: str) -> FieldEncryptor:
    return FieldEncryptor(key)


class TestRoundTrip:
    def test_text_round_trip(self, encryptor: FieldEncryptor):
        token = encryptor.encrypt_text("knee flared up after run")
        assert isinstance(token, str)
        assert "knee" not in token
        assert encryptor.decrypt_text(token) == "knee flared up after run"

    def test_unicode_round_trip(self, encryptor: FieldEncryptor):
        text = "½ tablet, müde"
        assert encryptor.decrypt_text(encryptor.encrypt_text(text)) == text

    def test_none_stays_none(self, encryptor: FieldEncryptor):
        assert encryptor.encrypt_text(None) is None
        assert encryptor.decrypt_text(None) is None

    def test_same_text_gives_different_tokens(self, encryptor: FieldEncryptor):
        assert encryptor.encrypt_text("x") != encryptor.encrypt_text("x")


class TestKeyHandling:
    def test_empty_key_rejected(self):
        with pytest.raises(EncryptionError, match="must not be empty"):
            FieldEncryptor("")

    def test_whitespace_key_rejected(self):
        with pytest.raises(EncryptionError):
            FieldEncryptor("   ")

    def test_invalid_key_rejected(self):
        with pytest.raises(EncryptionError, match="Invalid encryption key"):
            FieldEncryptor("not-a-fernet-key")

    def test_wrong_key_cannot_decrypt(self, encryptor: FieldEncryptor):
        token = encryptor.encrypt_text("secret")
        other = FieldEncryptor(FieldEncryptor.generate_key())
        with pytest.raises(EncryptionError, match="Decryption failed"):
            other.decrypt_text(token)

    def test_corrupt_token_rejected(self, encryptor: FieldEncryptor):
        with pytest.raises(EncryptionError):
            encryptor.decrypt_text("garbage")
