"""Tests for the at-rest encryption service."""

import pytest
from cryptography.fernet import Fernet, InvalidToken

from shared.encryption import EncryptionService


@pytest.fixture
def encryption_service():
    return EncryptionService(EncryptionService.generate_key())


class TestEncryptionService:
    """Tests for EncryptionService."""

    def test_encrypt_decrypt_round_trip(self, encryption_service):
        plaintext = '[{"entry_id": "doc-1", "base64_data": "JVBERi0xLjQK"}]'

        ciphertext = encryption_service.encrypt(plaintext)

        assert ciphertext != plaintext
        assert encryption_service.decrypt(ciphertext) == plaintext

    def test_encrypt_is_randomized(self, encryption_service):
        """Test that equal plaintexts produce different ciphertexts."""
        assert encryption_service.encrypt("same") != encryption_service.encrypt("same")

    def test_empty_strings_pass_through(self, encryption_service):
        assert encryption_service.encrypt("") == ""
        assert encryption_service.decrypt("") == ""

    def test_wrong_key_cannot_decrypt(self, encryption_service):
        ciphertext = encryption_service.encrypt("Paracetamol 1 tablet")
        other = EncryptionService(EncryptionService.generate_key())

        with pytest.raises(InvalidToken):
            other.decrypt(ciphertext)

    def test_generate_key_is_valid_fernet_key(self):
        key = EncryptionService.generate_key()

        Fernet(key.encode())

    def test_invalid_key_rejected(self):
        with pytest.raises(ValueError):
            EncryptionService("not-a-valid-key")


class TestFromEnv:
    """Tests for building the service from the environment."""

    def test_returns_none_without_key(self, monkeypatch):
        monkeypatch.delenv("STORAGE_ENCRYPTION_KEY", raising=False)

        assert EncryptionService.from_env() is None

    def test_uses_configured_key(self, monkeypatch):
        key = EncryptionService.generate_key()
        monkeypatch.setenv("STORAGE_ENCRYPTION_KEY", key)

        service = EncryptionService.from_env()

        assert service is not None
        assert service.decrypt(EncryptionService(key).encrypt("dose")) == "dose"
