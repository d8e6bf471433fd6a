"""Encryption utilities for data persisted on the device."""

import base64
from typing import Optional
from cryptography.fernet import Fernet

from shared.config import get_storage_encryption_key


class EncryptionService:
    """Handles symmetric encryption of persisted queue and notification state."""

    def __init__(self, encryption_key: str):
        """
        Initialize encryption service.

        Args:
            encryption_key: Base64-encoded Fernet key
        """
        self.key = encryption_key.encode()
        self.cipher = Fernet(self.key)

    @classmethod
    def from_env(cls) -> Optional["EncryptionService"]:
        """
        Build a service from STORAGE_ENCRYPTION_KEY.

        Returns None when no key is configured. A generated key would make
        previously persisted state unreadable after a restart, so at-rest
        encryption is only enabled with an explicit key.
        """
        key = get_storage_encryption_key()
        if not key:
            return None
        return cls(key)

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a plaintext string.

        Args:
            plaintext: The string to encrypt

        Returns:
            Base64-encoded encrypted string
        """
        if not plaintext:
            return ""

        encrypted_bytes = self.cipher.encrypt(plaintext.encode())
        return base64.b64encode(encrypted_bytes).decode()

    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt an encrypted string.

        Args:
            ciphertext: Base64-encoded encrypted string

        Returns:
            Decrypted plaintext string
        """
        if not ciphertext:
            return ""

        encrypted_bytes = base64.b64decode(ciphertext.encode())
        return self.cipher.decrypt(encrypted_bytes).decode()

    @staticmethod
    def generate_key() -> str:
        """
        Generate a new encryption key.

        Returns:
            Base64-encoded encryption key
        """
        return Fernet.generate_key().decode()
