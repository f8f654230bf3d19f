"""
Credential vault for long-lived provider credentials.

Sealed blobs are base64 text laid out as salt | nonce | tag | ciphertext.
A fresh salt and nonce are drawn for every seal, the per-blob key is derived
from the master key with PBKDF2-SHA512, and AES-256-GCM binds the tag.
"""

import base64
import binascii
import os
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..exceptions import ConfigError, FormatError, IntegrityError

SALT_LENGTH = 64
NONCE_LENGTH = 16
TAG_LENGTH = 16
KEY_LENGTH = 32
KDF_ITERATIONS = 100000
HEADER_LENGTH = SALT_LENGTH + NONCE_LENGTH + TAG_LENGTH


def generate_master_key() -> str:
    """Return a new random base64 master key suitable for ENCRYPTION_KEY."""
    return base64.b64encode(os.urandom(KEY_LENGTH)).decode('ascii')


class CredentialVault:
    """Seal and unseal credentials with an authenticated cipher."""

    def __init__(self, master_key: Optional[str] = None, iterations: int = KDF_ITERATIONS):
        """
        Initialize the vault.

        Args:
            master_key: Base64 master key. If None, ENCRYPTION_KEY from config is used.
            iterations: PBKDF2 iteration count
        """
        if master_key is None:
            from .settings import Config
            master_key = Config.ENCRYPTION_KEY
        self._master_key = master_key
        self.iterations = iterations

    def _key_material(self) -> bytes:
        if not self._master_key:
            raise ConfigError("No master key configured (set ENCRYPTION_KEY)")
        try:
            key = base64.b64decode(self._master_key, validate=True)
        except (binascii.Error, ValueError):
            raise ConfigError("Master key is not valid base64")
        if not key:
            raise ConfigError("Master key is empty")
        return key

    def _derive_key(self, salt: bytes) -> bytes:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA512(),
            length=KEY_LENGTH,
            salt=salt,
            iterations=self.iterations,
        )
        return kdf.derive(self._key_material())

    def seal(self, plaintext: str) -> str:
        """Encrypt plaintext into an opaque base64 blob."""
        salt = os.urandom(SALT_LENGTH)
        nonce = os.urandom(NONCE_LENGTH)
        sealed = AESGCM(self._derive_key(salt)).encrypt(nonce, plaintext.encode('utf-8'), None)
        # AESGCM appends the tag; store it ahead of the ciphertext
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return base64.b64encode(salt + nonce + tag + ciphertext).decode('ascii')

    def unseal(self, opaque: str) -> str:
        """
        Decrypt a blob produced by seal().

        Raises:
            ConfigError: no master key configured
            FormatError: blob is not base64 or is too short
            IntegrityError: blob was altered or sealed under another key
        """
        if not isinstance(opaque, str) or not opaque:
            raise FormatError("Sealed credential is empty")
        try:
            combined = base64.b64decode(opaque, validate=True)
        except (binascii.Error, ValueError):
            raise FormatError("Sealed credential is not valid base64")
        if len(combined) < HEADER_LENGTH:
            raise FormatError(
                "Sealed credential is truncated",
                {'length': len(combined), 'minimum': HEADER_LENGTH}
            )
        # Trailing pad bits of base64 are ignored by the decoder
        if base64.b64encode(combined).decode('ascii') != opaque:
            raise IntegrityError("Sealed credential encoding was altered")

        salt = combined[:SALT_LENGTH]
        nonce = combined[SALT_LENGTH:SALT_LENGTH + NONCE_LENGTH]
        tag = combined[SALT_LENGTH + NONCE_LENGTH:HEADER_LENGTH]
        ciphertext = combined[HEADER_LENGTH:]

        try:
            plaintext = AESGCM(self._derive_key(salt)).decrypt(nonce, ciphertext + tag, None)
        except InvalidTag:
            raise IntegrityError("Sealed credential failed authentication")
        return plaintext.decode('utf-8')


# Global vault instance
_vault = None


def get_vault(master_key: Optional[str] = None) -> CredentialVault:
    """Get the global credential vault instance."""
    global _vault
    if _vault is None or master_key is not None:
        _vault = CredentialVault(master_key)
    return _vault
