"""
Tests for the credential vault.
"""

import base64

import pytest

from mailsweep.config import CredentialVault, generate_master_key
from mailsweep.config.vault import HEADER_LENGTH
from mailsweep.exceptions import ConfigError, FormatError, IntegrityError


def flip_bit(opaque: str, byte_index: int, bit: int = 0) -> str:
    raw = bytearray(base64.b64decode(opaque))
    raw[byte_index] ^= 1 << bit
    return base64.b64encode(bytes(raw)).decode('ascii')


class TestRoundTrip:

    @pytest.mark.parametrize('plaintext', ['', 'refresh-token', '1//0gLongTokenValue', 'ünïcødé ✓ 令牌'])
    def test_unseal_returns_plaintext(self, vault, plaintext):
        assert vault.unseal(vault.seal(plaintext)) == plaintext

    def test_seal_is_never_repeated(self, vault):
        sealed = {vault.seal('same-token') for _ in range(5)}
        assert len(sealed) == 5

    def test_blob_layout(self, vault):
        raw = base64.b64decode(vault.seal('abc'))
        # salt | nonce | tag | ciphertext
        assert len(raw) == HEADER_LENGTH + len('abc')


class TestTampering:

    def test_flip_in_each_region_fails_integrity(self, vault):
        opaque = vault.seal('refresh-token')
        length = len(base64.b64decode(opaque))
        # salt, nonce, tag, ciphertext
        for index in (0, 70, 85, length - 1):
            with pytest.raises(IntegrityError):
                vault.unseal(flip_bit(opaque, index))

    def test_every_bit_of_short_blob(self, vault):
        opaque = vault.seal('x')
        length = len(base64.b64decode(opaque))
        for index in range(length):
            with pytest.raises(IntegrityError):
                vault.unseal(flip_bit(opaque, index, bit=index % 8))

    def test_other_key_cannot_unseal(self, vault):
        opaque = vault.seal('refresh-token')
        other = CredentialVault(generate_master_key(), iterations=1000)
        with pytest.raises(IntegrityError):
            other.unseal(opaque)


class TestMalformedInput:

    @pytest.mark.parametrize('blob', ['', 'not base64 at all!!', '@@@@'])
    def test_format_error(self, vault, blob):
        with pytest.raises(FormatError):
            vault.unseal(blob)

    def test_truncated_blob(self, vault):
        short = base64.b64encode(b'\x00' * (HEADER_LENGTH - 1)).decode('ascii')
        with pytest.raises(FormatError):
            vault.unseal(short)

    def test_non_string(self, vault):
        with pytest.raises(FormatError):
            vault.unseal(None)

    def test_integrity_and_format_share_base(self, vault):
        from mailsweep.exceptions import VaultError
        assert issubclass(IntegrityError, VaultError)
        assert issubclass(FormatError, VaultError)


class TestMasterKey:

    def test_missing_key_is_config_error(self):
        vault = CredentialVault('', iterations=1000)
        with pytest.raises(ConfigError):
            vault.seal('token')

    def test_bad_base64_key(self):
        vault = CredentialVault('%%%', iterations=1000)
        with pytest.raises(ConfigError):
            vault.seal('token')

    def test_generated_keys_differ(self):
        assert generate_master_key() != generate_master_key()
        assert len(base64.b64decode(generate_master_key())) == 32
