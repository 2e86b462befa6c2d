"""
Tests for the cipher capability.

Tests cover:
- Cipher registry lookup
- Deterministic key derivation
- Encrypt/decrypt round-trips for every registered cipher
- Failures on wrong secret, wrong cipher, truncated or tampered data
"""
import pytest

from pwmvault.crypto import (
    NONCE_SIZE,
    TAG_SIZE,
    available_ciphers,
    decrypt,
    derive_key,
    encrypt,
    get_cipher,
)
from pwmvault.exceptions import ConfigError, CryptoError

SECRET = "s3cr3t"


class TestCipherRegistry:
    """Tests for cipher lookup."""

    def test_available_ciphers(self):
        """Test every adapter is registered."""
        assert available_ciphers() == ["aes", "chacha20", "nacl"]

    def test_nonce_sizes(self):
        assert get_cipher("aes").nonce_size == NONCE_SIZE
        assert get_cipher("nacl").nonce_size == 24

    def test_empty_cipher_disables_encryption(self):
        """Test the empty identifier resolves to no cipher."""
        assert get_cipher("") is None

    def test_unknown_cipher_is_config_error(self):
        """Test unknown identifiers raise ConfigError."""
        with pytest.raises(ConfigError):
            get_cipher("rot13")


class TestKeyDerivation:
    """Tests for HKDF key derivation."""

    def test_key_length(self):
        assert len(derive_key(SECRET, "aes")) == 32

    def test_deterministic(self):
        """Test the same secret always yields the same key."""
        assert derive_key(SECRET, "aes") == derive_key(SECRET, "aes")

    def test_domain_separated_by_cipher(self):
        assert derive_key(SECRET, "aes") != derive_key(SECRET, "chacha20")

    def test_different_secrets(self):
        assert derive_key(SECRET, "aes") != derive_key("other", "aes")


@pytest.mark.parametrize("cipher", ["aes", "chacha20", "nacl"])
class TestEncryptDecrypt:
    """Tests for record encryption."""

    def test_roundtrip(self, cipher):
        plaintext = b'{"id": "abc", "fields": {"Login": "bob"}}'
        ciphertext = encrypt(plaintext, SECRET, cipher)
        assert decrypt(ciphertext, SECRET, cipher) == plaintext

    def test_empty_plaintext(self, cipher):
        ciphertext = encrypt(b"", SECRET, cipher)
        assert len(ciphertext) == get_cipher(cipher).nonce_size + TAG_SIZE
        assert decrypt(ciphertext, SECRET, cipher) == b""

    def test_ciphertext_hides_plaintext(self, cipher):
        ciphertext = encrypt(b"hunter2-password", SECRET, cipher)
        assert b"hunter2" not in ciphertext

    def test_fresh_nonce_per_encryption(self, cipher):
        """Test encrypting twice never produces the same bytes."""
        assert encrypt(b"data", SECRET, cipher) != encrypt(b"data", SECRET, cipher)

    def test_wrong_secret(self, cipher):
        ciphertext = encrypt(b"data", SECRET, cipher)
        with pytest.raises(CryptoError):
            decrypt(ciphertext, "wrong", cipher)

    def test_tampered_ciphertext(self, cipher):
        ciphertext = bytearray(encrypt(b"data", SECRET, cipher))
        ciphertext[-1] ^= 0x01
        with pytest.raises(CryptoError):
            decrypt(bytes(ciphertext), SECRET, cipher)

    def test_truncated_ciphertext(self, cipher):
        with pytest.raises(CryptoError):
            decrypt(b"short", SECRET, cipher)


class TestCipherMismatch:
    """Tests for decrypting with the wrong or unknown cipher."""

    def test_wrong_cipher(self):
        ciphertext = encrypt(b"data", SECRET, "aes")
        with pytest.raises(CryptoError):
            decrypt(ciphertext, SECRET, "chacha20")

    def test_nacl_rejects_aead_data(self):
        ciphertext = encrypt(b"data" * 8, SECRET, "chacha20")
        with pytest.raises(CryptoError):
            decrypt(ciphertext, SECRET, "nacl")

    def test_aead_rejects_nacl_data(self):
        ciphertext = encrypt(b"data", SECRET, "nacl")
        with pytest.raises(CryptoError):
            decrypt(ciphertext, SECRET, "aes")

    def test_unknown_cipher_encrypt(self):
        with pytest.raises(CryptoError):
            encrypt(b"data", SECRET, "rot13")

    def test_unknown_cipher_decrypt(self):
        ciphertext = encrypt(b"data", SECRET, "aes")
        with pytest.raises(CryptoError):
            decrypt(ciphertext, SECRET, "rot13")

    def test_empty_cipher_is_not_a_cipher(self):
        """Test plaintext mode is handled by callers, not by encrypt()."""
        with pytest.raises(CryptoError):
            encrypt(b"data", SECRET, "")
