"""
Vault Crypto Core — Cipher registry, key derivation and record encryption.

Each record file is sealed independently with an authenticated cipher
selected by name:

- ``aes``: AES-256-GCM
- ``chacha20``: ChaCha20-Poly1305
- ``nacl``: XSalsa20-Poly1305 (libsodium secretbox via PyNaCl)
- ``""``: no encryption (plaintext passthrough, handled by callers)

Key: HKDF-SHA256(secret, "pwmvault-<cipher>") → 32 bytes
Format: [nonce][encrypted_payload + tag 16B]; the nonce is 12 bytes for
the ``cryptography`` AEADs and 24 bytes for ``nacl``.

Security Note:
    Never log plaintext, ciphertext or secret values.
    Nonces are random; collision probability negligible under normal usage.
"""
import os
import logging

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM, ChaCha20Poly1305
from nacl.secret import SecretBox
from nacl.exceptions import CryptoError as SodiumError

from .exceptions import ConfigError, CryptoError

logger = logging.getLogger("pwmvault")

NONCE_SIZE = 12  # 96-bit nonce
TAG_SIZE = 16
KEY_LENGTH = 32  # AES-256

NO_CIPHER = ""


class AEADCipher:
    """Adapter over a ``cryptography`` AEAD class: [nonce 12B][ct+tag]."""

    nonce_size = NONCE_SIZE

    def __init__(self, aead_cls: type) -> None:
        self.aead_cls = aead_cls

    def seal(self, key: bytes, plaintext: bytes) -> bytes:
        nonce = os.urandom(self.nonce_size)
        return nonce + self.aead_cls(key).encrypt(nonce, plaintext, None)

    def open(self, key: bytes, data: bytes) -> bytes:
        nonce = data[:self.nonce_size]
        return self.aead_cls(key).decrypt(nonce, data[self.nonce_size:], None)


class SecretBoxCipher:
    """libsodium secretbox; PyNaCl frames it as [nonce 24B][ct+tag]."""

    nonce_size = SecretBox.NONCE_SIZE

    def seal(self, key: bytes, plaintext: bytes) -> bytes:
        return bytes(SecretBox(key).encrypt(plaintext))

    def open(self, key: bytes, data: bytes) -> bytes:
        return SecretBox(key).decrypt(data)


CIPHERS: dict[str, AEADCipher | SecretBoxCipher] = {
    "aes": AEADCipher(AESGCM),
    "chacha20": AEADCipher(ChaCha20Poly1305),
    "nacl": SecretBoxCipher(),
}


def available_ciphers() -> list[str]:
    """Return the registered cipher identifiers."""
    return sorted(CIPHERS)


def get_cipher(cipher: str) -> AEADCipher | SecretBoxCipher | None:
    """Resolve a cipher identifier to its implementation.

    Args:
        cipher: Cipher identifier, ``""`` for plaintext mode.

    Returns:
        Cipher adapter, or None when encryption is disabled.

    Raises:
        ConfigError: If the identifier is not registered.
    """
    if cipher == NO_CIPHER:
        return None
    try:
        return CIPHERS[cipher]
    except KeyError:
        raise ConfigError(
            f"Unsupported cipher: {cipher!r} "
            f"(available: {', '.join(available_ciphers())})"
        ) from None


def _resolve(cipher: str) -> AEADCipher | SecretBoxCipher:
    """Cipher lookup for encrypt/decrypt, where only real ciphers are valid."""
    if cipher == NO_CIPHER or cipher not in CIPHERS:
        raise CryptoError(f"Unknown cipher: {cipher!r}")
    return CIPHERS[cipher]


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def derive_key(secret: str, cipher: str) -> bytes:
    """Derive a 32-byte encryption key using HKDF-SHA256.

    Derivation is deterministic, so the same secret always opens the same
    records; the cipher name provides domain separation.

    Args:
        secret: Vault secret.
        cipher: Cipher identifier used as HKDF context.

    Returns:
        32-byte derived key.
    """
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=None,
        info=f"pwmvault-{cipher}".encode("utf-8"),
    )
    return hkdf.derive(secret.encode("utf-8"))


# ---------------------------------------------------------------------------
# Record encryption
# ---------------------------------------------------------------------------

def encrypt(plaintext: bytes, secret: str, cipher: str) -> bytes:
    """Encrypt a serialized record.

    Args:
        plaintext: Data to encrypt.
        secret: Vault secret used for key derivation.
        cipher: Cipher identifier.

    Returns:
        ``nonce + ciphertext`` bytes.

    Raises:
        CryptoError: If the cipher is unknown or encryption fails.
    """
    impl = _resolve(cipher)
    try:
        return impl.seal(derive_key(secret, cipher), plaintext)
    except (TypeError, ValueError, OverflowError, SodiumError) as err:
        raise CryptoError(f"unable to encrypt with {cipher}: {err}") from err


def decrypt(ciphertext: bytes, secret: str, cipher: str) -> bytes:
    """Decrypt data produced by :func:`encrypt`.

    Args:
        ciphertext: Data in format [nonce][payload+tag].
        secret: Vault secret used for key derivation.
        cipher: Cipher identifier.

    Returns:
        Decrypted plaintext bytes.

    Raises:
        CryptoError: On unknown cipher, truncated input or failed
            authentication (wrong secret, wrong cipher, tampered data).
    """
    impl = _resolve(cipher)
    _min = impl.nonce_size + TAG_SIZE
    if len(ciphertext) < _min:
        raise CryptoError(
            f"ciphertext too short: {len(ciphertext)} bytes "
            f"(minimum {_min})"
        )
    try:
        return impl.open(derive_key(secret, cipher), ciphertext)
    except (InvalidTag, SodiumError):
        raise CryptoError(
            f"unable to decrypt with {cipher}: authentication failed"
        ) from None
