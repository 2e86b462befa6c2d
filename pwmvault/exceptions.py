"""Vault error taxonomy.

Every recoverable failure raised by the package derives from
:class:`VaultError`. :class:`PreconditionError` is kept outside that
hierarchy: it signals programmer misuse and is not meant to be handled.
"""


class VaultError(Exception):
    """Base class for recoverable vault errors."""


class ConfigError(VaultError):
    """Unknown cipher, invalid directory or invalid settings."""


class VaultIOError(VaultError, OSError):
    """A record or backup file could not be created, read or written."""


class CryptoError(VaultError):
    """Encryption, decryption or authentication failure."""


class SerializationError(VaultError):
    """Malformed record encoding."""


class RecordLoadError(VaultError):
    """Bulk read aborted on a record file that could not be loaded."""

    def __init__(self, path: str, reason: Exception):
        self.path = path
        self.reason = reason
        super().__init__(f"unable to load vault record {path}: {reason}")


class PreconditionError(RuntimeError):
    """A record without identifier was handed over for persistence."""
