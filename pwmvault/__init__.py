"""PWM Vault — Local directory of individually encrypted records.

Security Note (Threat Model):
    Record contents and the vault secret are held in process memory while
    the vault is open. A memory dump of the application process could
    expose them. This is an accepted limitation; the package only
    guarantees that records are encrypted at rest, that record files are
    readable by their owner only and that secrets never reach the logs.
"""

from .version import __version__
from .exceptions import (
    VaultError,
    ConfigError,
    VaultIOError,
    CryptoError,
    SerializationError,
    RecordLoadError,
    PreconditionError,
)
from .crypto import encrypt, decrypt, available_ciphers
from .config import VaultConfig, generate_secret
from .record import Record, FieldKind, WELL_KNOWN_KEYS
from .vault import Vault

__all__ = [
    "__version__",
    "Vault",
    "Record",
    "FieldKind",
    "WELL_KNOWN_KEYS",
    "VaultConfig",
    "generate_secret",
    "encrypt",
    "decrypt",
    "available_ciphers",
    "VaultError",
    "ConfigError",
    "VaultIOError",
    "CryptoError",
    "SerializationError",
    "RecordLoadError",
    "PreconditionError",
]
