"""
Vault Configuration — Validated settings and environment loading.

Reads settings from environment variables:
    PWM_HOME    = <base directory holding vaults>   (default ~/.pwm)
    PWM_VAULT   = <vault name>                      (default Primary)
    PWM_CIPHER  = <cipher identifier, "" disables>  (default aes)
    PWM_VERBOSE = <integer>                         (default 0)
    PWM_WORKERS = <integer>                         (default 4)

Security Note:
    The vault secret is never part of the configuration. It is handed to
    the vault by the caller and only ever logged as a fingerprint.
"""
import os
import base64
import secrets
import logging

from pydantic import BaseModel, Field, ValidationError, field_validator

from .exceptions import ConfigError
from .crypto import get_cipher

logger = logging.getLogger("pwmvault")

DEFAULT_VAULT = "Primary"
DEFAULT_CIPHER = "aes"
DEFAULT_WORKERS = 4


def default_home() -> str:
    """Return the base directory for vaults: ``$PWM_HOME`` or ``~/.pwm``."""
    home = os.environ.get("PWM_HOME")
    if home:
        return os.path.abspath(os.path.expanduser(home))
    return os.path.join(os.path.expanduser("~"), ".pwm")


def generate_secret() -> str:
    """Generate a random 32-byte secret and return it as base64 string.

    This is a utility for operators creating a new vault.
    """
    return base64.b64encode(secrets.token_bytes(32)).decode("ascii")


class VaultConfig(BaseModel):
    """Validated vault configuration."""

    home: str = Field(default_factory=default_home)
    name: str = Field(default=DEFAULT_VAULT, min_length=1)
    cipher: str = Field(default=DEFAULT_CIPHER)
    verbose: int = Field(default=0, ge=0)
    workers: int = Field(default=DEFAULT_WORKERS, ge=1, le=64)

    @field_validator("cipher")
    @classmethod
    def validate_cipher(cls, v: str) -> str:
        """Validate cipher is registered (empty disables encryption)."""
        try:
            get_cipher(v)
        except ConfigError as err:
            raise ValueError(str(err)) from err
        return v

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """A vault name is a single directory component."""
        if os.sep in v or (os.altsep and os.altsep in v) or v in (".", ".."):
            raise ValueError(f"Invalid vault name: {v!r}")
        return v

    @classmethod
    def load(cls, **kwargs) -> "VaultConfig":
        """Build a configuration, reporting invalid values as ConfigError."""
        try:
            return cls(**kwargs)
        except ValidationError as err:
            raise ConfigError(f"Invalid vault configuration: {err}") from err

    @classmethod
    def from_env(cls) -> "VaultConfig":
        """Create VaultConfig by loading values from environment.

        Returns:
            Populated VaultConfig instance.

        Raises:
            ConfigError: If any value fails validation.
        """
        values: dict = {"home": default_home()}
        mapping = {
            "PWM_VAULT": "name",
            "PWM_CIPHER": "cipher",
            "PWM_VERBOSE": "verbose",
            "PWM_WORKERS": "workers",
        }
        for env, field in mapping.items():
            if env in os.environ:
                values[field] = os.environ[env]
        config = cls.load(**values)
        logger.debug(
            "Loaded vault configuration: home=%s name=%s cipher=%s",
            config.home, config.name, config.cipher or "none",
        )
        return config
