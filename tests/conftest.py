import pytest

from pwmvault import Vault


@pytest.fixture
def secret():
    """Vault secret used across tests."""
    return "correct horse battery staple"


@pytest.fixture
def vault(tmp_path, secret):
    """An empty AES vault created under a temporary base directory."""
    v = Vault(cipher="aes", secret=secret)
    v.create("Primary", str(tmp_path))
    return v


@pytest.fixture
def plain_vault(tmp_path):
    """An empty vault with encryption disabled."""
    v = Vault(cipher="", secret="")
    v.create("Plain", str(tmp_path))
    return v
