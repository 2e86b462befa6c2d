"""
Filesystem and formatting helpers shared by records and vaults.
"""
import os
import stat
import hashlib
import tempfile

from .exceptions import VaultIOError

OWNER_ONLY = stat.S_IRUSR | stat.S_IWUSR  # 0600

_SIZE_UNITS = ("B", "KB", "MB", "GB", "TB", "PB")


def secure_file(path: str) -> None:
    """Force owner read/write only permissions on ``path``.

    Raises:
        VaultIOError: If the permission bits cannot be changed.
    """
    try:
        os.chmod(path, OWNER_ONLY)
    except OSError as err:
        raise VaultIOError(
            err.errno, f"unable to change permissions of {path}: {err.strerror}"
        ) from err


def atomic_write(path: str, data: bytes) -> None:
    """Write ``data`` to ``path`` through a temporary sibling file.

    The temporary file is created with mode 0600, flushed to disk and
    renamed over ``path``, so readers see either the old or the new
    content, never a partial file.

    Raises:
        VaultIOError: If any step of the write fails.
    """
    dirname, basename = os.path.split(path)
    try:
        fd, tmp_path = tempfile.mkstemp(
            prefix=f".{basename}.", suffix=".tmp", dir=dirname
        )
    except OSError as err:
        raise VaultIOError(
            err.errno, f"unable to create file in {dirname}: {err.strerror}"
        ) from err
    try:
        with os.fdopen(fd, "wb") as fh:
            os.fchmod(fh.fileno(), OWNER_ONLY)
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_path, path)
    except OSError as err:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise VaultIOError(
            err.errno, f"unable to write {path}: {err.strerror}"
        ) from err


def read_file(path: str) -> bytes:
    """Read a whole file, wrapping OS failures in :class:`VaultIOError`."""
    try:
        with open(path, "rb") as fh:
            return fh.read()
    except OSError as err:
        raise VaultIOError(
            err.errno, f"unable to read {path}: {err.strerror}"
        ) from err


def size_format(size: int) -> str:
    """Return a human readable representation of a size in bytes.

    >>> size_format(1536)
    '1.5 KB'
    """
    value = float(size)
    for unit in _SIZE_UNITS:
        if abs(value) < 1024 or unit == _SIZE_UNITS[-1]:
            if unit == "B":
                return f"{int(value)} {unit}"
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{size} B"


def fingerprint(secret: str) -> str:
    """Short, non-reversible reference to a secret, safe for log output."""
    if not secret:
        return "<empty>"
    digest = hashlib.sha256(secret.encode("utf-8")).hexdigest()
    return f"sha256:{digest[:8]}"
