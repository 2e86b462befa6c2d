"""
Vault — A directory of individually encrypted records.

Provides the public API of the record engine:
- ``create(name, base)`` — bootstrap the vault directory
- ``read()`` / ``reload()`` — bulk load every record file of the directory
- ``update(record)`` / ``write_record(record)`` / ``write()`` — persist records
- ``find(pattern)`` — search loaded records
- ``info()`` — summary of cached vault metadata
- ``snapshot()`` / ``replace_all(records)`` — hand-off surface for sync tools
- ``encrypt_file(path)`` / ``decrypt_file(path)`` — import and inspect files

On-disk layout::

    <directory>/<record id>.<cipher>               one file per record
    <directory>/backups/<record id>.<cipher>-<ts>  previous versions

Security Note:
    Never log plaintext, ciphertext or the secret. Only log record ids,
    paths and counts; at high verbosity records are logged with secret
    fields masked and the secret as a short fingerprint.
"""
import os
import re
import stat
import base64
import logging
import threading
from typing import Optional
from datetime import datetime, timezone
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor

from .config import DEFAULT_VAULT, DEFAULT_WORKERS, VaultConfig, default_home
from .crypto import decrypt, get_cipher
from .exceptions import ConfigError, RecordLoadError, VaultError, VaultIOError
from .record import BACKUP_DIR, Record
from .utils import fingerprint, read_file, secure_file, size_format

logger = logging.getLogger("pwmvault")


class Vault:
    """Encrypted record vault bound to a directory.

    Every record lives in its own file named after the record id, with the
    cipher identifier as extension. An empty cipher stores records as
    plain JSON. The vault holds loaded records in memory; nothing is
    written until a record is handed back through ``update()`` or
    ``write_record()``.
    """

    def __init__(
        self,
        directory: Optional[str] = None,
        cipher: str = "aes",
        secret: str = "",
        verbose: int = 0,
        workers: int = DEFAULT_WORKERS,
    ):
        # unknown ciphers are a configuration error, raised here once
        get_cipher(cipher)
        if workers < 1:
            raise ConfigError(f"workers must be positive, got {workers}")
        self.directory = os.path.abspath(directory) if directory else ""
        self._base = self.directory
        self.cipher = cipher
        self._secret = secret
        self.verbose = verbose
        self.workers = workers
        self._records: list[Record] = []
        self.modified_at: Optional[datetime] = None
        self.size = 0
        self.mode = ""
        self.last_backup = ""
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        if verbose > 1:
            logger.debug(
                "Vault cipher=%s secret=%s", cipher or "none", fingerprint(secret)
            )

    def __repr__(self) -> str:
        return (
            f"<Vault [{self.directory or '-'}, cipher:{self.cipher or 'none'}] "
            f"records={len(self._records)}>"
        )

    @classmethod
    def from_config(cls, config: VaultConfig, secret: str) -> "Vault":
        """Build and create a vault from a validated configuration."""
        vault = cls(
            directory=config.home,
            cipher=config.cipher,
            secret=secret,
            verbose=config.verbose,
            workers=config.workers,
        )
        vault.create(config.name, config.home)
        return vault

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def records(self) -> list[Record]:
        """Loaded records, in load order."""
        return list(self._records)

    @property
    def backup_dir(self) -> str:
        return os.path.join(self.directory, BACKUP_DIR)

    def _require_directory(self) -> str:
        if not self.directory:
            raise ConfigError("Vault directory is not set, call create() first")
        return self.directory

    def _record_lock(self, record_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(record_id)
            if lock is None:
                lock = self._locks[record_id] = threading.Lock()
            return lock

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create(self, name: Optional[str] = None, base: Optional[str] = None) -> str:
        """Create the vault directory, ``<base>/<name>``, if missing.

        Calling it again with the same arguments is harmless.

        Args:
            name: Vault name, defaults to ``Primary``.
            base: Base directory, defaults to the directory given to the
                constructor, then ``$PWM_HOME`` or ``~/.pwm``.

        Returns:
            Absolute path of the vault directory.

        Raises:
            ConfigError: If the name is not a single path component or a
                directory cannot be created.
        """
        name = name or DEFAULT_VAULT
        if os.sep in name or (os.altsep and os.altsep in name) or name in (".", ".."):
            raise ConfigError(f"Invalid vault name: {name!r}")
        base = os.path.abspath(os.path.expanduser(base or self._base or default_home()))
        vdir = os.path.join(base, name)
        for path in (base, vdir):
            if os.path.isdir(path):
                continue
            try:
                os.makedirs(path, mode=0o700, exist_ok=True)
            except OSError as err:
                raise ConfigError(
                    f"unable to create vault directory {path}: {err}"
                ) from err
            logger.info("Created vault directory %s", path)
        self.directory = vdir
        return vdir

    def _scan(self) -> list[str]:
        """Record files of the vault directory, in sorted name order."""
        directory = self._require_directory()
        suffix = f".{self.cipher}" if self.cipher else ""
        try:
            entries = sorted(os.scandir(directory), key=lambda e: e.name)
        except FileNotFoundError as err:
            raise ConfigError(f"Vault directory {directory} does not exist") from err
        except OSError as err:
            raise VaultIOError(
                err.errno, f"unable to list {directory}: {err.strerror}"
            ) from err
        files = []
        for entry in entries:
            if entry.name.startswith(".") or entry.name == BACKUP_DIR:
                continue
            if not entry.is_file(follow_symlinks=False):
                continue
            if suffix and not entry.name.endswith(suffix):
                continue
            files.append(entry.path)
        return files

    def read_record(self, path: str) -> Record:
        """Load a single record file.

        The file is restricted to owner access, read, decrypted when the
        vault has a cipher and decoded.

        Raises:
            VaultIOError: If the file cannot be read.
            CryptoError: If decryption fails.
            SerializationError: If the content is not a valid record.
        """
        secure_file(path)
        data = read_file(path)
        if self.cipher:
            data = decrypt(data, self._secret, self.cipher)
        return Record.deserialize(data)

    def _load(self, path: str) -> Record:
        try:
            return self.read_record(path)
        except VaultError as err:
            raise RecordLoadError(path, err) from err

    def read(self) -> list[Record]:
        """Load every record file of the vault directory.

        Files are decoded on a bounded thread pool; loaded records are
        appended in file name order. Loading is all or nothing: the first
        file that fails aborts the call and the in-memory records stay
        untouched.

        Returns:
            Records loaded by this call.

        Raises:
            ConfigError: If the vault directory does not exist.
            RecordLoadError: If any record file cannot be loaded.
        """
        files = self._scan()
        loaded: list[Record] = []
        if files:
            with ThreadPoolExecutor(max_workers=min(self.workers, len(files))) as pool:
                loaded = list(pool.map(self._load, files))
        self._records.extend(loaded)
        self._refresh_stat()
        logger.info(
            "Vault %s loaded: %d record(s)", self.directory, len(loaded)
        )
        return loaded

    def reload(self) -> list[Record]:
        """Drop in-memory records and read the directory again."""
        self._records = []
        return self.read()

    def _refresh_stat(self) -> None:
        try:
            finfo = os.stat(self.directory)
        except OSError as err:
            logger.warning("unable to get stat for %s: %s", self.directory, err)
        else:
            self.size = finfo.st_size
            self.modified_at = datetime.fromtimestamp(finfo.st_mtime, tz=timezone.utc)
            self.mode = stat.filemode(finfo.st_mode)
        backups = self.backups()
        self.last_backup = os.path.basename(backups[-1]) if backups else ""

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def write_record(self, record: Record) -> str:
        """Persist one record, backing up its previous version.

        Writes of the same record id are serialized.

        Returns:
            Path of the record file.
        """
        directory = self._require_directory()
        with self._record_lock(record.id):
            return record.write(directory, self._secret, self.cipher, self.verbose)

    def write(self) -> list[str]:
        """Persist every loaded record; the first failure propagates."""
        return [self.write_record(rec) for rec in self._records]

    def update(self, record: Record) -> str:
        """Replace (or add) a record by id, then persist it.

        Records sharing the id are merged into a single in-memory entry at
        the position of the first one.

        Returns:
            Path of the record file.
        """
        matches = [i for i, rec in enumerate(self._records) if rec.id == record.id]
        if matches:
            if self.verbose > 0:
                logger.info("update record %s", record.id)
            self._records[matches[0]] = record
            for i in reversed(matches[1:]):
                del self._records[i]
            self.modified_at = datetime.now(timezone.utc)
        else:
            self._records.append(record)
        return self.write_record(record)

    def add_record(self, kind: str = "login") -> Record:
        """Add a new empty record of the given kind (not yet persisted)."""
        rec = Record.new(kind)
        self._records.append(rec)
        return rec

    # ------------------------------------------------------------------
    # Search & info
    # ------------------------------------------------------------------

    def find(self, pattern: str) -> list[Record]:
        """Records with a field key or value matching ``pattern``.

        The pattern is a regular expression searched anywhere in keys and
        values; an invalid expression is matched literally. Every record
        appears at most once, in load order.
        """
        try:
            regex = re.compile(pattern)
        except re.error:
            regex = re.compile(re.escape(pattern))
        out = []
        for rec in self._records:
            for key, value in rec.items():
                if regex.search(key) or regex.search(value):
                    if self.verbose > 0:
                        logger.info("record %s matched on field %s", rec.id, key)
                    out.append(rec)
                    break
        return out

    def info(self) -> str:
        """Human readable summary of the cached vault metadata."""
        tstamp = self.modified_at.isoformat() if self.modified_at else "unknown"
        info = (
            f"vault {self.directory}\n"
            f"Last modified: {tstamp}\n"
            f"Size {size_format(self.size)}, mode {self.mode or 'unknown'}\n"
            f"{len(self._records)} records, encrypted with "
            f"{self.cipher or 'none'} cipher\n"
            f"Last backup: {self.last_backup or 'none'}"
        )
        if self.verbose > 0:
            logger.info(info)
        return info

    # ------------------------------------------------------------------
    # Sync hand-off
    # ------------------------------------------------------------------

    def snapshot(self) -> list[Record]:
        """Independent copies of the loaded records."""
        return [rec.copy() for rec in self._records]

    def replace_all(self, records: Iterable[Record]) -> None:
        """Replace the in-memory record set; nothing is written.

        Later records win over earlier ones with the same id.
        """
        merged: dict[str, Record] = {}
        for rec in records:
            merged[rec.id] = rec
        self._records = list(merged.values())
        self.modified_at = datetime.now(timezone.utc)

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def backups(self, record_id: Optional[str] = None) -> list[str]:
        """Sorted backup file paths, optionally for a single record."""
        if not self.directory or not os.path.isdir(self.backup_dir):
            return []
        names = sorted(os.listdir(self.backup_dir))
        if record_id is not None:
            stem = f"{record_id}.{self.cipher}-" if self.cipher else f"{record_id}-"
            names = [name for name in names if name.startswith(stem)]
        return [os.path.join(self.backup_dir, name) for name in names]

    def encrypt_file(self, path: str) -> Record:
        """Import a local file into the vault as a ``file`` record.

        The file content is stored base64 encoded in the ``Content`` field.

        Raises:
            VaultIOError: If the file cannot be read.
        """
        path = os.path.abspath(os.path.expanduser(path))
        data = read_file(path)
        rec = Record.new("file")
        rec["Name"] = os.path.basename(path)
        rec["File"] = path
        rec["Content"] = base64.b64encode(data).decode("ascii")
        rec.attachments.append(path)
        self.update(rec)
        logger.info("Imported %s as record %s", path, rec.id)
        return rec

    def decrypt_file(self, path: str) -> Record:
        """Decode any record or backup file without loading it into the vault."""
        return self.read_record(os.path.abspath(os.path.expanduser(path)))
