import os
import copy
import uuid
import shutil
import logging
from enum import Enum
from typing import Optional, Any
from datetime import datetime, timezone
from collections.abc import Iterable, Iterator, Mapping, MutableMapping
import orjson
from .crypto import encrypt
from .exceptions import (
    PreconditionError,
    SerializationError,
    VaultError,
    VaultIOError
)
from .utils import atomic_write, secure_file

logger = logging.getLogger("pwmvault")

BACKUP_DIR = 'backups'

# Keys listed first, in this order, whenever record keys are enumerated.
WELL_KNOWN_KEYS = ('Name', 'Login', 'Password', 'URL', 'Tags', 'File', 'Notes')

DEFAULT_SECRET_KEYS = frozenset({'Password'})

RECORD_TEMPLATES = {
    'login': ('Name', 'Login', 'Password', 'URL', 'Tags'),
    'note': ('Name', 'Tags'),
    'file': ('Name', 'File', 'Tags'),
}

_MASK = '********'


def valid_id(rid: str) -> bool:
    """A record id must be usable as a single file name inside the vault."""
    if not rid or rid.startswith('.'):
        return False
    if os.sep in rid or (os.altsep and os.altsep in rid):
        return False
    return '\x00' not in rid


def _now() -> datetime:
    return datetime.now(timezone.utc)


class FieldKind(Enum):
    """Whether a field value may be shown and logged as is."""
    PLAIN = 'plain'
    SECRET = 'secret'


class Record(MutableMapping[str, str]):
    """Vault record, a dict-like object over its fields.

    Field values are always strings. Besides the fields a record carries
    an immutable identifier, a list of attachment references and the time
    of its last successful write.

    Iteration follows :meth:`ordered_keys`: well-known keys first, then
    the remaining keys in lexicographic order.
    """

    def __init__(
        self,
        id: Optional[str] = None,
        fields: Optional[Mapping[str, Any]] = None,
        attachments: Optional[Iterable[str]] = None,
        modified_at: Optional[datetime] = None,
        secret_keys: Optional[Iterable[str]] = None
    ) -> None:
        self._id = str(uuid.uuid4()) if id is None else id
        self._fields: dict[str, str] = {}
        if fields:
            for key, value in fields.items():
                self[key] = value
        self.attachments: list[str] = list(attachments or [])
        self.modified_at: datetime = modified_at or _now()
        self._secret_keys: set[str] = set(
            DEFAULT_SECRET_KEYS if secret_keys is None else secret_keys
        )

    @classmethod
    def new(cls, kind: str = 'login') -> 'Record':
        """Create a record with a fresh id and empty template fields.

        Unknown kinds fall back to a login record.
        """
        template = RECORD_TEMPLATES.get(kind, RECORD_TEMPLATES['login'])
        return cls(fields=dict.fromkeys(template, ''))

    def __repr__(self) -> str:
        return (
            f'<Record [id:{self._id}, modified:{self.modified_at.isoformat()}] '
            f'fields={self.redacted()!r}, attachments={self.attachments!r}>'
        )

    # --- Properties ---

    @property
    def id(self) -> str:
        return self._id

    @property
    def fields(self) -> dict[str, str]:
        """Copy of the raw field mapping."""
        return dict(self._fields)

    @property
    def secret_keys(self) -> frozenset[str]:
        return frozenset(self._secret_keys)

    def field_kind(self, key: str) -> FieldKind:
        if key in self._secret_keys:
            return FieldKind.SECRET
        return FieldKind.PLAIN

    def mark_secret(self, key: str, secret: bool = True) -> None:
        """Flag (or unflag) a field as secret-like."""
        if secret:
            self._secret_keys.add(key)
        else:
            self._secret_keys.discard(key)

    def redacted(self) -> dict[str, str]:
        """Fields in display order, with non-empty secret values masked."""
        return {
            key: _MASK if self._fields[key] and key in self._secret_keys
            else self._fields[key]
            for key in self.ordered_keys()
        }

    def ordered_keys(self) -> list[str]:
        """Well-known keys present in the record, then the rest sorted."""
        known = [key for key in WELL_KNOWN_KEYS if key in self._fields]
        rest = sorted(key for key in self._fields if key not in WELL_KNOWN_KEYS)
        return known + rest

    def copy(self) -> 'Record':
        return copy.deepcopy(self)

    # --- Magic Methods ---

    def __len__(self) -> int:
        return len(self._fields)

    def __iter__(self) -> Iterator[str]:
        return iter(self.ordered_keys())

    def __contains__(self, key: object) -> bool:
        return key in self._fields

    def __getitem__(self, key: str) -> str:
        return self._fields[key]

    def __setitem__(self, key: str, value: Any) -> None:
        if not isinstance(key, str) or not key:
            raise ValueError(f'Invalid record field name: {key!r}')
        self._fields[key] = '' if value is None else str(value)

    def __delitem__(self, key: str) -> None:
        del self._fields[key]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Record):
            return NotImplemented
        return (
            self._id == other._id
            and self._fields == other._fields
            and self.attachments == other.attachments
            and self.modified_at == other.modified_at
            and self._secret_keys == other._secret_keys
        )

    __hash__ = None

    # --- Serialization ---

    def to_dict(self) -> dict[str, Any]:
        return {
            'id': self._id,
            'fields': dict(self._fields),
            'attachments': list(self.attachments),
            'modified_at': self.modified_at.isoformat(),
            'secret_keys': sorted(self._secret_keys),
        }

    def serialize(self) -> bytes:
        """Encode the record as JSON with sorted keys.

        Raises:
            SerializationError: If the record cannot be encoded.
        """
        try:
            return orjson.dumps(self.to_dict(), option=orjson.OPT_SORT_KEYS)
        except orjson.JSONEncodeError as err:
            raise SerializationError(
                f'unable to serialize record {self._id}: {err}'
            ) from err

    @classmethod
    def deserialize(cls, data: bytes) -> 'Record':
        """Decode a record produced by :meth:`serialize`.

        Unknown keys are ignored.

        Raises:
            SerializationError: On malformed JSON or invalid field types.
        """
        try:
            obj = orjson.loads(data)
        except orjson.JSONDecodeError as err:
            raise SerializationError(f'malformed record data: {err}') from err
        if not isinstance(obj, dict):
            raise SerializationError('record data is not a JSON object')
        rid = obj.get('id')
        if not isinstance(rid, str):
            raise SerializationError('record data has no string id')
        if not valid_id(rid):
            raise SerializationError(f'record data has invalid id {rid!r}')
        fields = obj.get('fields') or {}
        attachments = obj.get('attachments') or []
        if not isinstance(fields, dict) or not all(
            isinstance(v, str) for v in fields.values()
        ):
            raise SerializationError(f'record {rid} has invalid fields')
        if not isinstance(attachments, list) or not all(
            isinstance(v, str) for v in attachments
        ):
            raise SerializationError(f'record {rid} has invalid attachments')
        modified_at = None
        if obj.get('modified_at'):
            try:
                modified_at = datetime.fromisoformat(obj['modified_at'])
            except (TypeError, ValueError) as err:
                raise SerializationError(
                    f'record {rid} has invalid modification time'
                ) from err
            if modified_at.tzinfo is None:
                modified_at = modified_at.replace(tzinfo=timezone.utc)
        secret_keys = obj.get('secret_keys')
        if secret_keys is not None and (
            not isinstance(secret_keys, list)
            or not all(isinstance(k, str) for k in secret_keys)
        ):
            raise SerializationError(f'record {rid} has invalid secret keys')
        try:
            return cls(
                id=rid,
                fields=fields,
                attachments=attachments,
                modified_at=modified_at,
                secret_keys=secret_keys,
            )
        except ValueError as err:
            raise SerializationError(f'record {rid}: {err}') from err

    # --- Persistence ---

    def filename(self, cipher: str) -> str:
        return f'{self._id}.{cipher}' if cipher else self._id

    def record_path(self, directory: str, cipher: str) -> str:
        return os.path.join(directory, self.filename(cipher))

    def backup(self, directory: str, cipher: str) -> Optional[str]:
        """Copy the current record file into the backups area.

        Returns:
            Path of the backup, or None when there is no file to back up.

        Raises:
            VaultIOError: If the copy fails.
        """
        source = self.record_path(directory, cipher)
        if not os.path.isfile(source):
            return None
        tstamp = _now().isoformat(timespec='microseconds')
        bdir = os.path.join(directory, BACKUP_DIR)
        target = os.path.join(bdir, f'{self.filename(cipher)}-{tstamp}')
        try:
            os.makedirs(bdir, mode=0o700, exist_ok=True)
            shutil.copyfile(source, target)
        except FileNotFoundError:
            # removed underneath us, nothing left to preserve
            return None
        except OSError as err:
            raise VaultIOError(
                err.errno, f'unable to back up {source}: {err.strerror}'
            ) from err
        secure_file(target)
        return target

    def write(
        self,
        directory: str,
        secret: str,
        cipher: str,
        verbose: int = 0
    ) -> str:
        """Persist the record into ``directory``.

        The previous version of the file, if any, is copied into the
        backups area first. A failed backup is logged and the write goes
        on. The new content is encrypted unless ``cipher`` is empty,
        written atomically and left readable by its owner only.

        Returns:
            Path of the record file.

        Raises:
            PreconditionError: If the record has no identifier, or one that
                is not a plain file name.
            CryptoError: If encryption fails.
            SerializationError: If the record cannot be encoded.
            VaultIOError: If the file cannot be written.
        """
        if not self._id:
            raise PreconditionError(
                f'unable to write record without ID, record {self!r}'
            )
        if not valid_id(self._id):
            raise PreconditionError(
                f'unable to write record with invalid ID {self._id!r}'
            )
        path = self.record_path(directory, cipher)
        try:
            self.backup(directory, cipher)
        except VaultIOError as err:
            logger.warning(
                'unable to make backup for record %s: %s', self._id, err
            )
        previous = self.modified_at
        self.modified_at = _now()
        try:
            data = self.serialize()
            if verbose > 1:
                logger.debug(
                    'record %r using cipher %s', self, cipher or 'none'
                )
            elif verbose > 0:
                logger.info(
                    'record %s using cipher %s', self._id, cipher or 'none'
                )
            if cipher:
                data = encrypt(data, secret, cipher)
            atomic_write(path, data)
            secure_file(path)
        except VaultError:
            self.modified_at = previous
            raise
        return path
