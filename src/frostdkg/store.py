"""
Persisted session state.

Every round is a separate process invocation, so anything a later round
needs (the keygen polynomial, verified commitments, the long-term secret
share, session nonces) goes through a SessionStore between calls. The
coordinators only see the abstract interface; MemoryStore backs the tests and
FileStore backs the command line.

Keys are slash-separated and namespaced so that several keys and signing
sessions can live side by side:

    keygen/<key_id>/<party_index>/<record>
    keygen/<key_id>/group
    signing/<key_id>/<session>/<party_index>/<record>
"""

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, TypeVar, Union
from urllib.parse import quote

from pydantic import ValidationError

from .errors import StateNotFound, StorageError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# What a decoder raises on a record with missing or garbled fields
CORRUPT_RECORD_ERRORS = (AttributeError, KeyError, TypeError, ValueError, ValidationError)


def keygen_key(key_id: str, party_index: int, record: str) -> str:
    return f"keygen/{quote(key_id, safe='')}/{party_index}/{record}"


def group_key(key_id: str) -> str:
    return f"keygen/{quote(key_id, safe='')}/group"


def session_key(key_id: str, session: str, party_index: int, record: str) -> str:
    return (
        f"signing/{quote(key_id, safe='')}/{quote(session, safe='')}"
        f"/{party_index}/{record}"
    )


class SessionStore(ABC):
    """Key/value capability for durable per-party state."""

    @abstractmethod
    def read(self, key: str) -> bytes:
        """
        Return the bytes stored under key.

        Raises:
        StateNotFound: If nothing is stored under key.
        StorageError: If the backend fails.
        """

    @abstractmethod
    def write(self, key: str, data: bytes) -> None:
        """Store data under key, replacing any previous value."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove key; removing a missing key is not an error."""

    def exists(self, key: str) -> bool:
        try:
            self.read(key)
        except StateNotFound:
            return False
        return True

    def read_json(self, key: str, hint: str = "") -> Dict[str, Any]:
        """
        Read a JSON record.

        A missing record raises StateNotFound carrying the hint; a record that
        does not decode is reported as corruption.
        """
        try:
            data = self.read(key)
        except StateNotFound as e:
            raise StateNotFound(key, hint) from e

        try:
            record = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise StorageError(f"Stored record {key!r} is corrupt: {e}") from e
        if not isinstance(record, dict):
            raise StorageError(f"Stored record {key!r} is corrupt: not an object")
        return record

    def read_record(
        self, key: str, decode: Callable[[Dict[str, Any]], T], hint: str = ""
    ) -> T:
        """
        Read a JSON record and decode it into its in-memory form.

        Raises:
        StateNotFound: If the record is missing.
        StorageError: If the record does not decode, including valid JSON
        with missing or malformed fields.
        """
        record = self.read_json(key, hint)
        try:
            return decode(record)
        except CORRUPT_RECORD_ERRORS as e:
            raise StorageError(f"Stored record {key!r} is corrupt: {e!r}") from e

    def write_json(self, key: str, record: Dict[str, Any]) -> None:
        self.write(key, json.dumps(record, sort_keys=True).encode("utf-8"))


class MemoryStore(SessionStore):
    """Dictionary-backed store."""

    def __init__(self):
        self._data: Dict[str, bytes] = {}

    def read(self, key: str) -> bytes:
        try:
            return self._data[key]
        except KeyError:
            raise StateNotFound(key) from None

    def write(self, key: str, data: bytes) -> None:
        self._data[key] = bytes(data)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self):
        return sorted(self._data)


class FileStore(SessionStore):
    """
    One file per key inside a state directory.

    Key separators are percent-encoded into the file name so every record is
    a plain file directly under the directory. Writes go through a temporary
    file and os.replace, so a crash mid-write leaves the previous value.
    """

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / quote(key, safe="")

    def read(self, key: str) -> bytes:
        path = self._path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            raise StateNotFound(key) from None
        except OSError as e:
            raise StorageError(f"Failed to read {path}: {e}") from e

    def write(self, key: str, data: bytes) -> None:
        path = self._path(key)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=".tmp-")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
                os.replace(tmp_name, path)
            except BaseException:
                os.unlink(tmp_name)
                raise
        except OSError as e:
            raise StorageError(f"Failed to write {path}: {e}") from e
        logger.debug(f"Wrote {len(data)} bytes to {path}")

    def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageError(f"Failed to delete {path}: {e}") from e
