"""Secret Store contract and local implementations.

The core only depends on the SecretStore interface. Backends own transport,
persistence and timeouts; they report their own failures as TransportFailure.
"""
import fcntl
import json
import logging
import os
import tempfile
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from .errors import TransportFailure, ValidationError
from .models import SecretRecord, SecretScope, SecretType

logger = logging.getLogger(__name__)

_Key = Tuple[str, str, str, str]


def _key(name: str, scope: SecretScope) -> _Key:
    if scope.type is None:
        raise ValidationError("Store operations require a concrete secret type")
    return (scope.environment, scope.path, SecretType(scope.type).value, name)


class SecretStore(ABC):
    """Raw CRUD against secret records.

    Every method accepts an optional timeout in seconds. The core never
    interprets it; it is handed to the backend as-is.
    """

    @abstractmethod
    def get(self, name: str, scope: SecretScope, timeout: Optional[float] = None) -> Optional[SecretRecord]:
        """Return the record with exactly this name and scope, or None."""

    @abstractmethod
    def list(self, environment: str, path: str, timeout: Optional[float] = None) -> List[SecretRecord]:
        """Return all shared and personal records in environment/path."""

    @abstractmethod
    def put(self, record: SecretRecord, timeout: Optional[float] = None) -> SecretRecord:
        """Create or replace a record."""

    @abstractmethod
    def delete(self, name: str, scope: SecretScope, timeout: Optional[float] = None) -> Optional[SecretRecord]:
        """Remove a record, returning it, or None if it did not exist."""


class InMemorySecretStore(SecretStore):
    """Dict-backed store. Listing preserves insertion order."""

    def __init__(self, records: Iterable[SecretRecord] = ()):
        self._records: Dict[_Key, SecretRecord] = {}
        for record in records:
            self._records[_key(record.name, record.scope)] = record

    def get(self, name, scope, timeout=None):
        return self._records.get(_key(name, scope))

    def list(self, environment, path, timeout=None):
        return [
            r for r in self._records.values()
            if r.scope.environment == environment and r.scope.path == path
        ]

    def put(self, record, timeout=None):
        self._records[_key(record.name, record.scope)] = record
        return record

    def delete(self, name, scope, timeout=None):
        return self._records.pop(_key(name, scope), None)

    def all(self) -> List[SecretRecord]:
        return list(self._records.values())


class FileSecretStore(SecretStore):
    """Store persisted as a single JSON document on local disk.

    Layout: {"secrets": [{"environment", "path", "type", "name", "value"}, ...]}
    The file is re-read on every call so separate processes see each
    other's writes. Writers hold an exclusive flock on a sibling ".lock"
    file across load and save, so concurrent puts and deletes from
    separate processes are serialized.
    """

    LOCK_POLL_INTERVAL = 0.05

    def __init__(self, file_path):
        self.file_path = Path(file_path).expanduser()
        self.lock_path = self.file_path.with_name(self.file_path.name + ".lock")

    @contextmanager
    def _locked(self, timeout: Optional[float] = None):
        """Hold the exclusive write lock, waiting at most timeout seconds."""
        try:
            self.file_path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self.lock_path, os.O_CREAT | os.O_RDWR, 0o600)
        except OSError as e:
            raise TransportFailure(f"Failed to open lock file {self.lock_path}: {e}") from e

        try:
            self._acquire(fd, timeout)
            yield
        finally:
            # Closing the descriptor releases the flock
            os.close(fd)

    def _acquire(self, fd: int, timeout: Optional[float]) -> None:
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX if deadline is None else fcntl.LOCK_EX | fcntl.LOCK_NB)
                return
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    raise TransportFailure(
                        f"Timed out after {timeout}s waiting for lock on {self.file_path}"
                    ) from None
                time.sleep(self.LOCK_POLL_INTERVAL)
            except OSError as e:
                raise TransportFailure(f"Failed to lock {self.lock_path}: {e}") from e

    def _load(self) -> InMemorySecretStore:
        if not self.file_path.exists():
            return InMemorySecretStore()

        try:
            with open(self.file_path, 'r') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise TransportFailure(f"Failed to parse secrets file {self.file_path}: {e}") from e
        except OSError as e:
            raise TransportFailure(f"Failed to read secrets file {self.file_path}: {e}") from e

        if not isinstance(data, dict):
            raise TransportFailure(f"Secrets file {self.file_path} must contain a JSON object")

        entries = data.get("secrets", [])
        if not isinstance(entries, list):
            raise TransportFailure(f"'secrets' in {self.file_path} must be a list")

        records = []
        for entry in entries:
            try:
                scope = SecretScope(entry["environment"], entry["path"], SecretType(entry["type"]))
                records.append(SecretRecord(entry["name"], entry["value"], scope))
            except (KeyError, TypeError, ValueError) as e:
                raise TransportFailure(f"Malformed entry in secrets file {self.file_path}: {e}") from e
        return InMemorySecretStore(records)

    def _save(self, store: InMemorySecretStore) -> None:
        entries = [
            {
                "environment": r.scope.environment,
                "path": r.scope.path,
                "type": r.scope.type.value,
                "name": r.name,
                "value": r.raw_value,
            }
            for r in store.all()
        ]
        try:
            self.file_path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.file_path.parent, suffix=".tmp")
            try:
                with os.fdopen(fd, 'w') as f:
                    json.dump({"secrets": entries}, f, indent=2)
                os.chmod(tmp_path, 0o600)
                os.replace(tmp_path, self.file_path)
            except BaseException:
                os.unlink(tmp_path)
                raise
        except OSError as e:
            raise TransportFailure(f"Failed to write secrets file {self.file_path}: {e}") from e

    def get(self, name, scope, timeout=None):
        return self._load().get(name, scope)

    def list(self, environment, path, timeout=None):
        return self._load().list(environment, path)

    def put(self, record, timeout=None):
        with self._locked(timeout):
            store = self._load()
            store.put(record)
            self._save(store)
        logger.debug(f"Wrote secret '{record.name}' to {self.file_path}")
        return record

    def delete(self, name, scope, timeout=None):
        with self._locked(timeout):
            store = self._load()
            removed = store.delete(name, scope)
            if removed is not None:
                self._save(store)
        if removed is not None:
            logger.debug(f"Removed secret '{name}' from {self.file_path}")
        return removed
