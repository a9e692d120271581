"""
The set of reminders already sent, kept in a JSON file mapping each
key to the time it was marked.

Every change rewrites the whole file through a temporary file and a
rename, so the file on disk is always either the old or the new
version.  Only one process may use the store at a time; that is
ensured by the lock, the store itself does no file locking.
"""
import json
import logging
import os
import threading
from datetime import datetime
from typing import Dict
from typing import Optional
from typing import Set

from smsremind.lib.error import StoreError
from smsremind.lib.timestamps import parse_rfc3339
from smsremind.lib.timestamps import rfc3339
from smsremind.lib.timestamps import utcnow

log = logging.getLogger("smsremind")


class Store:
    def __init__(self, path: str, data: Optional[Dict[str, datetime]] = None) -> None:
        self.path = path
        self._mutex = threading.Lock()
        self._data: Dict[str, datetime] = data or {}

    @classmethod
    def open(cls, path: str) -> "Store":
        """
        Loads the store from path.  A missing file gives an empty store.
        """
        try:
            with open(path, "rb") as f:
                raw = json.load(f)
        except FileNotFoundError:
            log.debug("no store at %s, starting empty", path)
            return cls(path)
        except ValueError as e:
            raise StoreError(f"store {path} is not valid json: {e}") from e
        except OSError as e:
            raise StoreError(f"unable to read store {path}: {e}") from e

        if not isinstance(raw, dict):
            raise StoreError(f"store {path} does not hold a json object")
        data = {}
        for key, value in raw.items():
            if not isinstance(value, str):
                raise StoreError(f"store {path}: bad timestamp for {key!r}")
            try:
                data[key] = parse_rfc3339(value)
            except (TypeError, ValueError) as e:
                raise StoreError(f"store {path}: bad timestamp for {key!r}") from e
        return cls(path, data)

    def exists(self, key: str) -> bool:
        with self._mutex:
            return key in self._data

    def mark(self, key: str) -> None:
        """
        Records the key with the current time.  Marking a key twice is
        fine; the file is rewritten either way.
        """
        with self._mutex:
            self._data[key] = utcnow()
            self._save()

    def delete(self, key: str) -> None:
        with self._mutex:
            self._data.pop(key, None)
            self._save()

    def keys(self) -> Set[str]:
        with self._mutex:
            return set(self._data)

    def close(self) -> None:
        pass

    def __enter__(self) -> "Store":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    def _save(self) -> None:
        tmp = self.path + ".tmp"
        serialized = {key: rfc3339(ts) for key, ts in self._data.items()}
        try:
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(serialized, f, indent=2, sort_keys=True)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp, 0o600)
            os.replace(tmp, self.path)
        except OSError as e:
            raise StoreError(f"unable to write store {self.path}: {e}") from e
