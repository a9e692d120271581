"""
A lock file keeping two runs from working on the same state at the
same time.  The file holds the pid of the holder and the time it was
taken, ``"<pid> <RFC3339 UTC>\\n"``.  A lock older than ``max_age`` is
taken to be left over from a crashed run and is cleared.
"""
import logging
import os
from datetime import datetime
from datetime import timedelta
from typing import Optional
from typing import Tuple

from smsremind.lib.error import LockError
from smsremind.lib.error import LockHeldError
from smsremind.lib.timestamps import parse_rfc3339
from smsremind.lib.timestamps import rfc3339
from smsremind.lib.timestamps import utcnow

log = logging.getLogger("smsremind")


class Lock:
    def __init__(self, path: str) -> None:
        self.path = path

    def release(self) -> None:
        """
        Removes the lock file.  There is no check that the file still
        belongs to us.  A lock file that is already gone (cleared as
        stale by another run) is only logged.
        """
        try:
            os.remove(self.path)
        except FileNotFoundError:
            log.warning("lock %s was already removed", self.path)
            return
        log.debug("released lock %s", self.path)

    def __enter__(self) -> "Lock":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.release()

    def __repr__(self) -> str:
        return "Lock(%s)" % self.path


def _try_create(path: str, now: datetime) -> bool:
    try:
        fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o600)
    except FileExistsError:
        return False
    with os.fdopen(fd, "w") as f:
        f.write("%d %s\n" % (os.getpid(), rfc3339(now)))
    return True


def parse_lock_info(text: str) -> Tuple[int, datetime]:
    parts = text.split()
    if len(parts) < 2:
        raise ValueError("invalid lock format")
    return int(parts[0]), parse_rfc3339(parts[1])


def acquire_lock(
    path: str, max_age: timedelta, now: Optional[datetime] = None
) -> Lock:
    """
    Creates the lock file exclusively.

    Raises LockHeldError if a lock younger than max_age exists, and
    LockError if an existing lock can't be read or if the lock can't
    be taken even after clearing a stale one.
    """
    if now is None:
        now = utcnow()

    if _try_create(path, now):
        log.debug("acquired lock %s", path)
        return Lock(path)

    try:
        with open(path) as f:
            info = f.read()
    except FileNotFoundError:
        ## released in the meantime
        info = None
    except OSError as e:
        raise LockError(f"unable to read lock {path}: {e}") from e

    if info is not None:
        try:
            pid, ts = parse_lock_info(info)
        except ValueError as e:
            raise LockError(f"lock exists but is invalid: {e}") from e

        age = now - ts
        if age < max_age:
            raise LockHeldError(pid, age)

        log.warning("removing stale lock %s (pid=%d, age=%s)", path, pid, age)
        try:
            os.remove(path)
        except FileNotFoundError:
            pass

    if _try_create(path, now):
        log.debug("acquired lock %s", path)
        return Lock(path)

    raise LockError("failed to acquire lock after removing stale lock")
