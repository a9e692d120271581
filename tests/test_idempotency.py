#!/usr/bin/env python
# -*- encoding: utf-8 -*-
"""
Tests for the lock file and the store of sent reminders.  All files
live in the pytest tmp_path.
"""
import json
import os
from datetime import datetime
from datetime import timedelta
from datetime import timezone

import pytest

from smsremind.idempotency import acquire_lock
from smsremind.idempotency import Store
from smsremind.idempotency.lock import parse_lock_info
from smsremind.lib.error import LockError
from smsremind.lib.error import LockHeldError
from smsremind.lib.error import StoreError

NOW = datetime(2024, 2, 29, 11, 0, tzinfo=timezone.utc)
MAX_AGE = timedelta(seconds=60)


class TestLock:
    def testAcquireAndRelease(self, tmp_path):
        path = str(tmp_path / "smsremind.lock")
        lock = acquire_lock(path, MAX_AGE, now=NOW)
        with open(path) as f:
            assert f.read() == "%d 2024-02-29T11:00:00Z\n" % os.getpid()
        lock.release()
        assert not os.path.exists(path)

    def testReleaseWhenAlreadyGone(self, tmp_path):
        path = str(tmp_path / "smsremind.lock")
        lock = acquire_lock(path, MAX_AGE, now=NOW)
        os.remove(path)
        lock.release()
        assert not os.path.exists(path)

    def testContextManager(self, tmp_path):
        path = str(tmp_path / "smsremind.lock")
        with acquire_lock(path, MAX_AGE, now=NOW):
            assert os.path.exists(path)
        assert not os.path.exists(path)

    def testHeld(self, tmp_path):
        path = str(tmp_path / "smsremind.lock")
        (tmp_path / "smsremind.lock").write_text("4242 2024-02-29T10:59:30Z\n")
        with pytest.raises(LockHeldError) as excinfo:
            acquire_lock(path, MAX_AGE, now=NOW)
        assert excinfo.value.pid == 4242
        assert excinfo.value.age == timedelta(seconds=30)
        assert "pid=4242" in str(excinfo.value)
        ## the lock of the other run is left alone
        assert (tmp_path / "smsremind.lock").read_text().startswith("4242 ")

    def testStale(self, tmp_path):
        path = str(tmp_path / "smsremind.lock")
        (tmp_path / "smsremind.lock").write_text("4242 2024-02-29T10:00:00Z\n")
        lock = acquire_lock(path, MAX_AGE, now=NOW)
        assert (tmp_path / "smsremind.lock").read_text().startswith(
            "%d " % os.getpid()
        )
        lock.release()

    def testExactlyMaxAgeIsStale(self, tmp_path):
        path = str(tmp_path / "smsremind.lock")
        (tmp_path / "smsremind.lock").write_text("4242 2024-02-29T10:59:00Z\n")
        acquire_lock(path, MAX_AGE, now=NOW).release()

    def testOffsetTimestamp(self, tmp_path):
        path = str(tmp_path / "smsremind.lock")
        (tmp_path / "smsremind.lock").write_text("4242 2024-02-29T11:59:50+01:00\n")
        with pytest.raises(LockHeldError):
            acquire_lock(path, MAX_AGE, now=NOW)

    @pytest.mark.parametrize(
        "content", ["", "4242\n", "pid 2024-02-29T10:59:30Z\n", "4242 yesterday\n"]
    )
    def testInvalid(self, tmp_path, content):
        path = str(tmp_path / "smsremind.lock")
        (tmp_path / "smsremind.lock").write_text(content)
        with pytest.raises(LockError) as excinfo:
            acquire_lock(path, MAX_AGE, now=NOW)
        assert not isinstance(excinfo.value, LockHeldError)
        assert "invalid" in str(excinfo.value)

    def testParseLockInfo(self):
        pid, ts = parse_lock_info("123 2024-02-29T11:00:00Z\n")
        assert pid == 123
        assert ts == NOW


class TestStore:
    def testMissingFileIsEmpty(self, tmp_path):
        store = Store.open(str(tmp_path / "sent.json"))
        assert store.keys() == set()
        assert not store.exists("x")
        assert not (tmp_path / "sent.json").exists()

    def testMarkPersists(self, tmp_path):
        path = str(tmp_path / "sent.json")
        with Store.open(path) as store:
            store.mark("E1|2024-03-01T09:00:00+01:00|T-1d")
            assert store.exists("E1|2024-03-01T09:00:00+01:00|T-1d")

        reopened = Store.open(path)
        assert reopened.keys() == {"E1|2024-03-01T09:00:00+01:00|T-1d"}

    def testFileFormat(self, tmp_path):
        path = tmp_path / "sent.json"
        store = Store.open(str(path))
        store.mark("b")
        store.mark("a")
        content = json.loads(path.read_text())
        assert sorted(content) == ["a", "b"]
        assert content["a"].endswith("Z")
        assert '\n  "a": ' in path.read_text()
        assert not (tmp_path / "sent.json.tmp").exists()

    def testMarkTwice(self, tmp_path):
        store = Store.open(str(tmp_path / "sent.json"))
        store.mark("a")
        store.mark("a")
        assert store.keys() == {"a"}

    def testDelete(self, tmp_path):
        path = str(tmp_path / "sent.json")
        store = Store.open(path)
        store.mark("a")
        store.mark("b")
        store.delete("a")
        store.delete("never-there")
        assert Store.open(path).keys() == {"b"}

    def testNestedDirectory(self, tmp_path):
        path = str(tmp_path / "state" / "smsremind" / "sent.json")
        Store.open(path).mark("a")
        assert os.path.exists(path)

    def testFilePermissions(self, tmp_path):
        path = tmp_path / "sent.json"
        Store.open(str(path)).mark("a")
        assert (path.stat().st_mode & 0o777) == 0o600

    @pytest.mark.parametrize(
        "content",
        ["{not json", "[1, 2]", '{"a": "yesterday"}', '{"a": 17}', '{"a": "2024-02-29T11:00:00"}'],
    )
    def testMalformed(self, tmp_path, content):
        path = tmp_path / "sent.json"
        path.write_text(content)
        with pytest.raises(StoreError):
            Store.open(str(path))

    def testUnwritable(self, tmp_path):
        ## a directory where the file should be
        path = tmp_path / "sent.json"
        store = Store.open(str(path))
        path.mkdir()
        with pytest.raises(StoreError):
            store.mark("a")
