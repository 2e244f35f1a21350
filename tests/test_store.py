from __future__ import annotations

import json
import tempfile
import threading
import unittest
from datetime import datetime
from pathlib import Path
from unittest import mock

from chronflow.config import STORE_FILENAME, STORE_VERSION
from chronflow.errors import RelocationError, StoreWriteError
from chronflow.models import AppWindow, Heartbeat, TeamsMeeting, UserActivity
from chronflow.persistence import StorePersistence
from chronflow.store import ActivityStore
from chronflow.timeutils import from_local


def _ts(month: int, day: int, hour: int = 9, minute: int = 0) -> int:
    return from_local(datetime(2026, month, day, hour, minute))


class StoreTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.root = Path(self._tmp.name)
        self.path = self.root / STORE_FILENAME

    def write_raw(self, text: str) -> None:
        self.path.write_text(text, encoding="utf-8")


class LoadTests(StoreTestCase):
    def test_missing_file_starts_empty(self) -> None:
        store = ActivityStore.open(self.path)
        self.assertEqual(store.heartbeat_count(), 0)
        self.assertIsNone(store.load_error)
        self.assertFalse(self.path.exists())

    def test_truncated_file_is_backed_up(self) -> None:
        self.write_raw('{"version": 1, "days": {')
        store = ActivityStore.open(self.path)
        self.assertEqual(store.heartbeat_count(), 0)
        self.assertIsNotNone(store.load_error)
        self.assertEqual(store.load_error.reason, "parse-error")
        self.assertFalse(self.path.exists())
        backups = list(self.root.glob(f"{STORE_FILENAME}.invalid-parse-error-*"))
        self.assertEqual(len(backups), 1)
        self.assertEqual(str(backups[0]), store.load_error.backup_path)

    def test_wrong_version_is_rejected(self) -> None:
        self.write_raw(json.dumps({"version": 99, "startTime": 1, "lastCleanup": 0, "days": {}}))
        store = ActivityStore.open(self.path)
        self.assertEqual(store.load_error.reason, "wrong-version")
        self.assertTrue(list(self.root.glob("*.invalid-wrong-version-*")))

    def test_non_object_document_is_rejected(self) -> None:
        self.write_raw("[]")
        store = ActivityStore.open(self.path)
        self.assertEqual(store.load_error.reason, "invalid-object")

    def test_malformed_heartbeats_and_days_are_skipped(self) -> None:
        good = {"timestamp": _ts(3, 2), "data": {"userActivity": "active"}}
        self.write_raw(
            json.dumps(
                {
                    "version": STORE_VERSION,
                    "startTime": _ts(3, 1),
                    "lastCleanup": 0,
                    "days": {
                        "2026-03-02": {
                            "heartbeats": [
                                good,
                                {"timestamp": -3, "data": {}},
                                {"timestamp": "soon"},
                                {"timestamp": 1.5},
                            ]
                        },
                        "not-a-date": {"heartbeats": [good]},
                        "2026-03-03": {"heartbeats": "oops"},
                    },
                }
            )
        )
        store = ActivityStore.open(self.path)
        self.assertIsNone(store.load_error)
        self.assertEqual(store.available_dates(), ["2026-03-02"])
        self.assertEqual(store.heartbeat_count(), 1)
        self.assertEqual(store.start_time, _ts(3, 1))

    def test_unreadable_file_is_left_in_place(self) -> None:
        ActivityStore.open(self.path).close()
        original = self.path.read_text(encoding="utf-8")
        with mock.patch.object(Path, "read_bytes", side_effect=PermissionError("locked")):
            store = ActivityStore.open(self.path)
        self.assertEqual(store.load_error.reason, "read-error")
        self.assertIsNone(store.load_error.backup_path)
        self.assertEqual(list(self.root.glob("*.invalid-*")), [])

        store.append_heartbeat(Heartbeat(timestamp=_ts(3, 2)))
        self.assertFalse(store.save())
        self.assertTrue(store.dirty)
        self.assertEqual(self.path.read_text(encoding="utf-8"), original)

        target = store.relocate(self.root / "fresh")
        self.assertEqual(ActivityStore.open(target).heartbeat_count(), 1)
        self.assertEqual(self.path.read_text(encoding="utf-8"), original)
        self.assertTrue(store.save())

    def test_corrupt_file_is_not_overwritten_when_backup_fails(self) -> None:
        self.write_raw('{"version": 1, "days": {')
        with mock.patch.object(StorePersistence, "_backup_invalid_file", return_value=None):
            store = ActivityStore.open(self.path)
        self.assertEqual(store.load_error.reason, "parse-error")
        store.append_heartbeat(Heartbeat(timestamp=_ts(3, 2)))
        self.assertFalse(store.save())
        self.assertFalse(store.close())
        self.assertIsNotNone(store.last_save_error)
        self.assertEqual(self.path.read_text(encoding="utf-8"), '{"version": 1, "days": {')

    def test_reads_meeting_false_and_objects(self) -> None:
        self.write_raw(
            json.dumps(
                {
                    "version": 1,
                    "startTime": 1,
                    "lastCleanup": 0,
                    "days": {
                        "2026-03-02": {
                            "heartbeats": [
                                {
                                    "timestamp": _ts(3, 2, 9, 0),
                                    "data": {
                                        "userActivity": "inactive",
                                        "appWindow": {"app": "Code", "title": "x"},
                                        "teamsMeeting": False,
                                    },
                                },
                                {
                                    "timestamp": _ts(3, 2, 9, 1),
                                    "data": {
                                        "userActivity": "active",
                                        "appWindow": None,
                                        "teamsMeeting": {"title": "Standup", "status": "active"},
                                    },
                                },
                            ]
                        }
                    },
                }
            )
        )
        first, second = ActivityStore.open(self.path).heartbeats_for_day("2026-03-02")
        self.assertEqual(first.user_activity, UserActivity.INACTIVE)
        self.assertEqual(first.app_window, AppWindow("Code", "x"))
        self.assertIsNone(first.teams_meeting)
        self.assertIsNone(second.app_window)
        self.assertEqual(second.teams_meeting, TeamsMeeting("Standup"))


class SaveTests(StoreTestCase):
    def test_save_writes_versioned_document(self) -> None:
        store = ActivityStore.open(self.path)
        store.append_heartbeat(
            Heartbeat(timestamp=_ts(3, 2), app_window=AppWindow("Code", "store.py"))
        )
        self.assertTrue(store.dirty)
        self.assertTrue(store.save())
        self.assertFalse(store.dirty)

        text = self.path.read_text(encoding="utf-8")
        self.assertIn("\n  ", text)
        document = json.loads(text)
        self.assertEqual(document["version"], STORE_VERSION)
        beat = document["days"]["2026-03-02"]["heartbeats"][0]
        self.assertEqual(beat["data"]["appWindow"], {"app": "Code", "title": "store.py"})
        self.assertIs(beat["data"]["teamsMeeting"], False)
        self.assertEqual(list(self.root.glob("*.tmp")), [])

    def test_saved_store_reloads_identically(self) -> None:
        store = ActivityStore.open(self.path)
        store.append_many(
            [
                Heartbeat(timestamp=_ts(3, 2, 9, minute), teams_meeting=TeamsMeeting("Sync"))
                for minute in range(5)
            ]
        )
        store.save()
        reloaded = ActivityStore.open(self.path)
        self.assertEqual(
            reloaded.heartbeats_for_day("2026-03-02"), store.heartbeats_for_day("2026-03-02")
        )

    def test_clean_store_skips_write(self) -> None:
        store = ActivityStore.open(self.path)
        self.assertTrue(store.save())
        self.assertFalse(self.path.exists())

    def test_write_failure_keeps_store_dirty(self) -> None:
        store = ActivityStore.open(self.path)
        store.append_heartbeat(Heartbeat(timestamp=_ts(3, 2)))
        with mock.patch.object(
            StorePersistence, "save", side_effect=StoreWriteError("disk full")
        ):
            self.assertFalse(store.save())
        self.assertTrue(store.dirty)
        self.assertIsNotNone(store.last_save_error)
        self.assertTrue(store.save())
        self.assertIsNone(store.last_save_error)

    def _count_concurrent_saves(
        self, store: ActivityStore, append_between: bool
    ) -> tuple[int, int]:
        entered = threading.Event()
        release = threading.Event()
        counter_lock = threading.Lock()
        counts = {"active": 0, "peak": 0, "calls": 0}
        real_save = StorePersistence.save

        def slow_save(persistence: StorePersistence, document: dict) -> None:
            with counter_lock:
                counts["active"] += 1
                counts["calls"] += 1
                counts["peak"] = max(counts["peak"], counts["active"])
            entered.set()
            release.wait(5.0)
            try:
                real_save(persistence, document)
            finally:
                with counter_lock:
                    counts["active"] -= 1

        results: list[bool] = []
        with mock.patch.object(StorePersistence, "save", autospec=True, side_effect=slow_save):
            first = threading.Thread(target=lambda: results.append(store.save()))
            first.start()
            self.assertTrue(entered.wait(5.0))
            if append_between:
                store.append_heartbeat(Heartbeat(timestamp=_ts(3, 3)))
            second = threading.Thread(target=lambda: results.append(store.save()))
            second.start()
            second.join(0.2)
            # the second request waits for the write in flight
            self.assertTrue(second.is_alive())
            release.set()
            first.join(5.0)
            second.join(5.0)
        self.assertEqual(results, [True, True])
        return counts["calls"], counts["peak"]

    def test_concurrent_save_without_changes_is_skipped(self) -> None:
        store = ActivityStore.open(self.path)
        store.append_heartbeat(Heartbeat(timestamp=_ts(3, 2)))
        calls, peak = self._count_concurrent_saves(store, append_between=False)
        self.assertEqual(calls, 1)
        self.assertEqual(peak, 1)
        self.assertFalse(store.dirty)

    def test_concurrent_save_after_append_writes_again(self) -> None:
        store = ActivityStore.open(self.path)
        store.append_heartbeat(Heartbeat(timestamp=_ts(3, 2)))
        calls, peak = self._count_concurrent_saves(store, append_between=True)
        self.assertEqual(calls, 2)
        self.assertEqual(peak, 1)
        self.assertEqual(ActivityStore.open(self.path).heartbeat_count(), 2)

    def test_close_forces_a_save(self) -> None:
        with ActivityStore.open(self.path) as store:
            store.append_heartbeat(Heartbeat(timestamp=_ts(3, 2)))
        self.assertTrue(self.path.exists())


class CleanupTests(StoreTestCase):
    def test_keeps_the_bucket_exactly_at_the_retention_boundary(self) -> None:
        store = ActivityStore.open(self.path)
        for month, day in ((2, 27), (2, 28), (3, 1), (3, 31)):
            store.append_heartbeat(Heartbeat(timestamp=_ts(month, day)))
        removed = store.cleanup(now=_ts(3, 31, 12))
        self.assertEqual(removed, ["2026-02-27", "2026-02-28"])
        self.assertEqual(store.available_dates(), ["2026-03-01", "2026-03-31"])
        self.assertEqual(store.last_cleanup, _ts(3, 31, 12))

    def test_cleanup_if_due_runs_once_per_day(self) -> None:
        store = ActivityStore.open(self.path)
        store.append_heartbeat(Heartbeat(timestamp=_ts(1, 2)))
        self.assertEqual(store.cleanup_if_due(now=_ts(3, 31, 12)), ["2026-01-02"])
        self.assertTrue(self.path.exists())
        store.append_heartbeat(Heartbeat(timestamp=_ts(1, 3)))
        self.assertEqual(store.cleanup_if_due(now=_ts(3, 31, 13)), [])
        self.assertIn("2026-01-03", store.available_dates())


class RelocationTests(StoreTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.store = ActivityStore.open(self.path)
        self.store.append_heartbeat(Heartbeat(timestamp=_ts(3, 2)))

    def test_relocate_copies_and_switches(self) -> None:
        target_dir = self.root / "synced"
        target = self.store.relocate(target_dir)
        self.assertEqual(target, target_dir / STORE_FILENAME)
        self.assertEqual(self.store.path, target)
        self.assertTrue(self.path.exists())

        self.store.append_heartbeat(Heartbeat(timestamp=_ts(3, 3)))
        self.store.save()
        self.assertEqual(ActivityStore.open(target).heartbeat_count(), 2)
        self.assertEqual(ActivityStore.open(self.path).heartbeat_count(), 1)

    def test_relocate_refuses_to_overwrite(self) -> None:
        target_dir = self.root / "synced"
        target_dir.mkdir()
        (target_dir / STORE_FILENAME).write_text("{}", encoding="utf-8")
        with self.assertRaises(RelocationError):
            self.store.relocate(target_dir)
        self.assertEqual(self.store.path, self.path)

    def test_use_existing_adopts_the_other_store(self) -> None:
        other_dir = self.root / "other"
        other = ActivityStore.open(other_dir / STORE_FILENAME)
        for day in (4, 5):
            other.append_heartbeat(Heartbeat(timestamp=_ts(3, day)))
        other.save()

        self.store.use_existing(other_dir)
        self.assertEqual(self.store.available_dates(), ["2026-03-04", "2026-03-05"])
        self.assertFalse(self.store.dirty)
        # the previous store was flushed before switching
        self.assertEqual(ActivityStore.open(self.path).heartbeat_count(), 1)

    def test_use_existing_keeps_current_store_when_flush_fails(self) -> None:
        other_dir = self.root / "other"
        other = ActivityStore.open(other_dir / STORE_FILENAME)
        other.append_heartbeat(Heartbeat(timestamp=_ts(3, 4)))
        other.save()

        with mock.patch.object(
            StorePersistence, "save", side_effect=StoreWriteError("disk full")
        ):
            with self.assertRaises(RelocationError):
                self.store.use_existing(other_dir)
        self.assertEqual(self.store.path, self.path)
        self.assertEqual(self.store.available_dates(), ["2026-03-02"])
        self.assertTrue(self.store.dirty)
        self.assertTrue(self.store.save())
        self.assertEqual(ActivityStore.open(self.path).available_dates(), ["2026-03-02"])

    def test_use_existing_requires_a_store(self) -> None:
        with self.assertRaises(RelocationError):
            self.store.use_existing(self.root / "empty")


if __name__ == "__main__":
    unittest.main()
