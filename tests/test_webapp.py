from __future__ import annotations

import tempfile
import unittest
from datetime import datetime
from pathlib import Path

from fastapi.testclient import TestClient

from chronflow.config import STORE_FILENAME
from chronflow.models import AppWindow, Heartbeat, TeamsMeeting, UserActivity
from chronflow.server_runner import build_server
from chronflow.service import ActivityService
from chronflow.store import ActivityStore
from chronflow.timeutils import from_local
from chronflow.webapp import create_app

DAY = "2026-03-02"


def _ts(hour: int, minute: int, second: int = 0) -> int:
    return from_local(datetime(2026, 3, 2, hour, minute, second))


class WebAppTests(unittest.TestCase):
    def setUp(self) -> None:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.root = Path(tmp.name)
        store = ActivityStore.open(self.root / STORE_FILENAME)
        beats = []
        for index in range(60):
            minute = index // 2
            beats.append(
                Heartbeat(
                    timestamp=_ts(10, 0) + index * 30_000,
                    user_activity=UserActivity.INACTIVE if minute >= 20 else UserActivity.ACTIVE,
                    app_window=AppWindow("chrome.exe", "Docs - Google Chrome"),
                    teams_meeting=TeamsMeeting("Standup") if minute < 10 else None,
                )
            )
        store.append_many(beats)
        self.service = ActivityService(store, settings_path=self.root / "settings.json")
        self.client = TestClient(create_app(service=self.service, run_background=False))
        self.client.__enter__()
        self.addCleanup(self.client.__exit__, None, None, None)

    def test_status(self) -> None:
        response = self.client.get("/api/status")
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertFalse(body["running"])
        self.assertEqual(body["heartbeats"], 60)

    def test_dates(self) -> None:
        self.assertEqual(self.client.get("/api/dates").json(), {"dates": [DAY]})

    def test_summary(self) -> None:
        body = self.client.get("/api/summary", params={"date": DAY}).json()
        self.assertEqual(body["date"], DAY)
        self.assertEqual(
            [(entry["type"], entry["duration"]) for entry in body["entries"]],
            [("meeting", 600_000), ("primaryWindow", 600_000), ("inactive", 600_000)],
        )
        self.assertEqual(
            body["entries"][1]["payload"],
            {"app": "chrome.exe", "title": "Docs - Google Chrome", "subTitle": "Docs"},
        )
        self.assertEqual(body["totals"]["activeDuration"], 1_200_000)
        self.assertEqual(body["totals"]["inactiveDuration"], 600_000)
        self.assertEqual(body["totals"]["appUsage"], {"chrome.exe": 600_000})

    def test_summary_for_empty_day(self) -> None:
        body = self.client.get("/api/summary", params={"date": "2026-03-09"}).json()
        self.assertEqual(body["entries"], [])
        self.assertEqual(body["totals"]["trackedDuration"], 0)

    def test_invalid_date(self) -> None:
        for path in ("/api/summary", "/api/totals", "/api/heartbeats"):
            with self.subTest(path=path):
                response = self.client.get(path, params={"date": "03/02/2026"})
                self.assertEqual(response.status_code, 400)
                self.assertEqual(response.json()["detail"], "Invalid date format")

    def test_heartbeats_use_the_stored_shape(self) -> None:
        body = self.client.get("/api/heartbeats", params={"date": DAY}).json()
        self.assertEqual(len(body["heartbeats"]), 60)
        first, last = body["heartbeats"][0], body["heartbeats"][-1]
        self.assertEqual(first["data"]["teamsMeeting"], {"title": "Standup", "status": "active"})
        self.assertIs(last["data"]["teamsMeeting"], False)
        self.assertEqual(last["data"]["userActivity"], "inactive")

    def test_tracking_toggle(self) -> None:
        response = self.client.post("/api/tracking", json={"tracking": False})
        self.assertEqual(response.json(), {"tracking": False})
        self.assertFalse(self.service.collector.tracking)
        self.client.post("/api/tracking", json={"tracking": True})
        self.assertTrue(self.service.collector.tracking)

    def test_tracking_rejects_unknown_fields(self) -> None:
        response = self.client.post("/api/tracking", json={"tracking": True, "extra": 1})
        self.assertEqual(response.status_code, 422)

    def test_storage_relocation(self) -> None:
        target_dir = self.root / "synced"
        response = self.client.post("/api/storage", json={"directory": str(target_dir)})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["store_path"], str(target_dir / STORE_FILENAME))

        again = self.client.post("/api/storage", json={"directory": str(self.root / "synced")})
        self.assertEqual(again.status_code, 200)

        missing = self.client.post(
            "/api/storage", json={"directory": str(self.root / "nowhere"), "use_existing": True}
        )
        self.assertEqual(missing.status_code, 409)

    def test_storage_requires_directory(self) -> None:
        response = self.client.post("/api/storage", json={"directory": "  "})
        self.assertEqual(response.status_code, 400)


class BuildServerTests(unittest.TestCase):
    def test_server_wraps_the_app_for_the_given_store(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            store_path = Path(tmp) / STORE_FILENAME
            server = build_server(port=9876, store_path=store_path)
            self.assertEqual(server.config.port, 9876)
            self.assertEqual(server.config.app.state.service.store.path, store_path)
            self.assertFalse(server.started)


if __name__ == "__main__":
    unittest.main()
