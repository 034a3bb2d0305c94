"""Tests for the device-side offline queue.

Delivery goes either through the real app (TestClient is an httpx.Client) or
through ``httpx.MockTransport`` when a test needs to script server answers.
"""
import json
import threading

import httpx
import pytest
from pydantic import ValidationError

from pt_tracker.client.offline_queue import OfflineQueue, build_record
from pt_tracker.client.store import LocalBase, QueueFullError, QueueStorageError, QueueStore
from pt_tracker.client.transport import DeliveryStatus, IngestionTransport
from pt_tracker.config import ClientSettings
from pt_tracker.models.activity_log import ActivityLog
from tests.conftest import auth, create_test_user

SETS = [{"set_number": 1, "reps": 10}]


@pytest.fixture
def store(tmp_path):
    s = QueueStore(str(tmp_path / "queue.db"))
    yield s
    s.close()


def _record(client_mutation_id=None, **fields):
    if client_mutation_id is not None:
        fields["client_mutation_id"] = client_mutation_id
    return build_record("Heel Slides", "reps", SETS, **fields)


def _scripted(handler):
    return httpx.Client(transport=httpx.MockTransport(handler), base_url="http://queue.test")


def _app_queue(client, store, patient, **kwargs):
    return OfflineQueue(store, IngestionTransport(client, patient["id"]), patient["id"], **kwargs)


class TestDelivery:

    def test_online_submit_delivers_and_empties_queue(self, client, db, store):
        patient = create_test_user(client)
        queue = _app_queue(client, store, patient)

        report = queue.submit(_record("q-online"))
        assert report.delivered == ["q-online"]
        assert queue.pending_count() == 0
        assert db.query(ActivityLog).filter(ActivityLog.client_mutation_id == "q-online").count() == 1

    def test_offline_submit_waits_for_connectivity(self, client, db, store):
        patient = create_test_user(client)
        queue = _app_queue(client, store, patient, online=False)

        queue.submit(_record("q-1"))
        queue.submit(_record("q-2"))
        assert queue.pending_count() == 2
        assert db.query(ActivityLog).count() == 0

        assert queue.on_connectivity_change(False) is None
        report = queue.on_connectivity_change(True)
        assert report.delivered == ["q-1", "q-2"]
        assert queue.pending_count() == 0
        assert db.query(ActivityLog).count() == 2

    def test_replay_in_enqueue_order(self, store):
        seen = []

        def handler(request):
            seen.append(json.loads(request.content)["client_mutation_id"])
            return httpx.Response(201, json={"id": f"log-{len(seen)}"})

        queue = OfflineQueue(store, IngestionTransport(_scripted(handler), "p-1"), "p-1", online=False)
        for name in ("first", "second", "third"):
            queue.enqueue(_record(name))

        report = queue.replay()
        assert report.delivered == ["first", "second", "third"]
        assert seen == ["first", "second", "third"]

    def test_already_persisted_record_settles_as_duplicate(self, client, store):
        patient = create_test_user(client)
        record = _record("q-dup")
        direct = client.post("/api/logs/", json=record.model_dump(mode="json"), headers=auth(patient))
        assert direct.status_code == 201

        report = _app_queue(client, store, patient).submit(record)
        assert report.duplicates == ["q-dup"]
        assert report.succeeded == 1
        assert store.count() == 0

    def test_refused_delegation_is_abandoned_immediately(self, client, store):
        patient = create_test_user(client)
        other = create_test_user(client)
        queue = _app_queue(client, store, patient)

        report = queue.submit(_record("q-forbidden", patient_id=other["id"]))
        assert report.delivered == []
        assert len(report.abandoned) == 1
        assert report.abandoned[0].attempts == 1
        assert "not permitted" in report.abandoned[0].reason
        assert queue.pending_count() == 0


class TestRetries:

    def test_gives_up_after_max_retries(self, store):
        calls = []

        def handler(request):
            calls.append(1)
            return httpx.Response(503, json={"detail": {"message": "database is locked"}})

        queue = OfflineQueue(store, IngestionTransport(_scripted(handler), "p-1"), "p-1", max_retries=3)

        first = queue.submit(_record("q-flaky"))
        assert first.retrying == ["q-flaky"]
        assert queue.replay().retrying == ["q-flaky"]

        final = queue.replay()
        assert final.retrying == []
        assert final.abandoned[0].attempts == 3
        assert "database is locked" in final.abandoned[0].reason
        assert len(calls) == 3
        assert queue.pending_count() == 0

    def test_timeout_is_retried_then_delivered(self, store):
        answers = iter(["timeout", "ok"])

        def handler(request):
            if next(answers) == "timeout":
                raise httpx.ReadTimeout("timed out", request=request)
            return httpx.Response(201, json={"id": "log-1"})

        queue = OfflineQueue(store, IngestionTransport(_scripted(handler), "p-1"), "p-1")
        assert queue.submit(_record("q-slow")).retrying == ["q-slow"]
        assert store.pending("p-1")[0].retries == 1
        assert "timeout" in store.pending("p-1")[0].last_error

        assert queue.replay().delivered == ["q-slow"]
        assert queue.pending_count() == 0

    def test_network_error_is_retried(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        result = IngestionTransport(_scripted(handler), "p-1").deliver({"client_mutation_id": "x"})
        assert result.status == DeliveryStatus.retry
        assert "network error" in result.error

    def test_validation_rejection_not_retried(self):
        def handler(request):
            return httpx.Response(400, json={"detail": {"message": "sets: too short", "field": "sets"}})

        result = IngestionTransport(_scripted(handler), "p-1").deliver({"client_mutation_id": "x"})
        assert result.status == DeliveryStatus.rejected
        assert result.error == "sets: too short"


class TestStore:

    def test_queue_survives_restart(self, tmp_path):
        path = str(tmp_path / "queue.db")
        before = QueueStore(path)
        OfflineQueue(before, IngestionTransport(_scripted(lambda r: httpx.Response(500)), "p-1"), "p-1",
                     online=False).enqueue(_record("q-durable"))
        before.close()

        after = QueueStore(path)
        entries = after.pending("p-1")
        assert [e.client_mutation_id for e in entries] == ["q-durable"]
        assert entries[0].payload["exercise_name"] == "Heel Slides"
        assert entries[0].payload["client_created_at"] is not None

        delivering = _scripted(lambda r: httpx.Response(201, json={"id": "log-1"}))
        report = OfflineQueue(after, IngestionTransport(delivering, "p-1"), "p-1").replay()
        assert report.delivered == ["q-durable"]
        assert after.count("p-1") == 0
        after.close()

    def test_full_queue_refuses_new_records(self, store):
        queue = OfflineQueue(store, IngestionTransport(_scripted(lambda r: httpx.Response(500)), "p-1"), "p-1",
                             max_size=2, online=False)
        queue.enqueue(_record("a"))
        queue.enqueue(_record("b"))
        with pytest.raises(QueueFullError):
            queue.enqueue(_record("c"))
        assert queue.pending_count() == 2

    def test_enqueue_same_record_twice_keeps_one_entry(self, store):
        queue = OfflineQueue(store, IngestionTransport(_scripted(lambda r: httpx.Response(500)), "p-1"), "p-1",
                             online=False)
        record = _record("same")
        queue.enqueue(record)
        queue.enqueue(record)
        assert queue.pending_count() == 1

    def test_entries_scoped_per_patient(self, store):
        transport = IngestionTransport(_scripted(lambda r: httpx.Response(500)), "p-1")
        alice = OfflineQueue(store, transport, "alice", online=False)
        bob = OfflineQueue(store, transport, "bob", online=False)
        alice.enqueue(_record("shared"))
        bob.enqueue(_record("shared"))
        bob.enqueue(_record("bob-only"))

        assert alice.pending_count() == 1
        assert bob.pending_count() == 2
        assert alice.clear() == 1
        assert bob.pending_count() == 2

    def test_unopenable_store_raises(self, tmp_path):
        with pytest.raises(QueueStorageError):
            QueueStore(str(tmp_path / "missing-dir" / "queue.db"))

    def test_storage_failure_surfaces(self, store):
        LocalBase.metadata.drop_all(bind=store.engine)
        queue = OfflineQueue(store, IngestionTransport(_scripted(lambda r: httpx.Response(500)), "p-1"), "p-1",
                             online=False)
        with pytest.raises(QueueStorageError):
            queue.enqueue(_record("lost"))


class TestBuildRecord:

    def test_fresh_mutation_id_each_time(self):
        assert _record().client_mutation_id != _record().client_mutation_id

    def test_record_is_frozen(self):
        record = _record("frozen")
        with pytest.raises(ValidationError):
            record.notes = "edited"


class TestLifecycle:

    def test_periodic_flush_replays_until_stopped(self, store):
        stop = threading.Event()

        def handler(request):
            stop.set()
            return httpx.Response(201, json={"id": "log-1"})

        queue = OfflineQueue(store, IngestionTransport(_scripted(handler), "p-1"), "p-1", online=False)
        queue.enqueue(_record("q-periodic"))
        queue.online = True

        queue.flush_periodically(stop, interval=0.01)
        assert queue.pending_count() == 0

    def test_overlapping_replays_settle_each_entry_once(self, store):
        in_flight = threading.Event()
        release = threading.Event()
        calls = []

        def handler(request):
            calls.append(1)
            in_flight.set()
            release.wait(timeout=5)
            return httpx.Response(503, json={"detail": {"message": "busy"}})

        queue = OfflineQueue(store, IngestionTransport(_scripted(handler), "p-1"), "p-1", online=False)
        queue.enqueue(_record("q-overlap"))

        background = {}
        worker = threading.Thread(target=lambda: background.setdefault("report", queue.replay()))
        worker.start()
        try:
            assert in_flight.wait(timeout=5)
            overlapping = queue.replay()
        finally:
            release.set()
            worker.join(timeout=5)

        assert overlapping.retrying == [] and overlapping.succeeded == 0
        assert background["report"].retrying == ["q-overlap"]
        assert len(calls) == 1
        assert store.pending("p-1")[0].retries == 1

        # the guard is released afterwards
        assert queue.replay().retrying == ["q-overlap"]
        assert store.pending("p-1")[0].retries == 2

    def test_from_settings(self, tmp_path):
        client_settings = ClientSettings(
            DB_PATH=str(tmp_path / "device.db"), MAX_SIZE=5, MAX_RETRIES=2,
            BASE_URL="http://api.test", FLUSH_INTERVAL_SECONDS=15.0,
        )
        queue = OfflineQueue.from_settings("p-1", client_settings)
        try:
            assert (queue.max_size, queue.max_retries, queue.flush_interval) == (5, 2, 15.0)
            assert queue.pending_count() == 0
        finally:
            queue.close()
