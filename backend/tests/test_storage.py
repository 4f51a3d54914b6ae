"""
Tests for the SQLite flight store.
"""

import sqlite3
import threading

import pytest

from dronelog.errors import DuplicateImport, NotFound, StorageFailure
from dronelog.models.flight import Sample
from dronelog.services.assembler import assemble_flight
from dronelog.services.storage import FlightStore


def _samples(start_ms: int = 0, n: int = 5, serial: str = "BAT1") -> list[Sample]:
    return [
        Sample(
            timestamp_ms=start_ms + i * 1000,
            latitude=47.0 + i * 0.0001,
            longitude=8.0,
            altitude_m=float(i * 5),
            ground_speed_mps=float(i),
            battery_voltage=16.0 - i * 0.1,
            battery_percent=100.0 - i,
            satellite_count=0 if i == 0 else 12,
            battery_serial=serial,
        )
        for i in range(n)
    ]


@pytest.fixture
def store(tmp_path):
    return FlightStore(tmp_path / "flights.db")


def _insert(store: FlightStore, start_ms: int = 0, name: str = "flight", **kwargs) -> int:
    flight, ordered = assemble_flight(_samples(start_ms, **kwargs), display_name=name)
    return store.insert_flight(flight, ordered)


class TestInsertAndRead:
    """Tests for storing and reading flights."""

    def test_round_trip(self, store):
        samples = _samples()
        flight, ordered = assemble_flight(samples, display_name="Morning", source_file="a.csv")

        flight_id = store.insert_flight(flight, ordered)
        stored = store.get_flight(flight_id)

        assert stored.id == flight_id
        assert stored.display_name == "Morning"
        assert stored.source_file == "a.csv"
        assert stored.statistics() == flight.statistics()
        assert stored.imported_at is not None

    def test_samples_preserved_exactly(self, store):
        """Every field, including zero satellites and None, survives storage."""
        samples = _samples()
        samples.append(Sample(timestamp_ms=10_000, latitude=47.1, longitude=8.1))
        flight, ordered = assemble_flight(samples)

        flight_id = store.insert_flight(flight, ordered)

        assert store.get_samples(flight_id) == ordered

    def test_statistics_recompute_from_stored_samples(self, store):
        flight_id = _insert(store)

        stored_flight, stored_samples = store.get_flight_with_samples(flight_id)
        recomputed, _ = assemble_flight(stored_samples, display_name=stored_flight.display_name)

        assert recomputed.statistics() == stored_flight.statistics()

    def test_unknown_flight(self, store):
        with pytest.raises(NotFound):
            store.get_flight(999)
        with pytest.raises(NotFound):
            store.get_samples(999)

    def test_list_newest_first(self, store):
        old_id = _insert(store, start_ms=1_000_000, name="old")
        new_id = _insert(store, start_ms=9_000_000, name="new")
        mid_id = _insert(store, start_ms=5_000_000, name="mid")

        flights = store.list_flights()

        assert [f.id for f in flights] == [new_id, mid_id, old_id]
        assert flights[0].battery_serials == ("BAT1",)

    def test_find_by_source_hash(self, store):
        flight, ordered = assemble_flight(_samples())
        flight_id = store.insert_flight(flight, ordered, source_hash="abc123")

        assert store.find_by_source_hash("abc123") == flight_id
        assert store.find_by_source_hash("other") is None

    def test_duplicate_hash_rejected_at_commit(self, store):
        """A second insert carrying a stored hash fails and stores nothing."""
        flight, ordered = assemble_flight(_samples())
        first = store.insert_flight(flight, ordered, source_hash="abc123")

        with pytest.raises(DuplicateImport) as excinfo:
            store.insert_flight(flight, ordered, source_hash="abc123")

        assert excinfo.value.existing_flight_id == first
        assert store.count_flights() == 1
        assert store.compute_overview().total_points == len(ordered)

    def test_flights_without_hash_may_repeat(self, store):
        flight, ordered = assemble_flight(_samples())

        store.insert_flight(flight, ordered)
        store.insert_flight(flight, ordered)

        assert store.count_flights() == 2


class TestAtomicity:
    """A failed insert leaves no trace."""

    def test_failed_insert_stores_nothing(self, store):
        flight, ordered = assemble_flight(_samples())

        # The header row is written before the bad sample fails its NOT NULL check
        with pytest.raises(StorageFailure):
            store.insert_flight(flight, _BrokenSamples(ordered))

        assert store.count_flights() == 0
        assert store.list_flights() == []
        assert store.compute_overview().total_points == 0


class _BrokenSamples(list):
    """Sample list whose last element cannot be stored."""

    def __iter__(self):
        yield from super().__iter__()
        yield Sample(timestamp_ms=None, latitude=0.0, longitude=0.0)


class TestDelete:
    """Tests for deleting flights."""

    def test_delete_removes_samples_and_overview_contribution(self, store):
        keep_id = _insert(store, start_ms=0, serial="KEEP")
        drop_id = _insert(store, start_ms=100_000, n=8, serial="DROP")
        before = store.compute_overview()

        assert store.delete_flight(drop_id) is True

        after = store.compute_overview()
        assert after.total_flights == before.total_flights - 1
        assert after.total_points == before.total_points - 8
        assert [b.serial for b in after.batteries] == ["KEEP"]
        with pytest.raises(NotFound):
            store.get_samples(drop_id)
        assert store.get_flight(keep_id).id == keep_id

    def test_delete_cascades_in_database(self, store, tmp_path):
        flight_id = _insert(store)
        store.delete_flight(flight_id)

        with sqlite3.connect(tmp_path / "flights.db") as conn:
            count = conn.execute("SELECT COUNT(*) FROM samples WHERE flight_id = ?", (flight_id,)).fetchone()[0]
        assert count == 0

    def test_repeated_delete_is_harmless(self, store):
        flight_id = _insert(store)

        assert store.delete_flight(flight_id) is True
        assert store.delete_flight(flight_id) is False
        assert store.delete_flight(12345) is False

    def test_ids_never_reused(self, store):
        first = _insert(store)
        store.delete_flight(first)
        second = _insert(store)

        assert second > first


class TestRename:
    """Tests for renaming flights."""

    def test_rename_keeps_statistics(self, store):
        flight_id = _insert(store, name="before")
        original = store.get_flight(flight_id)

        store.rename_flight(flight_id, "after")
        renamed = store.get_flight(flight_id)

        assert renamed.display_name == "after"
        assert renamed.statistics() == original.statistics()

    def test_rename_unknown(self, store):
        with pytest.raises(NotFound):
            store.rename_flight(404, "nope")


class TestOverview:
    """Tests for aggregate statistics."""

    def test_empty_store(self, store):
        overview = store.compute_overview()

        assert overview.total_flights == 0
        assert overview.total_duration_seconds == 0.0
        assert overview.total_points == 0
        assert overview.max_altitude_m is None
        assert overview.batteries == []

    def test_totals(self, store):
        _insert(store, start_ms=0, n=5, serial="A")
        _insert(store, start_ms=100_000, n=11, serial="A")
        _insert(store, start_ms=200_000, n=3, serial="B")

        overview = store.compute_overview()

        assert overview.total_flights == 3
        assert overview.total_duration_seconds == pytest.approx(4 + 10 + 2)
        assert overview.total_points == 19
        assert overview.max_altitude_m == 50.0
        assert overview.max_speed_mps == 10.0
        battery_a = next(b for b in overview.batteries if b.serial == "A")
        assert battery_a.flight_count == 2
        assert battery_a.total_duration_seconds == pytest.approx(14.0)


def _read_until(store, done, overviews, tracks, failures):
    """Keep reading until done is set; always completes at least one pass."""
    try:
        while True:
            overview = store.compute_overview()
            overviews.append((overview.total_flights, overview.total_points))
            for listed in store.list_flights():
                try:
                    flight, samples = store.get_flight_with_samples(listed.id)
                except NotFound:
                    continue
                tracks.append((flight.sample_count, len(samples)))
            if done.is_set():
                return
    except Exception as e:
        failures.append(e)


class TestConcurrency:
    """Readers see a write whole or not at all; writers take turns."""

    N = 10_000

    def _run_with_reader(self, store, write):
        done = threading.Event()
        overviews, tracks, failures = [], [], []
        reader = threading.Thread(
            target=_read_until, args=(store, done, overviews, tracks, failures)
        )
        reader.start()
        try:
            write()
        finally:
            done.set()
            reader.join(timeout=30)

        assert not reader.is_alive()
        assert failures == []
        return overviews, tracks

    def test_reader_during_insert(self, store):
        flight, ordered = assemble_flight(_samples(n=self.N))

        overviews, tracks = self._run_with_reader(
            store, lambda: store.insert_flight(flight, ordered)
        )

        assert overviews
        assert set(overviews) <= {(0, 0), (1, self.N)}
        assert all(count == loaded == self.N for count, loaded in tracks)

    def test_reader_during_delete(self, store):
        flight_id = _insert(store, n=self.N)

        overviews, tracks = self._run_with_reader(
            store, lambda: store.delete_flight(flight_id)
        )

        assert overviews
        assert set(overviews) <= {(1, self.N), (0, 0)}
        assert all(count == loaded == self.N for count, loaded in tracks)
        assert store.count_flights() == 0

    def test_concurrent_renames_serialized(self, store):
        flight_id = _insert(store, name="start")
        barrier = threading.Barrier(2, timeout=10)
        failures = []

        def rename(name):
            try:
                barrier.wait()
                store.rename_flight(flight_id, name)
            except Exception as e:
                failures.append(e)

        threads = [threading.Thread(target=rename, args=(name,)) for name in ("left", "right")]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert failures == []
        assert store.get_flight(flight_id).display_name in {"left", "right"}

    def test_concurrent_inserts_get_distinct_ids(self, store):
        barrier = threading.Barrier(4, timeout=10)
        ids, failures = [], []

        def insert(i):
            try:
                barrier.wait()
                ids.append(_insert(store, start_ms=i * 100_000, n=500, serial=f"B{i}"))
            except Exception as e:
                failures.append(e)

        threads = [threading.Thread(target=insert, args=(i,)) for i in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert failures == []
        assert len(set(ids)) == 4
        assert store.compute_overview().total_points == 2000
