"""
Flight Store - SQLite persistence for flight headers and samples.

One row per flight in `flights`, the battery serial set in
`flight_batteries`, and every sample in `samples` keyed by
(flight_id, seq) where seq follows timestamp order. Deleting a flight
cascades to its samples inside one transaction.

Writes are serialized by a lock held only for the commit itself. Reads open
their own connection and, in WAL mode, see either the state before a write
or after it, never a partial one.
"""

import logging
import sqlite3
from contextlib import closing, contextmanager
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Iterator, Optional, Sequence

from dronelog.errors import DuplicateImport, NotFound, StorageFailure
from dronelog.models.flight import BatteryUsage, Flight, OverviewStats, Sample


logger = logging.getLogger(__name__)


SCHEMA = [
    '''
    CREATE TABLE IF NOT EXISTS flights (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        display_name TEXT NOT NULL,
        source_file TEXT,
        source_format TEXT,
        source_hash TEXT,
        start_time_ms INTEGER NOT NULL,
        duration_seconds REAL NOT NULL,
        distance_meters REAL NOT NULL,
        max_altitude_m REAL,
        max_speed_mps REAL,
        battery_start_percent REAL,
        battery_end_percent REAL,
        sample_count INTEGER NOT NULL,
        imported_at TEXT NOT NULL
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS flight_batteries (
        flight_id INTEGER NOT NULL,
        serial TEXT NOT NULL,
        PRIMARY KEY (flight_id, serial),
        FOREIGN KEY (flight_id) REFERENCES flights(id) ON DELETE CASCADE
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS samples (
        flight_id INTEGER NOT NULL,
        seq INTEGER NOT NULL,
        timestamp_ms INTEGER NOT NULL,
        latitude REAL NOT NULL,
        longitude REAL NOT NULL,
        altitude_m REAL,
        ground_speed_mps REAL,
        battery_voltage REAL,
        battery_percent REAL,
        satellite_count INTEGER,
        battery_serial TEXT,
        PRIMARY KEY (flight_id, seq),
        FOREIGN KEY (flight_id) REFERENCES flights(id) ON DELETE CASCADE
    )
    ''',
    'CREATE INDEX IF NOT EXISTS idx_flights_start_time ON flights(start_time_ms)',
    'DROP INDEX IF EXISTS idx_flights_source_hash',
    'CREATE UNIQUE INDEX IF NOT EXISTS idx_flights_source_hash_unique ON flights(source_hash)',
    'CREATE INDEX IF NOT EXISTS idx_samples_flight_time ON samples(flight_id, timestamp_ms, seq)',
    'CREATE INDEX IF NOT EXISTS idx_batteries_serial ON flight_batteries(serial)',
]

SAMPLE_COLUMNS = (
    "timestamp_ms, latitude, longitude, altitude_m, ground_speed_mps, "
    "battery_voltage, battery_percent, satellite_count, battery_serial"
)


class FlightStore:
    """SQLite-backed store for flights and their samples."""

    def __init__(self, db_path: Path):
        """
        Open (and create if needed) the database.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = Path(db_path)
        self._write_lock = Lock()
        self._ensure_data_directory()
        self.init_database()

    def _ensure_data_directory(self):
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=30.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def init_database(self):
        """Create tables and indexes, switch to WAL journaling."""
        try:
            with closing(self._connect()) as conn:
                conn.execute("PRAGMA journal_mode = WAL")
                with conn:
                    for statement in SCHEMA:
                        conn.execute(statement)
        except sqlite3.Error as e:
            raise StorageFailure(f"Could not open flight database {self.db_path}: {e}") from e
        logger.info(f"Flight database ready at {self.db_path}")

    @contextmanager
    def _snapshot(self) -> Iterator[sqlite3.Connection]:
        """Read-only transaction: every query inside sees one committed state."""
        try:
            with closing(self._connect()) as conn:
                conn.execute("BEGIN")
                try:
                    yield conn
                finally:
                    conn.rollback()
        except sqlite3.Error as e:
            logger.error(f"Flight database read failed: {e}")
            raise StorageFailure(f"Could not read flight database: {e}") from e

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert_flight(
        self,
        flight: Flight,
        samples: Sequence[Sample],
        source_hash: Optional[str] = None,
    ) -> int:
        """
        Store a flight header and all of its samples atomically.

        Returns:
            The new flight id (never reused, even after deletion)

        Raises:
            DuplicateImport: if a stored flight already carries source_hash
            StorageFailure: if the transaction could not be committed
        """
        sample_rows = [
            (
                seq,
                s.timestamp_ms,
                s.latitude,
                s.longitude,
                s.altitude_m,
                s.ground_speed_mps,
                s.battery_voltage,
                s.battery_percent,
                s.satellite_count,
                s.battery_serial,
            )
            for seq, s in enumerate(samples)
        ]
        imported_at = datetime.now(timezone.utc).isoformat(timespec="seconds")

        try:
            with self._write_lock, closing(self._connect()) as conn:
                with conn:
                    cursor = conn.execute(
                        '''
                        INSERT INTO flights (
                            display_name, source_file, source_format, source_hash,
                            start_time_ms, duration_seconds, distance_meters,
                            max_altitude_m, max_speed_mps,
                            battery_start_percent, battery_end_percent,
                            sample_count, imported_at
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                        ''',
                        (
                            flight.display_name,
                            flight.source_file,
                            flight.source_format,
                            source_hash,
                            flight.start_time_ms,
                            flight.duration_seconds,
                            flight.distance_meters,
                            flight.max_altitude_m,
                            flight.max_speed_mps,
                            flight.battery_start_percent,
                            flight.battery_end_percent,
                            flight.sample_count,
                            imported_at,
                        ),
                    )
                    flight_id = cursor.lastrowid
                    conn.executemany(
                        'INSERT INTO flight_batteries (flight_id, serial) VALUES (?, ?)',
                        [(flight_id, serial) for serial in flight.battery_serials],
                    )
                    conn.executemany(
                        f'INSERT INTO samples (flight_id, seq, {SAMPLE_COLUMNS}) '
                        'VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)',
                        [(flight_id,) + row for row in sample_rows],
                    )
        except sqlite3.IntegrityError as e:
            if source_hash is None or "flights.source_hash" not in str(e):
                logger.error(f"Failed to store flight {flight.display_name!r}: {e}")
                raise StorageFailure(f"Could not store flight: {e}") from e
            existing = self.find_by_source_hash(source_hash)
            logger.info(f"Rejected duplicate of flight {existing} at commit")
            raise DuplicateImport(existing) from e
        except sqlite3.Error as e:
            logger.error(f"Failed to store flight {flight.display_name!r}: {e}")
            raise StorageFailure(f"Could not store flight: {e}") from e

        logger.debug(f"Stored flight {flight_id} with {len(sample_rows)} samples")
        return flight_id

    def delete_flight(self, flight_id: int) -> bool:
        """
        Delete a flight and all its samples.

        Deleting an id that does not exist (or was already deleted) is not an
        error; the return value says whether anything was removed.
        """
        try:
            with self._write_lock, closing(self._connect()) as conn:
                with conn:
                    cursor = conn.execute('DELETE FROM flights WHERE id = ?', (flight_id,))
        except sqlite3.Error as e:
            logger.error(f"Failed to delete flight {flight_id}: {e}")
            raise StorageFailure(f"Could not delete flight {flight_id}: {e}") from e
        return cursor.rowcount > 0

    def rename_flight(self, flight_id: int, display_name: str) -> None:
        """
        Update a flight's display name.

        Raises:
            NotFound: if the flight does not exist
        """
        try:
            with self._write_lock, closing(self._connect()) as conn:
                with conn:
                    cursor = conn.execute(
                        'UPDATE flights SET display_name = ? WHERE id = ?',
                        (display_name, flight_id),
                    )
        except sqlite3.Error as e:
            logger.error(f"Failed to rename flight {flight_id}: {e}")
            raise StorageFailure(f"Could not rename flight {flight_id}: {e}") from e
        if cursor.rowcount == 0:
            raise NotFound(flight_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_flight(self, flight_id: int) -> Flight:
        """Raises NotFound for unknown or deleted ids."""
        with self._snapshot() as conn:
            return self._read_flight(conn, flight_id)

    def get_samples(self, flight_id: int) -> list[Sample]:
        """Full, time-ordered sample sequence. Raises NotFound."""
        with self._snapshot() as conn:
            self._read_flight(conn, flight_id)
            return self._read_samples(conn, flight_id)

    def get_flight_with_samples(self, flight_id: int) -> tuple[Flight, list[Sample]]:
        """Header and samples read from the same committed state."""
        with self._snapshot() as conn:
            flight = self._read_flight(conn, flight_id)
            return flight, self._read_samples(conn, flight_id)

    def list_flights(self) -> list[Flight]:
        """All flight headers, most recent start time first."""
        with self._snapshot() as conn:
            serials = self._read_all_serials(conn)
            rows = conn.execute(
                'SELECT * FROM flights ORDER BY start_time_ms DESC, id DESC'
            ).fetchall()
        return [_row_to_flight(row, serials.get(row["id"], ())) for row in rows]

    def count_flights(self) -> int:
        with self._snapshot() as conn:
            return conn.execute('SELECT COUNT(*) FROM flights').fetchone()[0]

    def find_by_source_hash(self, source_hash: str) -> Optional[int]:
        """Id of a stored flight imported from identical bytes, if any."""
        with self._snapshot() as conn:
            row = conn.execute(
                'SELECT id FROM flights WHERE source_hash = ? ORDER BY id LIMIT 1',
                (source_hash,),
            ).fetchone()
        return row["id"] if row else None

    def compute_overview(self) -> OverviewStats:
        """Aggregate totals across every stored flight."""
        with self._snapshot() as conn:
            totals = conn.execute(
                '''
                SELECT COUNT(*) AS total_flights,
                       COALESCE(SUM(duration_seconds), 0.0) AS total_duration,
                       COALESCE(SUM(distance_meters), 0.0) AS total_distance,
                       MAX(max_altitude_m) AS max_altitude,
                       MAX(max_speed_mps) AS max_speed
                FROM flights
                '''
            ).fetchone()
            total_points = conn.execute('SELECT COUNT(*) FROM samples').fetchone()[0]
            battery_rows = conn.execute(
                '''
                SELECT b.serial AS serial,
                       COUNT(*) AS flight_count,
                       SUM(f.duration_seconds) AS total_duration,
                       SUM(f.distance_meters) AS total_distance
                FROM flight_batteries b
                JOIN flights f ON f.id = b.flight_id
                GROUP BY b.serial
                ORDER BY b.serial
                '''
            ).fetchall()

        return OverviewStats(
            total_flights=totals["total_flights"],
            total_duration_seconds=float(totals["total_duration"]),
            total_distance_meters=float(totals["total_distance"]),
            total_points=total_points,
            max_altitude_m=totals["max_altitude"],
            max_speed_mps=totals["max_speed"],
            batteries=[
                BatteryUsage(
                    serial=row["serial"],
                    flight_count=row["flight_count"],
                    total_duration_seconds=float(row["total_duration"]),
                    total_distance_meters=float(row["total_distance"]),
                )
                for row in battery_rows
            ],
        )

    def _read_flight(self, conn: sqlite3.Connection, flight_id: int) -> Flight:
        row = conn.execute('SELECT * FROM flights WHERE id = ?', (flight_id,)).fetchone()
        if row is None:
            raise NotFound(flight_id)
        serials = [
            r["serial"]
            for r in conn.execute(
                'SELECT serial FROM flight_batteries WHERE flight_id = ? ORDER BY serial',
                (flight_id,),
            )
        ]
        return _row_to_flight(row, tuple(serials))

    def _read_samples(self, conn: sqlite3.Connection, flight_id: int) -> list[Sample]:
        rows = conn.execute(
            f'SELECT {SAMPLE_COLUMNS} FROM samples WHERE flight_id = ? ORDER BY seq',
            (flight_id,),
        )
        return [Sample(*row) for row in rows]

    def _read_all_serials(self, conn: sqlite3.Connection) -> dict[int, tuple[str, ...]]:
        serials: dict[int, list[str]] = {}
        for row in conn.execute('SELECT flight_id, serial FROM flight_batteries ORDER BY serial'):
            serials.setdefault(row["flight_id"], []).append(row["serial"])
        return {flight_id: tuple(values) for flight_id, values in serials.items()}


def _row_to_flight(row: sqlite3.Row, serials: tuple[str, ...]) -> Flight:
    return Flight(
        id=row["id"],
        display_name=row["display_name"],
        source_file=row["source_file"] or "",
        source_format=row["source_format"] or "",
        start_time_ms=row["start_time_ms"],
        duration_seconds=row["duration_seconds"],
        distance_meters=row["distance_meters"],
        max_altitude_m=row["max_altitude_m"],
        max_speed_mps=row["max_speed_mps"],
        battery_serials=serials,
        battery_start_percent=row["battery_start_percent"],
        battery_end_percent=row["battery_end_percent"],
        sample_count=row["sample_count"],
        imported_at=row["imported_at"],
    )
