"""
Flight Service - import pipeline and query operations.

Sits between the HTTP layer and the store. Imports run detect, parse,
normalize and assemble without holding any lock; only the final insert goes
through the store's write lock. Every FlightLogError raised on the way is
turned into an ImportResult, OperationResult or QueryResult with a readable
message, so callers never see the pipeline's exception types.
"""

import hashlib
import logging
from pathlib import Path
from typing import Optional

from dronelog import config
from dronelog.errors import DuplicateImport, FlightLogError, NotFound, StorageFailure
from dronelog.models.flight import (
    Flight,
    FlightData,
    ImportResult,
    OperationResult,
    OverviewStats,
    QueryResult,
)
from dronelog.services.assembler import assemble_flight
from dronelog.services.downsampler import downsample
from dronelog.services.format_detector import EXPECTED_EXTENSIONS, SNIFF_BYTES, detect_format
from dronelog.services.normalizer import normalize_records
from dronelog.services.parsers import open_parser
from dronelog.services.storage import FlightStore


logger = logging.getLogger(__name__)


class FlightService:
    """Import and query operations over one FlightStore."""

    def __init__(self, store: FlightStore):
        self.store = store

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    def import_file(self, path: Path) -> ImportResult:
        """Import a log file from the local filesystem."""
        path = Path(path)
        if not path.is_file():
            return ImportResult(success=False, message=f"File not found: {path}")
        if path.stat().st_size > config.MAX_UPLOAD_BYTES:
            return ImportResult(success=False, message=f"File too large: {path.name}")

        try:
            data = path.read_bytes()
        except OSError as e:
            logger.warning(f"Could not read {path}: {e}")
            return ImportResult(success=False, message=f"Could not read {path.name}: {e}")

        return self.import_bytes(data, path.name)

    def import_bytes(self, data: bytes, filename: str = "") -> ImportResult:
        """
        Import one log held in memory.

        Args:
            data: Complete file contents
            filename: Original file name, used for format hints and the
                default display name

        Returns:
            ImportResult; success is False for any rejected or failed import,
            in which case nothing was stored
        """
        source_hash = hashlib.sha256(data).hexdigest()
        try:
            existing = self.store.find_by_source_hash(source_hash)
            if existing is not None:
                raise DuplicateImport(existing)

            fmt = detect_format(data[:SNIFF_BYTES], filename or None)
            parser = open_parser(fmt, data, name=filename)
            context = parser.context()
            flight, samples = assemble_flight(
                normalize_records(parser, context),
                display_name=Path(filename).stem if filename else None,
                source_file=filename,
                source_format=fmt.value,
            )
            flight_id = self.store.insert_flight(flight, samples, source_hash=source_hash)
        except FlightLogError as e:
            logger.warning(f"Import of {filename or 'upload'} failed: {e.diagnostics()}")
            return ImportResult(success=False, message=e.message)

        logger.info(
            f"Imported {filename or 'upload'} as flight {flight_id} "
            f"({fmt.value}, {len(samples)} points)"
        )
        return ImportResult(
            success=True,
            message=f"Imported {flight.display_name}",
            flight_id=flight_id,
            point_count=len(samples),
        )

    def import_folder(self, folder: Path) -> list[tuple[str, ImportResult]]:
        """
        Import every file with a known log extension in a folder.

        Files are visited in name order; one file failing does not stop the
        others.
        """
        folder = Path(folder)
        if not folder.is_dir():
            logger.warning(f"Import folder does not exist: {folder}")
            return []

        extensions = {ext for exts in EXPECTED_EXTENSIONS.values() for ext in exts}
        results = []
        for path in sorted(folder.iterdir()):
            if path.is_file() and path.suffix.lower() in extensions:
                results.append((path.name, self.import_file(path)))

        imported = sum(1 for _, r in results if r.success)
        logger.info(f"Folder import from {folder}: {imported}/{len(results)} files imported")
        return results

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_flights(self) -> QueryResult[list[Flight]]:
        try:
            return QueryResult(success=True, value=self.store.list_flights())
        except StorageFailure as e:
            return QueryResult(success=False, message=e.message)

    def count_flights(self) -> QueryResult[int]:
        try:
            return QueryResult(success=True, value=self.store.count_flights())
        except StorageFailure as e:
            return QueryResult(success=False, message=e.message)

    def get_overview(self) -> QueryResult[OverviewStats]:
        try:
            return QueryResult(success=True, value=self.store.compute_overview())
        except StorageFailure as e:
            return QueryResult(success=False, message=e.message)

    def get_flight_data(
        self, flight_id: int, max_points: int = config.DEFAULT_MAX_POINTS
    ) -> QueryResult[FlightData]:
        """
        Flight header plus a track of at most max_points positions.

        The result has not_found set if the flight does not exist.
        """
        try:
            flight, samples = self.store.get_flight_with_samples(flight_id)
        except NotFound as e:
            return QueryResult(success=False, message=e.message, not_found=True)
        except StorageFailure as e:
            return QueryResult(success=False, message=e.message)

        track = downsample(samples, max_points)
        logger.debug(f"Flight {flight_id}: serving {len(track)} of {len(samples)} points")
        return QueryResult(success=True, value=FlightData.from_samples(flight, track))

    def delete_flight(self, flight_id: int) -> OperationResult:
        """Deleting an already deleted or unknown flight still succeeds."""
        try:
            removed = self.store.delete_flight(flight_id)
        except StorageFailure as e:
            return OperationResult(success=False, message=e.message)

        if removed:
            logger.info(f"Deleted flight {flight_id}")
            return OperationResult(success=True, message=f"Deleted flight {flight_id}")
        return OperationResult(success=True, message=f"Flight {flight_id} was already deleted")

    def rename_flight(self, flight_id: int, display_name: str) -> OperationResult:
        """Blank names are rejected; an unknown id comes back with not_found set."""
        name = (display_name or "").strip()
        if not name:
            return OperationResult(
                success=False, message="Display name must not be empty", rejected=True
            )

        try:
            self.store.rename_flight(flight_id, name)
        except NotFound as e:
            return OperationResult(success=False, message=e.message, not_found=True)
        except StorageFailure as e:
            return OperationResult(success=False, message=e.message)

        logger.info(f"Renamed flight {flight_id} to {name!r}")
        return OperationResult(success=True, message=f"Renamed flight {flight_id}")


# Global service instance
_service: Optional[FlightService] = None


def get_service() -> FlightService:
    """Get the global service instance."""
    global _service
    if _service is None:
        _service = FlightService(FlightStore(config.DB_PATH))
    return _service


def init_service(db_path: Path) -> FlightService:
    """Initialize the global service with a database path."""
    global _service
    _service = FlightService(FlightStore(db_path))
    return _service
