"""
API routes for flights, imports and the overview.
"""

from pathlib import Path

from fastapi import APIRouter, File, HTTPException, Query, UploadFile

from dronelog import config
from dronelog.api.schemas import (
    BatteryUsageResponse,
    FlightDataResponse,
    FlightResponse,
    FolderImportEntry,
    FolderImportResponse,
    ImportPathRequest,
    ImportResponse,
    OperationResponse,
    OverviewResponse,
    RenameRequest,
)
from dronelog.models.flight import Flight, ImportResult, QueryResult
from dronelog.services.flight_service import get_service


router = APIRouter(prefix="/flights", tags=["flights"])
overview_router = APIRouter(prefix="/overview", tags=["overview"])


def _build_flight_response(flight: Flight) -> FlightResponse:
    """Build API response from a Flight header."""
    return FlightResponse(
        id=flight.id,
        display_name=flight.display_name,
        source_file=flight.source_file,
        source_format=flight.source_format,
        start_time=flight.start_time.isoformat(),
        start_time_ms=flight.start_time_ms,
        duration_seconds=flight.duration_seconds,
        distance_meters=flight.distance_meters,
        max_altitude_meters=flight.max_altitude_m,
        max_speed_mps=flight.max_speed_mps,
        battery_serials=list(flight.battery_serials),
        battery_start_percent=flight.battery_start_percent,
        battery_end_percent=flight.battery_end_percent,
        battery_used_percent=flight.battery_used_percent,
        sample_count=flight.sample_count,
        imported_at=flight.imported_at,
    )


def _build_import_response(result: ImportResult) -> ImportResponse:
    return ImportResponse(
        success=result.success,
        flight_id=result.flight_id,
        message=result.message,
        point_count=result.point_count,
    )


def _value_or_raise(result: QueryResult):
    """404 for an unknown flight, 503 when the store could not be read."""
    if result.not_found:
        raise HTTPException(status_code=404, detail=result.message)
    if not result.success:
        raise HTTPException(status_code=503, detail=result.message)
    return result.value


# ============================================================================
# Import
# ============================================================================

@router.post("/import", response_model=ImportResponse)
def import_upload(file: UploadFile = File(...)):
    """
    Import an uploaded log file.

    The format is detected from the content, not the extension.
    """
    data = file.file.read(config.MAX_UPLOAD_BYTES + 1)
    if len(data) > config.MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=413,
            detail=f"File exceeds {config.MAX_UPLOAD_BYTES // (1024 * 1024)} MB limit",
        )

    result = get_service().import_bytes(data, file.filename or "")
    return _build_import_response(result)


@router.post("/import-path", response_model=ImportResponse)
def import_path(request: ImportPathRequest):
    """Import a log file that already exists on the server's filesystem."""
    result = get_service().import_file(Path(request.path))
    return _build_import_response(result)


@router.post("/import-folder", response_model=FolderImportResponse)
def import_folder(request: ImportPathRequest):
    """Import every recognized log file in a server-side folder."""
    folder = Path(request.path)
    if not folder.is_dir():
        raise HTTPException(status_code=400, detail=f"Folder does not exist: {folder}")

    results = get_service().import_folder(folder)
    entries = [
        FolderImportEntry(file_name=name, **_build_import_response(result).model_dump())
        for name, result in results
    ]
    imported = sum(1 for e in entries if e.success)
    return FolderImportResponse(
        folder=str(folder),
        imported=imported,
        failed=len(entries) - imported,
        results=entries,
    )


# ============================================================================
# Flights
# ============================================================================

@router.get("", response_model=list[FlightResponse])
def list_flights():
    """
    List all flights.

    Sorted by start time (newest first).
    """
    flights = _value_or_raise(get_service().list_flights())
    return [_build_flight_response(f) for f in flights]


@router.get("/{flight_id}/data", response_model=FlightDataResponse)
def get_flight_data(
    flight_id: int,
    max_points: int = Query(
        default=config.DEFAULT_MAX_POINTS,
        alias="maxPoints",
        ge=1,
        le=config.MAX_POINTS_LIMIT,
        description="Upper bound on returned track points",
    ),
):
    """
    Get a flight's header and its downsampled track.

    The first and last positions are always included.
    """
    data = _value_or_raise(get_service().get_flight_data(flight_id, max_points))

    return FlightDataResponse(
        flight=_build_flight_response(data.flight),
        track=data.track,
    )


@router.delete("/{flight_id}", response_model=OperationResponse)
def delete_flight(flight_id: int):
    """Delete a flight and all its samples. Repeating the call is harmless."""
    result = get_service().delete_flight(flight_id)
    if not result.success:
        raise HTTPException(status_code=503, detail=result.message)
    return OperationResponse(success=result.success, message=result.message)


@router.patch("/{flight_id}", response_model=OperationResponse)
def rename_flight(flight_id: int, request: RenameRequest):
    """Change a flight's display name."""
    result = get_service().rename_flight(flight_id, request.display_name)
    if result.not_found:
        raise HTTPException(status_code=404, detail=result.message)
    if result.rejected:
        raise HTTPException(status_code=400, detail=result.message)
    if not result.success:
        raise HTTPException(status_code=503, detail=result.message)
    return OperationResponse(success=result.success, message=result.message)


# ============================================================================
# Overview
# ============================================================================

@overview_router.get("", response_model=OverviewResponse)
def get_overview():
    """Aggregate totals across every stored flight."""
    stats = _value_or_raise(get_service().get_overview())
    return OverviewResponse(
        total_flights=stats.total_flights,
        total_duration_seconds=stats.total_duration_seconds,
        total_distance_meters=stats.total_distance_meters,
        total_points=stats.total_points,
        max_altitude_meters=stats.max_altitude_m,
        max_speed_mps=stats.max_speed_mps,
        batteries=[
            BatteryUsageResponse(
                serial=b.serial,
                flight_count=b.flight_count,
                total_duration_seconds=b.total_duration_seconds,
                total_distance_meters=b.total_distance_meters,
            )
            for b in stats.batteries
        ],
    )
