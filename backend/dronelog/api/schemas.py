"""
API schemas (Pydantic models) for request/response validation.

Field names are snake_case in Python and camelCase on the wire.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Flight Schemas
# ============================================================================

class FlightResponse(ApiModel):
    """Flight header for listing and detail views."""
    id: int
    display_name: str
    source_file: str
    source_format: str
    start_time: str  # ISO 8601, UTC
    start_time_ms: int
    duration_seconds: float
    distance_meters: float
    max_altitude_meters: Optional[float] = None
    max_speed_mps: Optional[float] = None
    battery_serials: list[str]
    battery_start_percent: Optional[float] = None
    battery_end_percent: Optional[float] = None
    battery_used_percent: Optional[float] = None
    sample_count: int
    imported_at: Optional[str] = None


class FlightDataResponse(ApiModel):
    """Flight header plus track as [longitude, latitude, altitude] triples."""
    flight: FlightResponse
    track: list[tuple[float, float, Optional[float]]]


class RenameRequest(ApiModel):
    """Request to change a flight's display name."""
    display_name: str = Field(..., min_length=1)


class OperationResponse(ApiModel):
    """Outcome of a delete or rename."""
    success: bool
    message: str


# ============================================================================
# Import Schemas
# ============================================================================

class ImportPathRequest(ApiModel):
    """Request to import a file or folder on the server's filesystem."""
    path: str


class ImportResponse(ApiModel):
    """Outcome of one import."""
    success: bool
    flight_id: Optional[int] = None
    message: str
    point_count: int = 0


class FolderImportEntry(ImportResponse):
    """Outcome of one file in a folder import."""
    file_name: str


class FolderImportResponse(ApiModel):
    """Outcome of a folder import."""
    folder: str
    imported: int
    failed: int
    results: list[FolderImportEntry]


# ============================================================================
# Overview Schemas
# ============================================================================

class BatteryUsageResponse(ApiModel):
    """Usage totals for one battery serial."""
    serial: str
    flight_count: int
    total_duration_seconds: float
    total_distance_meters: float


class OverviewResponse(ApiModel):
    """Aggregate statistics across all flights."""
    total_flights: int
    total_duration_seconds: float
    total_distance_meters: float
    total_points: int
    max_altitude_meters: Optional[float] = None
    max_speed_mps: Optional[float] = None
    batteries: list[BatteryUsageResponse]
