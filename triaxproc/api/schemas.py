"""
Pydantic Schemas for API
========================
Request and response models for FastAPI endpoints.
"""

from typing import List, Optional, Dict, Any
from datetime import datetime
from pydantic import BaseModel, Field

from triaxproc.config import PermeabilityParameters


# =============================================================================
# Base Models
# =============================================================================

class HealthResponse(BaseModel):
    status: str = "ok"
    timestamp: datetime
    version: str


# =============================================================================
# Channel Models
# =============================================================================

class Channel(BaseModel):
    name: str
    sources: List[str]
    unit: str
    description: str
    continuity: str
    impact: Optional[str] = None


class ChannelListResponse(BaseModel):
    channels: List[Channel]
    total: int


class FilterStep(BaseModel):
    kind: str
    param: Optional[float] = None


class FilterRecipe(BaseModel):
    group: str
    channels: List[str]
    steps: List[FilterStep]
    decimals: int
    zero_relative: bool = False


# =============================================================================
# Diagnostic Models
# =============================================================================

class Diagnostic(BaseModel):
    code: str
    severity: str  # info, warn, error
    message: str
    channel: Optional[str] = None
    stage: Optional[str] = None


class DiagnosticSummary(BaseModel):
    total: int
    info: int
    warn: int
    error: int
    records: List[Diagnostic]


# =============================================================================
# Recording Models
# =============================================================================

class RecordingRequest(BaseModel):
    """Raw logger rows: one timestamp column plus raw source columns."""
    rows: List[Dict[str, Any]]
    time_column: str = "time"
    resample_seconds: Optional[float] = Field(default=None, gt=0, allow_inf_nan=False)


class ChannelSummary(BaseModel):
    name: str
    unit: str
    description: str
    continuity: str
    source: Optional[str] = None
    missing_fraction: float


class ProcessResponse(BaseModel):
    original_rows: int
    grid_points: int
    duration_seconds: float
    channels: List[ChannelSummary]
    diagnostics: DiagnosticSummary


class TableResponse(BaseModel):
    """A derived table; missing values are null."""
    name: str
    columns: List[str]
    units: Dict[str, str]
    rows: List[Dict[str, Any]]
    total: int


# =============================================================================
# Permeability Models
# =============================================================================

class PermeabilityRequest(RecordingRequest):
    parameters: PermeabilityParameters


class PermeabilityResponse(BaseModel):
    status: str  # ok, degraded
    reason: Optional[str] = None
    parameters: PermeabilityParameters
    segments: int
    columns: List[str]
    units: Dict[str, str]
    rows: List[Dict[str, Any]]
    total: int
    diagnostics: DiagnosticSummary
