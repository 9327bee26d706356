"""
Recordings Router
=================
Endpoints that process raw logger rows posted in the request body.

Handlers are plain functions so FastAPI runs them in its threadpool; every
request processes its own data.
"""

import json
import logging

import pandas as pd
from fastapi import APIRouter, HTTPException

from triaxproc.api.schemas import (
    ChannelSummary,
    DiagnosticSummary,
    PermeabilityRequest,
    PermeabilityResponse,
    ProcessResponse,
    RecordingRequest,
    TableResponse,
)
from triaxproc.errors import ParameterError, SchemaError
from triaxproc.processing.bundles import BUNDLES
from triaxproc.processing.processor import ExperimentProcessor, ProcessingResult


logger = logging.getLogger(__name__)

router = APIRouter()


def _process(request: RecordingRequest) -> ProcessingResult:
    processor = ExperimentProcessor(
        resample_seconds=request.resample_seconds,
        time_column=request.time_column
    )
    try:
        return processor.process(request.rows)
    except SchemaError as e:
        logger.warning("Rejected input table: %s", e)
        raise HTTPException(status_code=400, detail=str(e))


def _records(frame: pd.DataFrame):
    """Rows of a datetime-indexed table; NaN becomes null."""
    return json.loads(frame.reset_index().to_json(orient="records", date_format="iso"))


def _units(frame: pd.DataFrame):
    units = frame.attrs.get("units", {})
    return {name: units.get(name, "") for name in frame.columns}


@router.post("/process", response_model=ProcessResponse)
def process_recording(request: RecordingRequest):
    """Normalize, resample and filter raw rows; summarise every channel."""
    result = _process(request)

    return ProcessResponse(
        original_rows=result.original_row_count,
        grid_points=result.processed_row_count,
        duration_seconds=result.filtered.duration_seconds,
        channels=[ChannelSummary(**row) for row in result.channel_summary()],
        diagnostics=DiagnosticSummary(**result.diagnostics.to_dict())
    )


@router.post("/bundles/{name}", response_model=TableResponse)
def get_bundle(name: str, request: RecordingRequest):
    """Derived bundle of the filtered recording."""
    if name not in BUNDLES:
        raise HTTPException(
            status_code=404,
            detail=f"Unknown bundle '{name}'. Available: {', '.join(BUNDLES)}"
        )
    result = _process(request)
    table = result.bundle(name)

    return TableResponse(
        name=name,
        columns=list(table.columns),
        units=_units(table),
        rows=_records(table),
        total=len(table)
    )


@router.post("/permeability", response_model=PermeabilityResponse)
def calculate_permeability(request: PermeabilityRequest):
    """Permeability of the specimen for the given geometry and timestep."""
    result = _process(request)
    params = request.parameters
    try:
        perm = result.permeability(
            length_cm=params.length_cm,
            diameter_cm=params.diameter_cm,
            timestep_min=params.timestep_min,
            debug=params.debug
        )
    except ParameterError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except SchemaError as e:
        logger.warning("Rejected permeability timestep: %s", e)
        raise HTTPException(status_code=400, detail=str(e))

    summary = perm.to_dict()
    return PermeabilityResponse(
        status=summary["status"],
        reason=summary["reason"],
        parameters=params,
        segments=summary["segments"],
        columns=list(perm.table.columns),
        units=_units(perm.table),
        rows=_records(perm.table),
        total=len(perm.table),
        diagnostics=DiagnosticSummary(**summary["diagnostics"])
    )
