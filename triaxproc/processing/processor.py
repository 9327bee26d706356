"""
Processing Pipeline Orchestrator
================================
Orchestrates all processing steps: normalize → resample → filter.

Derived outputs (bundles, permeability, flow analysis) are computed on
request from the filtered recording.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from triaxproc.config import validate_parameters
from triaxproc.processing.bundles import get_bundle
from triaxproc.processing.diagnostics import DiagnosticLog
from triaxproc.processing.filters import FILTER_RECIPES, ChannelFilter, FilterRecipe, filter_effects
from triaxproc.processing.flow import analytics_summary, analyze_flow_mass
from triaxproc.processing.normalizer import ColumnNormalizer, RawTable
from triaxproc.processing.permeability import PermeabilityCalculator, PermeabilityResult
from triaxproc.processing.recording import Recording
from triaxproc.processing.resampler import Resampler


logger = logging.getLogger(__name__)


@dataclass
class ProcessingResult:
    """Recordings of one experiment plus the diagnostics of every stage."""
    raw: Recording = field(repr=False)
    resampled: Recording = field(repr=False)
    filtered: Recording = field(repr=False)
    diagnostics: DiagnosticLog = field(repr=False)
    source_columns: Dict[str, Optional[str]] = field(default_factory=dict, repr=False)

    # Processing metadata
    processing_time_ms: float = 0.0
    original_row_count: int = 0
    processed_row_count: int = 0

    def channel_summary(self) -> List[Dict[str, Any]]:
        """Unit, continuity, source column and missing fraction per channel."""
        summary = []
        for name in self.filtered.channel_names:
            channel = self.filtered.channel(name)
            summary.append({
                'name': name,
                'unit': channel.unit,
                'description': channel.description,
                'continuity': channel.continuity.value,
                'source': self.source_columns.get(name),
                'missing_fraction': self.raw.missing_fraction(name),
            })
        return summary

    def bundle(self, name: str) -> pd.DataFrame:
        """Derived bundle of the filtered recording."""
        return get_bundle(self.filtered, name)

    def permeability(
        self,
        length_cm: float,
        diameter_cm: float,
        timestep_min: Optional[float] = None,
        debug: bool = False
    ) -> PermeabilityResult:
        """
        Permeability for the given specimen geometry.

        Raises:
            ParameterError: invalid geometry or timestep
        """
        kwargs = {'length_cm': length_cm, 'diameter_cm': diameter_cm, 'debug': debug}
        if timestep_min is not None:
            kwargs['timestep_min'] = timestep_min
        params = validate_parameters(**kwargs)
        return PermeabilityCalculator().calculate(self.filtered, params)

    def flow_mass(self, timestep_min: float = 0) -> pd.DataFrame:
        """Accumulated flow mass and flow rate."""
        return analyze_flow_mass(self.filtered, timestep_min=timestep_min)

    def analytics(self) -> pd.DataFrame:
        """Summary table for interactive front ends."""
        return analytics_summary(self.filtered)

    def filter_effects(self) -> pd.DataFrame:
        """Per channel comparison of the resampled and filtered recording."""
        return filter_effects(self.resampled, self.filtered)

    def to_statistics_dict(self) -> Dict[str, Any]:
        """Processing statistics."""
        return {
            'original_rows': self.original_row_count,
            'processed_rows': self.processed_row_count,
            'duration_s': self.filtered.duration_seconds,
            'unset_channels': [
                name for name in self.filtered.channel_names if self.filtered.is_unset(name)
            ],
            'processing_time_ms': round(self.processing_time_ms, 1),
            'diagnostics': self.diagnostics.to_dict(),
        }


class ExperimentProcessor:
    """
    Orchestrates the processing pipeline for one triaxial experiment.

    Pipeline:
    1. Normalize → Map raw columns onto the channel schema
    2. Resample → Uniform grid, continuity-driven interpolation
    3. Filter → Per-channel denoising recipes
    """

    def __init__(
        self,
        resample_seconds: Optional[float] = None,
        time_column: str = "time",
        recipes: Sequence[FilterRecipe] = FILTER_RECIPES,
        max_rows: Optional[int] = None
    ):
        """
        Initialize the processor.

        Args:
            resample_seconds: Grid spacing (defaults to TRIAX_RESAMPLE_SECONDS)
            time_column: Timestamp column of the raw table
            recipes: Filter recipes
            max_rows: Input row and grid point cap (defaults to TRIAX_MAX_ROWS)
        """
        self.normalizer = ColumnNormalizer(time_column=time_column, max_rows=max_rows)
        self.resampler = Resampler(spacing_seconds=resample_seconds, max_rows=max_rows)
        self.channel_filter = ChannelFilter(recipes)

    def process(self, raw: RawTable) -> ProcessingResult:
        """
        Process a raw table through the complete pipeline.

        Args:
            raw: DataFrame or iterable of row mappings

        Returns:
            ProcessingResult

        Raises:
            SchemaError: the raw table is malformed or empty, or it or its grid is too large
        """
        start_time = datetime.now()

        # Step 1: Normalize onto the channel schema
        normalized = self.normalizer.normalize(raw)
        diagnostics = DiagnosticLog(stage="pipeline", logger_name=__name__)
        diagnostics.extend(normalized.diagnostics)

        # Step 2: Resample to uniform grid
        resampled = self.resampler.resample(normalized.recording)

        # Step 3: Filter each channel
        filtered = self.channel_filter.apply(resampled)
        diagnostics.extend(filtered.diagnostics)

        processing_time = (datetime.now() - start_time).total_seconds() * 1000
        logger.info(
            "Processed %d rows into %d grid points in %.1fms (%d diagnostics)",
            len(normalized.recording), len(resampled), processing_time, len(diagnostics)
        )

        return ProcessingResult(
            raw=normalized.recording,
            resampled=resampled,
            filtered=filtered.recording,
            diagnostics=diagnostics,
            source_columns=normalized.source_columns,
            processing_time_ms=processing_time,
            original_row_count=len(normalized.recording),
            processed_row_count=len(resampled),
        )


def process_experiment(raw: RawTable, resample_seconds: Optional[float] = None) -> ProcessingResult:
    """
    Convenience function to process a raw experiment table.

    Args:
        raw: DataFrame or iterable of row mappings
        resample_seconds: Optional grid spacing

    Returns:
        ProcessingResult
    """
    return ExperimentProcessor(resample_seconds=resample_seconds).process(raw)


if __name__ == "__main__":
    from triaxproc.config import configure_logging
    from triaxproc.simulator.sensor_simulator import simulate_recording

    configure_logging()
    print("Testing Processing Pipeline")
    print("=" * 60)

    raw = simulate_recording(duration_minutes=120, seed=42)
    print(f"Created {len(raw)} raw rows with {len(raw.columns) - 1} source columns")

    result = ExperimentProcessor().process(raw)
    stats = result.to_statistics_dict()
    print(f"\nOriginal rows: {stats['original_rows']:,}")
    print(f"Grid points: {stats['processed_rows']:,}")
    print(f"Processing time: {stats['processing_time_ms']}ms")
    print(f"Unset channels: {stats['unset_channels']}")

    perm = result.permeability(length_cm=10.0, diameter_cm=5.0, timestep_min=5)
    print(f"\nPermeability ({perm.status.value}):")
    print(perm.table.describe().loc[['mean', 'min', 'max']])
    print(f"Segments: {len(perm.segmentation) if perm.segmentation else 0}")
    print(f"Median permeability: {np.nanmedian(perm.table['permeability']):.3e} m/s")
