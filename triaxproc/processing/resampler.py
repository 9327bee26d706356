"""
Time-Series Resampling Module
=============================
Converts an irregularly timestamped recording to a uniform grid.
Interpolation policy is driven by each channel's continuity class.
"""

import logging
from typing import Dict, Optional, Tuple

import numpy as np
import pandas as pd
from scipy import interpolate

from triaxproc.config import get_config
from triaxproc.errors import SchemaError
from triaxproc.processing.recording import Recording, elapsed_seconds
from triaxproc.processing.schema import Continuity


logger = logging.getLogger(__name__)

# Interpolation method per continuity class
CONTINUITY_METHODS: Dict[Continuity, Optional[str]] = {
    Continuity.CONTINUOUS: 'linear',
    Continuity.STEP: 'previous',
    Continuity.UNSET: None,
}


class Resampler:
    """
    Resamples a Recording onto a uniform grid spanning its first and last
    timestamp. Grid points beyond the last timestamp are never created.
    """

    def __init__(self, spacing_seconds: Optional[float] = None, max_rows: Optional[int] = None):
        """
        Initialize resampler.

        Args:
            spacing_seconds: Grid spacing in seconds. Defaults to the
                configured TRIAX_RESAMPLE_SECONDS (one second).
            max_rows: Grid size cap; defaults to the configured TRIAX_MAX_ROWS
        """
        if spacing_seconds is None:
            spacing_seconds = get_config().pipeline.resample_seconds
        if not np.isfinite(spacing_seconds) or spacing_seconds <= 0:
            raise ValueError(f"Grid spacing must be positive, got {spacing_seconds}")
        self.spacing_seconds = float(spacing_seconds)
        self.max_rows = max_rows if max_rows is not None else get_config().pipeline.max_rows

    def build_grid(self, index: pd.DatetimeIndex) -> Tuple[pd.DatetimeIndex, np.ndarray]:
        """
        Build the uniform grid for a timestamp axis.

        Args:
            index: Original (sorted) timestamps

        Returns:
            Tuple of (grid_timestamps, grid_seconds_from_start)

        Raises:
            SchemaError: the grid would exceed the row cap
        """
        duration = float(elapsed_seconds(index)[-1])
        # Small tolerance so that an exact multiple of the spacing is kept
        n_samples = int(np.floor(duration / self.spacing_seconds + 1e-9)) + 1
        if n_samples > self.max_rows:
            raise SchemaError(
                f"Grid of {n_samples:,} points at {self.spacing_seconds:g}s spacing "
                f"exceeds the limit of {self.max_rows:,} rows"
            )
        t_new = np.arange(n_samples) * self.spacing_seconds
        grid = index[0] + pd.to_timedelta(t_new, unit='s')
        return pd.DatetimeIndex(grid), t_new

    def resample_channel(
        self,
        timestamps: np.ndarray,
        values: np.ndarray,
        t_new: np.ndarray,
        method: Optional[str] = 'linear'
    ) -> np.ndarray:
        """
        Resample a single channel onto the grid.

        Missing samples are ignored; grid points before the first valid
        sample stay missing. 'linear' also leaves points after the last
        valid sample missing, 'previous' holds the last value.

        Args:
            timestamps: Sample times (seconds from start)
            values: Sample values, NaN for missing
            t_new: Grid times (seconds from start)
            method: 'linear', 'previous', 'nearest' or None (leave missing)

        Returns:
            Resampled values
        """
        if method is None:
            return np.full(len(t_new), np.nan)

        valid = ~np.isnan(values)
        t_valid = timestamps[valid]
        v_valid = values[valid]

        if len(t_valid) == 0:
            return np.full(len(t_new), np.nan)

        if len(t_valid) == 1:
            # Interpolation needs two points
            out = np.full(len(t_new), np.nan)
            if method == 'previous':
                out[t_new >= t_valid[0]] = v_valid[0]
            else:
                out[np.isclose(t_new, t_valid[0])] = v_valid[0]
            return out

        if method == 'linear':
            interp_func = interpolate.interp1d(
                t_valid, v_valid,
                kind='linear',
                bounds_error=False,
                fill_value=np.nan
            )
        elif method == 'previous':
            # Use last observed value for stepwise signals
            interp_func = interpolate.interp1d(
                t_valid, v_valid,
                kind='previous',
                bounds_error=False,
                fill_value=(np.nan, v_valid[-1])
            )
        elif method == 'nearest':
            interp_func = interpolate.interp1d(
                t_valid, v_valid,
                kind='nearest',
                bounds_error=False,
                fill_value=np.nan
            )
        else:
            raise ValueError(f"Unknown interpolation method: {method}")

        return np.asarray(interp_func(t_new), dtype=float)

    def resample(self, recording: Recording, method: Optional[str] = None) -> Recording:
        """
        Resample every channel of a recording onto the uniform grid.

        Args:
            recording: Normalized recording
            method: Optional interpolation method applied to every channel
                that is not unset. None uses each channel's continuity class.

        Returns:
            New Recording on the uniform grid, runtime recomputed

        Raises:
            SchemaError: the grid would exceed the row cap
        """
        grid, t_new = self.build_grid(recording.index)
        timestamps = recording.runtime

        columns: Dict[str, np.ndarray] = {}
        for name in recording.channel_names:
            channel = recording.channel(name)
            if channel.continuity == Continuity.UNSET:
                channel_method = None
            elif method is not None:
                channel_method = method
            else:
                channel_method = CONTINUITY_METHODS[channel.continuity]
            columns[name] = self.resample_channel(
                timestamps, recording.values(name), t_new, channel_method
            )

        logger.debug(
            "Resampled %d rows to %d grid points (%.1fs spacing)",
            len(recording), len(grid), self.spacing_seconds
        )
        return Recording.from_grid(grid, columns, recording.channels)


def resample_recording(
    recording: Recording,
    spacing_seconds: Optional[float] = None,
    method: Optional[str] = None
) -> Recording:
    """
    Convenience function to resample a recording.

    Args:
        recording: Recording to resample
        spacing_seconds: Grid spacing (defaults to one second)
        method: Optional interpolation override for all channels

    Returns:
        Resampled Recording
    """
    resampler = Resampler(spacing_seconds=spacing_seconds)
    return resampler.resample(recording, method=method)
