"""
Outlier Removal Module
======================
Detects and replaces outliers in sensor channels.

Detection methods:
- median: points more than ``threshold`` scaled MADs away from the
  (moving) median
- mean: points more than ``threshold`` standard deviations away from the
  (moving) mean
- percentile: points outside a lower/upper percentile band
"""

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
import pandas as pd


@dataclass
class DespikeResult:
    """Results from de-spiking operation."""
    original: np.ndarray
    cleaned: np.ndarray
    spike_mask: np.ndarray
    spike_count: int
    spike_pct: float
    spike_indices: np.ndarray


def nearest_fill(values: np.ndarray, mask: np.ndarray) -> np.ndarray:
    """
    Replace masked entries with the nearest unmasked, non-missing value.

    Ties resolve to the earlier sample. If no usable value exists the data
    is returned unchanged.

    Args:
        values: Value array
        mask: Boolean mask of entries to replace

    Returns:
        Filled copy of values
    """
    out = np.array(values, dtype=float, copy=True)
    good = np.flatnonzero(~mask & ~np.isnan(out))
    bad = np.flatnonzero(mask)
    if len(bad) == 0 or len(good) == 0:
        return out

    pos = np.searchsorted(good, bad)
    left = good[np.clip(pos - 1, 0, len(good) - 1)]
    right = good[np.clip(pos, 0, len(good) - 1)]
    use_right = np.abs(right - bad) < np.abs(bad - left)
    out[bad] = out[np.where(use_right, right, left)]
    return out


def linear_fill(values: np.ndarray, mask: np.ndarray, positions: Optional[np.ndarray] = None) -> np.ndarray:
    """
    Replace masked entries by linear interpolation between unmasked ones.
    Entries outside the unmasked span take the nearest edge value.
    """
    out = np.array(values, dtype=float, copy=True)
    if positions is None:
        positions = np.arange(len(out), dtype=float)
    good = np.flatnonzero(~mask & ~np.isnan(out))
    bad = np.flatnonzero(mask)
    if len(bad) == 0 or len(good) == 0:
        return out
    out[bad] = np.interp(positions[bad], positions[good], out[good])
    return out


class Despiker:
    """
    Removes outliers from time-series data.

    MAD = median(|x - median(x)|)
    threshold = median +/- k * MAD * 1.4826

    The 1.4826 factor makes MAD consistent with standard deviation
    for normally distributed data.
    """

    # Scale factor to make MAD consistent with std for normal distributions
    MAD_SCALE = 1.4826

    def __init__(
        self,
        threshold: float = 3.0,
        window_size: Optional[int] = None,
        replace_method: str = 'nearest',
        method: str = 'median',
        alignment: str = 'center',
        percentiles: Tuple[float, float] = (5.0, 95.0)
    ):
        """
        Initialize the despiker.

        Args:
            threshold: Number of scaled MADs (median) or standard deviations
                       (mean) for outlier detection
            window_size: Moving window length in samples. None = global statistics
            replace_method: How to replace outliers:
                           'nearest' - nearest non-outlier value
                           'interpolate' - linear interpolation
                           'nan' - replace with NaN
            method: 'median', 'mean' or 'percentile'
            alignment: 'center' or 'forward' (window starts at the sample)
            percentiles: Lower/upper bounds for the percentile method
        """
        if method not in ('median', 'mean', 'percentile'):
            raise ValueError(f"Unknown detection method: {method}")
        if alignment not in ('center', 'forward'):
            raise ValueError(f"Unknown window alignment: {alignment}")
        if window_size is not None and window_size < 1:
            raise ValueError(f"Window size must be at least 1, got {window_size}")
        self.threshold = threshold
        self.window_size = window_size
        self.replace_method = replace_method
        self.method = method
        self.alignment = alignment
        self.percentiles = percentiles

    def _rolling(self, series: pd.Series):
        if self.alignment == 'forward':
            indexer = pd.api.indexers.FixedForwardWindowIndexer(window_size=self.window_size)
            return series.rolling(indexer, min_periods=1)
        return series.rolling(self.window_size, center=True, min_periods=1)

    def calculate_mad(self, data: np.ndarray) -> Tuple[float, float]:
        """
        Calculate the Median Absolute Deviation.

        Args:
            data: Input array

        Returns:
            Tuple of (median, MAD)
        """
        median = np.nanmedian(data)
        mad = np.nanmedian(np.abs(data - median))
        return median, mad

    def detect_spikes(self, values: np.ndarray) -> np.ndarray:
        """
        Detect outliers in the data. Missing samples are never outliers.

        Args:
            values: Array of sensor values

        Returns:
            Boolean mask where True indicates an outlier
        """
        values = np.asarray(values, dtype=float)
        if len(values) == 0 or np.isnan(values).all():
            return np.zeros(len(values), dtype=bool)

        if self.method == 'percentile':
            lower, upper = np.nanpercentile(values, self.percentiles)
            spike_mask = (values < lower) | (values > upper)

        elif self.window_size is None:
            # Global statistics
            if self.method == 'median':
                center, mad = self.calculate_mad(values)
                spread = mad * self.MAD_SCALE
            else:
                center = np.nanmean(values)
                spread = np.nanstd(values, ddof=1) if np.sum(~np.isnan(values)) > 1 else 0.0
            if not spread > 0:
                # No variation, no spikes
                return np.zeros(len(values), dtype=bool)
            spike_mask = np.abs(values - center) > self.threshold * spread

        else:
            # Moving window statistics
            series = pd.Series(values)
            if self.method == 'median':
                center = self._rolling(series).median()
                deviation = (series - center).abs()
                spread = self._rolling(deviation).median() * self.MAD_SCALE
            else:
                center = self._rolling(series).mean()
                spread = self._rolling(series).std()
            center = center.to_numpy()
            spread = spread.to_numpy()
            # Zero local spread: any deviation from the local center is an outlier
            with np.errstate(invalid='ignore'):
                spike_mask = np.abs(values - center) > self.threshold * spread

        return np.asarray(spike_mask & ~np.isnan(values), dtype=bool)

    def replace_spikes(
        self,
        values: np.ndarray,
        spike_mask: np.ndarray,
        timestamps: Optional[np.ndarray] = None
    ) -> np.ndarray:
        """
        Replace detected outliers.

        Args:
            values: Value array
            spike_mask: Boolean mask of outliers
            timestamps: Optional positions for linear interpolation

        Returns:
            Cleaned values array
        """
        cleaned = np.array(values, dtype=float, copy=True)

        if not np.any(spike_mask):
            return cleaned

        if self.replace_method == 'nan':
            cleaned[spike_mask] = np.nan

        elif self.replace_method == 'nearest':
            cleaned = nearest_fill(cleaned, spike_mask)

        elif self.replace_method == 'interpolate':
            cleaned = linear_fill(cleaned, spike_mask, timestamps)

        else:
            raise ValueError(f"Unknown replace method: {self.replace_method}")

        return cleaned

    def despike(
        self,
        values: np.ndarray,
        timestamps: Optional[np.ndarray] = None
    ) -> DespikeResult:
        """
        Detect and remove outliers from the data.

        Args:
            values: Value array
            timestamps: Optional time array used for interpolation

        Returns:
            DespikeResult with cleaned data and outlier statistics
        """
        values = np.asarray(values, dtype=float)
        spike_mask = self.detect_spikes(values)
        cleaned = self.replace_spikes(values, spike_mask, timestamps)

        spike_indices = np.where(spike_mask)[0]
        spike_count = len(spike_indices)
        spike_pct = 100.0 * spike_count / len(values) if len(values) > 0 else 0.0

        return DespikeResult(
            original=values,
            cleaned=cleaned,
            spike_mask=spike_mask,
            spike_count=spike_count,
            spike_pct=spike_pct,
            spike_indices=spike_indices
        )


def despike_channel(
    values: np.ndarray,
    window_size: Optional[int] = None,
    threshold: float = 3.0,
    replace_method: str = 'nearest'
) -> Tuple[np.ndarray, int, float]:
    """
    Convenience function to remove moving-median outliers from a channel.

    Args:
        values: Value array
        window_size: Optional moving window length
        threshold: Scaled MAD threshold
        replace_method: How outliers are replaced

    Returns:
        Tuple of (cleaned_values, spike_count, spike_pct)
    """
    despiker = Despiker(
        threshold=threshold,
        window_size=window_size,
        replace_method=replace_method
    )
    result = despiker.despike(values)
    return result.cleaned, result.spike_count, result.spike_pct
