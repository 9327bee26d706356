"""
Channel Filter Module
=====================
Per-channel denoising of a resampled recording.

Which steps run on which channel is declared once in ``FILTER_RECIPES``.
Each recipe runs in isolation: a failing channel keeps its unfiltered values
and a FilterFailure diagnostic is recorded.

Step kinds:
- fill_nearest: replace missing samples with the nearest valid sample
- lowpass: zero-phase Butterworth low-pass, cutoff as fraction of Nyquist
- movmedian: centred moving median (window in samples)
- clip_outliers: replace points beyond 3 scaled MADs from the moving median
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy import signal

from triaxproc.errors import FilterFailure
from triaxproc.processing.despiker import Despiker, nearest_fill
from triaxproc.processing.diagnostics import DiagnosticLog
from triaxproc.processing.recording import Recording
from triaxproc.processing.schema import Continuity


logger = logging.getLogger(__name__)

LOWPASS_ORDER = 4


# =============================================================================
# Primitives
# =============================================================================

def fill_nearest(values: np.ndarray, param: Optional[float] = None) -> np.ndarray:
    """Fill missing samples with the nearest valid sample."""
    values = np.asarray(values, dtype=float)
    return nearest_fill(values, np.isnan(values))


def lowpass(values: np.ndarray, cutoff: float) -> np.ndarray:
    """
    Zero-phase low-pass filter.

    Args:
        values: Evenly sampled values without gaps
        cutoff: Cutoff frequency as a fraction of the Nyquist frequency (0, 1)

    Returns:
        Filtered values
    """
    if not 0 < cutoff < 1:
        raise ValueError(f"Low-pass cutoff must be in (0, 1), got {cutoff}")
    values = np.asarray(values, dtype=float)
    if len(values) < 2:
        return values.copy()
    if np.isnan(values).any():
        raise ValueError("Low-pass filter requires gap-free data")

    sos = signal.butter(LOWPASS_ORDER, cutoff, btype='low', output='sos')
    padlen = min(3 * (2 * len(sos) + 1), len(values) - 1)
    return signal.sosfiltfilt(sos, values, padlen=padlen)


def movmedian(values: np.ndarray, window: float) -> np.ndarray:
    """Centred moving median; shrinks at the edges and ignores NaN."""
    series = pd.Series(np.asarray(values, dtype=float))
    return series.rolling(int(window), center=True, min_periods=1).median().to_numpy()


def clip_outliers(values: np.ndarray, window: float) -> np.ndarray:
    """Replace moving-median outliers with the nearest non-outlier value."""
    despiker = Despiker(
        threshold=3.0,
        window_size=int(window),
        replace_method='nearest',
        method='median'
    )
    return despiker.despike(values).cleaned


FILTER_FUNCTIONS: Dict[str, Callable[[np.ndarray, Optional[float]], np.ndarray]] = {
    'fill_nearest': fill_nearest,
    'lowpass': lowpass,
    'movmedian': movmedian,
    'clip_outliers': clip_outliers,
}


# =============================================================================
# Recipes
# =============================================================================

@dataclass(frozen=True)
class FilterStep:
    """One denoising step: a primitive name and its parameter."""
    kind: str
    param: Optional[float] = None

    def apply(self, values: np.ndarray) -> np.ndarray:
        try:
            func = FILTER_FUNCTIONS[self.kind]
        except KeyError:
            raise ValueError(f"Unknown filter step: {self.kind}") from None
        return func(values, self.param)

    def __str__(self) -> str:
        return self.kind if self.param is None else f"{self.kind}({self.param:g})"


@dataclass(frozen=True)
class FilterRecipe:
    """
    Steps applied to a group of channels, followed by rounding.

    With ``zero_relative`` the channels are an (absolute, relative) strain
    pair: the absolute series is filtered (the relative one if the absolute
    is unset), stored as absolute, and stored minus its minimum as relative.
    """
    group: str
    channels: Tuple[str, ...]
    steps: Tuple[FilterStep, ...]
    decimals: int
    zero_relative: bool = False


FILTER_RECIPES: Tuple[FilterRecipe, ...] = (
    FilterRecipe(
        "confining pressure",
        ("confiningPressureAbs", "confiningPressureRel"),
        (FilterStep('fill_nearest'), FilterStep('lowpass', 0.01)),
        decimals=2,
    ),
    FilterRecipe(
        "room pressure",
        ("roomPressureAbs",),
        (FilterStep('fill_nearest'), FilterStep('movmedian', 50)),
        decimals=3,
    ),
    FilterRecipe(
        "hydraulic cylinder",
        ("hydrCylinderPressureAbs", "hydrCylinderPressureRel"),
        (FilterStep('fill_nearest'), FilterStep('lowpass', 0.05)),
        decimals=1,
    ),
    FilterRecipe(
        "fluid pressure",
        ("fluidPressureAbs", "fluidPressureRel"),
        (FilterStep('fill_nearest'), FilterStep('movmedian', 50)),
        decimals=3,
    ),
    FilterRecipe(
        "temperatures",
        ("roomTemp", "fluidInTemp", "fluidOutTemp"),
        (FilterStep('clip_outliers', 180), FilterStep('fill_nearest'), FilterStep('movmedian', 600)),
        decimals=1,
    ),
    FilterRecipe(
        "strain sensor 1",
        ("strainSensor1Pos", "strainSensor1Rel"),
        (FilterStep('movmedian', 30),),
        decimals=3,
        zero_relative=True,
    ),
    FilterRecipe(
        "strain sensor 2",
        ("strainSensor2Pos", "strainSensor2Rel"),
        (FilterStep('movmedian', 30),),
        decimals=3,
        zero_relative=True,
    ),
)


@dataclass
class FilterResult:
    """Filtered recording plus filter diagnostics."""
    recording: Recording
    diagnostics: DiagnosticLog
    filtered_channels: List[str] = field(default_factory=list)


class ChannelFilter:
    """
    Applies the filter recipes to a resampled recording.

    Unset channels are skipped; channels the recording does not carry are
    ignored.
    """

    def __init__(self, recipes: Sequence[FilterRecipe] = FILTER_RECIPES):
        self.recipes = tuple(recipes)

    def _run_steps(self, recipe: FilterRecipe, values: np.ndarray) -> np.ndarray:
        for step in recipe.steps:
            values = step.apply(values)
        return values

    def _filter_channel(
        self,
        recording: Recording,
        recipe: FilterRecipe,
        name: str
    ) -> Dict[str, np.ndarray]:
        values = self._run_steps(recipe, recording.values(name))
        return {name: np.round(values, recipe.decimals)}

    def _filter_strain_pair(
        self,
        recording: Recording,
        recipe: FilterRecipe
    ) -> Dict[str, np.ndarray]:
        abs_name, rel_name = recipe.channels
        source = abs_name if not recording.is_unset(abs_name) else rel_name
        values = self._run_steps(recipe, recording.values(source))
        return {
            abs_name: np.round(values, recipe.decimals),
            rel_name: np.round(values - np.nanmin(values), recipe.decimals),
        }

    def apply(self, recording: Recording) -> FilterResult:
        """
        Filter every channel named by a recipe.

        Args:
            recording: Resampled recording

        Returns:
            FilterResult with a new Recording; the input is not modified
        """
        diagnostics = DiagnosticLog(stage="filter", logger_name=__name__)
        updates: Dict[str, np.ndarray] = {}

        for recipe in self.recipes:
            present = [name for name in recipe.channels if name in recording]
            if not present:
                logger.debug("Recipe '%s' has no channels in the recording", recipe.group)
                continue

            if recipe.zero_relative:
                if len(present) != 2 or all(recording.is_unset(name) for name in present):
                    continue
                try:
                    updates.update(self._filter_strain_pair(recording, recipe))
                except Exception as e:
                    diagnostics.warn(
                        FilterFailure,
                        f"Error while filtering {'/'.join(present)}: {e}",
                        channel=present[0],
                    )
                continue

            for name in present:
                if recording.is_unset(name):
                    continue
                try:
                    updates.update(self._filter_channel(recording, recipe, name))
                except Exception as e:
                    diagnostics.warn(
                        FilterFailure,
                        f"Error while filtering {name}: {e}",
                        channel=name,
                    )

        logger.debug("Filtered %d channels", len(updates))
        return FilterResult(
            recording=recording.with_values(updates),
            diagnostics=diagnostics,
            filtered_channels=list(updates),
        )


def filter_recording(recording: Recording) -> FilterResult:
    """Convenience function to filter a recording with the default recipes."""
    return ChannelFilter().apply(recording)


def filter_effects(raw: Recording, filtered: Recording) -> pd.DataFrame:
    """
    Compare a recording with its filtered counterpart.

    Args:
        raw: Recording before filtering (same grid as ``filtered``)
        filtered: Filtered recording

    Returns:
        DataFrame indexed by channel with columns ``changed``,
        ``max_abs_change`` and ``filled`` (samples that were missing before
        and hold a value after filtering)
    """
    if len(raw) != len(filtered):
        raise ValueError(
            f"Recordings differ in length ({len(raw)} vs {len(filtered)} rows)"
        )

    rows = []
    for name in raw.channel_names:
        if name not in filtered:
            continue
        before = raw.values(name)
        after = filtered.values(name)
        both = ~np.isnan(before) & ~np.isnan(after)
        delta = np.abs(after[both] - before[both])
        rows.append({
            'channel': name,
            'changed': not np.array_equal(before, after, equal_nan=True),
            'max_abs_change': float(delta.max()) if delta.size else 0.0,
            'filled': int((np.isnan(before) & ~np.isnan(after)).sum()),
            'continuity': filtered.channel(name).continuity.value,
        })

    return pd.DataFrame(
        rows, columns=['channel', 'changed', 'max_abs_change', 'filled', 'continuity']
    ).set_index('channel')


if __name__ == "__main__":
    from triaxproc.simulator.sensor_simulator import simulate_recording
    from triaxproc.processing.normalizer import normalize_table
    from triaxproc.processing.resampler import resample_recording

    raw = simulate_recording(duration_minutes=60, seed=7)
    recording = resample_recording(normalize_table(raw).recording)
    result = ChannelFilter().apply(recording)

    print(filter_effects(recording, result.recording))
    for diagnostic in result.diagnostics:
        print(diagnostic)
