"""
Permeability Calculator
=======================
Derives the hydraulic permeability coefficient of the specimen from the
filtered recording.

Formulas:
- density(T) = 999.972 - 0.007 * (T - 4)^2                [kg/m³]
- h = fluidPressureRel * 1e5 / (density * g)              [m]
- Q = flowMassDiff / density                              [m³]
- ΔL = length - strainSensorsMean / 1000                  [m]
- k = (Q / Δt) * ΔL / (h * A),  A = π * (diameter / 2)^2  [m/s]
- I(T) = 0.02414 * 10^(247.8 / (T + 133)),  alpha = I(T) / I(10)
- permeability = k * alpha

The calculation runs per flow segment (between two scale resets) and is
reassembled in segment order. It never raises for numeric problems: a
failure yields a zero-filled, ``degraded`` result.
"""

import logging
import warnings
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Union

import numpy as np
import pandas as pd

from triaxproc.config import PermeabilityParameters, get_config, validate_parameters
from triaxproc.errors import AllMissingWarning, CalculationFailure
from triaxproc.processing.despiker import Despiker
from triaxproc.processing.diagnostics import DiagnosticLog
from triaxproc.processing.recording import INDEX_NAME, Recording
from triaxproc.processing.resampler import Resampler
from triaxproc.processing.schema import (
    PERMEABILITY_IMPOSSIBLE,
    RELATIVE_STRAIN_CHANNELS,
    Channel,
    Continuity,
)
from triaxproc.processing.segmenter import FlowSegmentation, FlowSegmenter


logger = logging.getLogger(__name__)

# Physical constants
GRAVITY = 9.81              # m/s²
REFERENCE_TEMP = 10.0       # °C, permeability is normalized to this
VISCOSITY_A = 0.02414
VISCOSITY_B = 247.8
VISCOSITY_C = 133.0

ArrayLike = Union[float, np.ndarray]


def _scalar_or_array(values: np.ndarray) -> ArrayLike:
    return float(values) if values.ndim == 0 else values


def water_density(temperature: ArrayLike) -> ArrayLike:
    """
    Density of water for the laboratory temperature range.

    Args:
        temperature: Temperature in °C (scalar or array)

    Returns:
        Density in kg/m³, maximal (999.972) at 4 °C
    """
    t = np.asarray(temperature, dtype=float)
    return _scalar_or_array(999.972 - 0.007 * (t - 4.0) ** 2)


def viscosity_index(temperature: ArrayLike) -> ArrayLike:
    """Empirical viscosity relation I(T) = 0.02414 * 10^(247.8 / (T + 133))."""
    t = np.asarray(temperature, dtype=float)
    return _scalar_or_array(VISCOSITY_A * 10.0 ** (VISCOSITY_B / (t + VISCOSITY_C)))


def alpha_correction(temperature: ArrayLike) -> ArrayLike:
    """
    Viscosity ratio I(T) / I(10 °C).

    Evaluated as a single power of ten so that the reference temperature
    maps to exactly 1.0.
    """
    t = np.asarray(temperature, dtype=float)
    exponent = VISCOSITY_B / (t + VISCOSITY_C) - VISCOSITY_B / (REFERENCE_TEMP + VISCOSITY_C)
    return _scalar_or_array(10.0 ** exponent)


class ResultStatus(Enum):
    OK = "ok"
    DEGRADED = "degraded"


RESULT_UNITS: Dict[str, str] = {
    'runtime': 's',
    'flowMassDiff': 'kg',
    'permeability': 'm/s',
    'alphaValue': '-',
}

RESULT_DESCRIPTIONS: Dict[str, str] = {
    'runtime': 'Runtime in seconds since experiment start',
    'flowMassDiff': 'Difference of flow mass between two calculation steps',
    'permeability': 'Coefficient of permeability alpha corrected to 10°C',
    'alphaValue': 'Rebalancing factor to compare permeabilities depending on the fluid temperature',
}

DEBUG_UNITS: Dict[str, str] = {
    'flowMass': 'kg',
    'fluidOutTemp': '°C',
    'fluidPressureRel': 'bar',
    'strainSensorsMean': 'mm',
    'density': 'kg/m³',
    'flowMassDiffSigned': 'kg',
    'timeDiff': 's',
    'deltaL': 'm',
    'h': 'm',
    'flowVolume': 'm³',
    'k': 'm/s',
    'alpha': '-',
    'segment': '-',
}


@dataclass
class PermeabilityResult:
    """Permeability series with an explicit status tag."""
    table: pd.DataFrame
    status: ResultStatus
    diagnostics: DiagnosticLog
    parameters: PermeabilityParameters
    reason: Optional[str] = None
    segmentation: Optional[FlowSegmentation] = None

    @property
    def ok(self) -> bool:
        return self.status == ResultStatus.OK

    def __len__(self) -> int:
        return len(self.table)

    def to_dict(self) -> Dict:
        """Summary without the table itself."""
        return {
            'status': self.status.value,
            'reason': self.reason,
            'rows': len(self.table),
            'segments': len(self.segmentation) if self.segmentation is not None else 0,
            'diagnostics': self.diagnostics.to_dict(),
        }


class PermeabilityCalculator:
    """
    Calculates the temperature corrected permeability per flow segment.

    Pipeline:
    1. Working table: flow mass, fluid temperature/pressure, mean strain, density
    2. Retime linearly to the requested timestep
    3. Segment at scale resets, clamp flow differences at zero
    4. Outlier-correct flow differences (forward moving mean)
    5. Hydraulic calculation per segment, reassembled in order
    """

    def __init__(
        self,
        reset_threshold: Optional[float] = None,
        fallback_temperature: Optional[float] = None,
        outlier_window: Optional[int] = None,
        outlier_threshold: float = 3.0
    ):
        """
        Args:
            reset_threshold: Flow reset threshold in kg (TRIAX_RESET_THRESHOLD)
            fallback_temperature: Fluid temperature used when fluidOutTemp is
                entirely missing (TRIAX_FALLBACK_FLUID_TEMP)
            outlier_window: Forward window of the flow-difference outlier
                correction in samples; 0 disables it (TRIAX_FLOW_OUTLIER_WINDOW)
            outlier_threshold: Local standard deviations marking an outlier
        """
        pipeline = get_config().pipeline
        self.segmenter = FlowSegmenter(
            reset_threshold if reset_threshold is not None else pipeline.reset_threshold
        )
        self.fallback_temperature = (
            fallback_temperature if fallback_temperature is not None
            else pipeline.fallback_fluid_temp
        )
        self.outlier_window = (
            outlier_window if outlier_window is not None else pipeline.flow_outlier_window
        )
        self.outlier_threshold = outlier_threshold

    # ------------------------------------------------------------------
    # Working table
    # ------------------------------------------------------------------

    def _check_inputs(self, recording: Recording) -> None:
        for name in ("flowMass", "fluidPressureRel"):
            if name not in recording or recording.is_unset(name):
                raise ValueError(f"Channel {name} has no data. {PERMEABILITY_IMPOSSIBLE}")
        strain = [
            name for name in RELATIVE_STRAIN_CHANNELS
            if name in recording and not recording.is_unset(name)
        ]
        if not strain:
            raise ValueError(f"No relative deformation data. {PERMEABILITY_IMPOSSIBLE}")

    def _strain_mean(self, recording: Recording) -> np.ndarray:
        stack = np.column_stack([
            recording.values(name) for name in RELATIVE_STRAIN_CHANNELS if name in recording
        ])
        with warnings.catch_warnings():
            # Rows without any strain value give NaN
            warnings.simplefilter("ignore", category=RuntimeWarning)
            return np.nanmean(stack, axis=1)

    def build_working_table(
        self,
        recording: Recording,
        diagnostics: DiagnosticLog
    ) -> Recording:
        """
        Collect the channels the calculation needs into one recording.

        Args:
            recording: Filtered recording
            diagnostics: Log receiving the fallback-temperature notice

        Returns:
            Recording with flowMass, fluidOutTemp, fluidPressureRel,
            strainSensorsMean and density
        """
        temperature = (
            recording.values("fluidOutTemp") if "fluidOutTemp" in recording
            else np.full(len(recording), np.nan)
        )
        if np.isnan(temperature).all():
            temperature = np.full(len(recording), self.fallback_temperature)
            diagnostics.warn(
                AllMissingWarning,
                f"Fluid outflow temperature set to {self.fallback_temperature:g}°C",
                channel="fluidOutTemp",
            )

        channels = {
            name: recording.channel(name) for name in ("flowMass", "fluidPressureRel")
        }
        channels["fluidOutTemp"] = Channel(
            "fluidOutTemp", "°C", "Fluid outflow temperature", Continuity.CONTINUOUS
        )
        channels["strainSensorsMean"] = Channel(
            "strainSensorsMean", "mm",
            "Mean relative deformation of the strain sensors", Continuity.STEP
        )
        channels["density"] = Channel(
            "density", "kg/m³", "Fluid density at the outflow temperature",
            Continuity.CONTINUOUS
        )

        columns = {
            "flowMass": recording.values("flowMass"),
            "fluidOutTemp": temperature,
            "fluidPressureRel": recording.values("fluidPressureRel"),
            "strainSensorsMean": self._strain_mean(recording),
            "density": water_density(temperature),
        }
        return Recording.from_grid(recording.index, columns, channels)

    def correct_outliers(self, flow_mass_diff: np.ndarray) -> np.ndarray:
        """Replace forward moving-mean outliers by linear interpolation."""
        if not self.outlier_window:
            return flow_mass_diff
        despiker = Despiker(
            threshold=self.outlier_threshold,
            window_size=int(self.outlier_window) + 1,
            replace_method='interpolate',
            method='mean',
            alignment='forward'
        )
        return despiker.despike(flow_mass_diff).cleaned

    # ------------------------------------------------------------------
    # Calculation
    # ------------------------------------------------------------------

    def _calculate_segment(
        self,
        frame: pd.DataFrame,
        params: PermeabilityParameters
    ) -> pd.DataFrame:
        density = frame['density'].to_numpy()
        h = frame['fluidPressureRel'].to_numpy() * 1e5 / (density * GRAVITY)
        flow_volume = frame['flowMassDiff'].to_numpy() / density
        delta_l = params.length_m - frame['strainSensorsMean'].to_numpy() / 1000.0
        time_diff = frame['timeDiff'].to_numpy()

        with np.errstate(divide='ignore', invalid='ignore'):
            rate = np.where(time_diff > 0, flow_volume / time_diff, 0.0)
            k = np.where(h > 0, rate * delta_l / (h * params.cross_section_m2), np.nan)

        alpha = alpha_correction(frame['fluidOutTemp'].to_numpy())

        out = frame.copy()
        out['h'] = h
        out['flowVolume'] = flow_volume
        out['deltaL'] = delta_l
        out['k'] = k
        out['alpha'] = alpha
        out['permeability'] = k * alpha
        out['alphaValue'] = alpha
        return out

    def _zero_filled(self, index: pd.DatetimeIndex) -> pd.DataFrame:
        runtime = np.asarray((index - index[0]).total_seconds(), dtype=float)
        zeros = np.zeros(len(index))
        table = pd.DataFrame(
            {
                'runtime': runtime,
                'flowMassDiff': zeros,
                'permeability': zeros.copy(),
                'alphaValue': zeros.copy(),
            },
            index=index,
        )
        table.index.name = INDEX_NAME
        return table

    def _attach_units(self, table: pd.DataFrame) -> pd.DataFrame:
        units = {**RESULT_UNITS, **DEBUG_UNITS}
        table.attrs['units'] = {name: units.get(name, '') for name in table.columns}
        table.attrs['descriptions'] = {
            name: RESULT_DESCRIPTIONS[name] for name in table.columns if name in RESULT_DESCRIPTIONS
        }
        return table

    def calculate(
        self,
        recording: Recording,
        params: Union[PermeabilityParameters, Dict]
    ) -> PermeabilityResult:
        """
        Calculate the permeability series.

        Args:
            recording: Filtered recording
            params: PermeabilityParameters or a mapping of its fields

        Returns:
            PermeabilityResult; status ``degraded`` with a zero-filled table
            if the calculation failed

        Raises:
            ParameterError: invalid geometry or timestep
            SchemaError: the timestep grid would exceed the row cap
        """
        if not isinstance(params, PermeabilityParameters):
            params = validate_parameters(**params)

        diagnostics = DiagnosticLog(stage="permeability", logger_name=__name__)
        resampler = Resampler(spacing_seconds=params.timestep_min * 60.0)
        grid, _ = resampler.build_grid(recording.index)

        try:
            self._check_inputs(recording)
            working = resampler.resample(
                self.build_working_table(recording, diagnostics), method='linear'
            )
            frame = working.to_frame()

            segmentation = self.segmenter.segment(frame['flowMass'].to_numpy())
            frame['flowMassDiffSigned'] = segmentation.signed_diff
            frame['flowMassDiff'] = self.correct_outliers(segmentation.flow_mass_diff)
            frame['timeDiff'] = np.concatenate([[0.0], np.diff(frame['runtime'].to_numpy())])

            parts = []
            for number, segment in enumerate(segmentation.segments):
                part = self._calculate_segment(frame.iloc[segment.as_slice()], params)
                part['segment'] = number
                parts.append(part)
            table = pd.concat(parts) if parts else frame.iloc[0:0]

            undefined = int((table['fluidPressureRel'].to_numpy() <= 0).sum())
            if undefined:
                diagnostics.warn(
                    CalculationFailure,
                    f"{undefined} rows with non-positive hydraulic head, permeability undefined",
                    channel="fluidPressureRel",
                )

        except Exception as e:
            logger.debug("Permeability calculation raised", exc_info=True)
            reason = f"{type(e).__name__}: {e}"
            diagnostics.error(CalculationFailure, f"Calculating permeability FAILED ({reason})")
            return PermeabilityResult(
                table=self._attach_units(self._zero_filled(grid)),
                status=ResultStatus.DEGRADED,
                diagnostics=diagnostics,
                parameters=params,
                reason=reason,
            )

        if not params.debug:
            table = table[['runtime', 'flowMassDiff', 'permeability', 'alphaValue']].copy()

        logger.info(
            "Permeability calculated: %d rows, %d segments, timestep %.3g min",
            len(table), len(segmentation), params.timestep_min
        )
        return PermeabilityResult(
            table=self._attach_units(table),
            status=ResultStatus.OK,
            diagnostics=diagnostics,
            parameters=params,
            segmentation=segmentation,
        )


def calculate_permeability(
    recording: Recording,
    length_cm: float,
    diameter_cm: float,
    timestep_min: Optional[float] = None,
    debug: bool = False
) -> PermeabilityResult:
    """
    Convenience function to calculate permeability.

    Args:
        recording: Filtered recording
        length_cm: Initial specimen length in cm
        diameter_cm: Specimen diameter in cm
        timestep_min: Calculation timestep in minutes (default 5)
        debug: Return the full intermediate working table

    Returns:
        PermeabilityResult
    """
    kwargs = {'length_cm': length_cm, 'diameter_cm': diameter_cm, 'debug': debug}
    if timestep_min is not None:
        kwargs['timestep_min'] = timestep_min
    params = validate_parameters(**kwargs)
    return PermeabilityCalculator().calculate(recording, params)


if __name__ == "__main__":
    print("Water density / alpha correction")
    print("=" * 40)
    for temp in (4.0, 10.0, 18.0, 25.0):
        print(f"  {temp:5.1f}°C  rho={water_density(temp):9.3f}  alpha={alpha_correction(temp):.4f}")
