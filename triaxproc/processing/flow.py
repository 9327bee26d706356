"""
Flow-Mass Analysis
==================
Accumulated flow and flow rate derived from the scale weight, plus the
summary table used by interactive front ends.

The flow differences of ``analyze_flow_mass`` are percentile outlier
corrected. ``analytics_summary`` keeps the raw first difference; both are
separate outputs from the permeability calculation.
"""

import logging
from typing import Optional, Tuple

import numpy as np
import pandas as pd

from triaxproc.config import get_config
from triaxproc.processing.bundles import add_column, bassin_pumps, deformation, flow
from triaxproc.processing.despiker import Despiker
from triaxproc.processing.permeability import water_density
from triaxproc.processing.recording import Recording
from triaxproc.processing.resampler import Resampler


logger = logging.getLogger(__name__)

FLOW_CHANNELS = ('flowMass', 'fluidOutTemp', 'fluidPressureRel')


def outlier_percentiles(duration_hours: float) -> Tuple[float, float]:
    """Percentile band for flow outliers; long experiments use a wider band."""
    pipeline = get_config().pipeline
    if duration_hours > pipeline.long_experiment_hours:
        return tuple(pipeline.percentiles_long)
    return tuple(pipeline.percentiles_short)


def analyze_flow_mass(
    recording: Recording,
    timestep_min: float = 0,
    duration_hours: Optional[float] = None,
    percentiles: Optional[Tuple[float, float]] = None
) -> pd.DataFrame:
    """
    Accumulated flow mass, flow mass difference and flow rate.

    The accumulated mass (``flowMassAcc``) should follow the measured
    ``flowMass`` apart from the scale resets; a large deviation points to
    badly corrected outliers.

    Args:
        recording: Filtered recording
        timestep_min: Retime linearly to this timestep in minutes; 0 keeps
            the recording's grid
        duration_hours: Experiment duration used to choose the percentile
            band. Defaults to the recording's duration.
        percentiles: Explicit (lower, upper) percentile band

    Returns:
        Flow bundle extended by flowMassDiffOrig, timeDiff, flowMassDiff,
        flowMassAcc and flowRate
    """
    if timestep_min < 0:
        raise ValueError(f"Timestep must not be negative, got {timestep_min}")

    source = recording.select([name for name in FLOW_CHANNELS if name in recording])
    if timestep_min:
        source = Resampler(spacing_seconds=timestep_min * 60.0).resample(source, method='linear')
    table = flow(source)

    if duration_hours is None:
        duration_hours = recording.duration_seconds / 3600.0
    if percentiles is None:
        percentiles = outlier_percentiles(duration_hours)

    runtime = table['runtime'].to_numpy()
    flow_mass = table['flowMass'].to_numpy()
    diff_orig = np.concatenate([[0.0], np.diff(flow_mass)])
    time_diff = np.concatenate([[0.0], np.diff(runtime)])

    despiker = Despiker(method='percentile', percentiles=percentiles, replace_method='interpolate')
    diff = despiker.despike(diff_orig, runtime).cleaned
    diff = np.nan_to_num(diff, nan=0.0)

    density = water_density(table['fluidOutTemp'].to_numpy())
    with np.errstate(divide='ignore', invalid='ignore'):
        rate = np.where(time_diff > 0, diff / density / time_diff, 0.0)

    add_column(table, 'flowMassDiffOrig', diff_orig, 'kg',
               'Difference of flow mass between two calculation steps (without outlier detection)')
    add_column(table, 'timeDiff', time_diff, 's', 'Time between two calculation steps')
    add_column(table, 'flowMassDiff', diff, 'kg',
               'Difference of flow mass between two calculation steps (with outlier detection)')
    add_column(table, 'flowMassAcc', np.cumsum(diff), 'kg', 'Accumulated fluid flow mass')
    add_column(table, 'flowRate', rate, 'm³/s', 'Flow rate through the specimen')

    logger.info(
        "Flow mass analysed: %d rows, percentiles %s, accumulated %.3f kg",
        len(table), percentiles, float(np.sum(diff))
    )
    return table


def analytics_summary(recording: Recording) -> pd.DataFrame:
    """
    Summary table for interactive front ends.

    Temperatures are filled linearly (ends hold the nearest value), the
    flow mass is forward filled and ``flowMassDiff`` is its raw first
    difference without outlier correction.

    Args:
        recording: Filtered recording

    Returns:
        DataFrame indexed by datetime
    """
    table = flow(recording)

    strain = deformation(recording)
    add_column(table, 'strainSensorsMean', strain['strainSensorsMean'].to_numpy(), 'mm',
               'Mean relative deformation from sensor 1 and 2')
    for sensor in ('strainSensor1', 'strainSensor2'):
        rel = f'{sensor}Rel'
        if rel in strain:
            add_column(table, f'{sensor}MeanDelta',
                       (strain[rel] - strain['strainSensorsMean']).to_numpy(), 'mm',
                       f'Deviation of {rel} from the mean deformation')

    for name in ('hydrCylinderPressureRel', 'confiningPressureRel'):
        if name in recording:
            add_column(table, name, recording.values(name), recording.channel(name).unit,
                       recording.channel(name).description)

    add_column(table, 'pumpVolumeSum', bassin_pumps(recording)['pumpVolumeSum'].to_numpy(), 'ml',
               'Sum of present liquid in all pumps')

    for name in ('roomTemp', 'fluidOutTemp'):
        if name in recording:
            filled = pd.Series(recording.values(name), index=table.index).interpolate(
                method='linear', limit_direction='both'
            )
            add_column(table, name, filled.to_numpy(), '°C', recording.channel(name).description)

    table['flowMass'] = table['flowMass'].ffill()
    add_column(table, 'density', water_density(table['fluidOutTemp'].to_numpy()), 'kg/m³',
               'Water density depending on the fluid outflow temperature')
    flow_mass = table['flowMass'].to_numpy()
    add_column(table, 'flowMassDiff', np.concatenate([[0.0], np.diff(flow_mass)]), 'kg',
               'Raw difference of flow mass between two samples')
    return table
