"""
Derived Bundles
===============
Thematic views on the filtered recording.

Every bundle is a DataFrame indexed by ``datetime`` that starts with the
``runtime`` column. Units and descriptions are kept in ``DataFrame.attrs``.
"""

import logging
import warnings
from typing import Callable, Dict, List, Sequence

import numpy as np
import pandas as pd

from triaxproc.processing.recording import Recording


logger = logging.getLogger(__name__)


def _table(recording: Recording, columns: Sequence[str]) -> pd.DataFrame:
    present = [name for name in columns if name in recording]
    return recording.to_frame(['runtime', *present])


def add_column(
    table: pd.DataFrame,
    name: str,
    values: np.ndarray,
    unit: str,
    description: str
) -> None:
    table[name] = values
    table.attrs.setdefault('units', {})[name] = unit
    table.attrs.setdefault('descriptions', {})[name] = description


def _row_reduce(table: pd.DataFrame, columns: List[str], func: Callable) -> np.ndarray:
    if not columns:
        return np.full(len(table), np.nan)
    with warnings.catch_warnings():
        # Rows without any value give NaN
        warnings.simplefilter("ignore", category=RuntimeWarning)
        return func(table[columns].to_numpy(dtype=float), axis=1)


def temperatures(recording: Recording) -> pd.DataFrame:
    """All temperature channels (every channel measured in °C)."""
    names = [name for name in recording.channel_names if recording.channel(name).unit == '°C']
    logger.debug("Temperature channels: %s", ", ".join(names))
    return _table(recording, names)


def pressure_relative(recording: Recording) -> pd.DataFrame:
    """Relative fluid, hydraulic cylinder and confining pressure."""
    return _table(recording, ['fluidPressureRel', 'hydrCylinderPressureRel', 'confiningPressureRel'])


def pressure_absolute(recording: Recording) -> pd.DataFrame:
    """Absolute room, fluid, hydraulic cylinder and confining pressure."""
    return _table(
        recording,
        ['roomPressureAbs', 'fluidPressureAbs', 'hydrCylinderPressureAbs', 'confiningPressureAbs']
    )


def confining_pressure(recording: Recording) -> pd.DataFrame:
    """Relative confining pressure."""
    return _table(recording, ['confiningPressureRel'])


def deformation(recording: Recording) -> pd.DataFrame:
    """Relative deformation of both strain sensors and their mean."""
    table = _table(recording, ['strainSensor1Rel', 'strainSensor2Rel'])
    sensors = [name for name in ('strainSensor1Rel', 'strainSensor2Rel') if name in table]
    add_column(
        table, 'strainSensorsMean', _row_reduce(table, sensors, np.nanmean), 'mm',
        'Mean relative deformation from sensor 1 and 2, zeroed at the beginning of the experiment'
    )
    return table


def bassin_pumps(recording: Recording) -> pd.DataFrame:
    """
    Pump pressures and volumes with their mean pressure and total volume.

    The mean pump pressure drops while a pump is refilled.
    """
    table = _table(recording, [
        'pump1PressureRel', 'pump1Volume',
        'pump2PressureRel', 'pump2Volume',
        'pump3PressureRel', 'pump3Volume',
    ])
    pressures = [c for c in ('pump1PressureRel', 'pump2PressureRel', 'pump3PressureRel') if c in table]
    volumes = [c for c in ('pump1Volume', 'pump2Volume', 'pump3Volume') if c in table]
    add_column(
        table, 'pumpPressureMean', _row_reduce(table, pressures, np.nanmean), 'bar',
        'Mean pressure measured internally in all pumps (relative value)'
    )
    add_column(
        table, 'pumpVolumeSum', _row_reduce(table, volumes, np.nansum), 'ml',
        'Sum of present liquid in all pumps'
    )
    return table


def flow(recording: Recording) -> pd.DataFrame:
    """Flow mass with the outflow temperature and the relative fluid pressure."""
    return _table(recording, ['flowMass', 'fluidOutTemp', 'fluidPressureRel'])


BUNDLES: Dict[str, Callable[[Recording], pd.DataFrame]] = {
    'temperatures': temperatures,
    'pressure_relative': pressure_relative,
    'pressure_absolute': pressure_absolute,
    'confining_pressure': confining_pressure,
    'deformation': deformation,
    'bassin_pumps': bassin_pumps,
    'flow': flow,
}


def get_bundle(recording: Recording, name: str) -> pd.DataFrame:
    """
    Build a bundle by name.

    Raises:
        KeyError: unknown bundle name
    """
    try:
        builder = BUNDLES[name]
    except KeyError:
        raise KeyError(
            f"Unknown bundle '{name}'. Available: {', '.join(BUNDLES)}"
        ) from None
    return builder(recording)
