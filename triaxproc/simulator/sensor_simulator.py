"""
Triaxial Experiment Sensor Simulator
====================================
Synthetic raw data for a triaxial permeability experiment.

Generates the raw source columns of the data logger with irregular sample
times, sensor noise, occasional spikes and dropouts, and scale resets (the
vessel collecting the outflow is emptied when full).
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Generator, Optional, Tuple

import numpy as np
import pandas as pd


@dataclass
class ExperimentConfiguration:
    """Configuration for a simulated triaxial experiment."""

    # Experiment identification
    name: str = "Simulated Experiment"
    start: datetime = datetime(2024, 1, 8, 8, 0, 0)

    # Logger timing
    duration_minutes: float = 60.0
    sample_seconds: float = 1.0
    jitter: float = 0.2              # fraction of sample_seconds

    # Environment
    room_temp: float = 21.0          # °C
    room_pressure: float = 0.985     # bar, atmospheric
    fluid_temp: float = 14.0         # °C at the inflow
    fluid_warming: float = 3.0       # °C gained on the way to the scale

    # Loading
    fluid_pressure: float = 2.0      # bar, relative inflow pressure
    confining_pressure: float = 8.0  # bar, relative
    cylinder_pressure: float = 45.0  # bar, relative

    # Specimen
    flow_rate: float = 0.02          # kg/min through the specimen
    scale_capacity: float = 0.8      # kg before the vessel is emptied
    scale_residual: float = 0.05     # kg left after emptying
    strain_start: float = 12.5       # mm, absolute sensor reading
    strain_rate: float = 0.01        # mm/h consolidation

    # Pumps
    pump_volume: float = 250.0       # ml per pump at start
    pump_consumption: float = 2.0    # ml/h per pump

    # Faults
    spike_probability: float = 0.001
    dropout_probability: float = 0.005
    missing_columns: Tuple[str, ...] = field(default_factory=tuple)
    seed: Optional[int] = None


SOURCE_COLUMNS = (
    "room_t", "room_p_abs", "fluid_in_t", "fluid_out_t",
    "fluid_p_abs", "fluid_p_rel",
    "hydrCylinder_p_abs", "hydrCylinder_p_rel",
    "sigma2_3_p_abs_1", "sigma2_3_p_rel_1",
    "deformation_1_s_abs", "deformation_1_s_rel",
    "deformation_2_s_abs", "deformation_2_s_rel",
    "pump_1_V", "pump_1_p", "pump_2_V", "pump_2_p", "pump_3_V", "pump_3_p",
    "weight",
)


class TriaxSimulator:
    """
    Simulator for the data logger of a triaxial permeability experiment.
    Produces one row per logger sample with all raw source columns.
    """

    def __init__(self, config: ExperimentConfiguration):
        self.config = config
        self.rng = np.random.default_rng(config.seed)

    def _timestamps(self) -> np.ndarray:
        """Sample times in seconds, jittered and strictly increasing."""
        cfg = self.config
        n = int(cfg.duration_minutes * 60 / cfg.sample_seconds) + 1
        t = np.arange(n) * cfg.sample_seconds
        if cfg.jitter > 0 and n > 2:
            jitter = self.rng.uniform(-cfg.jitter, cfg.jitter, n) * cfg.sample_seconds
            # Keep the span fixed
            jitter[0] = jitter[-1] = 0.0
            t = np.sort(t + jitter)
        return t

    def _add_noise(self, base: np.ndarray, noise_amp: float, drift_amp: float = 0.0,
                   drift_period_s: float = 3600.0) -> np.ndarray:
        """Add slow drift and sensor noise to a base signal."""
        t = np.arange(len(base))
        phase = self.rng.uniform(0, 2 * np.pi)
        drift = drift_amp * np.sin(2 * np.pi * t * self.config.sample_seconds / drift_period_s + phase)
        return base + drift + noise_amp * self.rng.standard_normal(len(base))

    def _inject_anomaly(self, values: np.ndarray, spike_scale: float) -> np.ndarray:
        """Occasionally inject spikes and dropouts."""
        values = values.copy()
        r = self.rng.random(len(values))
        spikes = r < self.config.spike_probability
        values[spikes] += spike_scale * self.rng.choice([-1.0, 1.0], spikes.sum())
        dropouts = (r >= self.config.spike_probability) & (
            r < self.config.spike_probability + self.config.dropout_probability
        )
        values[dropouts] = np.nan
        return values

    def _weight(self, t: np.ndarray) -> np.ndarray:
        """Scale reading: linear accumulation, emptied at capacity."""
        cfg = self.config
        collected = cfg.flow_rate * t / 60.0
        span = cfg.scale_capacity - cfg.scale_residual
        weight = cfg.scale_residual + np.mod(collected, span)
        return weight + 0.0003 * self.rng.standard_normal(len(t))

    def generate_table(self) -> pd.DataFrame:
        """
        Generate the complete raw table.

        Returns:
            DataFrame with a ``time`` column and the raw source columns
        """
        cfg = self.config
        t = self._timestamps()
        n = len(t)
        hours = t / 3600.0
        ones = np.ones(n)

        columns: Dict[str, np.ndarray] = {}

        # Temperatures
        columns["room_t"] = self._inject_anomaly(self._add_noise(cfg.room_temp * ones, 0.05, 0.4), 5.0)
        columns["fluid_in_t"] = self._inject_anomaly(self._add_noise(cfg.fluid_temp * ones, 0.03, 0.2), 5.0)
        columns["fluid_out_t"] = self._inject_anomaly(
            self._add_noise((cfg.fluid_temp + cfg.fluid_warming) * ones, 0.03, 0.3), 5.0
        )

        # Pressures (absolute = relative + atmospheric)
        room_p = self._add_noise(cfg.room_pressure * ones, 0.0005, 0.002)
        columns["room_p_abs"] = self._inject_anomaly(room_p, 0.05)
        for prefix, level, noise, spike in (
            ("fluid_p", cfg.fluid_pressure, 0.01, 0.5),
            ("hydrCylinder_p", cfg.cylinder_pressure, 0.2, 5.0),
        ):
            rel = self._add_noise(level * ones, noise, 0.02 * level)
            columns[f"{prefix}_rel"] = self._inject_anomaly(rel, spike)
            columns[f"{prefix}_abs"] = self._inject_anomaly(rel + room_p, spike)
        confining = self._add_noise(cfg.confining_pressure * ones, 0.02, 0.05)
        columns["sigma2_3_p_rel_1"] = self._inject_anomaly(confining, 1.0)
        columns["sigma2_3_p_abs_1"] = self._inject_anomaly(confining + room_p, 1.0)

        # Deformation, rel is zeroed at the start
        for sensor, offset in ((1, 0.0), (2, 0.35)):
            position = cfg.strain_start + offset + cfg.strain_rate * hours
            position = self._add_noise(position, 0.002)
            columns[f"deformation_{sensor}_s_abs"] = self._inject_anomaly(position, 0.5)
            columns[f"deformation_{sensor}_s_rel"] = self._inject_anomaly(position - position[0], 0.5)

        # Bassin pumps: volume logged in 0.1 ml steps, pressure follows confining
        for pump in (1, 2, 3):
            volume = cfg.pump_volume - cfg.pump_consumption * hours
            columns[f"pump_{pump}_V"] = self._inject_anomaly(np.round(volume, 1), 10.0)
            columns[f"pump_{pump}_p"] = self._inject_anomaly(self._add_noise(confining, 0.01), 1.0)

        columns["weight"] = self._inject_anomaly(self._weight(t), 0.0)

        for name in cfg.missing_columns:
            columns.pop(name, None)

        times = pd.Timestamp(cfg.start) + pd.to_timedelta(t, unit="s")
        table = pd.DataFrame({"time": times})
        for name in SOURCE_COLUMNS:
            if name in columns:
                table[name] = columns[name]
        return table

    def generate_rows(self) -> Generator[Dict, None, None]:
        """
        Generate the raw table row by row.

        Yields:
            Dictionary with ``time`` (ISO string) and the source columns,
            missing values as None
        """
        table = self.generate_table()
        for row in table.itertuples(index=False):
            record = row._asdict()
            record["time"] = record["time"].strftime("%Y-%m-%dT%H:%M:%S.%f")
            yield {
                key: (None if isinstance(value, float) and np.isnan(value) else value)
                for key, value in record.items()
            }

    def get_experiment_metadata(self) -> Dict:
        """Experiment metadata."""
        return {
            "name": self.config.name,
            "start": self.config.start.isoformat(),
            "end": (self.config.start + timedelta(minutes=self.config.duration_minutes)).isoformat(),
            "duration_hours": self.config.duration_minutes / 60.0,
            "fluid_pressure": self.config.fluid_pressure,
            "confining_pressure": self.config.confining_pressure,
            "flow_rate": self.config.flow_rate,
        }


def simulate_recording(
    duration_minutes: float = 60.0,
    seed: Optional[int] = None,
    **overrides
) -> pd.DataFrame:
    """
    Convenience function to generate a raw experiment table.

    Args:
        duration_minutes: Experiment duration
        seed: Random seed for reproducible data
        **overrides: Further ExperimentConfiguration fields

    Returns:
        Raw DataFrame with ``time`` and source columns
    """
    config = ExperimentConfiguration(duration_minutes=duration_minutes, seed=seed, **overrides)
    return TriaxSimulator(config).generate_table()


def main():
    """Test the simulator."""
    print("Triaxial Experiment Simulator")
    print("=" * 60)

    config = ExperimentConfiguration(
        name="Test Experiment",
        duration_minutes=120,
        flow_rate=0.01,
        seed=1,
    )
    sim = TriaxSimulator(config)

    print("\nConfiguration:")
    print(f"  Duration: {config.duration_minutes} min")
    print(f"  Fluid pressure: {config.fluid_pressure} bar")
    print(f"  Flow rate: {config.flow_rate} kg/min")

    table = sim.generate_table()
    print(f"\nGenerated {len(table):,} rows, {len(table.columns) - 1} source columns")
    print(f"  Missing values: {int(table.isna().sum().sum()):,}")
    resets = int((table['weight'].diff() < -0.01).sum())
    print(f"  Scale resets: {resets}")
    print(table.head())


if __name__ == "__main__":
    main()
