"""Synthetic triaxial experiment data."""

from triaxproc.simulator.sensor_simulator import (
    ExperimentConfiguration,
    TriaxSimulator,
    simulate_recording
)

__all__ = ["ExperimentConfiguration", "TriaxSimulator", "simulate_recording"]
