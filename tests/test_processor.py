"""
Test Suite for the Processing Pipeline
======================================
End-to-end runs of normalize -> resample -> filter on simulated
experiments, including the derived outputs.

Run with: python -m pytest tests/test_processor.py -v
"""

import numpy as np
import pandas as pd
import pytest

from triaxproc.errors import MissingChannelWarning, SchemaError
from triaxproc.processing.flow import analyze_flow_mass
from triaxproc.processing.processor import ExperimentProcessor, process_experiment
from triaxproc.simulator.sensor_simulator import (
    SOURCE_COLUMNS,
    ExperimentConfiguration,
    TriaxSimulator,
    simulate_recording,
)


@pytest.fixture(scope="module")
def simulated():
    return simulate_recording(duration_minutes=60, seed=3)


@pytest.fixture(scope="module")
def processed(simulated):
    return process_experiment(simulated)


# =============================================================================
# SIMULATOR TESTS
# =============================================================================

def test_simulator_columns(simulated):
    assert list(simulated.columns) == ["time", *SOURCE_COLUMNS]
    assert len(simulated) == 3601
    assert simulated["time"].is_monotonic_increasing


def test_simulator_reproducible():
    a = simulate_recording(duration_minutes=5, seed=11)
    b = simulate_recording(duration_minutes=5, seed=11)

    pd.testing.assert_frame_equal(a, b)


def test_simulator_missing_columns():
    table = simulate_recording(duration_minutes=5, seed=1, missing_columns=("weight", "room_t"))

    assert "weight" not in table.columns
    assert "room_t" not in table.columns


def test_simulator_rows():
    sim = TriaxSimulator(ExperimentConfiguration(duration_minutes=1, seed=2))
    rows = list(sim.generate_rows())

    assert len(rows) == 61
    assert isinstance(rows[0]["time"], str)
    assert all(value is None or np.isfinite(value)
               for row in rows for key, value in row.items() if key != "time")


def test_simulator_metadata():
    sim = TriaxSimulator(ExperimentConfiguration(name="Sandstone A", duration_minutes=90, seed=2))
    metadata = sim.get_experiment_metadata()

    assert metadata["name"] == "Sandstone A"
    assert metadata["duration_hours"] == pytest.approx(1.5)
    assert pd.Timestamp(metadata["end"]) - pd.Timestamp(metadata["start"]) == pd.Timedelta(minutes=90)
    assert metadata["fluid_pressure"] == 2.0


def test_simulator_scale_resets():
    table = simulate_recording(duration_minutes=120, seed=4, spike_probability=0.0,
                               dropout_probability=0.0)
    resets = int((table["weight"].diff() < -0.01).sum())

    # 0.75 kg between resets at 0.02 kg/min
    assert resets == 3


# =============================================================================
# PIPELINE TESTS
# =============================================================================

def test_row_counts(processed):
    assert processed.original_row_count == 3601
    assert processed.processed_row_count == 3601
    assert len(processed.filtered) == len(processed.resampled) == 3601
    np.testing.assert_allclose(processed.filtered.runtime, np.arange(3601.0))


def test_no_missing_channels(processed):
    assert processed.diagnostics.of_category(MissingChannelWarning) == []
    assert processed.to_statistics_dict()["unset_channels"] == []


def test_channel_summary(processed):
    summary = processed.channel_summary()
    by_name = {row["name"]: row for row in summary}

    assert len(summary) == 21
    assert by_name["pump1PressureRel"]["source"] == "pump_1_p"
    assert by_name["flowMass"]["unit"] == "kg"
    assert by_name["strainSensor1Rel"]["continuity"] == "step"
    assert 0.0 < by_name["roomTemp"]["missing_fraction"] < 0.05


def test_filtering_removes_dropouts(processed):
    for name in ("roomTemp", "fluidPressureRel", "confiningPressureRel"):
        assert not np.isnan(processed.filtered.values(name)).any(), name


def test_filter_effects(processed):
    effects = processed.filter_effects()

    assert bool(effects.loc["fluidPressureRel", "changed"])
    assert not bool(effects.loc["flowMass", "changed"])
    assert not bool(effects.loc["pump1Volume", "changed"])


def test_statistics(processed):
    stats = processed.to_statistics_dict()

    assert stats["original_rows"] == 3601
    assert stats["processed_rows"] == 3601
    assert stats["duration_s"] == pytest.approx(3600.0)
    assert stats["processing_time_ms"] >= 0
    assert stats["diagnostics"]["total"] == len(processed.diagnostics)


def test_permeability(processed):
    result = processed.permeability(length_cm=10.0, diameter_cm=5.0, timestep_min=5.0)

    assert result.ok
    assert len(result) == 13
    assert len(result.segmentation) == 2
    assert (result.table["flowMassDiff"] >= 0).all()
    permeability = result.table["permeability"]
    assert (permeability >= 0).all()
    # The first row and the interval holding the reset carry no flow
    positive = permeability[permeability > 0]
    assert len(positive) == 11
    # Same specimen and flow throughout
    assert positive.max() / positive.min() < 1.5


def test_bundle_and_flow(processed):
    assert "strainSensorsMean" in processed.bundle("deformation").columns
    flow = processed.flow_mass(timestep_min=5.0)
    assert len(flow) == 13
    assert flow["flowMassAcc"].iloc[-1] == pytest.approx(1.2, rel=0.1)
    assert "density" in processed.analytics().columns


def test_missing_columns_reported():
    raw = simulate_recording(duration_minutes=30, seed=5, missing_columns=("fluid_out_t", "pump_3_V"))
    result = process_experiment(raw)
    stats = result.to_statistics_dict()

    assert set(stats["unset_channels"]) == {"fluidOutTemp", "pump3Volume"}
    missing = {d.channel for d in result.diagnostics.of_category(MissingChannelWarning)}
    assert missing == {"fluidOutTemp", "pump3Volume"}

    perm = result.permeability(length_cm=10.0, diameter_cm=5.0)
    assert perm.ok
    assert any(d.channel == "fluidOutTemp" for d in perm.diagnostics)


def test_rows_from_simulator():
    sim = TriaxSimulator(ExperimentConfiguration(duration_minutes=2, seed=6))
    result = ExperimentProcessor().process(sim.generate_rows())

    assert result.processed_row_count == 121


def test_coarser_grid(simulated):
    result = ExperimentProcessor(resample_seconds=10.0).process(simulated)

    assert result.processed_row_count == 361


def test_row_limit(simulated):
    with pytest.raises(SchemaError):
        ExperimentProcessor(max_rows=100).process(simulated)


def test_grid_limit():
    raw = pd.DataFrame({
        "time": [pd.Timestamp("2024-01-08 08:00:00"), pd.Timestamp("2024-01-09 08:00:00")],
        "weight": [1.0, 1.1],
    })

    with pytest.raises(SchemaError, match="exceeds the limit"):
        ExperimentProcessor(max_rows=100).process(raw)
    assert ExperimentProcessor(resample_seconds=3600.0, max_rows=100).process(raw).processed_row_count == 25


def test_flow_mass_percentiles_from_metadata(processed):
    """The nominal experiment duration selects the percentile band."""
    sim = TriaxSimulator(ExperimentConfiguration(duration_minutes=60, seed=3))
    hours = sim.get_experiment_metadata()["duration_hours"]

    short = analyze_flow_mass(processed.filtered, timestep_min=5.0, duration_hours=hours)
    default = processed.flow_mass(timestep_min=5.0)
    np.testing.assert_allclose(short["flowMassDiff"], default["flowMassDiff"])

    long = analyze_flow_mass(processed.filtered, timestep_min=5.0, duration_hours=hours * 200)
    assert (long["flowMassDiff"] >= 0).all()
