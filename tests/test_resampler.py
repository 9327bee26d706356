"""
Test Suite for the Resampler
============================
Uniform grid construction and continuity-driven interpolation.

Run with: python -m pytest tests/test_resampler.py -v
"""

import numpy as np
import pandas as pd
import pytest

from conftest import START

from triaxproc.config import reset_config
from triaxproc.errors import SchemaError
from triaxproc.processing.recording import Recording
from triaxproc.processing.resampler import Resampler, resample_recording
from triaxproc.processing.schema import Channel, Continuity, get_spec


def make_recording(seconds, **columns) -> Recording:
    """Recording at the given sample times with schema metadata."""
    index = START + pd.to_timedelta(np.asarray(seconds, dtype=float), unit="s")
    channels = {}
    for name, values in columns.items():
        continuity = None if not np.isnan(values).all() else Continuity.UNSET
        channels[name] = get_spec(name).to_channel(continuity)
    return Recording.from_grid(pd.DatetimeIndex(index), columns, channels)


# =============================================================================
# GRID TESTS
# =============================================================================

def test_grid_spans_first_to_last_sample():
    """The grid starts at the first timestamp and never passes the last one."""
    recording = make_recording([0.0, 1.5, 3.2], flowMass=np.array([0.0, 1.5, 3.2]))
    resampled = Resampler(1.0).resample(recording)

    np.testing.assert_allclose(resampled.runtime, [0.0, 1.0, 2.0, 3.0])
    assert resampled.index[0] == START


def test_grid_keeps_exact_end():
    recording = make_recording([0.0, 0.7, 2.0], flowMass=np.array([0.0, 0.7, 2.0]))
    grid, t_new = Resampler(0.5).build_grid(recording.index)

    np.testing.assert_allclose(t_new, [0.0, 0.5, 1.0, 1.5, 2.0])
    assert grid[-1] == recording.index[-1]


def test_invalid_spacing():
    with pytest.raises(ValueError):
        Resampler(0)
    with pytest.raises(ValueError):
        Resampler(-1.0)
    with pytest.raises(ValueError):
        Resampler(float("nan"))


def test_grid_size_capped():
    """Two samples far apart must not expand into an unbounded grid."""
    recording = make_recording([0.0, 86400.0], flowMass=np.array([0.0, 1.0]))

    with pytest.raises(SchemaError, match="exceeds the limit"):
        Resampler(1.0, max_rows=1000).build_grid(recording.index)

    grid, _ = Resampler(3600.0, max_rows=1000).build_grid(recording.index)
    assert len(grid) == 25


def test_grid_cap_from_configuration(monkeypatch):
    monkeypatch.setenv("TRIAX_MAX_ROWS", "10")
    reset_config()
    recording = make_recording([0.0, 60.0], flowMass=np.array([0.0, 1.0]))

    with pytest.raises(SchemaError):
        Resampler(1.0).resample(recording)


# =============================================================================
# INTERPOLATION TESTS
# =============================================================================

def test_linear_channel_interpolated():
    recording = make_recording([0.0, 2.0], fluidPressureRel=np.array([0.0, 2.0]))
    resampled = resample_recording(recording, spacing_seconds=0.5)

    np.testing.assert_allclose(resampled.values("fluidPressureRel"), [0.0, 0.5, 1.0, 1.5, 2.0])


def test_linear_no_extrapolation():
    """Grid points outside the valid samples stay missing for linear channels."""
    recording = make_recording(
        [0.0, 1.0, 2.0, 3.0], fluidPressureRel=np.array([np.nan, 1.0, 3.0, np.nan])
    )
    values = Resampler(1.0).resample(recording).values("fluidPressureRel")

    assert np.isnan(values[0])
    np.testing.assert_allclose(values[1:3], [1.0, 3.0])
    assert np.isnan(values[3])


def test_step_channel_holds_last_value():
    """Step channels keep the last observed value, also after the last sample."""
    recording = make_recording(
        [0.0, 1.0, 2.0, 3.0], strainSensor1Rel=np.array([1.0, np.nan, 2.0, np.nan])
    )
    values = Resampler(1.0).resample(recording).values("strainSensor1Rel")

    np.testing.assert_array_equal(values, [1.0, 1.0, 2.0, 2.0])


def test_step_channel_no_value_before_first_sample():
    recording = make_recording(
        [0.0, 1.0, 2.0], strainSensor1Rel=np.array([np.nan, 1.0, 2.0])
    )
    values = Resampler(1.0).resample(recording).values("strainSensor1Rel")

    assert np.isnan(values[0])
    np.testing.assert_array_equal(values[1:], [1.0, 2.0])


def test_unset_channel_stays_missing():
    recording = make_recording(
        [0.0, 1.0, 2.0],
        flowMass=np.array([0.0, 1.0, 2.0]),
        fluidOutTemp=np.full(3, np.nan),
    )
    resampled = Resampler(0.5).resample(recording)

    assert np.isnan(resampled.values("fluidOutTemp")).all()
    assert resampled.is_unset("fluidOutTemp")


def test_single_valid_sample():
    recording = make_recording(
        [0.0, 1.0, 2.0],
        flowMass=np.array([np.nan, 5.0, np.nan]),
        strainSensor1Rel=np.array([np.nan, 0.5, np.nan]),
    )
    resampled = Resampler(1.0).resample(recording)

    values = resampled.values("flowMass")
    assert values[1] == 5.0
    assert np.isnan(values[0]) and np.isnan(values[2])
    np.testing.assert_array_equal(resampled.values("strainSensor1Rel")[1:], [0.5, 0.5])


def test_method_override():
    """An explicit method applies to every channel that is not unset."""
    recording = make_recording(
        [0.0, 2.0], strainSensor1Rel=np.array([0.0, 2.0])
    )
    values = Resampler(1.0).resample(recording, method="linear").values("strainSensor1Rel")

    np.testing.assert_allclose(values, [0.0, 1.0, 2.0])


def test_resampling_idempotent():
    """Resampling a uniformly sampled recording at its own spacing changes nothing."""
    t = np.arange(0.0, 30.0)
    recording = make_recording(
        t,
        fluidPressureRel=np.sin(t / 5.0) + 2.0,
        strainSensor1Rel=np.floor(t / 7.0) * 0.01,
        fluidOutTemp=np.full(len(t), np.nan),
    )
    once = Resampler(1.0).resample(recording)
    twice = Resampler(1.0).resample(once)

    assert once.index.equals(twice.index)
    for name in once.channel_names:
        np.testing.assert_allclose(twice.values(name), once.values(name), equal_nan=True)
    np.testing.assert_allclose(once.values("fluidPressureRel"), recording.values("fluidPressureRel"))


def test_input_not_modified():
    values = np.array([0.0, 1.0, np.nan, 3.0])
    recording = make_recording([0.0, 1.0, 2.0, 3.0], flowMass=values)
    Resampler(0.5).resample(recording)

    np.testing.assert_array_equal(recording.values("flowMass"), values)
    assert len(recording) == 4


def test_channel_metadata_kept():
    recording = make_recording([0.0, 1.0], flowMass=np.array([0.0, 1.0]))
    resampled = Resampler(0.5).resample(recording)

    assert resampled.channel("flowMass") == Channel(
        "flowMass", "kg", get_spec("flowMass").description, Continuity.CONTINUOUS
    )
