"""
Test Suite for Derived Bundles and Flow-Mass Analysis
=====================================================
Thematic views on a recording, accumulated flow and the analytics summary.

Run with: python -m pytest tests/test_bundles_flow.py -v
"""

import numpy as np
import pytest

from conftest import elapsed, raw_table

from triaxproc.processing.bundles import BUNDLES, get_bundle
from triaxproc.processing.flow import analytics_summary, analyze_flow_mass, outlier_percentiles
from triaxproc.processing.normalizer import normalize_table
from triaxproc.processing.permeability import water_density
from triaxproc.processing.processor import process_experiment


def recording(seconds=600, **columns):
    return normalize_table(raw_table(seconds, **columns)).recording


def scale_with_reset(seconds=600):
    t = elapsed(seconds)
    return 10.0 + 0.001 * t - 5.0 * (t >= 300)


# =============================================================================
# BUNDLE TESTS
# =============================================================================

def test_every_bundle_starts_with_runtime():
    rec = recording(60, weight=1.0, room_t=20.0)
    for name in BUNDLES:
        table = get_bundle(rec, name)
        assert table.columns[0] == "runtime", name
        assert table.index.name == "datetime"
        assert len(table) == 61


def test_unknown_bundle():
    with pytest.raises(KeyError, match="Available"):
        get_bundle(recording(10, weight=1.0), "nonsense")


def test_temperature_bundle():
    table = get_bundle(recording(10, room_t=20.0, fluid_out_t=17.0), "temperatures")

    assert list(table.columns) == ["runtime", "roomTemp", "fluidInTemp", "fluidOutTemp"]
    assert table.attrs["units"]["fluidOutTemp"] == "°C"
    assert table.attrs["units"]["runtime"] == "s"


def test_pressure_bundles():
    rec = recording(10, fluid_p_rel=2.0)

    assert list(get_bundle(rec, "pressure_relative").columns) == [
        "runtime", "fluidPressureRel", "hydrCylinderPressureRel", "confiningPressureRel"
    ]
    assert list(get_bundle(rec, "pressure_absolute").columns) == [
        "runtime", "roomPressureAbs", "fluidPressureAbs",
        "hydrCylinderPressureAbs", "confiningPressureAbs"
    ]
    assert list(get_bundle(rec, "confining_pressure").columns) == ["runtime", "confiningPressureRel"]


def test_deformation_mean():
    sensor2 = np.full(11, 3.0)
    sensor2[:4] = np.nan
    table = get_bundle(
        recording(10, deformation_1_s_rel=1.0, deformation_2_s_rel=sensor2), "deformation"
    )

    np.testing.assert_array_equal(table["strainSensorsMean"].iloc[:4], 1.0)
    np.testing.assert_array_equal(table["strainSensorsMean"].iloc[4:], 2.0)
    assert table.attrs["units"]["strainSensorsMean"] == "mm"


def test_deformation_mean_without_data():
    table = get_bundle(recording(10, weight=1.0), "deformation")

    assert np.isnan(table["strainSensorsMean"]).all()


def test_bassin_pumps():
    table = get_bundle(
        recording(10, pump_1_p=2.0, pump_2_p=4.0, pump_1_V=100.0, pump_2_V=50.0),
        "bassin_pumps",
    )

    np.testing.assert_array_equal(table["pumpPressureMean"], 3.0)
    np.testing.assert_array_equal(table["pumpVolumeSum"], 150.0)
    assert table.attrs["units"]["pumpVolumeSum"] == "ml"
    assert table.attrs["units"]["pumpPressureMean"] == "bar"


def test_flow_bundle():
    table = get_bundle(recording(10, weight=0.5), "flow")

    assert list(table.columns) == ["runtime", "flowMass", "fluidOutTemp", "fluidPressureRel"]


def test_bundle_is_a_copy():
    rec = recording(10, weight=0.5)
    table = get_bundle(rec, "flow")
    table["flowMass"] = 99.0

    np.testing.assert_array_equal(rec.values("flowMass"), 0.5)


# =============================================================================
# FLOW-MASS ANALYSIS TESTS
# =============================================================================

def test_outlier_percentiles():
    assert outlier_percentiles(10.0) == (5.0, 95.0)
    assert outlier_percentiles(200.0) == (1.0, 99.0)


def test_flow_mass_retimed():
    t = elapsed(600)
    filtered = process_experiment(raw_table(600, weight=0.001 * t, fluid_out_t=10.0)).filtered
    table = analyze_flow_mass(filtered, timestep_min=1.0)

    assert len(table) == 11
    for name in ("flowMassDiffOrig", "timeDiff", "flowMassDiff", "flowMassAcc", "flowRate"):
        assert name in table.columns
    assert table["flowMassDiffOrig"].iloc[0] == 0.0
    np.testing.assert_allclose(table["flowMassDiffOrig"].iloc[1:], 0.06)
    np.testing.assert_allclose(table["timeDiff"].iloc[1:], 60.0)
    np.testing.assert_allclose(table["flowMassAcc"], np.cumsum(table["flowMassDiff"]))
    assert table["flowRate"].iloc[0] == 0.0
    np.testing.assert_allclose(
        table["flowRate"].iloc[1:], 0.06 / water_density(10.0) / 60.0, rtol=1e-6
    )
    assert table.attrs["units"]["flowRate"] == "m³/s"


def test_flow_mass_reset_corrected():
    """The negative step at a scale reset is treated as an outlier."""
    filtered = process_experiment(raw_table(600, weight=scale_with_reset())).filtered
    table = analyze_flow_mass(filtered, timestep_min=1.0)

    assert table["flowMassDiffOrig"].min() < -4.0
    assert (table["flowMassDiff"] >= 0).all()
    assert np.all(np.diff(table["flowMassAcc"]) >= 0)


def test_flow_mass_on_recording_grid():
    table = analyze_flow_mass(recording(120, weight=0.5))

    assert len(table) == 121
    np.testing.assert_array_equal(table["flowMassDiff"], 0.0)


def test_flow_mass_without_scale():
    table = analyze_flow_mass(recording(60, fluid_out_t=12.0))

    np.testing.assert_array_equal(table["flowMassDiff"], 0.0)
    np.testing.assert_array_equal(table["flowMassAcc"], 0.0)


def test_flow_mass_negative_timestep():
    with pytest.raises(ValueError):
        analyze_flow_mass(recording(10, weight=1.0), timestep_min=-1.0)


# =============================================================================
# ANALYTICS SUMMARY TESTS
# =============================================================================

def test_analytics_summary():
    room = np.full(601, 20.0)
    room[:30] = np.nan
    weight = scale_with_reset()
    weight[100] = np.nan
    table = analytics_summary(recording(
        600, weight=weight, room_t=room, fluid_out_t=15.0,
        deformation_1_s_rel=1.0, deformation_2_s_rel=3.0,
        pump_1_V=100.0, hydrCylinder_p_rel=45.0,
    ))

    for name in ("strainSensorsMean", "strainSensor1MeanDelta", "strainSensor2MeanDelta",
                 "hydrCylinderPressureRel", "confiningPressureRel", "pumpVolumeSum",
                 "roomTemp", "density", "flowMassDiff"):
        assert name in table.columns, name

    assert not np.isnan(table["roomTemp"]).any()
    assert table["flowMass"].iloc[100] == table["flowMass"].iloc[99]
    np.testing.assert_array_equal(table["strainSensor1MeanDelta"], -1.0)
    np.testing.assert_allclose(table["density"], water_density(15.0))
    assert table["flowMassDiff"].iloc[0] == 0.0
    assert table["flowMassDiff"].min() < -4.0
    assert table.attrs["units"]["density"] == "kg/m³"
