"""
Channel Schema
==============
Static table of the canonical channels of a triaxial experiment: raw source
column names, physical unit, description and resampling continuity.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple


class Continuity(Enum):
    """Resampling policy of a channel."""
    CONTINUOUS = "continuous"  # interpolate linearly
    STEP = "step"              # hold last observed value
    UNSET = "unset"            # entirely missing, never filled


@dataclass(frozen=True)
class Channel:
    """A named, unit-tagged scalar time series as carried by a Recording."""
    name: str
    unit: str
    description: str
    continuity: Continuity


@dataclass(frozen=True)
class ChannelSpec:
    """Schema entry for one canonical channel."""
    name: str
    sources: Tuple[str, ...]
    unit: str
    description: str
    continuity: Continuity
    # What downstream calculation suffers when the channel is fully missing
    impact: Optional[str] = None

    def to_channel(self, continuity: Optional[Continuity] = None) -> Channel:
        return Channel(
            name=self.name,
            unit=self.unit,
            description=self.description,
            continuity=continuity or self.continuity,
        )


PERMEABILITY_IMPOSSIBLE = "Permeability calculation not possible"
PERMEABILITY_IMPRECISE = (
    "Permeability calculation will be imprecise (fallback fluid temperature)"
)

C = Continuity.CONTINUOUS
S = Continuity.STEP

CHANNEL_SCHEMA: Tuple[ChannelSpec, ...] = (
    # Temperatures
    ChannelSpec("roomTemp", ("room_t",), "°C",
                "Ambient air temperature", C),
    ChannelSpec("fluidInTemp", ("fluid_in_t",), "°C",
                "Temperature of the fluid before flowing through the specimen", C),
    ChannelSpec("fluidOutTemp", ("fluid_out_t",), "°C",
                "Temperature of the fluid after flowing through, measured on the scale", C,
                impact=PERMEABILITY_IMPRECISE),

    # Pressures
    ChannelSpec("roomPressureAbs", ("room_p_abs",), "bar",
                "Atmospheric pressure", C),
    ChannelSpec("fluidPressureAbs", ("fluid_p_abs",), "bar",
                "Inflow pressure of the specimen (absolute value)", C),
    ChannelSpec("fluidPressureRel", ("fluid_p_rel",), "bar",
                "Inflow pressure of the specimen (relative value)", C,
                impact=PERMEABILITY_IMPOSSIBLE),
    ChannelSpec("hydrCylinderPressureAbs", ("hydrCylinder_p_abs",), "bar",
                "Operating pressure of the hydraulic cylinder (absolute value)", C),
    ChannelSpec("hydrCylinderPressureRel", ("hydrCylinder_p_rel",), "bar",
                "Operating pressure of the hydraulic cylinder (relative value)", C),
    ChannelSpec("confiningPressureAbs", ("sigma2_3_p_abs_1",), "bar",
                "Confining pressure in the bassin, measured at the inflow pipe (absolute value)", C),
    ChannelSpec("confiningPressureRel", ("sigma2_3_p_rel_1",), "bar",
                "Confining pressure in the bassin, measured at the inflow pipe (relative value)", C),

    # Deformation
    ChannelSpec("strainSensor1Pos", ("deformation_1_s_abs",), "mm",
                "Absolute deformation derived from the sensor voltage", S),
    ChannelSpec("strainSensor1Rel", ("deformation_1_s_rel",), "mm",
                "Relative deformation, zeroed at the beginning of the experiment", S),
    ChannelSpec("strainSensor2Pos", ("deformation_2_s_abs",), "mm",
                "Absolute deformation derived from the sensor voltage", S),
    ChannelSpec("strainSensor2Rel", ("deformation_2_s_rel",), "mm",
                "Relative deformation, zeroed at the beginning of the experiment", S),

    # Bassin pumps
    ChannelSpec("pump1Volume", ("pump_1_V",), "ml",
                "Liquid present in pump 1", S),
    ChannelSpec("pump1PressureRel", ("pump_1_p",), "bar",
                "Pressure measured internally in pump 1 (relative value)", C),
    ChannelSpec("pump2Volume", ("pump_2_V",), "ml",
                "Liquid present in pump 2", S),
    ChannelSpec("pump2PressureRel", ("pump_2_p",), "bar",
                "Pressure measured internally in pump 2 (relative value)", C),
    ChannelSpec("pump3Volume", ("pump_3_V",), "ml",
                "Liquid present in pump 3", S),
    ChannelSpec("pump3PressureRel", ("pump_3_p",), "bar",
                "Pressure measured internally in pump 3 (relative value)", C),

    # Flow
    ChannelSpec("flowMass", ("weight",), "kg",
                "Weight of the water measured on the scale", C,
                impact=PERMEABILITY_IMPOSSIBLE),
)

RUNTIME = Channel(
    name="runtime",
    unit="s",
    description="Runtime in seconds since experiment start",
    continuity=Continuity.CONTINUOUS,
)

# Either of these is enough for the specimen length correction
RELATIVE_STRAIN_CHANNELS: Tuple[str, ...] = ("strainSensor1Rel", "strainSensor2Rel")

SCHEMA_BY_NAME: Dict[str, ChannelSpec] = {spec.name: spec for spec in CHANNEL_SCHEMA}


def get_spec(name: str) -> ChannelSpec:
    """Look up a schema entry by canonical channel name."""
    try:
        return SCHEMA_BY_NAME[name]
    except KeyError:
        raise KeyError(f"Unknown channel: {name}") from None


def channels_with_unit(unit: str) -> Tuple[str, ...]:
    """Canonical channel names carrying the given unit, in schema order."""
    return tuple(spec.name for spec in CHANNEL_SCHEMA if spec.unit == unit)
