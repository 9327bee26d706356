"""
TriaxProc Configuration Module
==============================
Handles environment variables for the processing pipeline and the API.
Values come from the process environment, optionally seeded by a .env file.
"""

import os
import math
import logging
from dataclasses import dataclass
from typing import Any, Optional
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from triaxproc.errors import ParameterError

# Load .env file if present
load_dotenv()


@dataclass(frozen=True)
class PipelineConfig:
    """Processing defaults shared by all pipeline stages."""
    resample_seconds: float = 1.0
    max_rows: int = 5_000_000
    reset_threshold: float = -0.01
    fallback_fluid_temp: float = 18.0
    default_timestep_min: float = 5.0
    flow_outlier_window: int = 240
    long_experiment_hours: float = 150.0
    # Percentile bounds for the accumulated-flow outlier correction
    percentiles_long: tuple = (1.0, 99.0)
    percentiles_short: tuple = (5.0, 95.0)


@dataclass(frozen=True)
class ApiConfig:
    """FastAPI server configuration."""
    host: str = "0.0.0.0"
    port: int = 8000


@dataclass(frozen=True)
class Config:
    """Main application configuration."""
    pipeline: PipelineConfig
    api: ApiConfig
    log_level: str = "INFO"


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def load_config() -> Config:
    """
    Load configuration from environment variables (.env in development).

    Returns:
        Config with pipeline and API settings
    """
    pipeline = PipelineConfig(
        resample_seconds=_env_float("TRIAX_RESAMPLE_SECONDS", 1.0),
        max_rows=_env_int("TRIAX_MAX_ROWS", 5_000_000),
        reset_threshold=_env_float("TRIAX_RESET_THRESHOLD", -0.01),
        fallback_fluid_temp=_env_float("TRIAX_FALLBACK_FLUID_TEMP", 18.0),
        default_timestep_min=_env_float("TRIAX_DEFAULT_TIMESTEP_MIN", 5.0),
        flow_outlier_window=_env_int("TRIAX_FLOW_OUTLIER_WINDOW", 240),
        long_experiment_hours=_env_float("TRIAX_LONG_EXPERIMENT_HOURS", 150.0),
    )
    api = ApiConfig(
        host=os.getenv("API_HOST", "0.0.0.0"),
        port=_env_int("API_PORT", 8000),
    )
    return Config(
        pipeline=pipeline,
        api=api,
        log_level=os.getenv("TRIAX_LOG_LEVEL", "INFO").upper(),
    )


# Singleton config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the application configuration (singleton)."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Drop the cached configuration so the next call re-reads the environment."""
    global _config
    _config = None


def configure_logging(level: Optional[str] = None) -> None:
    """
    Attach a basic console handler for scripts and the API server.

    Args:
        level: Logging level name. Uses TRIAX_LOG_LEVEL when not provided.
    """
    if level is None:
        level = get_config().log_level
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)-7s %(name)s - %(message)s",
    )


# =============================================================================
# Request parameters
# =============================================================================

class PermeabilityParameters(BaseModel):
    """Specimen geometry and calculation timestep for one permeability request."""
    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    length_cm: float = Field(gt=0, strict=True, description="Initial specimen length in cm")
    diameter_cm: float = Field(gt=0, strict=True, description="Specimen diameter in cm")
    timestep_min: float = Field(
        default_factory=lambda: get_config().pipeline.default_timestep_min,
        gt=0,
        strict=True,
        validate_default=True,
        description="Calculation timestep in minutes",
    )
    debug: bool = Field(default=False, strict=True, description="Return the full working table")

    @property
    def length_m(self) -> float:
        return self.length_cm / 100.0

    @property
    def diameter_m(self) -> float:
        return self.diameter_cm / 100.0

    @property
    def cross_section_m2(self) -> float:
        return math.pi * (self.diameter_m / 2.0) ** 2


def validate_parameters(**kwargs: Any) -> PermeabilityParameters:
    """
    Build PermeabilityParameters, failing fast on invalid input.

    Raises:
        ParameterError: non-numeric, non-positive or non-finite values
    """
    try:
        return PermeabilityParameters(**kwargs)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
            for err in e.errors()
        )
        raise ParameterError(f"Invalid permeability parameters ({problems})") from e


if __name__ == "__main__":
    # Test configuration loading
    config = get_config()
    print("Configuration loaded successfully!")
    print(f"  Resample spacing: {config.pipeline.resample_seconds}s")
    print(f"  Reset threshold: {config.pipeline.reset_threshold}")
    print(f"  API: {config.api.host}:{config.api.port}")
