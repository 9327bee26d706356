"""
Shared fixtures for the TriaxProc test suite.
"""

import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

# Make the package importable without installation
sys.path.insert(0, str(Path(__file__).parent.parent))

from triaxproc.config import reset_config


START = pd.Timestamp("2024-01-08 08:00:00")


def raw_table(seconds: int = 600, **columns) -> pd.DataFrame:
    """
    Raw logger table sampled once per second.

    Args:
        seconds: Duration; the table holds ``seconds + 1`` rows
        **columns: Raw source columns, scalars are broadcast

    Returns:
        DataFrame with a ``time`` column and the given source columns
    """
    table = pd.DataFrame({"time": pd.date_range(START, periods=seconds + 1, freq="s")})
    for name, values in columns.items():
        table[name] = values
    return table


def elapsed(seconds: int = 600) -> np.ndarray:
    """Seconds since start matching ``raw_table``."""
    return np.arange(seconds + 1, dtype=float)


@pytest.fixture(autouse=True)
def fresh_config():
    """Every test reads the environment anew."""
    reset_config()
    yield
    reset_config()
