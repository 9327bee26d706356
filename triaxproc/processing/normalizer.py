"""
Column Normalizer
=================
Maps an arbitrary raw table onto the canonical channel schema.

Missing source columns are replaced by NaN-filled channels; channels without
a single valid sample are reclassified as ``unset``.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Union

import numpy as np
import pandas as pd

from triaxproc.config import get_config
from triaxproc.errors import (
    AllMissingWarning,
    MissingChannelWarning,
    SchemaError,
    SchemaWarning,
)
from triaxproc.processing.diagnostics import DiagnosticLog
from triaxproc.processing.recording import Recording
from triaxproc.processing.schema import (
    CHANNEL_SCHEMA,
    PERMEABILITY_IMPOSSIBLE,
    RELATIVE_STRAIN_CHANNELS,
    Channel,
    ChannelSpec,
    Continuity,
)


logger = logging.getLogger(__name__)

RawTable = Union[pd.DataFrame, Iterable[Mapping[str, Any]]]


@dataclass
class NormalizationResult:
    """Normalized recording plus the diagnostics raised while building it."""
    recording: Recording
    diagnostics: DiagnosticLog
    source_columns: Dict[str, Optional[str]]


class ColumnNormalizer:
    """
    Reconciles raw input columns with the channel schema.

    One data-driven pass over the schema: present source columns are copied
    (coerced to numbers), absent ones become NaN columns.
    """

    def __init__(
        self,
        schema: Sequence[ChannelSpec] = CHANNEL_SCHEMA,
        time_column: str = "time",
        max_rows: Optional[int] = None
    ):
        """
        Args:
            schema: Channel schema entries to normalize onto
            time_column: Name of the primary timestamp column
            max_rows: Row cap; defaults to the configured TRIAX_MAX_ROWS
        """
        self.schema = tuple(schema)
        self.time_column = time_column
        self.max_rows = max_rows if max_rows is not None else get_config().pipeline.max_rows

    def _to_frame(self, raw: RawTable) -> pd.DataFrame:
        if isinstance(raw, pd.DataFrame):
            return raw
        try:
            return pd.DataFrame.from_records(list(raw))
        except (TypeError, ValueError) as e:
            raise SchemaError(f"Input can not be read as a table: {e}") from e

    def _parse_index(self, frame: pd.DataFrame) -> pd.DatetimeIndex:
        if self.time_column not in frame.columns:
            raise SchemaError(f"Timestamp column '{self.time_column}' is missing")

        raw_times = frame[self.time_column]
        if raw_times.isna().any():
            raise SchemaError(f"Timestamp column '{self.time_column}' contains null values")
        try:
            times = pd.to_datetime(raw_times)
        except (TypeError, ValueError) as e:
            raise SchemaError(
                f"Timestamp column '{self.time_column}' can not be parsed: {e}"
            ) from e
        if times.isna().any():
            raise SchemaError(f"Timestamp column '{self.time_column}' contains null values")
        return pd.DatetimeIndex(times)

    def normalize(self, raw: RawTable) -> NormalizationResult:
        """
        Normalize a raw table.

        Args:
            raw: DataFrame or iterable of row mappings

        Returns:
            NormalizationResult with the normalized Recording

        Raises:
            SchemaError: timestamp column missing/invalid, duplicated column
                names, no rows, too many rows
        """
        diagnostics = DiagnosticLog(stage="normalize", logger_name=__name__)
        frame = self._to_frame(raw)

        if self.time_column not in frame.columns:
            raise SchemaError(f"Timestamp column '{self.time_column}' is missing")
        duplicated_columns = frame.columns[frame.columns.duplicated()]
        if len(duplicated_columns):
            raise SchemaError(
                f"Duplicated column names: {', '.join(map(str, duplicated_columns.unique()))}"
            )
        if len(frame) == 0:
            raise SchemaError("Input table has no rows")
        if len(frame) > self.max_rows:
            raise SchemaError(
                f"Input table has {len(frame):,} rows, the limit is {self.max_rows:,}"
            )

        index = self._parse_index(frame)
        frame = frame.set_axis(index, axis=0)

        # Sort by time and drop duplicated timestamps (first row wins)
        frame = frame.sort_index(kind="stable")
        duplicated = frame.index.duplicated(keep="first")
        if duplicated.any():
            diagnostics.info(
                SchemaWarning,
                f"{int(duplicated.sum())} rows with duplicated timestamps dropped",
            )
            frame = frame[~duplicated]

        rows = len(frame)
        columns: Dict[str, np.ndarray] = {}
        channels: Dict[str, Channel] = {}
        sources: Dict[str, Optional[str]] = {}

        for spec in self.schema:
            source = next((s for s in spec.sources if s in frame.columns), None)
            sources[spec.name] = source

            if source is not None:
                values = pd.to_numeric(frame[source], errors="coerce").to_numpy(dtype=float)
            else:
                values = np.full(rows, np.nan)
                diagnostics.warn(
                    MissingChannelWarning,
                    f"Source column {'/'.join(spec.sources)} missing, filled with not-a-number",
                    channel=spec.name,
                )

            continuity = spec.continuity
            if np.isnan(values).all():
                continuity = Continuity.UNSET
                if spec.impact:
                    diagnostics.error(
                        AllMissingWarning,
                        f"Channel entirely missing. {spec.impact}",
                        channel=spec.name,
                    )
                else:
                    diagnostics.warn(
                        AllMissingWarning,
                        "Channel entirely missing, continuity set to unset",
                        channel=spec.name,
                    )

            columns[spec.name] = values
            channels[spec.name] = spec.to_channel(continuity)

        strain = [name for name in RELATIVE_STRAIN_CHANNELS if name in channels]
        if strain and all(channels[name].continuity == Continuity.UNSET for name in strain):
            diagnostics.error(
                AllMissingWarning,
                f"No relative deformation data ({', '.join(strain)}). {PERMEABILITY_IMPOSSIBLE}",
            )

        recording = Recording.from_grid(frame.index, columns, channels)
        logger.debug("Normalized %d rows onto %d channels", rows, len(channels))
        return NormalizationResult(
            recording=recording,
            diagnostics=diagnostics,
            source_columns=sources,
        )


def normalize_table(raw: RawTable, time_column: str = "time") -> NormalizationResult:
    """
    Convenience function to normalize a raw table onto the channel schema.

    Args:
        raw: DataFrame or iterable of row mappings
        time_column: Name of the timestamp column

    Returns:
        NormalizationResult
    """
    return ColumnNormalizer(time_column=time_column).normalize(raw)
