"""
Recording
=========
Immutable, column-oriented multi-channel dataset sharing one timestamp axis.

The backing DataFrame is never handed out by reference: accessors return
copies and derivations build new Recording instances.
"""

from typing import Dict, Iterable, List, Mapping, Optional

import numpy as np
import pandas as pd

from triaxproc.errors import SchemaError
from triaxproc.processing.schema import RUNTIME, Channel, Continuity, SCHEMA_BY_NAME


INDEX_NAME = "datetime"


def elapsed_seconds(index: pd.DatetimeIndex) -> np.ndarray:
    """Seconds since the first timestamp of the index."""
    if len(index) == 0:
        return np.array([], dtype=float)
    return np.asarray((index - index[0]).total_seconds(), dtype=float)


class Recording:
    """
    Time-indexed collection of channels.

    The table always contains a ``runtime`` column (seconds since the first
    timestamp) followed by the channels in the order they were given.
    """

    def __init__(self, data: pd.DataFrame, channels: Mapping[str, Channel]):
        """
        Args:
            data: Table indexed by a DatetimeIndex, one column per channel
            channels: Channel metadata keyed by column name

        Raises:
            SchemaError: if the table is empty or not keyed consistently
        """
        if len(data) == 0:
            raise SchemaError("Recording must contain at least one row")
        if not isinstance(data.index, pd.DatetimeIndex):
            raise SchemaError("Recording must be indexed by timestamps")
        if data.index.hasnans:
            raise SchemaError("Recording contains null timestamps")

        names = [name for name in channels if name != RUNTIME.name]
        missing = [name for name in names if name not in data.columns]
        if missing:
            raise SchemaError(f"Recording is missing columns for channels: {missing}")

        table = pd.DataFrame(index=data.index.copy())
        table.index.name = INDEX_NAME
        table[RUNTIME.name] = elapsed_seconds(table.index)
        for name in names:
            table[name] = np.asarray(data[name], dtype=float)

        self._data = table
        self._channels: Dict[str, Channel] = {RUNTIME.name: RUNTIME}
        self._channels.update({name: channels[name] for name in names})

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, name: str) -> bool:
        return name in self._channels

    def __repr__(self) -> str:
        return (
            f"Recording(rows={len(self)}, channels={len(self._channels) - 1}, "
            f"start={self._data.index[0]}, end={self._data.index[-1]})"
        )

    @property
    def index(self) -> pd.DatetimeIndex:
        return self._data.index.copy()

    @property
    def channel_names(self) -> List[str]:
        """Channel names without the derived runtime column."""
        return [name for name in self._channels if name != RUNTIME.name]

    @property
    def channels(self) -> Dict[str, Channel]:
        return dict(self._channels)

    @property
    def runtime(self) -> np.ndarray:
        return self._data[RUNTIME.name].to_numpy(copy=True)

    @property
    def duration_seconds(self) -> float:
        return float(self._data[RUNTIME.name].iloc[-1])

    def channel(self, name: str) -> Channel:
        try:
            return self._channels[name]
        except KeyError:
            raise KeyError(f"Recording has no channel '{name}'") from None

    def values(self, name: str) -> np.ndarray:
        """Copy of one channel's values."""
        self.channel(name)
        return self._data[name].to_numpy(dtype=float, copy=True)

    def missing_fraction(self, name: str) -> float:
        values = self._data[name].to_numpy()
        return float(np.isnan(values).sum()) / len(values)

    def is_unset(self, name: str) -> bool:
        return self._channels[name].continuity == Continuity.UNSET

    def to_frame(self, columns: Optional[Iterable[str]] = None) -> pd.DataFrame:
        """
        Copy of the table (or a subset of columns) with units attached.

        Units and descriptions are stored in ``DataFrame.attrs``.
        """
        if columns is None:
            columns = list(self._channels)
        columns = list(columns)
        for name in columns:
            self.channel(name)
        frame = self._data[columns].copy()
        frame.attrs['units'] = {name: self._channels[name].unit for name in columns}
        frame.attrs['descriptions'] = {
            name: self._channels[name].description for name in columns
        }
        return frame

    # ------------------------------------------------------------------
    # Derivation
    # ------------------------------------------------------------------

    def with_values(
        self,
        updates: Mapping[str, np.ndarray],
        channels: Optional[Mapping[str, Channel]] = None
    ) -> "Recording":
        """
        Build a new Recording with some channel values replaced.

        Channels that were unset and now hold data get their schema
        continuity back; channels emptied by the update become unset.

        Args:
            updates: New values per channel name (same length as the recording)
            channels: Optional replacement metadata per channel name
        """
        data = self._data.copy()
        meta = dict(self._channels)
        if channels:
            meta.update(channels)

        for name, values in updates.items():
            if name not in meta:
                raise KeyError(f"Recording has no channel '{name}'")
            values = np.asarray(values, dtype=float)
            if values.shape != (len(data),):
                raise ValueError(
                    f"Channel '{name}' has {values.shape[0]} values, expected {len(data)}"
                )
            data[name] = values

            current = meta[name]
            all_missing = bool(np.isnan(values).all())
            if all_missing and current.continuity != Continuity.UNSET:
                meta[name] = _with_continuity(current, Continuity.UNSET)
            elif not all_missing and current.continuity == Continuity.UNSET:
                spec = SCHEMA_BY_NAME.get(name)
                restored = spec.continuity if spec else Continuity.CONTINUOUS
                meta[name] = _with_continuity(current, restored)

        return Recording(data, meta)

    def select(self, names: Iterable[str]) -> "Recording":
        """New Recording holding only the given channels."""
        names = [name for name in names if name != RUNTIME.name]
        channels = {name: self.channel(name) for name in names}
        return Recording(self._data[names], channels)

    @classmethod
    def from_grid(
        cls,
        index: pd.DatetimeIndex,
        columns: Mapping[str, np.ndarray],
        channels: Mapping[str, Channel]
    ) -> "Recording":
        """Build a Recording from an index and per-channel value arrays."""
        frame = pd.DataFrame(
            {name: np.asarray(values, dtype=float) for name, values in columns.items()},
            index=index,
        )
        return cls(frame, channels)


def _with_continuity(channel: Channel, continuity: Continuity) -> Channel:
    return Channel(
        name=channel.name,
        unit=channel.unit,
        description=channel.description,
        continuity=continuity,
    )
