#!/usr/bin/env python3
"""
Process a raw logger dump of a triaxial experiment and calculate permeability.

Typical usage:
  python scripts/process_recording.py --input dump.csv --length 10 --diameter 5
  python scripts/process_recording.py --demo --length 10 --diameter 5 --output perm.csv

Steps:
- Reads the CSV dump (one `time` column plus raw source columns)
- Runs the processing pipeline (normalize -> resample -> filter)
- Calculates the permeability series at the requested timestep
- Prints diagnostics and writes the permeability table if requested
"""

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import numpy as np
import pandas as pd

from triaxproc.config import configure_logging
from triaxproc.errors import TriaxError
from triaxproc.processing.processor import ExperimentProcessor
from triaxproc.simulator.sensor_simulator import ExperimentConfiguration, TriaxSimulator


def main() -> int:
    import argparse

    parser = argparse.ArgumentParser(description="Process a triaxial experiment dump and calculate permeability")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--input", help="CSV dump with a time column and raw source columns")
    source.add_argument("--demo", action="store_true", help="Use a simulated two hour experiment")
    parser.add_argument("--time-column", default="time", help="Name of the timestamp column")
    parser.add_argument("--length", type=float, required=True, help="Initial specimen length (cm)")
    parser.add_argument("--diameter", type=float, required=True, help="Specimen diameter (cm)")
    parser.add_argument("--timestep", type=float, default=None, help="Calculation timestep (minutes)")
    parser.add_argument("--debug", action="store_true", help="Output the full intermediate working table")
    parser.add_argument("--output", help="Write the permeability table to this CSV file")
    parser.add_argument("--log-level", default=None, help="Logging level (default TRIAX_LOG_LEVEL)")
    args = parser.parse_args()

    configure_logging(args.log_level)

    if args.demo:
        simulator = TriaxSimulator(ExperimentConfiguration(duration_minutes=120, seed=42))
        metadata = simulator.get_experiment_metadata()
        print(f"Demo: {metadata['name']}, {metadata['duration_hours']:.1f} h from {metadata['start']}")
        raw = simulator.generate_table()
    else:
        raw = pd.read_csv(args.input)

    try:
        result = ExperimentProcessor(time_column=args.time_column).process(raw)
        perm = result.permeability(
            length_cm=args.length,
            diameter_cm=args.diameter,
            timestep_min=args.timestep,
            debug=args.debug
        )
    except TriaxError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    if args.output:
        perm.table.to_csv(args.output)

    stats = result.to_statistics_dict()
    print("")
    print("Processing complete")
    print(f"  Raw rows: {stats['original_rows']:,}")
    print(f"  Grid points: {stats['processed_rows']:,}")
    print(f"  Duration: {stats['duration_s'] / 3600:.2f} h")
    if stats['unset_channels']:
        print(f"  Unset channels: {', '.join(stats['unset_channels'])}")
    print(f"  Diagnostics: {stats['diagnostics']['warn']} warnings, {stats['diagnostics']['error']} errors")
    print(f"  Permeability: {perm.status.value.upper()}"
          + (f" ({perm.reason})" if perm.reason else ""))
    if perm.ok:
        print(f"  Segments: {len(perm.segmentation)}")
        print(f"  Median permeability: {np.nanmedian(perm.table['permeability']):.3e} m/s")
    for diagnostic in list(result.diagnostics) + list(perm.diagnostics):
        print(f"    {diagnostic.severity.value:5s} {diagnostic}")
    if args.output:
        print(f"  Written: {args.output}")

    return 0 if perm.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
