"""
Processing Module
=================
Post-processing of triaxial experiment sensor recordings.

Modules:
- schema: Canonical channel table
- recording: Immutable multi-channel recording
- normalizer: Map raw columns onto the channel schema
- resampler: Uniform grid with continuity-driven interpolation
- filters: Per-channel denoising recipes
- despiker: Outlier detection and replacement
- segmenter: Split the flow series at scale resets
- permeability: Temperature corrected permeability
- bundles / flow: Derived tables
- processor: Pipeline orchestration
"""

from triaxproc.processing.schema import (
    CHANNEL_SCHEMA,
    Channel,
    ChannelSpec,
    Continuity,
    get_spec
)

from triaxproc.processing.diagnostics import (
    Diagnostic,
    DiagnosticLog,
    Severity
)

from triaxproc.processing.recording import Recording

from triaxproc.processing.normalizer import (
    ColumnNormalizer,
    NormalizationResult,
    normalize_table
)

from triaxproc.processing.resampler import (
    Resampler,
    resample_recording
)

from triaxproc.processing.despiker import (
    Despiker,
    DespikeResult,
    despike_channel
)

from triaxproc.processing.filters import (
    FILTER_RECIPES,
    ChannelFilter,
    FilterRecipe,
    FilterResult,
    FilterStep,
    filter_effects,
    filter_recording
)

from triaxproc.processing.segmenter import (
    FlowSegmentation,
    FlowSegmenter,
    Segment,
    segment_flow
)

from triaxproc.processing.permeability import (
    PermeabilityCalculator,
    PermeabilityResult,
    ResultStatus,
    alpha_correction,
    calculate_permeability,
    viscosity_index,
    water_density
)

from triaxproc.processing.bundles import BUNDLES, get_bundle

from triaxproc.processing.flow import analytics_summary, analyze_flow_mass

from triaxproc.processing.processor import (
    ExperimentProcessor,
    ProcessingResult,
    process_experiment
)

__all__ = [
    # Schema
    'CHANNEL_SCHEMA',
    'Channel',
    'ChannelSpec',
    'Continuity',
    'get_spec',

    # Diagnostics
    'Diagnostic',
    'DiagnosticLog',
    'Severity',

    # Recording / normalizer
    'Recording',
    'ColumnNormalizer',
    'NormalizationResult',
    'normalize_table',

    # Resampler
    'Resampler',
    'resample_recording',

    # Despiker / filters
    'Despiker',
    'DespikeResult',
    'despike_channel',
    'FILTER_RECIPES',
    'ChannelFilter',
    'FilterRecipe',
    'FilterResult',
    'FilterStep',
    'filter_effects',
    'filter_recording',

    # Segmenter
    'FlowSegmentation',
    'FlowSegmenter',
    'Segment',
    'segment_flow',

    # Permeability
    'PermeabilityCalculator',
    'PermeabilityResult',
    'ResultStatus',
    'alpha_correction',
    'calculate_permeability',
    'viscosity_index',
    'water_density',

    # Derived tables
    'BUNDLES',
    'get_bundle',
    'analytics_summary',
    'analyze_flow_mass',

    # Processor
    'ExperimentProcessor',
    'ProcessingResult',
    'process_experiment',
]
