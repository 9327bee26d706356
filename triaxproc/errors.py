"""
Error Taxonomy
==============
Fatal errors raised to the caller and warning categories recorded as
diagnostics by the processing stages.

Fatal (raised):
- SchemaError: malformed or empty input table
- ParameterError: invalid geometry/timestep arguments

Non-fatal (recorded, never raised by the pipeline):
- MissingChannelWarning: source column absent from the input
- AllMissingWarning: channel entirely missing after normalization
- FilterFailure: a channel's denoising recipe raised
- CalculationFailure: the permeability derivation raised
"""


class TriaxError(Exception):
    """Base class for all fatal processing errors."""


class SchemaError(TriaxError, ValueError):
    """Raw input table is malformed, empty or too large."""


class ParameterError(TriaxError, ValueError):
    """Caller supplied invalid specimen geometry or timestep."""


class SchemaWarning(UserWarning):
    """Input rows were adjusted while being normalized."""


class MissingChannelWarning(UserWarning):
    """A canonical channel has no source column in the raw input."""


class AllMissingWarning(UserWarning):
    """A channel holds no valid sample after normalization."""


class FilterFailure(UserWarning):
    """Denoising a single channel failed; the channel stays unfiltered."""


class CalculationFailure(UserWarning):
    """Permeability derivation failed; the result is zero-filled."""
